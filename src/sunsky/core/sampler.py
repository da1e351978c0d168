"""Per-bounce sample vectors: independent PCG or orthogonal-array stratified.

At every bounce the integrator consumes a fixed-size vector of uniform
variates, one entry per decision (lobe selection, BSDF direction, light
strategy, light direction, Russian roulette, pixel jitter). The vector comes
from one of two sources:

- SAMPLER_INDEPENDENT: consecutive draws from the path's PCG stream.
- SAMPLER_ORTHOGONAL_ARRAY: Bush-construction orthogonal arrays (Jarosz et
  al. 2019, "Orthogonal Array Sampling for Monte Carlo Rendering"). Sample
  ``i`` of a pattern of ``N = strata^strength`` points is permuted with a
  seed-dependent bijection, its base-``strata`` digits are used as the
  coefficients of a polynomial that is evaluated at the dimension index to
  pick the stratum, and the remaining digits plus a hashed jitter place the
  point inside that stratum. Any ``strength`` dimensions are jointly
  stratified over a full pattern.

The orthogonal-array parameters are one runtime configuration
(:class:`OrthogonalArraySampler`) rather than a family of specialized
functions.

Example:
    >>> from sunsky.core.sampler import OrthogonalArraySampler, configure_sampler
    >>> configure_sampler(OrthogonalArraySampler(strength=2, strata=17))
"""

import logging
from dataclasses import dataclass

import taichi as ti

from .rng import as_signed_i32, pcg_hash, rng_next_float, u32_shr

logger = logging.getLogger(__name__)

# Sampler kinds
SAMPLER_INDEPENDENT = 0
SAMPLER_ORTHOGONAL_ARRAY = 1

# Layout of the per-bounce sample vector
DIM_LOBE = 0
DIM_BSDF = 1  # two entries
DIM_SUN_STRATEGY = 3
DIM_SUN_LOBE = 4
DIM_SUN = 5  # two entries
DIM_SKY_STRATEGY = 7
DIM_SKY_LOBE = 8
DIM_SKY = 9  # two entries
DIM_ROULETTE = 11
DIM_PIXEL = 12  # two entries, used by the camera ray only
BOUNCE_DIMENSIONS = 14

BounceSample = ti.types.vector(BOUNCE_DIMENSIONS, ti.f32)

# Upper bound on cycle-walking rounds in permute(); the expected count is < 2
PERMUTE_MAX_ROUNDS = 32

# Hash constants (Kensler 2013, Jarosz et al. 2019)
_K_PERMUTE = tuple(
    as_signed_i32(c)
    for c in (0xE170893D, 0x0929EB3F, 0x6935FA69, 0x74DCB303, 0x9E501CC3, 0xC860A3DF)
)
_K_RANDFLOAT = tuple(as_signed_i32(c) for c in (0xB36534E5, 0x93FC4795, 0xDF6E307F))
_K_STRATUM = as_signed_i32(0x51633E2D)
_K_SUBSTRATUM = as_signed_i32(0x68BC21EB)
_K_JITTER = as_signed_i32(0x02E5BE93)
_K_PATTERN = as_signed_i32(0x9E3779B9)


def _is_prime(n: int) -> bool:
    if n < 2:
        return False
    k = 2
    while k * k <= n:
        if n % k == 0:
            return False
        k += 1
    return True


@dataclass
class OrthogonalArraySampler:
    """Parameters of the orthogonal-array sampler.

    Attributes:
        strength: Number of dimensions that are jointly stratified (t).
        dimension: Number of dimensions drawn per bounce (d). Must not exceed
            ``strata`` for the Bush construction.
        strata: Number of strata per dimension (s). Must be prime.
    """

    strength: int = 2
    dimension: int = BOUNCE_DIMENSIONS
    strata: int = 17

    def __post_init__(self):
        if self.strength < 1:
            raise ValueError(f"OA strength must be >= 1, got {self.strength}")
        if not _is_prime(self.strata):
            raise ValueError(f"OA strata count must be prime, got {self.strata}")
        if self.dimension > self.strata:
            raise ValueError(
                f"OA dimension ({self.dimension}) must not exceed strata ({self.strata})"
            )
        if self.dimension < BOUNCE_DIMENSIONS:
            raise ValueError(
                f"OA dimension must cover the {BOUNCE_DIMENSIONS} per-bounce samples, "
                f"got {self.dimension}"
            )
        if self.num_samples >= 1 << 31:
            raise ValueError(f"OA pattern too large: {self.strata}^{self.strength}")

    @property
    def num_samples(self) -> int:
        """Number of points in one full pattern (N = s^t)."""
        return self.strata**self.strength


# =============================================================================
# Sampler state (Taichi fields)
# =============================================================================

_oa_strength = ti.field(dtype=ti.i32, shape=())
_oa_strata = ti.field(dtype=ti.i32, shape=())
_oa_count = ti.field(dtype=ti.i32, shape=())


def configure_sampler(sampler: OrthogonalArraySampler) -> None:
    """Store the orthogonal-array parameters used by draw_bounce_samples."""
    _oa_strength[None] = sampler.strength
    _oa_strata[None] = sampler.strata
    _oa_count[None] = sampler.num_samples
    logger.debug(
        "orthogonal array: strength=%d strata=%d samples/pattern=%d",
        sampler.strength,
        sampler.strata,
        sampler.num_samples,
    )


def get_sampler_config() -> OrthogonalArraySampler:
    return OrthogonalArraySampler(strength=_oa_strength[None], strata=_oa_strata[None])


# =============================================================================
# Orthogonal-array construction
# =============================================================================


@ti.func
def _k(c: ti.template()) -> ti.u32:
    return ti.cast(c, ti.u32)


@ti.func
def _permute_round(i: ti.u32, w: ti.u32, p: ti.u32) -> ti.u32:
    x = i
    x ^= p
    x *= _k(_K_PERMUTE[0])
    x ^= u32_shr(p, _k(16))
    x ^= u32_shr(x & w, _k(4))
    x ^= u32_shr(p, _k(8))
    x *= _k(_K_PERMUTE[1])
    x ^= u32_shr(p, _k(23))
    x ^= u32_shr(x & w, _k(1))
    x *= _k(1) | u32_shr(p, _k(27))
    x *= _k(_K_PERMUTE[2])
    x ^= u32_shr(x & w, _k(11))
    x *= _k(_K_PERMUTE[3])
    x ^= u32_shr(x & w, _k(2))
    x *= _k(_K_PERMUTE[4])
    x ^= u32_shr(x & w, _k(2))
    x *= _k(_K_PERMUTE[5])
    x &= w
    x ^= u32_shr(x, _k(5))
    return x


@ti.func
def permute(i: ti.u32, length: ti.u32, p: ti.u32) -> ti.u32:
    """Seeded bijection of [0, length) by hashing and cycle walking.

    Args:
        i: Index to permute, in [0, length).
        length: Size of the permuted range.
        p: Permutation seed.

    Returns:
        The image of i under the permutation selected by p.
    """
    w = length - _k(1)
    w |= u32_shr(w, _k(1))
    w |= u32_shr(w, _k(2))
    w |= u32_shr(w, _k(4))
    w |= u32_shr(w, _k(8))
    w |= u32_shr(w, _k(16))

    x = i
    searching = 1
    for _ in range(PERMUTE_MAX_ROUNDS):
        if searching == 1:
            x = _permute_round(x, w, p)
            if x < length:
                searching = 0
    return (x + p) % length


@ti.func
def randfloat(i: ti.u32, p: ti.u32) -> ti.f32:
    """Hash (i, p) to a float in [0, 1)."""
    x = i
    x ^= p
    x ^= u32_shr(x, _k(17))
    x ^= u32_shr(x, _k(10))
    x *= _k(_K_RANDFLOAT[0])
    x ^= u32_shr(x, _k(12))
    x ^= u32_shr(x, _k(21))
    x *= _k(_K_RANDFLOAT[1])
    x ^= _k(_K_RANDFLOAT[2])
    x ^= u32_shr(x, _k(17))
    x *= _k(1) | u32_shr(p, _k(18))
    return ti.cast(x, ti.f32) * (1.0 / 4294967808.0)


@ti.func
def _eval_poly(i: ti.u32, strata: ti.u32, strength: ti.i32, x: ti.u32) -> ti.u32:
    """Evaluate sum(digit_l * x^l) mod strata, digits being i in base strata."""
    # Horner from the most significant digit down
    top = _k(1)
    for _ in range(strength - 1):
        top *= strata
    result = _k(0)
    for _ in range(strength):
        digit = (i // top) % strata
        result = (result * x + digit) % strata
        top = ti.max(top // strata, _k(1))
    return result


@ti.func
def bush_oa_sample(index: ti.i32, dim: ti.i32, seed: ti.u32) -> ti.f32:
    """Coordinate ``dim`` of point ``index`` of a Bush orthogonal array.

    Args:
        index: Point index within the pattern, in [0, strata^strength).
        dim: Dimension index, in [0, strata).
        seed: Pattern seed; different seeds give independent scramblings.

    Returns:
        A stratified coordinate in [0, 1).
    """
    strata = ti.cast(_oa_strata[None], ti.u32)
    count = ti.cast(_oa_count[None], ti.u32)
    strength = _oa_strength[None]
    j = ti.cast(dim, ti.u32)

    i = permute(ti.cast(index, ti.u32), count, seed)
    stm = count // strata
    phi = _eval_poly(i, strata, strength, j)
    stratum = permute(phi % strata, strata, j * seed * _k(_K_STRATUM))
    sub_stratum = permute((i // strata) % stm, stm, j * seed * _k(_K_SUBSTRATUM))
    jitter = randfloat(i, j * seed * _k(_K_JITTER))
    value = (
        ti.cast(stratum, ti.f32)
        + (ti.cast(sub_stratum, ti.f32) + jitter) / ti.cast(stm, ti.f32)
    ) / ti.cast(strata, ti.f32)
    return ti.min(value, 0.99999994)


@ti.func
def _pattern_seed(pixel_index: ti.i32, base_seed: ti.u32, depth: ti.i32, pattern: ti.i32) -> ti.u32:
    pixel_hash = pcg_hash(ti.cast(pixel_index, ti.u32) ^ base_seed)
    depth_hash = pcg_hash(pixel_hash + ti.cast(depth, ti.u32))
    return pcg_hash(depth_hash ^ (ti.cast(pattern, ti.u32) * _k(_K_PATTERN)))


@ti.func
def draw_bounce_samples(
    state: ti.u32,
    mode: ti.i32,
    pixel_index: ti.i32,
    base_seed: ti.u32,
    sample_index: ti.i32,
    depth: ti.i32,
):
    """Draw the uniform variates used by one bounce.

    Args:
        state: Current PCG state of the path.
        mode: SAMPLER_INDEPENDENT or SAMPLER_ORTHOGONAL_ARRAY.
        pixel_index: Linear pixel index.
        base_seed: Hashed user seed, constant across passes.
        sample_index: Index of the current sample pass.
        depth: Bounce depth.

    Returns:
        Tuple of (new_state, BounceSample). The state only advances in
        independent mode.
    """
    u = BounceSample(0.0)
    new_state = state
    if mode == SAMPLER_ORTHOGONAL_ARRAY:
        count = _oa_count[None]
        index = sample_index % count
        pattern = sample_index // count
        seed = _pattern_seed(pixel_index, base_seed, depth, pattern)
        for d in ti.static(range(BOUNCE_DIMENSIONS)):
            u[d] = bush_oa_sample(index, d, seed)
    else:
        for d in ti.static(range(BOUNCE_DIMENSIONS)):
            next_state, value = rng_next_float(new_state)
            new_state = next_state
            u[d] = value
    return new_state, u
