"""Deterministic PCG hash random number generator.

Every path owns its random stream explicitly: the generator state is a single
``u32`` that is threaded through the bounce loop by value. Each draw returns
the advanced state together with the value, so there is no global seed and two
runs with the same pixel index and frame seed produce identical sequences.

The state update is the PCG RXS-M-XS permutation:

    state = state * 747796405 + 2891336453
    word  = ((state >> ((state >> 28) + 4)) ^ state) * 277803737
    out   = (word >> 22) ^ word

All arithmetic is modulo 2^32. Constants at or above 2^31 are stored as their
two's complement i32 equivalents and cast to u32 so that Taichi never sees an
out-of-range integer literal.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from sunsky.core.rng import PcgRng
    >>> rng = PcgRng(pixel_index=10, frame_seed=3)
    >>> value = rng.next_float()  # same value rng_next_float gives in a kernel
"""

import taichi as ti
import taichi.math as tm

PCG_MULTIPLIER = 747796405
PCG_INCREMENT = 2891336453
PCG_OUTPUT_MULTIPLIER = 277803737

# Odd constant mixed into the per-pixel seed
SEED_MULTIPLIER = 0x27D4EB2D

UINT32_MASK = 0xFFFFFFFF
UINT32_MAX_FLOAT = 4294967295.0

# Largest f32 strictly below 1.0
ONE_MINUS_EPSILON = 0.99999994


def as_signed_i32(value: int) -> int:
    """Reinterpret an unsigned 32-bit constant as a signed i32 literal."""
    value &= UINT32_MASK
    return value - (1 << 32) if value >= (1 << 31) else value


_PCG_INCREMENT_I32 = as_signed_i32(PCG_INCREMENT)


@ti.func
def u32_shr(x: ti.u32, n: ti.u32) -> ti.u32:
    """Logical right shift of a u32, independent of the backend's shift kind."""
    mask = (ti.cast(1, ti.u32) << (ti.cast(32, ti.u32) - n)) - ti.cast(1, ti.u32)
    return (x >> n) & mask


@ti.func
def _pcg_step(state: ti.u32) -> ti.u32:
    return state * ti.cast(PCG_MULTIPLIER, ti.u32) + ti.cast(_PCG_INCREMENT_I32, ti.u32)


@ti.func
def _pcg_output(state: ti.u32) -> ti.u32:
    shift = u32_shr(state, ti.cast(28, ti.u32)) + ti.cast(4, ti.u32)
    word = (u32_shr(state, shift) ^ state) * ti.cast(PCG_OUTPUT_MULTIPLIER, ti.u32)
    return u32_shr(word, ti.cast(22, ti.u32)) ^ word


@ti.func
def pcg_hash(x: ti.u32) -> ti.u32:
    """Hash a 32-bit integer with one PCG step and output permutation."""
    return _pcg_output(_pcg_step(x))


@ti.func
def rng_seed(pixel_index: ti.i32, frame_seed: ti.u32) -> ti.u32:
    """Initial generator state for one pixel of one sample pass.

    Args:
        pixel_index: Linear pixel index (row * width + column).
        frame_seed: Per-pass seed, see :func:`make_frame_seed`.

    Returns:
        The generator state to thread through the path.
    """
    return (ti.cast(pixel_index, ti.u32) ^ frame_seed) * ti.cast(SEED_MULTIPLIER, ti.u32)


@ti.func
def rng_next_u32(state: ti.u32):
    """Advance the generator.

    Returns:
        Tuple of (new_state, 32-bit output).
    """
    new_state = _pcg_step(state)
    return new_state, _pcg_output(new_state)


@ti.func
def u32_to_unit_float(x: ti.u32) -> ti.f32:
    """Map a 32-bit integer to [0, 1)."""
    return ti.min(ti.cast(x, ti.f32) / UINT32_MAX_FLOAT, ONE_MINUS_EPSILON)


@ti.func
def rng_next_float(state: ti.u32):
    """Draw one uniform float in [0, 1).

    Returns:
        Tuple of (new_state, value).
    """
    new_state, bits = rng_next_u32(state)
    return new_state, u32_to_unit_float(bits)


@ti.func
def rng_next_float2(state: ti.u32):
    """Draw two consecutive uniform floats.

    Returns:
        Tuple of (new_state, vec2).
    """
    state1, a = rng_next_float(state)
    state2, b = rng_next_float(state1)
    return state2, tm.vec2(a, b)


# =============================================================================
# Host mirror
# =============================================================================


def pcg_hash_host(x: int) -> int:
    """Python equivalent of :func:`pcg_hash`."""
    state = (x * PCG_MULTIPLIER + PCG_INCREMENT) & UINT32_MASK
    word = (((state >> ((state >> 28) + 4)) ^ state) * PCG_OUTPUT_MULTIPLIER) & UINT32_MASK
    return ((word >> 22) ^ word) & UINT32_MASK


def make_frame_seed(seed: int, sample_index: int) -> int:
    """Per-pass seed derived from the user seed and the pass index.

    Both values are hashed so that ``pixel ^ frame_seed`` does not collide
    between neighbouring pixels of consecutive passes.
    """
    return pcg_hash_host((sample_index + pcg_hash_host(seed & UINT32_MASK)) & UINT32_MASK)


class PcgRng:
    """Host-side generator producing the same stream as the kernel functions.

    Args:
        pixel_index: Linear pixel index.
        frame_seed: Per-pass seed.

    Example:
        >>> rng = PcgRng(0, 1)
        >>> 0.0 <= rng.next_float() < 1.0
        True
    """

    def __init__(self, pixel_index: int = 0, frame_seed: int = 0):
        self.state = ((pixel_index ^ frame_seed) * SEED_MULTIPLIER) & UINT32_MASK

    def next_u32(self) -> int:
        self.state = (self.state * PCG_MULTIPLIER + PCG_INCREMENT) & UINT32_MASK
        word = (
            ((self.state >> ((self.state >> 28) + 4)) ^ self.state) * PCG_OUTPUT_MULTIPLIER
        ) & UINT32_MASK
        return ((word >> 22) ^ word) & UINT32_MASK

    def next_float(self) -> float:
        return min(self.next_u32() / UINT32_MAX_FLOAT, ONE_MINUS_EPSILON)

    def next_float2(self) -> tuple[float, float]:
        return self.next_float(), self.next_float()

    def __repr__(self) -> str:
        return f"PcgRng(state=0x{self.state:08x})"
