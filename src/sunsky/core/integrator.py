"""Path tracing integrator for Monte Carlo light transport.

This module implements the rendering kernel: unidirectional path tracing
with next-event estimation against the sun and the sky, one-sample multiple
importance sampling, Russian roulette termination and additive sample
accumulation.

Per bounce the path:
    1. traces the ray; a miss adds the environment and ends the path,
    2. builds the MaterialData record and adds the surface emission,
    3. estimates direct light from each enabled light with one-sample MIS
       (light sampling or BSDF sampling, chosen at random) and a shadow ray,
    4. samples the continuation direction and multiplies the throughput by
       the folded BxDF weight,
    5. plays Russian roulette once the warm-up depth is reached.

A miss adds the sky (or the background) and the sun disc only when no direct
light estimate could have counted it: after the camera ray, after a delta
bounce, or with next-event estimation disabled.

Every sample pass is one kernel launch, parallel over pixels. Each pixel adds
its radiance to a running sum and increments its sample count; the image is
sum / count.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from sunsky.config import RenderSettings
    >>> from sunsky.core.integrator import apply_settings, render_image, setup_render_target
    >>> from sunsky.scene.demo import create_demo_scene
    >>>
    >>> scene, camera = create_demo_scene()
    >>> apply_settings(RenderSettings(max_depth=6, seed=1))
    >>> setup_render_target(320, 240)
    >>> render_image(num_samples=16)
"""

import logging

import numpy as np
import taichi as ti
import taichi.math as tm
from PIL import Image

from sunsky.camera.pinhole import filter_offset, generate_ray
from sunsky.config import MAX_DEPTH_LIMIT, RenderSettings, SamplerKind
from sunsky.lights.sky import sample_sky, sky_color, sky_enabled, sky_pdf
from sunsky.lights.sun import sample_sun, sun_contains, sun_enabled, sun_pdf, sun_radiance
from sunsky.materials.bxdf import eval_bxdf_reflection, has_smooth_lobes_only, sample_bxdf
from sunsky.materials.shading import MaterialData, build_material_data
from sunsky.scene.intersection import trace, trace_shadow

from .mis import one_sample_mis_estimate
from .ray import is_finite, luminance, max_component
from .rng import pcg_hash, pcg_hash_host, rng_seed
from .sampler import (
    DIM_BSDF,
    DIM_LOBE,
    DIM_PIXEL,
    DIM_ROULETTE,
    DIM_SKY,
    DIM_SKY_LOBE,
    DIM_SKY_STRATEGY,
    DIM_SUN,
    DIM_SUN_LOBE,
    DIM_SUN_STRATEGY,
    BounceSample,
    OrthogonalArraySampler,
    configure_sampler,
    draw_bounce_samples,
)

logger = logging.getLogger(__name__)

# Type alias for 3D vectors
vec3 = tm.vec3

# =============================================================================
# Rendering Constants
# =============================================================================

# Ray offset epsilon to avoid self-intersection
RAY_EPSILON = 1e-4

# t_min and t_max for ray intersection
T_MIN = 1e-4
T_MAX = 1e10

# =============================================================================
# Frame Parameters
# =============================================================================

_max_depth = ti.field(dtype=ti.i32, shape=())
_base_seed = ti.field(dtype=ti.u32, shape=())
_sampler_mode = ti.field(dtype=ti.i32, shape=())
_nee_enabled = ti.field(dtype=ti.i32, shape=())
_rr_start_depth = ti.field(dtype=ti.i32, shape=())
_rr_forced_survival = ti.field(dtype=ti.f32, shape=())
_mis_light_probability = ti.field(dtype=ti.f32, shape=())
_background = ti.Vector.field(3, dtype=ti.f32, shape=())
_pixel_filter = ti.field(dtype=ti.i32, shape=())

_settings = RenderSettings()


def apply_settings(settings: RenderSettings) -> None:
    """Copy the integrator settings into the Taichi fields.

    Args:
        settings: Frame parameters; validated before use.

    Raises:
        ValueError: If a setting is out of range.
    """
    global _settings
    settings.validate()
    if settings.sampler == SamplerKind.ORTHOGONAL_ARRAY:
        configure_sampler(OrthogonalArraySampler())

    _max_depth[None] = settings.max_depth
    _base_seed[None] = pcg_hash_host(settings.seed)
    _sampler_mode[None] = int(settings.sampler)
    _nee_enabled[None] = 1 if settings.nee else 0
    _rr_start_depth[None] = settings.rr_start_depth
    _rr_forced_survival[None] = settings.rr_forced_survival
    _mis_light_probability[None] = settings.mis_light_probability
    _background[None] = vec3(*settings.background)
    _pixel_filter[None] = int(settings.pixel_filter)
    _settings = settings
    logger.debug("render settings: %s", settings.to_dict())


def get_settings() -> RenderSettings:
    return _settings


# =============================================================================
# Render Target (Accumulation Buffer)
# =============================================================================

# Maximum supported image dimensions (preallocated to avoid kernel recompilation)
MAX_IMAGE_WIDTH = 2048
MAX_IMAGE_HEIGHT = 2048

_image_width = ti.field(dtype=ti.i32, shape=())
_image_height = ti.field(dtype=ti.i32, shape=())

# Radiance sum and sample count per pixel, indexed (x, y) with y = 0 at the bottom
_sum_buffer = ti.Vector.field(3, dtype=ti.f32, shape=(MAX_IMAGE_WIDTH, MAX_IMAGE_HEIGHT))
_sample_count = ti.field(dtype=ti.i32, shape=(MAX_IMAGE_WIDTH, MAX_IMAGE_HEIGHT))

_render_target_initialized = ti.field(dtype=ti.i32, shape=())

# Index of the next sample pass; drives the per-pass seed
_next_sample_index = 0


def setup_render_target(width: int, height: int) -> None:
    """Set the active image size and clear the accumulation buffers.

    Args:
        width: Image width in pixels (max MAX_IMAGE_WIDTH).
        height: Image height in pixels (max MAX_IMAGE_HEIGHT).

    Raises:
        ValueError: If a dimension is not positive or exceeds the maximum.
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Image dimensions must be positive, got {width}x{height}")
    if width > MAX_IMAGE_WIDTH or height > MAX_IMAGE_HEIGHT:
        raise ValueError(
            f"Image dimensions ({width}x{height}) exceed maximum supported "
            f"({MAX_IMAGE_WIDTH}x{MAX_IMAGE_HEIGHT})"
        )

    _image_width[None] = width
    _image_height[None] = height
    _render_target_initialized[None] = 1
    clear_render_target()


def clear_render_target() -> None:
    """Zero the sums and counts and restart the pass index."""
    global _next_sample_index
    _sum_buffer.fill(0.0)
    _sample_count.fill(0)
    _next_sample_index = 0


def get_image_dimensions() -> tuple[int, int]:
    """Current render target dimensions as (width, height)."""
    return int(_image_width[None]), int(_image_height[None])


def _check_render_target_initialized() -> None:
    if _render_target_initialized[None] == 0:
        raise RuntimeError("Render target not set up. Call setup_render_target() first.")


def _check_settings_applied() -> None:
    if _max_depth[None] == 0:
        raise RuntimeError("Render settings not applied. Call apply_settings() first.")


# =============================================================================
# Path Tracing Core
# =============================================================================


@ti.func
def _offset_ray_origin(point: vec3, normal: vec3, direction: vec3) -> vec3:
    """Push a ray origin off the surface, on the side the ray travels to."""
    offset_dir = normal
    if tm.dot(direction, normal) < 0.0:
        offset_dir = -normal
    return point + RAY_EPSILON * offset_dir


@ti.func
def _unoccluded(md: MaterialData, direction: vec3) -> ti.i32:
    origin = _offset_ray_origin(md.position, md.geometric_normal, direction)
    return 1 - trace_shadow(origin, direction, T_MIN, T_MAX)


@ti.func
def _light_strategy(md: MaterialData, view: vec3, direction: vec3, light_pdf: ti.f32, radiance: vec3, c: ti.f32) -> vec3:
    """One-sample MIS contribution when the light strategy was chosen."""
    contribution = vec3(0.0)
    if light_pdf > 0.0 and tm.dot(direction, md.geometric_normal) > 0.0:
        e = eval_bxdf_reflection(md, view, direction)
        cos_theta = ti.max(tm.dot(md.normal, direction), 0.0)
        value = e.bsdf * cos_theta * radiance
        if luminance(value) > 0.0:
            if _unoccluded(md, direction) == 1:
                contribution = one_sample_mis_estimate(value, c * light_pdf, (1.0 - c) * e.pdf)
    return contribution


@ti.func
def _sun_bsdf_strategy(md: MaterialData, view: vec3, u_lobe: ti.f32, u: tm.vec2, c: ti.f32) -> vec3:
    """One-sample MIS contribution of the sun when the BSDF strategy was chosen."""
    contribution = vec3(0.0)
    s = sample_bxdf(md, view, u_lobe, u.x, u.y)
    if s.valid == 1 and s.is_delta == 0:
        light_pdf = sun_pdf(s.direction)
        if light_pdf > 0.0:
            # weight = f cos / pdf, so f cos = weight * pdf
            value = s.weight * s.pdf * sun_radiance()
            if _unoccluded(md, s.direction) == 1:
                contribution = one_sample_mis_estimate(value, (1.0 - c) * s.pdf, c * light_pdf)
    return contribution


@ti.func
def _sky_bsdf_strategy(md: MaterialData, view: vec3, u_lobe: ti.f32, u: tm.vec2, c: ti.f32) -> vec3:
    """One-sample MIS contribution of the sky when the BSDF strategy was chosen."""
    contribution = vec3(0.0)
    s = sample_bxdf(md, view, u_lobe, u.x, u.y)
    if s.valid == 1 and s.is_delta == 0:
        value = s.weight * s.pdf * sky_color(s.direction)
        if luminance(value) > 0.0:
            if _unoccluded(md, s.direction) == 1:
                contribution = one_sample_mis_estimate(
                    value, (1.0 - c) * s.pdf, c * sky_pdf(s.direction)
                )
    return contribution


@ti.func
def estimate_direct_light(md: MaterialData, view: vec3, u: BounceSample) -> vec3:
    """Direct light from the sun and the sky at one shading point.

    Each enabled light gets one one-sample MIS estimate: the light strategy
    with probability c, the BSDF strategy otherwise.

    Args:
        md: Shading record.
        view: Unit direction toward the viewer.
        u: Bounce sample vector.

    Returns:
        The estimated reflected radiance, before the path throughput.
    """
    c = _mis_light_probability[None]
    direct = vec3(0.0)

    if sun_enabled() == 1:
        u_dir = tm.vec2(u[DIM_SUN], u[DIM_SUN + 1])
        if u[DIM_SUN_STRATEGY] < c:
            direction, pdf, radiance = sample_sun(u_dir.x, u_dir.y)
            direct += _light_strategy(md, view, direction, pdf, radiance, c)
        else:
            direct += _sun_bsdf_strategy(md, view, u[DIM_SUN_LOBE], u_dir, c)

    if sky_enabled() == 1:
        u_dir = tm.vec2(u[DIM_SKY], u[DIM_SKY + 1])
        if u[DIM_SKY_STRATEGY] < c:
            direction, pdf, radiance = sample_sky(u_dir.x, u_dir.y)
            direct += _light_strategy(md, view, direction, pdf, radiance, c)
        else:
            direct += _sky_bsdf_strategy(md, view, u[DIM_SKY_LOBE], u_dir, c)

    return direct


@ti.func
def environment_radiance(direction: vec3, include_lights: ti.i32) -> vec3:
    """Radiance arriving from infinity along a direction.

    Args:
        direction: Unit ray direction.
        include_lights: 1 to include the sun and the sky, 0 when next-event
            estimation has already accounted for them.

    Returns:
        The sky (or background) radiance, plus the sun when it is visible.
    """
    radiance = vec3(0.0)
    if sky_enabled() == 1:
        if include_lights == 1:
            radiance = sky_color(direction)
    else:
        radiance = _background[None]
    if include_lights == 1 and sun_enabled() == 1 and sun_contains(direction) == 1:
        radiance += sun_radiance()
    return radiance


@ti.func
def trace_path(pixel_i: ti.i32, pixel_j: ti.i32, width: ti.i32, height: ti.i32, sample_index: ti.i32) -> vec3:
    """Trace a single path from the camera through the scene.

    Args:
        pixel_i: Pixel x-coordinate (0 = left).
        pixel_j: Pixel y-coordinate (0 = bottom).
        width: Image width in pixels.
        height: Image height in pixels.
        sample_index: Index of the sample pass.

    Returns:
        The estimated radiance (RGB) for this path sample.
    """
    pixel_index = pixel_j * width + pixel_i
    base_seed = _base_seed[None]
    frame_seed = pcg_hash(ti.cast(sample_index, ti.u32) + base_seed)
    mode = _sampler_mode[None]
    max_depth = _max_depth[None]
    nee = _nee_enabled[None]

    first_state, first_u = draw_bounce_samples(
        rng_seed(pixel_index, frame_seed), mode, pixel_index, base_seed, sample_index, 0
    )
    state = first_state
    u = first_u
    offset = filter_offset(tm.vec2(u[DIM_PIXEL], u[DIM_PIXEL + 1]), _pixel_filter[None])
    ray = generate_ray(pixel_i, pixel_j, width, height, offset)
    origin = ray.origin
    direction = ray.direction

    radiance = vec3(0.0)
    throughput = vec3(1.0)
    last_delta = 1
    active = 1

    for depth in range(MAX_DEPTH_LIMIT):
        if active == 1 and depth < max_depth:
            if depth > 0:
                next_state, next_u = draw_bounce_samples(
                    state, mode, pixel_index, base_seed, sample_index, depth
                )
                state = next_state
                u = next_u

            hit = trace(origin, direction, T_MIN, T_MAX)
            if hit.hit == 0:
                include_lights = ti.select(last_delta == 1 or nee == 0, 1, 0)
                radiance += throughput * environment_radiance(direction, include_lights)
                active = 0
            else:
                view = -direction
                md = build_material_data(hit, view)
                radiance += throughput * md.emissive

                if nee == 1 and has_smooth_lobes_only(md, view) == 0:
                    radiance += throughput * estimate_direct_light(md, view, u)

                s = sample_bxdf(md, view, u[DIM_LOBE], u[DIM_BSDF], u[DIM_BSDF + 1])
                if s.valid == 0:
                    active = 0
                else:
                    throughput *= s.weight
                    last_delta = s.is_delta

                    if depth + 1 >= _rr_start_depth[None]:
                        survival = tm.clamp(max_component(throughput), 0.0, 1.0)
                        if _rr_forced_survival[None] > 0.0:
                            survival = _rr_forced_survival[None]
                        if u[DIM_ROULETTE] >= survival:
                            active = 0
                        else:
                            throughput /= survival

                    if active == 1:
                        origin = _offset_ray_origin(md.position, md.geometric_normal, s.direction)
                        direction = s.direction

    return radiance


# =============================================================================
# Rendering Kernels
# =============================================================================


@ti.kernel
def _render_one_spp(width: ti.i32, height: ti.i32, sample_index: ti.i32):
    """Trace one path per pixel and add it to the accumulation buffers."""
    for i, j in ti.ndrange(width, height):
        color = trace_path(i, j, width, height, sample_index)
        # A non-finite sample is dropped whole, but still counted
        if is_finite(color) == 0:
            color = vec3(0.0)
        _sum_buffer[i, j] += color
        _sample_count[i, j] += 1


@ti.kernel
def _render_single_pixel(
    pixel_i: ti.i32, pixel_j: ti.i32, width: ti.i32, height: ti.i32, sample_index: ti.i32
) -> vec3:
    return trace_path(pixel_i, pixel_j, width, height, sample_index)


# =============================================================================
# Public Rendering API
# =============================================================================


def render_sample(pixel_i: int, pixel_j: int, sample_index: int = 0) -> tuple[float, float, float]:
    """Trace one path through a single pixel without accumulating it.

    Args:
        pixel_i: Pixel x-coordinate (0 = left).
        pixel_j: Pixel y-coordinate (0 = bottom).
        sample_index: Sample pass index used for seeding.

    Returns:
        Tuple of (R, G, B) radiance.

    Raises:
        RuntimeError: If render target has not been set up.
    """
    _check_render_target_initialized()
    _check_settings_applied()
    width, height = get_image_dimensions()
    color = _render_single_pixel(pixel_i, pixel_j, width, height, sample_index)
    return (float(color[0]), float(color[1]), float(color[2]))


def render_image(num_samples: int = 1) -> None:
    """Render ``num_samples`` passes and add them to the accumulation buffers.

    Consecutive calls continue the pass index, so rendering 4 + 4 samples
    gives the same image as rendering 8.

    Raises:
        RuntimeError: If render target has not been set up.
    """
    global _next_sample_index
    _check_render_target_initialized()
    _check_settings_applied()
    width, height = get_image_dimensions()
    for _ in range(num_samples):
        _render_one_spp(width, height, _next_sample_index)
        _next_sample_index += 1
    logger.debug("rendered %d passes, %d total", num_samples, _next_sample_index)


def get_total_samples() -> int:
    """Number of passes accumulated so far."""
    _check_render_target_initialized()
    return int(_sample_count[0, 0])


def get_image_numpy() -> np.ndarray:
    """Mean radiance per pixel, sum / count, as linear float32.

    Returns:
        Array of shape (height, width, 3), row 0 at the top. Pixels without
        samples are zero.

    Raises:
        RuntimeError: If render target has not been set up.
    """
    _check_render_target_initialized()
    width, height = get_image_dimensions()

    sums = _sum_buffer.to_numpy()[:width, :height, :]
    counts = _sample_count.to_numpy()[:width, :height].astype(np.float32)
    image = sums / np.maximum(counts, 1.0)[:, :, None]

    # (width, height, 3) with y up -> (height, width, 3) with row 0 on top
    image = np.flipud(np.transpose(image, (1, 0, 2)))
    return np.ascontiguousarray(image, dtype=np.float32)


def get_accumulation_numpy() -> tuple[np.ndarray, np.ndarray]:
    """Raw (sum, count) buffers in image layout, row 0 at the top."""
    _check_render_target_initialized()
    width, height = get_image_dimensions()
    sums = np.flipud(np.transpose(_sum_buffer.to_numpy()[:width, :height, :], (1, 0, 2)))
    counts = np.flipud(np.transpose(_sample_count.to_numpy()[:width, :height]))
    return np.ascontiguousarray(sums), np.ascontiguousarray(counts)


def to_display(image: np.ndarray, gamma: float = 2.2, exposure: float = 1.0) -> np.ndarray:
    """Clamp a linear image to [0, 1], apply a plain display gamma, quantize to 8 bits."""
    if gamma <= 0.0:
        raise ValueError(f"gamma must be positive, got {gamma}")
    image = np.clip(np.asarray(image, dtype=np.float32) * exposure, 0.0, 1.0)
    image = np.power(image, 1.0 / gamma)
    return (image * 255.0 + 0.5).astype(np.uint8)


def save_image(filepath: str, gamma: float = 2.2, exposure: float = 1.0) -> None:
    """Save the current mean image to a file through Pillow.

    Args:
        filepath: Output path; the format follows the extension.
        gamma: Display gamma. Default is 2.2.
        exposure: Linear scale applied before clamping.

    Raises:
        RuntimeError: If render target has not been set up.
    """
    Image.fromarray(to_display(get_image_numpy(), gamma, exposure)).save(filepath)
    logger.info("saved %s", filepath)
