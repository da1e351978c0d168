"""Image-based sky dome with luminance importance sampling.

The sky is a latitude-longitude image. Row 0 looks straight up (+y) and the
last row straight down; columns sweep the azimuth phi = atan2(x, z) from 0 to
2 pi, offset by the sky rotation. Lookups are bilinear, wrapping in phi.

Importance sampling uses a piecewise-constant 2D distribution: rows are
chosen from a marginal distribution proportional to the row's mean luminance
times the solid angle of its latitude band, then a column from the row's
conditional distribution proportional to luminance. Inside the chosen cell
the direction is uniform in cos(theta) and phi, so the density is the cell
probability over the cell's solid angle:

    pdf = (pdfRow * H) * (pdfCol * W) / (2 pi^2 * sin_eff + eps)

where sin_eff = H * (cos(theta_top) - cos(theta_bottom)) / pi is the mean
sin(theta) over the band. For a uniform image this is exactly 1 / (4 pi).

Example:
    >>> import numpy as np
    >>> from sunsky.config import SkyParameters
    >>> from sunsky.lights.sky import setup_sky
    >>> gradient = np.linspace(1.0, 0.2, 64)[:, None, None] * np.ones((64, 128, 3))
    >>> setup_sky(SkyParameters(enabled=True, strength=2.0), image=gradient)
"""

import logging
from pathlib import Path

import numpy as np
import taichi as ti
import taichi.math as tm
from PIL import Image

from sunsky.config import SkyParameters
from sunsky.core.ray import LUMINANCE_WEIGHTS
from sunsky.materials.textures import load_image

logger = logging.getLogger(__name__)

vec3 = tm.vec3

MAX_SKY_WIDTH = 1024
MAX_SKY_HEIGHT = 512

# Keeps the pdf finite at the poles
SKY_PDF_EPSILON = 1e-8

_sky_enabled = ti.field(dtype=ti.i32, shape=())
_sky_loaded = ti.field(dtype=ti.i32, shape=())
_sky_strength = ti.field(dtype=ti.f32, shape=())
_sky_rotation = ti.field(dtype=ti.f32, shape=())
_sky_width = ti.field(dtype=ti.i32, shape=())
_sky_height = ti.field(dtype=ti.i32, shape=())

_sky_image = ti.Vector.field(3, dtype=ti.f32, shape=(MAX_SKY_HEIGHT, MAX_SKY_WIDTH))
_sky_conditional_cdf = ti.field(dtype=ti.f32, shape=(MAX_SKY_HEIGHT, MAX_SKY_WIDTH + 1))
_sky_conditional_pdf = ti.field(dtype=ti.f32, shape=(MAX_SKY_HEIGHT, MAX_SKY_WIDTH))
_sky_marginal_cdf = ti.field(dtype=ti.f32, shape=(MAX_SKY_HEIGHT + 1,))
_sky_marginal_pdf = ti.field(dtype=ti.f32, shape=(MAX_SKY_HEIGHT,))

# Host copy of the last distribution, for inspection
_host_distribution: dict[str, np.ndarray] = {}


# =============================================================================
# Host side
# =============================================================================


def _as_sky_image(image: np.ndarray) -> np.ndarray:
    pixels = np.asarray(image, dtype=np.float32)
    if pixels.ndim == 2:
        pixels = np.repeat(pixels[:, :, None], 3, axis=2)
    if pixels.ndim != 3 or pixels.shape[2] not in (1, 3, 4):
        raise ValueError(
            f"Sky image must have shape (H, W), (H, W, 3) or (H, W, 4), got {pixels.shape}"
        )
    if pixels.shape[2] == 1:
        pixels = np.repeat(pixels, 3, axis=2)
    pixels = pixels[:, :, :3]
    height, width = pixels.shape[:2]
    if width == 0 or height == 0:
        raise ValueError("Sky image must not be empty")
    if width > MAX_SKY_WIDTH or height > MAX_SKY_HEIGHT:
        raise ValueError(
            f"Sky image {width}x{height} exceeds the maximum {MAX_SKY_WIDTH}x{MAX_SKY_HEIGHT}"
        )
    if not np.all(np.isfinite(pixels)):
        raise ValueError("Sky image contains NaN or infinite values")
    return np.ascontiguousarray(np.maximum(pixels, 0.0), dtype=np.float32)


def band_solid_angle_factors(height: int) -> np.ndarray:
    """cos(theta_top) - cos(theta_bottom) for every row of a lat-long image."""
    rows = np.arange(height, dtype=np.float64)
    # cos a - cos b = 2 sin((a + b) / 2) sin((b - a) / 2)
    return 2.0 * np.sin(np.pi * (rows + 0.5) / height) * np.sin(np.pi / (2.0 * height))


def build_sky_distribution(image: np.ndarray) -> dict[str, np.ndarray]:
    """Build the piecewise-constant sampling distribution of a sky image.

    Args:
        image: Linear RGB image of shape (H, W, 3).

    Returns:
        Dict with ``conditional_cdf`` (H, W + 1), ``conditional_pdf`` (H, W),
        ``marginal_cdf`` (H + 1,) and ``marginal_pdf`` (H,). The pdfs are
        discrete probabilities: each row of ``conditional_pdf`` and
        ``marginal_pdf`` sums to 1. Rows without energy fall back to a
        uniform conditional; an image without energy falls back to sampling
        the sphere uniformly.
    """
    pixels = _as_sky_image(image).astype(np.float64)
    height, width = pixels.shape[:2]
    lum = np.maximum(pixels @ np.asarray(LUMINANCE_WEIGHTS, dtype=np.float64), 0.0)

    row_sum = lum.sum(axis=1)
    safe_sum = np.where(row_sum > 0.0, row_sum, 1.0)
    conditional_pdf = np.where(row_sum[:, None] > 0.0, lum / safe_sum[:, None], 1.0 / width)
    conditional_cdf = np.zeros((height, width + 1))
    conditional_cdf[:, 1:] = np.cumsum(conditional_pdf, axis=1)
    conditional_cdf /= conditional_cdf[:, -1:]
    conditional_cdf[:, -1] = 1.0

    band = band_solid_angle_factors(height)
    row_weight = row_sum / width * band
    total = row_weight.sum()
    if total > 0.0:
        marginal_pdf = row_weight / total
    else:
        marginal_pdf = band / band.sum()
    marginal_cdf = np.zeros(height + 1)
    marginal_cdf[1:] = np.cumsum(marginal_pdf)
    marginal_cdf /= marginal_cdf[-1]
    marginal_cdf[-1] = 1.0

    return {
        "conditional_cdf": conditional_cdf.astype(np.float32),
        "conditional_pdf": conditional_pdf.astype(np.float32),
        "marginal_cdf": marginal_cdf.astype(np.float32),
        "marginal_pdf": marginal_pdf.astype(np.float32),
    }


@ti.kernel
def _upload_sky(
    image: ti.types.ndarray(dtype=ti.f32, ndim=3),
    conditional_cdf: ti.types.ndarray(dtype=ti.f32, ndim=2),
    conditional_pdf: ti.types.ndarray(dtype=ti.f32, ndim=2),
    marginal_cdf: ti.types.ndarray(dtype=ti.f32, ndim=1),
    marginal_pdf: ti.types.ndarray(dtype=ti.f32, ndim=1),
):
    for i, j in ti.ndrange(image.shape[0], image.shape[1]):
        _sky_image[i, j] = vec3(image[i, j, 0], image[i, j, 1], image[i, j, 2])
        _sky_conditional_pdf[i, j] = conditional_pdf[i, j]
    for i, j in ti.ndrange(conditional_cdf.shape[0], conditional_cdf.shape[1]):
        _sky_conditional_cdf[i, j] = conditional_cdf[i, j]
    for i in range(marginal_pdf.shape[0]):
        _sky_marginal_pdf[i] = marginal_pdf[i]
    for i in range(marginal_cdf.shape[0]):
        _sky_marginal_cdf[i] = marginal_cdf[i]


def set_sky_image(image: np.ndarray) -> None:
    """Upload a sky image and its sampling distribution.

    Raises:
        ValueError: If the image has an unsupported shape, is too large or
            holds non-finite values.
    """
    global _host_distribution
    pixels = _as_sky_image(image)
    distribution = build_sky_distribution(pixels)
    _upload_sky(
        pixels,
        distribution["conditional_cdf"],
        distribution["conditional_pdf"],
        distribution["marginal_cdf"],
        distribution["marginal_pdf"],
    )
    _sky_height[None] = pixels.shape[0]
    _sky_width[None] = pixels.shape[1]
    _sky_loaded[None] = 1
    _host_distribution = distribution
    logger.info("sky image %dx%d uploaded", pixels.shape[1], pixels.shape[0])


def load_sky_image(path, srgb: bool = True) -> np.ndarray:
    """Read a sky image from disk.

    ``.npy`` files are loaded with NumPy as linear radiance. Other formats go
    through Pillow; 8-bit images are decoded from sRGB unless ``srgb`` is
    False, float images keep their values as linear radiance, and
    images larger than the sky storage are downsized.

    Returns:
        Float32 array of shape (H, W, 3).
    """
    path = Path(path)
    if path.suffix.lower() == ".npy":
        return _as_sky_image(np.load(path))
    pixels = load_image(path, srgb=srgb)
    height, width = pixels.shape[:2]
    if width > MAX_SKY_WIDTH or height > MAX_SKY_HEIGHT:
        scale = min(MAX_SKY_WIDTH / width, MAX_SKY_HEIGHT / height)
        size = (max(1, int(width * scale)), max(1, int(height * scale)))
        logger.info("downsizing sky image %s from %dx%d to %dx%d", path, width, height, *size)
        pixels = np.stack(
            [_resize_channel(pixels[:, :, c], size) for c in range(pixels.shape[2])], axis=2
        )
    return _as_sky_image(pixels)


def _resize_channel(channel: np.ndarray, size: tuple[int, int]) -> np.ndarray:
    resized = Image.fromarray(channel.astype(np.float32)).resize(size, Image.Resampling.BILINEAR)
    return np.asarray(resized, dtype=np.float32)


def setup_sky(params: SkyParameters, image: np.ndarray | None = None) -> None:
    """Write the sky parameters and, optionally, a new image.

    Args:
        params: Sky controls; validated before use.
        image: Linear RGB lat-long image. If None, the previously uploaded
            image is kept.

    Raises:
        ValueError: If the parameters or the image are invalid.
        RuntimeError: If the sky is enabled but no image was ever uploaded.
    """
    params.validate()
    if image is not None:
        set_sky_image(image)
    if params.enabled and _sky_loaded[None] == 0:
        raise RuntimeError("Sky enabled without an image; pass image= to setup_sky")
    _sky_enabled[None] = 1 if params.enabled else 0
    _sky_strength[None] = params.strength
    _sky_rotation[None] = params.rotation
    logger.debug(
        "sky: enabled=%s strength=%.3f rotation=%.4f", params.enabled, params.strength, params.rotation
    )


def disable_sky() -> None:
    """Turn the sky off and keep the uploaded image."""
    _sky_enabled[None] = 0


def clear_sky() -> None:
    """Disable the sky and forget the uploaded image."""
    global _host_distribution
    _sky_enabled[None] = 0
    _sky_loaded[None] = 0
    _sky_width[None] = 0
    _sky_height[None] = 0
    _host_distribution = {}


def is_sky_enabled() -> bool:
    return bool(_sky_enabled[None])


def get_sky_distribution() -> dict[str, np.ndarray]:
    """Copies of the tables built for the current sky image."""
    return {key: value.copy() for key, value in _host_distribution.items()}


# =============================================================================
# Kernel side
# =============================================================================


@ti.func
def sky_enabled() -> ti.i32:
    return _sky_enabled[None]


@ti.func
def _wrap_angle(phi: ti.f32) -> ti.f32:
    two_pi = 2.0 * tm.pi
    return phi - two_pi * ti.floor(phi / two_pi)


@ti.func
def _image_angles(direction: vec3):
    """(phi, theta) of a direction in image space, phi in [0, 2 pi)."""
    phi = _wrap_angle(ti.atan2(direction.x, direction.z) + _sky_rotation[None])
    theta = ti.acos(tm.clamp(direction.y, -1.0, 1.0))
    return phi, theta


@ti.func
def _texel(row: ti.i32, col: ti.i32) -> vec3:
    w = _sky_width[None]
    h = _sky_height[None]
    c = col % w
    if c < 0:
        c += w
    r = tm.clamp(row, 0, h - 1)
    return _sky_image[r, c]


@ti.func
def sky_color(direction: vec3) -> vec3:
    """Sky radiance seen along a unit direction, including the strength."""
    color = vec3(0.0)
    if _sky_loaded[None] == 1:
        phi, theta = _image_angles(direction)
        x = phi / (2.0 * tm.pi) * _sky_width[None] - 0.5
        y = theta / tm.pi * _sky_height[None] - 0.5
        x0 = ti.floor(x)
        y0 = ti.floor(y)
        fx = x - x0
        fy = y - y0
        ix = ti.cast(x0, ti.i32)
        iy = ti.cast(y0, ti.i32)
        top = (1.0 - fx) * _texel(iy, ix) + fx * _texel(iy, ix + 1)
        bottom = (1.0 - fx) * _texel(iy + 1, ix) + fx * _texel(iy + 1, ix + 1)
        color = _sky_strength[None] * ((1.0 - fy) * top + fy * bottom)
    return color


@ti.func
def _search_marginal(u: ti.f32) -> ti.i32:
    """Largest row k with marginal_cdf[k] <= u."""
    lo = 0
    hi = _sky_height[None] - 1
    while lo < hi:
        mid = (lo + hi + 1) // 2
        if _sky_marginal_cdf[mid] <= u:
            lo = mid
        else:
            hi = mid - 1
    return lo


@ti.func
def _search_conditional(row: ti.i32, u: ti.f32) -> ti.i32:
    """Largest column k with conditional_cdf[row, k] <= u."""
    lo = 0
    hi = _sky_width[None] - 1
    while lo < hi:
        mid = (lo + hi + 1) // 2
        if _sky_conditional_cdf[row, mid] <= u:
            lo = mid
        else:
            hi = mid - 1
    return lo


@ti.func
def _band_cosines(row: ti.i32):
    h = ti.cast(_sky_height[None], ti.f32)
    theta_top = tm.pi * ti.cast(row, ti.f32) / h
    theta_bottom = tm.pi * ti.cast(row + 1, ti.f32) / h
    return ti.cos(theta_top), ti.cos(theta_bottom)


@ti.func
def _cell_pdf(row: ti.i32, col: ti.i32) -> ti.f32:
    h = ti.cast(_sky_height[None], ti.f32)
    w = ti.cast(_sky_width[None], ti.f32)
    # cos(theta_top) - cos(theta_bottom), without cancellation at the poles
    band = 2.0 * ti.sin(tm.pi * (ti.cast(row, ti.f32) + 0.5) / h) * ti.sin(tm.pi / (2.0 * h))
    sin_eff = h * band / tm.pi
    pdf_row = _sky_marginal_pdf[row] * h
    pdf_col = _sky_conditional_pdf[row, col] * w
    return pdf_row * pdf_col / (2.0 * tm.pi * tm.pi * sin_eff + SKY_PDF_EPSILON)


@ti.func
def _interval_offset(c0: ti.f32, c1: ti.f32, u: ti.f32) -> ti.f32:
    offset = 0.5
    if c1 > c0:
        offset = tm.clamp((u - c0) / (c1 - c0), 0.0, 1.0)
    return offset


@ti.func
def sample_sky(u0: ti.f32, u1: ti.f32):
    """Importance sample a direction from the sky image.

    Args:
        u0: Uniform variate choosing the row.
        u1: Uniform variate choosing the column.

    Returns:
        Tuple of (direction, pdf, radiance). pdf is 0 when no sky is loaded.
    """
    direction = vec3(0.0, 1.0, 0.0)
    pdf = 0.0
    radiance = vec3(0.0)
    if _sky_loaded[None] == 1:
        row = _search_marginal(u0)
        dv = _interval_offset(_sky_marginal_cdf[row], _sky_marginal_cdf[row + 1], u0)
        cos_top, cos_bottom = _band_cosines(row)
        cos_theta = cos_top + dv * (cos_bottom - cos_top)

        col = _search_conditional(row, u1)
        du = _interval_offset(_sky_conditional_cdf[row, col], _sky_conditional_cdf[row, col + 1], u1)
        phi_image = (ti.cast(col, ti.f32) + du) / ti.cast(_sky_width[None], ti.f32) * 2.0 * tm.pi
        phi = phi_image - _sky_rotation[None]

        sin_theta = ti.sqrt(ti.max(0.0, 1.0 - cos_theta * cos_theta))
        direction = vec3(sin_theta * ti.sin(phi), cos_theta, sin_theta * ti.cos(phi))
        pdf = _cell_pdf(row, col)
        radiance = sky_color(direction)
    return direction, pdf, radiance


@ti.func
def sky_pdf(direction: vec3) -> ti.f32:
    """Density of sample_sky for an arbitrary unit direction."""
    pdf = 0.0
    if _sky_loaded[None] == 1:
        phi, theta = _image_angles(direction)
        h = _sky_height[None]
        w = _sky_width[None]
        row = tm.clamp(ti.cast(theta / tm.pi * h, ti.i32), 0, h - 1)
        col = tm.clamp(ti.cast(phi / (2.0 * tm.pi) * w, ti.i32), 0, w - 1)
        pdf = _cell_pdf(row, col)
    return pdf

