"""Texture atlas with bilinear, repeat-wrapped sampling.

All textures share one flat RGBA texel field. Each texture records its offset
into that field and its resolution; ``sample_texture(index, uv)`` filters the
four nearest texels. UV (0, 0) is the top-left corner of the image (first
row of the array), matching glTF.

Textures are registered from NumPy arrays, or from image files through
Pillow. 8-bit color images are decoded from sRGB to linear on load; data
textures (metallic, roughness, normal maps) should be loaded with
``srgb=False``.

Example:
    >>> import numpy as np
    >>> from sunsky.materials.textures import add_texture
    >>> checker = np.indices((8, 8)).sum(axis=0) % 2
    >>> tex_id = add_texture(checker.astype(np.float32))
"""

import logging

import numpy as np
import taichi as ti
import taichi.math as tm
from PIL import Image

logger = logging.getLogger(__name__)

vec4 = tm.vec4

# Sentinel texture index meaning "use the factor only"
NO_TEXTURE = -1

MAX_TEXTURES = 64
MAX_TEXELS = 1 << 20

_texels = ti.Vector.field(4, dtype=ti.f32, shape=(MAX_TEXELS,))
_texture_offset = ti.field(dtype=ti.i32, shape=(MAX_TEXTURES,))
_texture_width = ti.field(dtype=ti.i32, shape=(MAX_TEXTURES,))
_texture_height = ti.field(dtype=ti.i32, shape=(MAX_TEXTURES,))
_texture_count = ti.field(dtype=ti.i32, shape=())
_texel_count = ti.field(dtype=ti.i32, shape=())


def clear_textures() -> None:
    """Remove all registered textures."""
    _texture_count[None] = 0
    _texel_count[None] = 0


def get_texture_count() -> int:
    return _texture_count[None]


def srgb_to_linear(values: np.ndarray) -> np.ndarray:
    """Decode sRGB-encoded values in [0, 1] to linear."""
    values = np.asarray(values, dtype=np.float32)
    return np.where(
        values <= 0.04045, values / 12.92, ((values + 0.055) / 1.055) ** 2.4
    ).astype(np.float32)


def _to_rgba(pixels: np.ndarray) -> np.ndarray:
    pixels = np.asarray(pixels, dtype=np.float32)
    if pixels.ndim == 2:
        pixels = pixels[:, :, None]
    if pixels.ndim != 3 or pixels.shape[2] not in (1, 3, 4):
        raise ValueError(
            f"Texture must have shape (H, W), (H, W, 3) or (H, W, 4), got {pixels.shape}"
        )
    height, width, channels = pixels.shape
    rgba = np.ones((height, width, 4), dtype=np.float32)
    if channels == 1:
        rgba[:, :, :3] = pixels
    else:
        rgba[:, :, :channels] = pixels
    return rgba


@ti.kernel
def _write_texels(offset: ti.i32, rgba: ti.types.ndarray(dtype=ti.f32, ndim=3)):
    height = rgba.shape[0]
    width = rgba.shape[1]
    for y, x in ti.ndrange(height, width):
        _texels[offset + y * width + x] = vec4(
            rgba[y, x, 0], rgba[y, x, 1], rgba[y, x, 2], rgba[y, x, 3]
        )


def add_texture(pixels: np.ndarray) -> int:
    """Register a linear float texture.

    Args:
        pixels: Array of shape (H, W), (H, W, 3) or (H, W, 4). Single channel
            textures are replicated into RGB; missing alpha is 1.

    Returns:
        The texture index to store in a material.

    Raises:
        ValueError: If the array shape is not a supported image layout.
        RuntimeError: If the texture table or texel storage is full.
    """
    rgba = np.ascontiguousarray(_to_rgba(pixels))
    height, width = rgba.shape[:2]
    if width == 0 or height == 0:
        raise ValueError("Texture must not be empty")

    idx = _texture_count[None]
    if idx >= MAX_TEXTURES:
        raise RuntimeError(f"Maximum number of textures ({MAX_TEXTURES}) exceeded")
    offset = _texel_count[None]
    if offset + width * height > MAX_TEXELS:
        raise RuntimeError(
            f"Texture storage exhausted: {width}x{height} does not fit in "
            f"{MAX_TEXELS - offset} remaining texels"
        )

    _write_texels(offset, rgba)
    _texture_offset[idx] = offset
    _texture_width[idx] = width
    _texture_height[idx] = height
    _texel_count[None] = offset + width * height
    _texture_count[None] = idx + 1
    logger.debug("texture %d: %dx%d at texel offset %d", idx, width, height, offset)
    return idx


def load_image(path, srgb: bool = True) -> np.ndarray:
    """Read an image file into a float32 array.

    8-bit images are scaled to [0, 1]. Single-channel float images (Pillow
    mode ``F``, such as float TIFFs) are returned unscaled as linear values,
    and 16-bit integer images are scaled by 1/65535; neither is passed
    through the sRGB decode.

    Args:
        path: Image file path, any format Pillow can open.
        srgb: Decode the color channels of 8-bit images from sRGB to linear.

    Returns:
        Array of shape (H, W, C) with C in {1, 3, 4}.
    """
    with Image.open(path) as image:
        if image.mode == "F" or image.mode.startswith("I"):
            pixels = np.asarray(image, dtype=np.float32)
            if image.mode != "F":
                pixels = pixels / 65535.0
            return pixels[:, :, None]
        if image.mode not in ("L", "RGB", "RGBA"):
            image = image.convert("RGBA" if "A" in image.getbands() else "RGB")
        pixels = np.asarray(image, dtype=np.float32) / 255.0
    if pixels.ndim == 2:
        pixels = pixels[:, :, None]
    if srgb:
        pixels = pixels.copy()
        color = min(pixels.shape[2], 3)
        pixels[:, :, :color] = srgb_to_linear(pixels[:, :, :color])
    return pixels


def load_texture(path, srgb: bool = True, channel: int | None = None) -> int:
    """Load an image file through Pillow and register it as a texture.

    Args:
        path: Image file path.
        srgb: Decode color from sRGB. Use False for data textures.
        channel: If given, keep only this channel as a gray texture (glTF
            packs roughness in channel 1 and metallic in channel 2).

    Returns:
        The texture index.
    """
    pixels = load_image(path, srgb=srgb)
    if channel is not None:
        pixels = pixels[:, :, channel]
    return add_texture(pixels)


# =============================================================================
# Sampling
# =============================================================================


@ti.func
def _wrap(i: ti.i32, n: ti.i32) -> ti.i32:
    return ((i % n) + n) % n


@ti.func
def fetch_texel(index: ti.i32, x: ti.i32, y: ti.i32) -> vec4:
    """Texel (x, y) of a texture with repeat wrapping."""
    width = _texture_width[index]
    height = _texture_height[index]
    return _texels[_texture_offset[index] + _wrap(y, height) * width + _wrap(x, width)]


@ti.func
def sample_texture(index: ti.i32, uv: tm.vec2) -> vec4:
    """Bilinearly filtered texture lookup.

    Args:
        index: Texture index returned by add_texture.
        uv: Texture coordinates; values outside [0, 1) repeat.

    Returns:
        The filtered RGBA value.
    """
    x = uv.x * ti.cast(_texture_width[index], ti.f32) - 0.5
    y = uv.y * ti.cast(_texture_height[index], ti.f32) - 0.5
    x0 = ti.cast(ti.floor(x), ti.i32)
    y0 = ti.cast(ti.floor(y), ti.i32)
    fx = x - ti.floor(x)
    fy = y - ti.floor(y)

    top = tm.mix(fetch_texel(index, x0, y0), fetch_texel(index, x0 + 1, y0), fx)
    bottom = tm.mix(fetch_texel(index, x0, y0 + 1), fetch_texel(index, x0 + 1, y0 + 1), fx)
    return tm.mix(top, bottom, fy)
