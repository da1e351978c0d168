"""Sun and sky light sources."""

from .sky import (
    build_sky_distribution,
    clear_sky,
    disable_sky,
    get_sky_distribution,
    is_sky_enabled,
    load_sky_image,
    sample_sky,
    set_sky_image,
    setup_sky,
    sky_color,
    sky_pdf,
)
from .sun import (
    disable_sun,
    is_sun_enabled,
    sample_sun,
    setup_sun,
    sun_contains,
    sun_direction,
    sun_pdf,
    sun_radiance,
    sun_solid_angle,
)

__all__ = [
    "build_sky_distribution",
    "clear_sky",
    "disable_sky",
    "get_sky_distribution",
    "is_sky_enabled",
    "load_sky_image",
    "sample_sky",
    "set_sky_image",
    "setup_sky",
    "sky_color",
    "sky_pdf",
    "disable_sun",
    "is_sun_enabled",
    "sample_sun",
    "setup_sun",
    "sun_contains",
    "sun_direction",
    "sun_pdf",
    "sun_radiance",
    "sun_solid_angle",
]
