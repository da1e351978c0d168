"""Sun light: a uniformly bright disc at infinity.

The sun is a cone of directions with half-angle ``angle / 2`` around the
axis given by elevation (above the horizon, +y up) and azimuth (around +y,
measured from +z toward +x):

    axis = (cos(elev) sin(az), sin(elev), cos(elev) cos(az))

Every direction inside the cone carries radiance strength * color.
Directions are sampled uniformly over the cone's solid angle

    Omega = 2 pi (1 - cos(angle / 2))

so ``pdf = 1 / Omega`` inside the disc and 0 outside. The cone is stored as
1 - cos(half-angle), computed in double precision on the host, because the
real sun (0.53 degrees) is far too narrow for cos() in f32.

Example:
    >>> from sunsky.config import SunParameters
    >>> from sunsky.lights.sun import setup_sun
    >>> setup_sun(SunParameters(enabled=True, elevation=0.8, strength=5.0))
"""

import logging
import math

import taichi as ti
import taichi.math as tm

from sunsky.config import SunParameters
from sunsky.core.ray import build_onb_from_normal, local_to_world, sample_uniform_cone

logger = logging.getLogger(__name__)

vec3 = tm.vec3

_sun_enabled = ti.field(dtype=ti.i32, shape=())
_sun_direction = ti.Vector.field(3, dtype=ti.f32, shape=())
_sun_radiance = ti.Vector.field(3, dtype=ti.f32, shape=())
_sun_one_minus_cos = ti.field(dtype=ti.f32, shape=())
_sun_solid_angle = ti.field(dtype=ti.f32, shape=())


def sun_direction(elevation: float, azimuth: float) -> tuple[float, float, float]:
    """Unit vector toward the sun for angles in radians."""
    return (
        math.cos(elevation) * math.sin(azimuth),
        math.sin(elevation),
        math.cos(elevation) * math.cos(azimuth),
    )


def sun_solid_angle(angle: float) -> float:
    """Solid angle of a disc with angular diameter ``angle`` (radians)."""
    return 2.0 * math.pi * (2.0 * math.sin(angle / 4.0) ** 2)


def setup_sun(params: SunParameters) -> None:
    """Write the sun parameters into the Taichi fields.

    Args:
        params: Sun parameters; validated before use.

    Raises:
        ValueError: If the parameters are out of range.
    """
    params.validate()
    # 1 - cos(x) = 2 sin^2(x / 2), stable for small x
    one_minus_cos = 2.0 * math.sin(params.angle / 4.0) ** 2

    _sun_enabled[None] = 1 if params.enabled else 0
    _sun_direction[None] = vec3(*sun_direction(params.elevation, params.azimuth))
    _sun_radiance[None] = vec3(*(params.strength * c for c in params.color))
    _sun_one_minus_cos[None] = one_minus_cos
    _sun_solid_angle[None] = sun_solid_angle(params.angle)
    logger.debug(
        "sun: enabled=%s elevation=%.4f azimuth=%.4f solid angle=%.3e",
        params.enabled,
        params.elevation,
        params.azimuth,
        sun_solid_angle(params.angle),
    )


def disable_sun() -> None:
    _sun_enabled[None] = 0


def is_sun_enabled() -> bool:
    return bool(_sun_enabled[None])


@ti.func
def sun_enabled() -> ti.i32:
    return _sun_enabled[None]


@ti.func
def sun_radiance() -> vec3:
    """Radiance of any direction inside the disc."""
    return _sun_radiance[None]


@ti.func
def sun_contains(direction: vec3) -> ti.i32:
    """1 if the unit direction falls inside the sun disc."""
    return ti.select(1.0 - tm.dot(direction, _sun_direction[None]) <= _sun_one_minus_cos[None], 1, 0)


@ti.func
def sun_pdf(direction: vec3) -> ti.f32:
    """Solid-angle density of sample_sun for a direction."""
    pdf = 0.0
    if sun_contains(direction) == 1 and _sun_solid_angle[None] > 0.0:
        pdf = 1.0 / _sun_solid_angle[None]
    return pdf


@ti.func
def sample_sun(u0: ti.f32, u1: ti.f32):
    """Draw a direction uniformly from the sun disc.

    Returns:
        Tuple of (direction, pdf, radiance).
    """
    tangent, bitangent, axis = build_onb_from_normal(_sun_direction[None])
    local = sample_uniform_cone(u0, u1, _sun_one_minus_cos[None])
    direction = tm.normalize(local_to_world(local, tangent, bitangent, axis))
    pdf = 0.0
    if _sun_solid_angle[None] > 0.0:
        pdf = 1.0 / _sun_solid_angle[None]
    return direction, pdf, _sun_radiance[None]
