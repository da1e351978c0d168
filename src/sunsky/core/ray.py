"""Ray data structure and vector utilities shared by the shading code.

This module provides the Ray dataclass and the small vector helpers used by
the BxDF, light and integrator modules. Nothing here draws random numbers:
every sampling helper takes its uniform variates as arguments so that the
caller controls the random stream.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from sunsky.core.ray import Ray, ray_at
    >>> # Use ray_at, build_onb_from_normal, ... within a Taichi kernel
"""

import taichi as ti
import taichi.math as tm

# Type alias for 3D vectors using Taichi's math module
vec3 = tm.vec3

# Rec. 709 luminance weights
LUMINANCE_WEIGHTS = (0.2126, 0.7152, 0.0722)

# Largest f32 strictly below 1.0
ONE_MINUS_EPSILON = 0.99999994


@ti.dataclass
class Ray:
    """A ray with an origin point and direction vector.

    Attributes:
        origin: The starting point of the ray (vec3).
        direction: The direction vector of the ray (vec3), normalized.
    """

    origin: vec3
    direction: vec3


@ti.func
def ray_at(ray: Ray, t: ti.f32) -> vec3:
    """Compute the point along the ray at parameter t."""
    return ray.origin + t * ray.direction


@ti.func
def make_ray(origin: vec3, direction: vec3) -> Ray:
    return Ray(origin=origin, direction=direction)


@ti.func
def luminance(color: vec3) -> ti.f32:
    """Relative luminance of a linear RGB color.

    Args:
        color: Linear RGB color.

    Returns:
        The Rec. 709 weighted sum of the channels.
    """
    return (
        LUMINANCE_WEIGHTS[0] * color.x
        + LUMINANCE_WEIGHTS[1] * color.y
        + LUMINANCE_WEIGHTS[2] * color.z
    )


@ti.func
def max_component(v: vec3) -> ti.f32:
    return ti.max(v.x, ti.max(v.y, v.z))


@ti.func
def is_finite(v: vec3) -> ti.i32:
    """Return 1 if no channel of v is NaN or infinite."""
    finite = 1
    for c in ti.static(range(3)):
        if tm.isnan(v[c]) or tm.isinf(v[c]):
            finite = 0
    return finite


@ti.func
def reflect(incident: vec3, normal: vec3) -> vec3:
    """Reflect a vector about a normal.

    Args:
        incident: The incoming direction (pointing toward the surface).
        normal: The surface normal (should be normalized).

    Returns:
        The reflected direction: incident - 2 * dot(incident, normal) * normal.
    """
    return incident - 2.0 * tm.dot(incident, normal) * normal


@ti.func
def build_onb_from_normal(normal: vec3):
    """Build an orthonormal basis from a unit normal.

    Uses the branchless construction of Duff et al. 2017, which stays
    well-conditioned for normals close to either pole.

    Args:
        normal: The surface normal (must be normalized).

    Returns:
        A tuple (tangent, bitangent, normal) forming a right-handed basis.
    """
    sign = ti.select(normal.z >= 0.0, 1.0, -1.0)
    a = -1.0 / (sign + normal.z)
    b = normal.x * normal.y * a
    tangent = vec3(1.0 + sign * normal.x * normal.x * a, sign * b, -sign * normal.x)
    bitangent = vec3(b, sign + normal.y * normal.y * a, -normal.y)
    return tangent, bitangent, normal


@ti.func
def local_to_world(local_dir: vec3, tangent: vec3, bitangent: vec3, normal: vec3) -> vec3:
    """Transform a direction from the local frame (z-up) to world coordinates."""
    return local_dir.x * tangent + local_dir.y * bitangent + local_dir.z * normal


@ti.func
def world_to_local(world_dir: vec3, tangent: vec3, bitangent: vec3, normal: vec3) -> vec3:
    """Transform a direction from world coordinates into the local frame."""
    return vec3(
        tm.dot(world_dir, tangent),
        tm.dot(world_dir, bitangent),
        tm.dot(world_dir, normal),
    )


@ti.func
def sample_cosine_hemisphere(u0: ti.f32, u1: ti.f32) -> vec3:
    """Cosine-weighted direction on the local z-up hemisphere.

    Args:
        u0: Uniform variate mapped to the cosine of the polar angle.
        u1: Uniform variate mapped to the azimuth.

    Returns:
        A unit direction whose density is cos(theta) / pi.
    """
    up = ti.sqrt(u0)
    over = ti.sqrt(ti.max(0.0, 1.0 - up * up))
    around = 2.0 * tm.pi * u1
    return vec3(ti.cos(around) * over, ti.sin(around) * over, up)


@ti.func
def sample_uniform_cone(u0: ti.f32, u1: ti.f32, one_minus_cos_max: ti.f32) -> vec3:
    """Uniform direction inside a cone around the local z axis.

    The cone is described by 1 - cos(theta_max) rather than the cosine
    itself so that very narrow cones keep their precision in f32.

    Args:
        u0: Uniform variate mapped to the polar angle.
        u1: Uniform variate mapped to the azimuth.
        one_minus_cos_max: 1 - cos of the cone half-angle.

    Returns:
        A unit direction uniformly distributed over the cone's solid angle.
    """
    k = u0 * one_minus_cos_max
    cos_theta = 1.0 - k
    sin_theta = ti.sqrt(ti.max(0.0, k * (2.0 - k)))
    phi = 2.0 * tm.pi * u1
    return vec3(ti.cos(phi) * sin_theta, ti.sin(phi) * sin_theta, cos_theta)
