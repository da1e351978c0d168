"""Sphere primitive with robust ray-sphere intersection.

This module provides the Sphere dataclass, the HitRecord returned by every
intersection routine, and the ray-sphere test. The test uses the robust
quadratic formula from Ray Tracing Gems to avoid floating-point artifacts.

The robust quadratic formula avoids catastrophic cancellation when b^2 is
nearly equal to 4ac by using a reformulated calculation that maintains
numerical stability.

Besides position and normal, a sphere hit reports the spherical texture
coordinates (u along longitude, v from the bottom pole) and the tangent
dP/dphi used to orient normal maps.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from sunsky.geometry.sphere import Sphere, HitRecord, hit_sphere
    >>> sphere = Sphere(center=ti.math.vec3(0, 0, -1), radius=0.5)
    >>> # Use hit_sphere within a Taichi kernel
"""

import taichi as ti
import taichi.math as tm

# Type alias for 3D vectors using Taichi's math module
vec3 = tm.vec3
vec2 = tm.vec2
vec4 = tm.vec4


@ti.dataclass
class Sphere:
    """A sphere defined by center point and radius.

    Attributes:
        center: The center point of the sphere (vec3).
        radius: The radius of the sphere (positive float).
    """

    center: vec3
    radius: ti.f32


@ti.dataclass
class HitRecord:
    """Result of an intersection query.

    Attributes:
        hit: 1 if the ray intersected a surface, 0 on a miss. The remaining
            fields are only meaningful when hit == 1.
        t: Ray parameter of the intersection.
        point: World-space hit position.
        normal: Geometric normal, unit length, pointing to the outside of the
            surface (not flipped toward the ray).
        shading_normal: Interpolated shading normal, outward.
        tangent: Surface tangent in xyz and bitangent handedness in w. A zero
            xyz means the surface has no usable tangent at this point.
        uv: Texture coordinates.
        front_face: 1 if the ray arrived from the outside (against normal).
        material_id: Material of the surface, set by the scene query.
    """

    hit: ti.i32
    t: ti.f32
    point: vec3
    normal: vec3
    shading_normal: vec3
    tangent: vec4
    uv: vec2
    front_face: ti.i32
    material_id: ti.i32


@ti.func
def make_miss_record() -> HitRecord:
    """Create a hit record representing a miss."""
    return HitRecord(
        hit=0,
        t=0.0,
        point=vec3(0.0),
        normal=vec3(0.0),
        shading_normal=vec3(0.0),
        tangent=vec4(0.0),
        uv=vec2(0.0),
        front_face=0,
        material_id=-1,
    )


@ti.func
def _solve_quadratic_robust(h: ti.f32, a: ti.f32, c: ti.f32, sqrt_d: ti.f32):
    """Solve a*t^2 + 2*h*t + c = 0 with the Ray Tracing Gems formulation.

    Returns:
        Tuple of (t0, t1) where t0 <= t1.
    """
    # q = -(h + sign(h) * sqrt(discriminant)) avoids cancellation
    sign_h = ti.select(h < 0.0, -1.0, 1.0)
    q = -(h + sign_h * sqrt_d)

    t0 = 0.0
    t1 = 0.0
    if ti.abs(q) < 1e-10:
        # Tangent ray
        t0 = (-h - sqrt_d) / a
        t1 = (-h + sqrt_d) / a
    else:
        t0 = q / a
        t1 = c / q

    if t0 > t1:
        temp = t0
        t0 = t1
        t1 = temp

    return t0, t1


@ti.func
def sphere_uv_tangent(outward_normal: vec3):
    """Spherical texture coordinates and longitude tangent for a unit normal.

    u = phi / (2 pi) with phi = atan2(-z, x) + pi, and v = theta / pi with
    theta measured from the -y pole.

    Returns:
        Tuple of (uv, tangent). The tangent is zero at the poles.
    """
    n = outward_normal
    theta = ti.acos(tm.clamp(-n.y, -1.0, 1.0))
    phi = ti.atan2(-n.z, n.x) + tm.pi
    uv = vec2(phi / (2.0 * tm.pi), theta / tm.pi)

    tangent = vec3(0.0)
    r = ti.sqrt(n.x * n.x + n.z * n.z)
    if r > 1e-6:
        tangent = vec3(n.z, 0.0, -n.x) / r
    return uv, tangent


@ti.func
def hit_sphere(
    ray_origin: vec3,
    ray_direction: vec3,
    sphere: Sphere,
    t_min: ti.f32,
    t_max: ti.f32,
) -> HitRecord:
    """Test for ray-sphere intersection using the robust quadratic formula.

    With oc = origin - center the intersection solves
        a*t^2 + 2*h*t + c = 0
    where a = dot(d, d), h = dot(d, oc) and c = dot(oc, oc) - radius^2.

    Args:
        ray_origin: The starting point of the ray.
        ray_direction: The direction vector of the ray.
        sphere: The sphere to test intersection against.
        t_min: Minimum t value to consider a valid hit.
        t_max: Maximum t value to consider a valid hit.

    Returns:
        A HitRecord with material_id left at -1. Check the hit field to
        determine if an intersection occurred.
    """
    record = make_miss_record()

    oc = ray_origin - sphere.center
    a = tm.dot(ray_direction, ray_direction)
    h = tm.dot(ray_direction, oc)
    c = tm.dot(oc, oc) - sphere.radius * sphere.radius
    discriminant = h * h - a * c

    if discriminant >= 0.0:
        t0, t1 = _solve_quadratic_robust(h, a, c, ti.sqrt(discriminant))

        t = t0
        valid = (t > t_min) and (t < t_max)
        if not valid:
            t = t1
            valid = (t > t_min) and (t < t_max)

        if valid:
            point = ray_origin + t * ray_direction
            outward_normal = (point - sphere.center) / sphere.radius
            uv, tangent = sphere_uv_tangent(outward_normal)

            record.hit = 1
            record.t = t
            record.point = point
            record.normal = outward_normal
            record.shading_normal = outward_normal
            record.tangent = vec4(tangent, 1.0)
            record.uv = uv
            record.front_face = ti.select(tm.dot(ray_direction, outward_normal) < 0.0, 1, 0)

    return record
