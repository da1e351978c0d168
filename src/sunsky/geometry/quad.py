"""Quad primitive with ray-quad intersection.

A quad is defined by:
- Q: A corner point of the quad
- u: Edge vector from Q to adjacent corner
- v: Edge vector from Q to other adjacent corner

The quad spans the parallelogram from Q to Q+u+v. Its normal is
normalize(cross(u, v)) (right-hand rule), its texture coordinates are the
parametric coordinates (alpha, beta) of the hit point, and its tangent is
the direction of u.

Ray-quad intersection uses the parametric plane test:
1. Find where ray intersects the plane containing the quad
2. Check if the intersection point lies within the quad bounds

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from sunsky.geometry.quad import Quad, hit_quad
    >>> # Ground quad at y=0, spanning x=[0,1] and z=[0,1], facing up
    >>> quad = Quad(
    ...     Q=ti.math.vec3(0, 0, 0),
    ...     u=ti.math.vec3(0, 0, 1),
    ...     v=ti.math.vec3(1, 0, 0)
    ... )
"""

import taichi as ti
import taichi.math as tm

from .sphere import HitRecord, make_miss_record

vec3 = tm.vec3
vec2 = tm.vec2
vec4 = tm.vec4


@ti.dataclass
class Quad:
    """A parallelogram with vertices Q, Q+u, Q+v, Q+u+v.

    Attributes:
        Q: The corner point of the quad (vec3).
        u: Edge vector from Q to adjacent corner (vec3).
        v: Edge vector from Q to other adjacent corner (vec3).
    """

    Q: vec3
    u: vec3
    v: vec3


@ti.func
def _compute_quad_frame(quad: Quad):
    """Plane normal, plane constant and the dual vectors of the edges.

    With n = u x v, the vectors w_u = (v x n) / |n|^2 and
    w_v = (n x u) / |n|^2 satisfy dot(w_u, u) = 1, dot(w_u, v) = 0,
    dot(w_v, u) = 0 and dot(w_v, v) = 1, so the parametric coordinates of a
    point P on the plane are alpha = dot(w_u, P - Q), beta = dot(w_v, P - Q).

    Returns:
        Tuple of (normal, d, w_u, w_v). A degenerate quad gives zero w vectors.
    """
    n = tm.cross(quad.u, quad.v)
    n_dot_n = tm.dot(n, n)

    normal = vec3(0.0)
    w_u = vec3(0.0)
    w_v = vec3(0.0)
    if n_dot_n > 1e-10:
        normal = n / ti.sqrt(n_dot_n)
        w_u = tm.cross(quad.v, n) / n_dot_n
        w_v = tm.cross(n, quad.u) / n_dot_n

    d = tm.dot(normal, quad.Q)
    return normal, d, w_u, w_v


@ti.func
def hit_quad(
    ray_origin: vec3,
    ray_direction: vec3,
    quad: Quad,
    t_min: ti.f32,
    t_max: ti.f32,
) -> HitRecord:
    """Test for ray-quad intersection.

    Args:
        ray_origin: The starting point of the ray.
        ray_direction: The direction vector of the ray.
        quad: The quad to test intersection against.
        t_min: Minimum t value to consider a valid hit.
        t_max: Maximum t value to consider a valid hit.

    Returns:
        A HitRecord with material_id left at -1.
    """
    record = make_miss_record()
    normal, d, w_u, w_v = _compute_quad_frame(quad)
    denom = tm.dot(normal, ray_direction)

    # Skip rays parallel to the plane
    if ti.abs(denom) > 1e-8:
        t = (d - tm.dot(normal, ray_origin)) / denom
        if t > t_min and t < t_max:
            point = ray_origin + t * ray_direction
            p_minus_q = point - quad.Q
            alpha = tm.dot(w_u, p_minus_q)
            beta = tm.dot(w_v, p_minus_q)

            if alpha >= 0.0 and alpha <= 1.0 and beta >= 0.0 and beta <= 1.0:
                record.hit = 1
                record.t = t
                record.point = point
                record.normal = normal
                record.shading_normal = normal
                record.tangent = vec4(tm.normalize(quad.u), 1.0)
                record.uv = vec2(alpha, beta)
                record.front_face = ti.select(denom < 0.0, 1, 0)

    return record


@ti.func
def quad_normal(quad: Quad) -> vec3:
    """Unit normal normalize(cross(u, v))."""
    return tm.normalize(tm.cross(quad.u, quad.v))


@ti.func
def quad_area(quad: Quad) -> ti.f32:
    return tm.length(tm.cross(quad.u, quad.v))
