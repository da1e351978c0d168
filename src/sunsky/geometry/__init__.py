"""Geometry module for shape primitives.

Components:
    sphere: Sphere primitive with ray-sphere intersection and the hit record
    quad: Parallelogram primitive

All intersection routines are implemented as Taichi functions (@ti.func).
Each returns a HitRecord with the geometric normal facing the ray, the
front_face flag, texture coordinates and a tangent frame.
"""

from .quad import Quad, hit_quad, quad_area, quad_normal
from .sphere import HitRecord, Sphere, hit_sphere, make_miss_record, sphere_uv_tangent

__all__ = [
    "Sphere",
    "HitRecord",
    "hit_sphere",
    "make_miss_record",
    "sphere_uv_tangent",
    "Quad",
    "hit_quad",
    "quad_area",
    "quad_normal",
]
