"""Lambertian (ideal diffuse) lobe.

The Lambertian BRDF is constant:
    f_r(wi, wo) = albedo / pi

Directions are drawn from the cosine-weighted hemisphere around the local
+z axis, whose density is
    pdf(wi) = max(cos(theta), 0) / pi

so the sample weight f_r * cos(theta) / pdf is just the albedo.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from sunsky.materials.lambertian import sample_lambertian, eval_lambertian
    >>> # Use within a Taichi kernel:
    >>> # direction, weight, pdf, valid = sample_lambertian(albedo, u0, u1)
"""

import taichi as ti
import taichi.math as tm

from sunsky.core.ray import sample_cosine_hemisphere

vec3 = tm.vec3


@ti.func
def eval_lambertian(albedo: vec3) -> vec3:
    """Evaluate the Lambertian BRDF (without the cosine term).

    Args:
        albedo: The diffuse reflectance color.

    Returns:
        albedo / pi.
    """
    return albedo / tm.pi


@ti.func
def pdf_lambertian(cos_theta: ti.f32) -> ti.f32:
    """Density of cosine-weighted sampling: max(cos_theta, 0) / pi."""
    return ti.max(cos_theta, 0.0) / tm.pi


@ti.func
def sample_lambertian(albedo: vec3, u0: ti.f32, u1: ti.f32):
    """Sample a direction in the local frame from the Lambertian lobe.

    Args:
        albedo: The diffuse reflectance color.
        u0: Uniform variate for the polar angle.
        u1: Uniform variate for the azimuth.

    Returns:
        Tuple of (direction, weight, pdf, valid). The weight is
        f_r * cos / pdf = albedo. Samples exactly on the horizon are
        rejected.
    """
    direction = sample_cosine_hemisphere(u0, u1)
    pdf = pdf_lambertian(direction.z)
    valid = ti.select(pdf > 0.0, 1, 0)
    return direction, albedo, pdf, valid
