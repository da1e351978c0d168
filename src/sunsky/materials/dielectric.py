"""Smooth dielectric (glass) interface.

The GLASS material separates an inner medium from an outer one. When the
viewer is outside (front face) light passes from the outer index eta_1 into
the inner index eta_2, and the other way around from inside.

Key physics:
    - Snell's law: eta_1 * sin(theta_1) = eta_2 * sin(theta_2)
    - Exact unpolarized Fresnel reflectance, the mean of the s and p terms:
        rho_s = (eta_1 cos_i - eta_2 cos_t) / (eta_1 cos_i + eta_2 cos_t)
        rho_p = (eta_1 cos_t - eta_2 cos_i) / (eta_1 cos_t + eta_2 cos_i)
        F = (rho_s^2 + rho_p^2) / 2
    - Total internal reflection when sin(theta_2) > 1

Reflection is chosen with probability F and refraction with 1 - F, so both
branches carry unit weight (times the tint). Both are delta lobes.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from sunsky.materials.dielectric import sample_glass
    >>> # Use within a Taichi kernel (local frame, view in +z hemisphere):
    >>> # direction, weight, valid = sample_glass(tint, inner, outer, front, v, u)
"""

import taichi as ti
import taichi.math as tm

vec3 = tm.vec3


@ti.func
def fresnel_dielectric(cos_i: ti.f32, eta_1: ti.f32, eta_2: ti.f32) -> ti.f32:
    """Unpolarized Fresnel reflectance of a smooth dielectric interface.

    Args:
        cos_i: Cosine of the incident angle (non-negative).
        eta_1: Index of refraction on the incident side.
        eta_2: Index of refraction on the transmitted side.

    Returns:
        The reflectance in [0, 1]; 1 under total internal reflection.
    """
    sin2_t = (eta_1 / eta_2) ** 2 * ti.max(0.0, 1.0 - cos_i * cos_i)
    result = 1.0
    if sin2_t < 1.0:
        cos_t = ti.sqrt(1.0 - sin2_t)
        rho_s = (eta_1 * cos_i - eta_2 * cos_t) / (eta_1 * cos_i + eta_2 * cos_t)
        rho_p = (eta_1 * cos_t - eta_2 * cos_i) / (eta_1 * cos_t + eta_2 * cos_i)
        result = 0.5 * (rho_s * rho_s + rho_p * rho_p)
    return result


@ti.func
def refract_local(v: vec3, eta: ti.f32):
    """Refract the local view direction through the z = 0 interface.

    Args:
        v: Direction toward the viewer, v.z > 0.
        eta: Ratio eta_1 / eta_2.

    Returns:
        Tuple of (direction, total_internal_reflection). The direction points
        into the -z hemisphere.
    """
    cos_i = v.z
    sin2_t = eta * eta * ti.max(0.0, 1.0 - cos_i * cos_i)
    direction = vec3(0.0)
    tir = 1
    if sin2_t < 1.0:
        cos_t = ti.sqrt(1.0 - sin2_t)
        direction = tm.normalize(-eta * v + (eta * cos_i - cos_t) * vec3(0.0, 0.0, 1.0))
        tir = 0
    return direction, tir


@ti.func
def glass_etas(inner_eta: ti.f32, outer_eta: ti.f32, front_face: ti.i32):
    """Indices (eta_1, eta_2) on the viewer side and the far side."""
    eta_1 = outer_eta
    eta_2 = inner_eta
    if front_face == 0:
        eta_1 = inner_eta
        eta_2 = outer_eta
    return eta_1, eta_2


@ti.func
def sample_glass(
    tint: vec3,
    inner_eta: ti.f32,
    outer_eta: ti.f32,
    front_face: ti.i32,
    v: vec3,
    u: ti.f32,
):
    """Choose between Fresnel reflection and refraction.

    Args:
        tint: Color multiplied into both branches.
        inner_eta: Index of refraction inside the surface.
        outer_eta: Index of refraction outside the surface.
        front_face: 1 if the viewer is outside.
        v: View direction in the local frame.
        u: Uniform variate selecting the branch.

    Returns:
        Tuple of (direction, weight, reflected, valid) with the direction in
        the local frame.
    """
    direction = vec3(0.0)
    weight = vec3(0.0)
    reflected = 0
    valid = 0

    if v.z > 0.0:
        eta_1, eta_2 = glass_etas(inner_eta, outer_eta, front_face)
        fresnel = fresnel_dielectric(v.z, eta_1, eta_2)
        if u < fresnel:
            direction = vec3(-v.x, -v.y, v.z)
            reflected = 1
        else:
            refracted, tir = refract_local(v, eta_1 / eta_2)
            direction = refracted
            if tir == 1:
                # Only reachable through rounding: fresnel is 1 under TIR
                direction = vec3(-v.x, -v.y, v.z)
                reflected = 1
        weight = tint
        valid = 1

    return direction, weight, reflected, valid
