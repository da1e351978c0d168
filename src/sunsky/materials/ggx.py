"""GGX microfacet specular lobe.

All functions work in the local shading frame where the shading normal is
+z, so cos(theta) of a direction is simply its z component.

Microfacet BRDF:
    f(v, l) = F(v.h) * G2(v, l) * D(h) / (4 * n.v * n.l)

with
    D(h)   = a^2 / (pi * ((n.h)^2 * (a^2 - 1) + 1)^2)            (GGX)
    G1(x)  = 2 n.x / (n.x + sqrt(a^2 + (1 - a^2) (n.x)^2))        (Smith)
    G2     = 2 n.v n.l / (n.l sqrt(a^2 + (1 - a^2)(n.v)^2)
                        + n.v sqrt(a^2 + (1 - a^2)(n.l)^2))        (height-correlated)
    F(c)   = F0 + (1 - F0) (1 - c)^5                               (Schlick)

Directions are importance sampled from the distribution of visible normals
(VNDF) with the spherical-cap method of Dupuy and Benyoub (2023). The
density of the reflected direction is

    pdf(l) = G1(v) * D(h) / (4 * n.v)

so the sample weight f * n.l / pdf reduces to F * G2 / G1.

A GGX alpha below MIN_GGX_ALPHA is treated as a perfect mirror: the
reflection is deterministic and flagged as a delta lobe.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from sunsky.materials.ggx import sample_ggx, eval_ggx
    >>> # Use within a Taichi kernel:
    >>> # l, weight, pdf, is_delta, valid = sample_ggx(f0, alpha, v, u0, u1)
"""

import taichi as ti
import taichi.math as tm

vec3 = tm.vec3

# GGX alpha below which the lobe is a perfect mirror
MIN_GGX_ALPHA = 1e-4

# pdf reported for delta lobes; only the is_delta flag carries meaning
DELTA_PDF = 1.0


@ti.func
def fresnel_schlick(f0: vec3, cos_theta: ti.f32) -> vec3:
    """Schlick's approximation of the Fresnel reflectance."""
    c = tm.clamp(1.0 - cos_theta, 0.0, 1.0)
    c2 = c * c
    return f0 + (1.0 - f0) * (c2 * c2 * c)


@ti.func
def ggx_d(alpha: ti.f32, n_dot_h: ti.f32) -> ti.f32:
    """GGX normal distribution function."""
    a2 = alpha * alpha
    d = n_dot_h * n_dot_h * (a2 - 1.0) + 1.0
    return a2 / (tm.pi * d * d)


@ti.func
def smith_g1(alpha: ti.f32, n_dot_x: ti.f32) -> ti.f32:
    """Smith masking term for one direction."""
    a2 = alpha * alpha
    c = ti.max(n_dot_x, 0.0)
    return 2.0 * c / (c + ti.sqrt(a2 + (1.0 - a2) * c * c))


@ti.func
def smith_g2(alpha: ti.f32, n_dot_v: ti.f32, n_dot_l: ti.f32) -> ti.f32:
    """Height-correlated Smith masking-shadowing term."""
    a2 = alpha * alpha
    v = ti.max(n_dot_v, 0.0)
    l = ti.max(n_dot_l, 0.0)
    lambda_v = l * ti.sqrt(a2 + (1.0 - a2) * v * v)
    lambda_l = v * ti.sqrt(a2 + (1.0 - a2) * l * l)
    result = 0.0
    if lambda_v + lambda_l > 0.0:
        result = 2.0 * v * l / (lambda_v + lambda_l)
    return result


@ti.func
def sample_vndf(v: vec3, alpha: ti.f32, u0: ti.f32, u1: ti.f32) -> vec3:
    """Sample a visible microfacet normal.

    Args:
        v: View direction in the local frame (v.z > 0).
        alpha: GGX alpha.
        u0: Uniform variate for the azimuth.
        u1: Uniform variate for the cap height.

    Returns:
        The sampled half-vector in the local frame.
    """
    # Warp to the hemisphere configuration
    v_std = tm.normalize(vec3(v.x * alpha, v.y * alpha, v.z))
    # Sample the spherical cap in (-v_std.z, 1]
    phi = 2.0 * tm.pi * u0
    z = (1.0 - u1) * (1.0 + v_std.z) - v_std.z
    sin_theta = ti.sqrt(tm.clamp(1.0 - z * z, 0.0, 1.0))
    c = vec3(sin_theta * ti.cos(phi), sin_theta * ti.sin(phi), z)
    h_std = c + v_std
    # Warp back to the ellipsoid configuration
    return tm.normalize(vec3(h_std.x * alpha, h_std.y * alpha, ti.max(h_std.z, 0.0)))


@ti.func
def ggx_pdf(alpha: ti.f32, v: vec3, l: vec3) -> ti.f32:
    """Density of sample_ggx producing l, for a non-mirror lobe."""
    pdf = 0.0
    if v.z > 0.0 and l.z > 0.0:
        h = tm.normalize(v + l)
        pdf = smith_g1(alpha, v.z) * ggx_d(alpha, h.z) / (4.0 * v.z)
    if tm.isnan(pdf) or tm.isinf(pdf):
        pdf = 0.0
    return pdf


@ti.func
def eval_ggx(f0: vec3, alpha: ti.f32, v: vec3, l: vec3):
    """Evaluate the specular BRDF and its sampling density.

    Mirror lobes are Dirac distributions and evaluate to zero for every
    explicitly chosen direction.

    Args:
        f0: Reflectance at normal incidence.
        alpha: GGX alpha.
        v: View direction in the local frame.
        l: Light direction in the local frame.

    Returns:
        Tuple of (brdf, pdf).
    """
    brdf = vec3(0.0)
    pdf = 0.0
    if alpha >= MIN_GGX_ALPHA and v.z > 0.0 and l.z > 0.0:
        h = tm.normalize(v + l)
        d = ggx_d(alpha, h.z)
        g2 = smith_g2(alpha, v.z, l.z)
        f = fresnel_schlick(f0, tm.dot(v, h))
        brdf = f * (g2 * d / (4.0 * v.z * l.z))
        pdf = smith_g1(alpha, v.z) * d / (4.0 * v.z)

    for c in ti.static(range(3)):
        if tm.isnan(brdf[c]) or tm.isinf(brdf[c]):
            brdf[c] = 0.0
    if tm.isnan(pdf) or tm.isinf(pdf):
        pdf = 0.0
    return brdf, pdf


@ti.func
def sample_ggx(f0: vec3, alpha: ti.f32, v: vec3, u0: ti.f32, u1: ti.f32):
    """Sample a reflected direction from the specular lobe.

    Args:
        f0: Reflectance at normal incidence.
        alpha: GGX alpha; below MIN_GGX_ALPHA the lobe is a mirror.
        v: View direction in the local frame.
        u0: First uniform variate.
        u1: Second uniform variate.

    Returns:
        Tuple of (l, weight, pdf, is_delta, valid) where weight is
        brdf * cos(theta_l) / pdf.
    """
    l = vec3(0.0)
    weight = vec3(0.0)
    pdf = 0.0
    is_delta = 0
    valid = 0

    if v.z > 0.0:
        if alpha < MIN_GGX_ALPHA:
            # Mirror: h = (0, 0, 1)
            l = vec3(-v.x, -v.y, v.z)
            weight = fresnel_schlick(f0, v.z)
            pdf = DELTA_PDF
            is_delta = 1
            valid = 1
        else:
            h = sample_vndf(v, alpha, u0, u1)
            v_dot_h = tm.dot(v, h)
            l = 2.0 * v_dot_h * h - v
            if l.z > 0.0:
                g1 = smith_g1(alpha, v.z)
                weight = fresnel_schlick(f0, v_dot_h) * (smith_g2(alpha, v.z, l.z) / g1)
                pdf = g1 * ggx_d(alpha, h.z) / (4.0 * v.z)
                valid = 1

    for c in ti.static(range(3)):
        if tm.isnan(weight[c]) or tm.isinf(weight[c]):
            weight[c] = 0.0
    if tm.isnan(pdf) or tm.isinf(pdf):
        pdf = 0.0
    return l, weight, pdf, is_delta, valid
