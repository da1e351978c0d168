"""Combined BxDF: lobe selection, sampling and evaluation.

A STANDARD material mixes three lobes with weights

    w_spec  = alpha
    w_diff  = kD * alpha,   kD = clamp((1 - lum(F(F0, n.v))) * (1 - metallic), 0, 1)
    w_trans = 1 - alpha

so that f = w_spec * f_ggx + w_diff * diffuse / pi + w_trans * T * delta(-v),
with the transmission color T = exp(alpha * log(clamp(base_color, eps, 1))).
Lobes are picked with probability p_i = w_i / sum(w).

The continuous lobes (rough specular and diffuse) are sampled as a mixture:
whichever of them is picked, the returned pdf is the selection-weighted sum
of both densities and the weight is f * cos / pdf. Delta lobes (mirror
specular and transmission) return the selection probability as their pdf
and set ``is_delta``.

The other material kinds dispatch to their own lobe: DIFFUSE to Lambert,
GLASS to the Fresnel dielectric, EMISSIVE does not scatter.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from sunsky.materials.bxdf import sample_bxdf, eval_bxdf
    >>> # Use within a Taichi kernel:
    >>> # s = sample_bxdf(material_data, view, u_lobe, u0, u1)
    >>> # if s.valid == 1: throughput *= s.weight
"""

import taichi as ti
import taichi.math as tm

from sunsky.core.ray import is_finite, luminance

from .dielectric import sample_glass
from .ggx import eval_ggx, fresnel_schlick, sample_ggx
from .lambertian import eval_lambertian, pdf_lambertian, sample_lambertian
from .material import KIND_DIFFUSE, KIND_GLASS, KIND_STANDARD
from .shading import MaterialData

vec3 = tm.vec3

LOBE_SPECULAR = 0
LOBE_DIFFUSE = 1
LOBE_TRANSPARENT = 2

# Floor applied to the base color before taking its logarithm
TRANSMISSION_EPSILON = 1e-4

# cos of the angle within which a direction counts as "exactly -view"
TRANSMISSION_COS_TOLERANCE = 0.99999


@ti.dataclass
class BxdfSample:
    """Result of sample_bxdf.

    Attributes:
        direction: Sampled world-space direction.
        weight: bsdf * |cos| / pdf, including the lobe selection.
        pdf: Density of the direction (selection probability for delta lobes).
        is_delta: 1 if the direction came from a Dirac lobe.
        valid: 0 if the sample was rejected.
    """

    direction: vec3
    weight: vec3
    pdf: ti.f32
    is_delta: ti.i32
    valid: ti.i32


@ti.dataclass
class BxdfEval:
    """Result of eval_bxdf: BSDF value (without cosine) and sampling density."""

    bsdf: vec3
    pdf: ti.f32


@ti.func
def transmission_color(base_color: vec3, alpha: ti.f32) -> vec3:
    """Color of the transparent lobe, a base-color slab of thickness alpha."""
    return ti.exp(alpha * ti.log(tm.clamp(base_color, TRANSMISSION_EPSILON, 1.0)))


@ti.func
def lobe_weights(md: MaterialData, n_dot_v: ti.f32) -> vec3:
    """Unnormalized weights (specular, diffuse, transparent)."""
    fresnel = fresnel_schlick(md.f0, ti.max(n_dot_v, 0.0))
    k_d = tm.clamp((1.0 - luminance(fresnel)) * (1.0 - md.metallic), 0.0, 1.0)
    return vec3(md.alpha, k_d * md.alpha, 1.0 - md.alpha)


@ti.func
def lobe_probabilities(weights: vec3) -> vec3:
    total = weights.x + weights.y + weights.z
    probs = vec3(0.0)
    if total > 0.0:
        probs = weights / total
    return probs


@ti.func
def select_lobe(probs: vec3, u: ti.f32):
    """Invert the discrete CDF of the lobe probabilities.

    Returns:
        Tuple of (lobe, selection probability). Lobes with zero probability
        are never returned for u in [0, 1).
    """
    lobe = LOBE_TRANSPARENT
    if u < probs.x:
        lobe = LOBE_SPECULAR
    elif u < probs.x + probs.y:
        lobe = LOBE_DIFFUSE
    elif probs.z <= 0.0:
        # Rounding pushed u past the last non-empty lobe
        lobe = ti.select(probs.y > 0.0, LOBE_DIFFUSE, LOBE_SPECULAR)

    p_select = probs.z
    if lobe == LOBE_SPECULAR:
        p_select = probs.x
    elif lobe == LOBE_DIFFUSE:
        p_select = probs.y
    return lobe, p_select


@ti.func
def _eval_continuous_local(md: MaterialData, probs: vec3, weights: vec3, v: vec3, l: vec3):
    """Mixture BSDF and pdf of the rough specular and diffuse lobes."""
    bsdf = vec3(0.0)
    pdf = 0.0
    if v.z > 0.0 and l.z > 0.0:
        f_spec, pdf_spec = eval_ggx(md.f0, md.ggx_alpha, v, l)
        bsdf = weights.x * f_spec + weights.y * eval_lambertian(md.diffuse)
        pdf = probs.x * pdf_spec + probs.y * pdf_lambertian(l.z)
    return bsdf, pdf


@ti.func
def _reject_bad_weight(s: BxdfSample) -> BxdfSample:
    result = s
    if is_finite(s.weight) == 0 or luminance(s.weight) <= 0.0 or tm.isnan(s.pdf):
        result.valid = 0
        result.weight = vec3(0.0)
    return result


@ti.func
def sample_standard(md: MaterialData, view: vec3, u_lobe: ti.f32, u0: ti.f32, u1: ti.f32) -> BxdfSample:
    """Sample the three-lobe STANDARD material."""
    s = BxdfSample(direction=vec3(0.0), weight=vec3(0.0), pdf=0.0, is_delta=0, valid=0)
    v = md.to_local(view)
    weights = lobe_weights(md, v.z)
    probs = lobe_probabilities(weights)
    lobe, p_select = select_lobe(probs, u_lobe)

    if lobe == LOBE_TRANSPARENT:
        s.direction = -view
        s.weight = weights.z * transmission_color(md.base_color, md.alpha) / p_select
        s.pdf = p_select
        s.is_delta = 1
        s.valid = ti.select(tm.dot(-view, md.geometric_normal) < 0.0, 1, 0)
    elif v.z > 0.0:
        l = vec3(0.0)
        ok = 0
        if lobe == LOBE_SPECULAR:
            l_spec, w_spec, _pdf, is_delta, ok_spec = sample_ggx(md.f0, md.ggx_alpha, v, u0, u1)
            l = l_spec
            ok = ok_spec
            if is_delta == 1:
                s.weight = weights.x * w_spec / p_select
                s.pdf = p_select
                s.is_delta = 1
        else:
            l_diff, _w, _pdf, ok_diff = sample_lambertian(md.diffuse, u0, u1)
            l = l_diff
            ok = ok_diff

        if ok == 1:
            s.direction = md.to_world(l)
            if s.is_delta == 0:
                bsdf, pdf = _eval_continuous_local(md, probs, weights, v, l)
                if pdf > 0.0:
                    s.weight = bsdf * (l.z / pdf)
                    s.pdf = pdf
                    s.valid = 1
            else:
                s.valid = 1
            # Reflection must stay on the viewer's side of the surface
            if tm.dot(s.direction, md.geometric_normal) <= 0.0:
                s.valid = 0

    return _reject_bad_weight(s)


@ti.func
def sample_bxdf(md: MaterialData, view: vec3, u_lobe: ti.f32, u0: ti.f32, u1: ti.f32) -> BxdfSample:
    """Sample an outgoing direction for any material kind.

    Args:
        md: Shading record.
        view: Unit direction toward the viewer.
        u_lobe: Uniform variate for the lobe (or Fresnel branch) choice.
        u0: First uniform variate for the direction.
        u1: Second uniform variate for the direction.

    Returns:
        A BxdfSample; valid == 0 means the path should terminate.
    """
    s = BxdfSample(direction=vec3(0.0), weight=vec3(0.0), pdf=0.0, is_delta=0, valid=0)
    if md.kind == KIND_STANDARD:
        s = sample_standard(md, view, u_lobe, u0, u1)
    elif md.kind == KIND_DIFFUSE:
        v = md.to_local(view)
        if v.z > 0.0:
            l, weight, pdf, ok = sample_lambertian(md.diffuse, u0, u1)
            direction = md.to_world(l)
            if ok == 1 and tm.dot(direction, md.geometric_normal) > 0.0:
                s = BxdfSample(direction=direction, weight=weight, pdf=pdf, is_delta=0, valid=1)
        s = _reject_bad_weight(s)
    elif md.kind == KIND_GLASS:
        v = md.to_local(view)
        l, weight, reflected, ok = sample_glass(
            md.base_color, md.inner_eta, md.outer_eta, md.front_face, v, u_lobe
        )
        if ok == 1:
            direction = md.to_world(l)
            side = tm.dot(direction, md.geometric_normal)
            if (reflected == 1 and side > 0.0) or (reflected == 0 and side < 0.0):
                s = BxdfSample(direction=direction, weight=weight, pdf=1.0, is_delta=1, valid=1)
        s = _reject_bad_weight(s)
    # EMISSIVE surfaces do not scatter
    return s


@ti.func
def eval_bxdf_reflection(md: MaterialData, view: vec3, out_dir: ti.math.vec3) -> BxdfEval:
    """BSDF and pdf of the non-delta lobes only.

    This is what light sampling can reach: a Dirac lobe has zero density for
    any independently chosen direction.
    """
    result = BxdfEval(bsdf=vec3(0.0), pdf=0.0)
    if tm.dot(out_dir, md.geometric_normal) > 0.0:
        v = md.to_local(view)
        l = md.to_local(out_dir)
        if md.kind == KIND_STANDARD:
            weights = lobe_weights(md, v.z)
            probs = lobe_probabilities(weights)
            bsdf, pdf = _eval_continuous_local(md, probs, weights, v, l)
            result = BxdfEval(bsdf=bsdf, pdf=pdf)
        elif md.kind == KIND_DIFFUSE:
            if v.z > 0.0 and l.z > 0.0:
                result = BxdfEval(bsdf=eval_lambertian(md.diffuse), pdf=pdf_lambertian(l.z))
    return result


@ti.func
def eval_bxdf(md: MaterialData, view: vec3, out_dir: ti.math.vec3) -> BxdfEval:
    """Evaluate the BSDF and the sampling pdf for an arbitrary direction.

    Reflection lobes contribute above the geometric normal. The transparent
    lobe of a STANDARD material contributes its selection-weighted color when
    out_dir lies within TRANSMISSION_COS_TOLERANCE of -view.

    Args:
        md: Shading record.
        view: Unit direction toward the viewer.
        out_dir: Unit direction to evaluate.

    Returns:
        A BxdfEval with the BSDF (no cosine) and the pdf sample_bxdf would
        assign to out_dir.
    """
    result = eval_bxdf_reflection(md, view, out_dir)
    if md.kind == KIND_STANDARD and tm.dot(out_dir, -view) > TRANSMISSION_COS_TOLERANCE:
        weights = lobe_weights(md, tm.dot(md.normal, view))
        probs = lobe_probabilities(weights)
        if probs.z > 0.0:
            result.bsdf += weights.z * transmission_color(md.base_color, md.alpha)
            result.pdf += probs.z
    return result


@ti.func
def has_smooth_lobes_only(md: MaterialData, view: vec3) -> ti.i32:
    """1 if no light-sampling strategy can reach the material's lobes."""
    result = 0
    if md.kind == KIND_GLASS:
        result = 1
    elif md.kind == KIND_STANDARD:
        weights = lobe_weights(md, tm.dot(md.normal, view))
        if weights.y <= 0.0 and (md.ggx_alpha < 1e-4 or weights.x <= 0.0):
            result = 1
    elif md.kind != KIND_DIFFUSE:
        result = 1
    return result
