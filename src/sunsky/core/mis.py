"""Multiple importance sampling weights.

Direct lighting uses the one-sample MIS model: for each light, a single
strategy (light sampling or BSDF sampling) is chosen at random with
probability ``c`` and the contribution is

    f(x) * w_s(x) / (c_s * p_s(x)),   w_s = c_s p_s / (c_s p_s + c_o p_o)

which reduces to f(x) / (c_s p_s + c_o p_o) under the balance heuristic.
Every weight here maps a zero denominator to a zero weight so that 0/0 never
turns into NaN.
"""

import taichi as ti


@ti.func
def balance_heuristic(nf: ti.f32, f_pdf: ti.f32, ng: ti.f32, g_pdf: ti.f32) -> ti.f32:
    """Veach's balance heuristic for nf samples of f and ng samples of g."""
    f = nf * f_pdf
    g = ng * g_pdf
    weight = 0.0
    if f + g > 0.0:
        weight = f / (f + g)
    return weight


@ti.func
def power_heuristic(nf: ti.f32, f_pdf: ti.f32, ng: ti.f32, g_pdf: ti.f32) -> ti.f32:
    """Veach's power heuristic with exponent 2."""
    f = nf * f_pdf
    g = ng * g_pdf
    weight = 0.0
    if f * f + g * g > 0.0:
        weight = (f * f) / (f * f + g * g)
    return weight


@ti.func
def one_sample_mis_weight(chosen_pdf: ti.f32, other_pdf: ti.f32) -> ti.f32:
    """Balance weight of the chosen strategy, both pdfs already scaled by
    their selection probabilities."""
    return balance_heuristic(1.0, chosen_pdf, 1.0, other_pdf)


@ti.func
def one_sample_mis_estimate(
    value: ti.math.vec3, chosen_pdf: ti.f32, other_pdf: ti.f32
) -> ti.math.vec3:
    """One-sample MIS contribution of an integrand value.

    Args:
        value: Integrand value f(x) at the chosen direction.
        chosen_pdf: Selection probability times density of the strategy that
            produced x.
        other_pdf: Selection probability times density of the other strategy
            evaluated at x.

    Returns:
        value * w / chosen_pdf, or zero when chosen_pdf is zero.
    """
    result = ti.math.vec3(0.0)
    if chosen_pdf > 0.0:
        result = value * (one_sample_mis_weight(chosen_pdf, other_pdf) / chosen_pdf)
    return result
