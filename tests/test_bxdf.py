"""Unit tests for the combined BxDF.

Tests cover:
- Lobe weights and selection
- Agreement between sample_bxdf and eval_bxdf for the continuous lobes
- Transparent pass-through and glass delta lobes
- Non-scattering emitters
- has_smooth_lobes_only classification
- Energy conservation of the opaque material
"""

import pytest
import taichi as ti


def _material_data_func():
    """Return a ti.func building MaterialData for a +z facing hit."""
    from sunsky.geometry.sphere import HitRecord
    from sunsky.materials.shading import build_material_data

    @ti.func
    def material_data(material_id: ti.i32, view: ti.math.vec3):
        hit = HitRecord(
            hit=1,
            t=1.0,
            point=ti.math.vec3(0.0),
            normal=ti.math.vec3(0.0, 0.0, 1.0),
            shading_normal=ti.math.vec3(0.0, 0.0, 1.0),
            tangent=ti.math.vec4(1.0, 0.0, 0.0, 1.0),
            uv=ti.math.vec2(0.5),
            front_face=1,
            material_id=material_id,
        )
        return build_material_data(hit, view)

    return material_data


def _sample(material_id, view, u_lobe, u0=0.3, u1=0.6):
    """Draw one sample_bxdf sample and evaluate eval_bxdf at its direction."""
    from sunsky.materials.bxdf import eval_bxdf, sample_bxdf

    direction = ti.Vector.field(3, dtype=ti.f32, shape=())
    weight = ti.Vector.field(3, dtype=ti.f32, shape=())
    pdfs = ti.field(dtype=ti.f32, shape=2)
    flags = ti.field(dtype=ti.i32, shape=2)

    material_data = _material_data_func()

    @ti.kernel
    def test_kernel(mid: ti.i32, v_in: ti.math.vec3, ul: ti.f32, a: ti.f32, b: ti.f32):
        v = ti.math.normalize(v_in)
        md = material_data(mid, v)
        s = sample_bxdf(md, v, ul, a, b)
        direction[None] = s.direction
        weight[None] = s.weight
        pdfs[0] = s.pdf
        flags[0] = s.is_delta
        flags[1] = s.valid
        pdfs[1] = eval_bxdf(md, v, s.direction).pdf

    test_kernel(material_id, ti.math.vec3(*view), u_lobe, u0, u1)
    return direction[None], weight[None], pdfs[0], pdfs[1], flags[0], flags[1]


class TestLobeSelection:
    """Tests for lobe_weights and select_lobe."""

    def test_metal_has_no_diffuse_lobe(self):
        from sunsky.materials.bxdf import lobe_probabilities, lobe_weights
        from sunsky.materials.material import Material, add_material

        mid = add_material(Material.standard((0.9, 0.9, 0.9), metallic=1.0, roughness=0.5))
        material_data = _material_data_func()
        probs = ti.Vector.field(3, dtype=ti.f32, shape=())

        @ti.kernel
        def test_kernel(m: ti.i32):
            md = material_data(m, ti.math.vec3(0.0, 0.0, 1.0))
            probs[None] = lobe_probabilities(lobe_weights(md, 1.0))

        test_kernel(mid)
        p = probs[None]
        assert p[0] == pytest.approx(1.0)
        assert p[1] == pytest.approx(0.0)
        assert p[2] == pytest.approx(0.0)

    def test_select_lobe_boundaries(self):
        from sunsky.materials.bxdf import LOBE_DIFFUSE, LOBE_SPECULAR, LOBE_TRANSPARENT, select_lobe

        result = ti.field(dtype=ti.i32, shape=4)
        p_select = ti.field(dtype=ti.f32, shape=4)

        @ti.kernel
        def test_kernel():
            probs = ti.math.vec3(0.25, 0.5, 0.25)
            lobe0, p0 = select_lobe(probs, 0.1)
            lobe1, p1 = select_lobe(probs, 0.5)
            lobe2, p2 = select_lobe(probs, 0.9)
            lobe3, p3 = select_lobe(ti.math.vec3(0.5, 0.5, 0.0), 0.999999)
            result[0] = lobe0
            result[1] = lobe1
            result[2] = lobe2
            result[3] = lobe3
            p_select[0] = p0
            p_select[1] = p1
            p_select[2] = p2
            p_select[3] = p3

        test_kernel()
        assert [result[k] for k in range(4)] == [
            LOBE_SPECULAR,
            LOBE_DIFFUSE,
            LOBE_TRANSPARENT,
            LOBE_DIFFUSE,
        ]
        assert p_select[1] == pytest.approx(0.5)
        assert p_select[3] == pytest.approx(0.5)


class TestSampleEvalAgreement:
    """Tests that sampled pdfs match evaluated pdfs."""

    @pytest.mark.parametrize("u_lobe", [0.01, 0.99])
    @pytest.mark.parametrize("uv", [(0.3, 0.6), (0.8, 0.1), (0.55, 0.45)])
    def test_rough_standard(self, u_lobe, uv):
        from sunsky.materials.material import Material, add_material

        mid = add_material(Material.standard((0.6, 0.4, 0.2), metallic=0.2, roughness=0.6))
        direction, weight, pdf, eval_pdf, is_delta, valid = _sample(
            mid, (0.3, 0.1, 0.9), u_lobe, *uv
        )
        assert valid == 1
        assert is_delta == 0
        assert direction[2] > 0.0
        assert pdf == pytest.approx(eval_pdf, rel=1e-3)
        assert all(w >= 0.0 for w in weight)

    def test_diffuse_kind(self):
        from sunsky.materials.material import Material, add_material

        mid = add_material(Material.diffuse((0.5, 0.5, 0.5)))
        _, weight, pdf, eval_pdf, is_delta, valid = _sample(mid, (0.0, 0.0, 1.0), 0.5)
        assert valid == 1
        assert is_delta == 0
        assert pdf == pytest.approx(eval_pdf, rel=1e-4)
        assert tuple(weight) == pytest.approx((0.5, 0.5, 0.5), rel=1e-4)


class TestDeltaLobes:
    """Tests for transparent, mirror and glass lobes."""

    def test_fully_transparent_passes_through(self):
        from sunsky.materials.material import Material, add_material

        mid = add_material(Material.standard((0.3, 0.6, 0.9, 0.0)))
        direction, weight, pdf, eval_pdf, is_delta, valid = _sample(mid, (0.2, 0.0, 1.0), 0.5)
        norm = (0.2**2 + 1.0) ** 0.5
        assert valid == 1
        assert is_delta == 1
        assert direction[0] == pytest.approx(-0.2 / norm, abs=1e-5)
        assert direction[2] == pytest.approx(-1.0 / norm, abs=1e-5)
        assert tuple(weight) == pytest.approx((1.0, 1.0, 1.0), abs=1e-5)
        assert pdf == pytest.approx(1.0)
        assert eval_pdf == pytest.approx(1.0)

    def test_mirror_is_delta(self):
        from sunsky.materials.material import Material, add_material

        mid = add_material(Material.standard((1.0, 1.0, 1.0), metallic=1.0, roughness=0.0))
        direction, weight, _, eval_pdf, is_delta, valid = _sample(mid, (0.6, 0.0, 0.8), 0.2)
        assert valid == 1
        assert is_delta == 1
        assert direction[0] == pytest.approx(-0.6, abs=1e-5)
        assert tuple(weight) == pytest.approx((1.0, 1.0, 1.0), abs=1e-5)
        # A Dirac lobe has no density for an evaluated direction
        assert eval_pdf == 0.0

    def test_glass_is_delta_with_unit_pdf(self):
        from sunsky.materials.material import Material, add_material

        mid = add_material(Material.glass())
        direction, _, pdf, _, is_delta, valid = _sample(mid, (0.0, 0.0, 1.0), 0.9)
        assert valid == 1
        assert is_delta == 1
        assert pdf == 1.0
        assert direction[2] == pytest.approx(-1.0, abs=1e-5)

    def test_emitter_does_not_scatter(self):
        from sunsky.materials.material import Material, add_material

        mid = add_material(Material.emissive_light((1.0, 1.0, 1.0), strength=5.0))
        _, _, _, _, _, valid = _sample(mid, (0.0, 0.0, 1.0), 0.5)
        assert valid == 0


class TestSmoothLobesOnly:
    """Tests for has_smooth_lobes_only."""

    @pytest.mark.parametrize(
        "factory,expected",
        [
            (lambda M: M.diffuse((0.5, 0.5, 0.5)), 0),
            (lambda M: M.glass(), 1),
            (lambda M: M.standard((1.0, 1.0, 1.0), metallic=1.0, roughness=0.0), 1),
            (lambda M: M.standard((1.0, 1.0, 1.0), metallic=1.0, roughness=0.5), 0),
            (lambda M: M.standard((1.0, 1.0, 1.0), metallic=0.0, roughness=0.0), 0),
            (lambda M: M.standard((1.0, 1.0, 1.0, 0.0)), 1),
        ],
    )
    def test_classification(self, factory, expected):
        from sunsky.materials.bxdf import has_smooth_lobes_only
        from sunsky.materials.material import Material, add_material

        mid = add_material(factory(Material))
        material_data = _material_data_func()
        result = ti.field(dtype=ti.i32, shape=())

        @ti.kernel
        def test_kernel(m: ti.i32):
            v = ti.math.vec3(0.0, 0.0, 1.0)
            result[None] = has_smooth_lobes_only(material_data(m, v), v)

        test_kernel(mid)
        assert result[None] == expected


class TestEnergyConservation:
    """White furnace test of the full opaque material."""

    @pytest.mark.parametrize("metallic", [0.0, 0.5, 1.0])
    @pytest.mark.parametrize("roughness", [0.2, 0.6, 1.0])
    def test_mean_weight_at_most_one(self, metallic, roughness):
        from sunsky.core.rng import rng_next_float, rng_next_float2, rng_seed
        from sunsky.materials.bxdf import sample_bxdf
        from sunsky.materials.material import Material, add_material

        mid = add_material(Material.standard((1.0, 1.0, 1.0), metallic=metallic, roughness=roughness))
        material_data = _material_data_func()
        n = 100000
        total = ti.Vector.field(3, dtype=ti.f32, shape=())

        @ti.kernel
        def test_kernel(m: ti.i32):
            for k in range(n):
                v = ti.math.normalize(ti.math.vec3(0.3, 0.0, 1.0))
                md = material_data(m, v)
                state, u_lobe = rng_next_float(rng_seed(k, ti.cast(41, ti.u32)))
                _, u = rng_next_float2(state)
                s = sample_bxdf(md, v, u_lobe, u.x, u.y)
                if s.valid == 1:
                    total[None] += s.weight / n

        test_kernel(mid)
        for channel in range(3):
            assert 0.0 < total[None][channel] <= 1.05
