"""Unit tests for the Lambertian lobe.

Tests cover:
- Lambertian BRDF evaluation (albedo / pi)
- PDF of cosine-weighted sampling
- Sampled directions, weights and densities
- Energy conservation (weight <= 1)
"""

import math

import pytest
import taichi as ti


class TestLambertianBrdf:
    """Tests for Lambertian BRDF evaluation."""

    def test_eval_lambertian_white(self):
        """Test BRDF for white (1,1,1) albedo."""
        from sunsky.materials.lambertian import eval_lambertian

        result = ti.Vector.field(3, dtype=ti.f32, shape=())

        @ti.kernel
        def test_kernel():
            result[None] = eval_lambertian(ti.math.vec3(1.0, 1.0, 1.0))

        test_kernel()
        r = result[None]
        expected = 1.0 / math.pi
        assert abs(r[0] - expected) < 1e-6
        assert abs(r[1] - expected) < 1e-6
        assert abs(r[2] - expected) < 1e-6

    def test_eval_lambertian_colored(self):
        """Test BRDF for colored (0.5, 0.3, 0.1) albedo."""
        from sunsky.materials.lambertian import eval_lambertian

        result = ti.Vector.field(3, dtype=ti.f32, shape=())

        @ti.kernel
        def test_kernel():
            result[None] = eval_lambertian(ti.math.vec3(0.5, 0.3, 0.1))

        test_kernel()
        r = result[None]
        assert abs(r[0] - 0.5 / math.pi) < 1e-6
        assert abs(r[1] - 0.3 / math.pi) < 1e-6
        assert abs(r[2] - 0.1 / math.pi) < 1e-6


class TestLambertianPdf:
    """Tests for the cosine-weighted density."""

    @pytest.mark.parametrize(
        "cos_theta,expected",
        [(1.0, 1.0 / math.pi), (math.sqrt(0.5), math.sqrt(0.5) / math.pi), (0.0, 0.0), (-0.5, 0.0)],
    )
    def test_pdf(self, cos_theta, expected):
        from sunsky.materials.lambertian import pdf_lambertian

        result = ti.field(dtype=ti.f32, shape=())

        @ti.kernel
        def test_kernel(c: ti.f32):
            result[None] = pdf_lambertian(c)

        test_kernel(cos_theta)
        assert result[None] == pytest.approx(expected, abs=1e-6)


class TestSampleLambertian:
    """Tests for sample_lambertian."""

    def test_samples_in_upper_hemisphere(self):
        """Test direction, weight and pdf over many random samples."""
        from sunsky.core.rng import rng_next_float2, rng_seed
        from sunsky.materials.lambertian import sample_lambertian

        n = 5000
        bad = ti.field(dtype=ti.i32, shape=4)

        @ti.kernel
        def test_kernel():
            for k in range(n):
                _, u = rng_next_float2(rng_seed(k, ti.cast(11, ti.u32)))
                albedo = ti.math.vec3(0.7, 0.5, 0.3)
                direction, weight, pdf, valid = sample_lambertian(albedo, u.x, u.y)
                if valid == 1:
                    if direction.z < 0.0:
                        bad[0] += 1
                    if ti.abs(ti.math.length(direction) - 1.0) > 1e-4:
                        bad[1] += 1
                    if ti.abs(pdf - direction.z / ti.math.pi) > 1e-5:
                        bad[2] += 1
                    if ti.math.length(weight - albedo) > 1e-6:
                        bad[3] += 1

        test_kernel()
        for k in range(4):
            assert bad[k] == 0

    def test_weight_bounded_by_one(self):
        """Test energy conservation: f * cos / pdf never exceeds 1 for albedo 1."""
        from sunsky.materials.lambertian import eval_lambertian, sample_lambertian

        result = ti.field(dtype=ti.f32, shape=())

        @ti.kernel
        def test_kernel():
            for i in range(16):
                for j in range(16):
                    u0 = (ti.cast(i, ti.f32) + 0.5) / 16.0
                    u1 = (ti.cast(j, ti.f32) + 0.5) / 16.0
                    albedo = ti.math.vec3(1.0)
                    direction, weight, pdf, valid = sample_lambertian(albedo, u0, u1)
                    if valid == 1:
                        ratio = eval_lambertian(albedo).x * direction.z / pdf
                        ti.atomic_max(result[None], ti.max(ratio, weight.x))

        test_kernel()
        assert result[None] <= 1.0 + 1e-5
