"""Unit tests for ray and vector helpers.

Tests cover:
- Ray evaluation
- Luminance, max component and finiteness checks
- Orthonormal basis construction and frame transforms
- Cosine hemisphere and cone sampling
"""

import math

import pytest
import taichi as ti


class TestRay:
    """Tests for the Ray dataclass."""

    def test_ray_at(self):
        from sunsky.core.ray import make_ray, ray_at

        result = ti.Vector.field(3, dtype=ti.f32, shape=())

        @ti.kernel
        def test_kernel():
            ray = make_ray(ti.math.vec3(1.0, 2.0, 3.0), ti.math.vec3(0.0, 0.0, -1.0))
            result[None] = ray_at(ray, 2.5)

        test_kernel()
        assert tuple(result[None]) == pytest.approx((1.0, 2.0, 0.5))


class TestColorHelpers:
    """Tests for luminance, max_component and is_finite."""

    def test_luminance_of_white(self):
        from sunsky.core.ray import luminance

        result = ti.field(dtype=ti.f32, shape=())

        @ti.kernel
        def test_kernel():
            result[None] = luminance(ti.math.vec3(1.0))

        test_kernel()
        assert result[None] == pytest.approx(1.0, abs=1e-5)

    def test_max_component(self):
        from sunsky.core.ray import max_component

        result = ti.field(dtype=ti.f32, shape=())

        @ti.kernel
        def test_kernel():
            result[None] = max_component(ti.math.vec3(0.2, 0.9, 0.4))

        test_kernel()
        assert result[None] == pytest.approx(0.9)

    def test_is_finite(self):
        from sunsky.core.ray import is_finite

        result = ti.field(dtype=ti.i32, shape=3)

        @ti.kernel
        def test_kernel(zero: ti.f32):
            result[0] = is_finite(ti.math.vec3(1.0, 2.0, 3.0))
            result[1] = is_finite(ti.math.vec3(1.0, 1.0 / zero, 0.0))
            result[2] = is_finite(ti.math.vec3(zero / zero, 0.0, 0.0))

        test_kernel(0.0)
        assert result[0] == 1
        assert result[1] == 0
        assert result[2] == 0


class TestFrames:
    """Tests for build_onb_from_normal and the frame transforms."""

    @pytest.mark.parametrize(
        "normal", [(0.0, 0.0, 1.0), (0.0, 0.0, -1.0), (0.0, 1.0, 0.0), (0.577, -0.577, 0.577)]
    )
    def test_onb_is_orthonormal(self, normal):
        from sunsky.core.ray import build_onb_from_normal

        result = ti.field(dtype=ti.f32, shape=6)

        @ti.kernel
        def test_kernel(n_in: ti.math.vec3):
            n = ti.math.normalize(n_in)
            t, b, nn = build_onb_from_normal(n)
            result[0] = ti.math.dot(t, b)
            result[1] = ti.math.dot(t, nn)
            result[2] = ti.math.dot(b, nn)
            result[3] = ti.math.length(t)
            result[4] = ti.math.length(b)
            # right-handed: t x b = n
            result[5] = ti.math.dot(ti.math.cross(t, b), nn)

        test_kernel(ti.math.vec3(*normal))
        for k in range(3):
            assert result[k] == pytest.approx(0.0, abs=1e-5)
        for k in range(3, 6):
            assert result[k] == pytest.approx(1.0, abs=1e-5)

    def test_local_world_round_trip(self):
        from sunsky.core.ray import build_onb_from_normal, local_to_world, world_to_local

        result = ti.Vector.field(3, dtype=ti.f32, shape=())

        @ti.kernel
        def test_kernel():
            n = ti.math.normalize(ti.math.vec3(0.2, 0.9, -0.3))
            t, b, nn = build_onb_from_normal(n)
            d = ti.math.normalize(ti.math.vec3(-0.4, 0.1, 0.7))
            result[None] = local_to_world(world_to_local(d, t, b, nn), t, b, nn) - d

        test_kernel()
        assert max(abs(result[None][c]) for c in range(3)) < 1e-5


class TestDirectionSampling:
    """Tests for the hemisphere and cone warps."""

    def test_cosine_hemisphere_mean_cosine(self):
        """Test E[cos] = 2/3 under cosine-weighted sampling."""
        from sunsky.core.ray import sample_cosine_hemisphere
        from sunsky.core.rng import rng_next_float2, rng_seed

        n = 100000
        total = ti.field(dtype=ti.f32, shape=())
        below = ti.field(dtype=ti.i32, shape=())

        @ti.kernel
        def test_kernel():
            for k in range(n):
                _, u = rng_next_float2(rng_seed(k, ti.cast(3, ti.u32)))
                d = sample_cosine_hemisphere(u.x, u.y)
                total[None] += d.z
                if d.z < 0.0:
                    below[None] += 1

        test_kernel()
        assert total[None] / n == pytest.approx(2.0 / 3.0, abs=0.01)
        assert below[None] == 0

    def test_uniform_cone_stays_inside(self):
        """Test that narrow cone samples keep 1 - cos within the cone."""
        from sunsky.core.ray import sample_uniform_cone
        from sunsky.core.rng import rng_next_float2, rng_seed

        one_minus_cos = 2.0 * math.sin(0.01 / 4.0) ** 2
        n = 10000
        outside = ti.field(dtype=ti.i32, shape=())

        @ti.kernel
        def test_kernel(limit: ti.f32):
            for k in range(n):
                _, u = rng_next_float2(rng_seed(k, ti.cast(5, ti.u32)))
                d = sample_uniform_cone(u.x, u.y, limit)
                if 1.0 - d.z > limit + 2e-7 or ti.abs(ti.math.length(d) - 1.0) > 1e-5:
                    outside[None] += 1

        test_kernel(one_minus_cos)
        assert outside[None] == 0
