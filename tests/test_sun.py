"""Unit tests for the sun light.

Tests cover:
- Direction convention and solid angle
- Disc membership and pdf
- Uniform cone sampling inside the disc
- Parameter validation and enable switch
"""

import math

import pytest
import taichi as ti


class TestSunGeometry:
    """Tests for the host-side helpers."""

    def test_direction_conventions(self):
        from sunsky.lights.sun import sun_direction

        assert sun_direction(math.pi / 2.0, 0.0) == pytest.approx((0.0, 1.0, 0.0), abs=1e-12)
        assert sun_direction(0.0, 0.0) == pytest.approx((0.0, 0.0, 1.0), abs=1e-12)
        assert sun_direction(0.0, math.pi / 2.0) == pytest.approx((1.0, 0.0, 0.0), abs=1e-12)

    def test_solid_angle(self):
        """Test the cone solid angle against 2 pi (1 - cos(half-angle))."""
        from sunsky.lights.sun import sun_solid_angle

        for angle in (0.0093, 0.1, 1.0):
            expected = 2.0 * math.pi * (1.0 - math.cos(angle / 2.0))
            assert sun_solid_angle(angle) == pytest.approx(expected, rel=1e-9)
        # Small-angle limit: pi (angle / 2)^2
        assert sun_solid_angle(0.0093) == pytest.approx(math.pi * 0.00465**2, rel=1e-4)

    def test_invalid_parameters(self):
        from sunsky.config import SunParameters
        from sunsky.lights.sun import setup_sun

        with pytest.raises(ValueError):
            setup_sun(SunParameters(enabled=True, angle=0.0))
        with pytest.raises(ValueError):
            setup_sun(SunParameters(enabled=True, strength=-1.0))

    def test_enable_switch(self):
        from sunsky.config import SunParameters
        from sunsky.lights.sun import disable_sun, is_sun_enabled, setup_sun

        setup_sun(SunParameters(enabled=True))
        assert is_sun_enabled()
        disable_sun()
        assert not is_sun_enabled()


class TestSunKernel:
    """Tests for sun_contains, sun_pdf and sample_sun."""

    def test_contains_and_pdf(self):
        from sunsky.config import SunParameters
        from sunsky.lights.sun import setup_sun, sun_contains, sun_pdf, sun_radiance, sun_solid_angle

        setup_sun(SunParameters(enabled=True, elevation=0.5, azimuth=1.0, angle=0.1, strength=3.0))
        axis = (math.cos(0.5) * math.sin(1.0), math.sin(0.5), math.cos(0.5) * math.cos(1.0))
        flags = ti.field(dtype=ti.i32, shape=2)
        pdfs = ti.field(dtype=ti.f32, shape=2)
        radiance = ti.Vector.field(3, dtype=ti.f32, shape=())

        @ti.kernel
        def test_kernel(a: ti.math.vec3):
            off = ti.math.normalize(a + ti.math.vec3(0.0, 0.2, 0.0))
            flags[0] = sun_contains(a)
            flags[1] = sun_contains(off)
            pdfs[0] = sun_pdf(a)
            pdfs[1] = sun_pdf(off)
            radiance[None] = sun_radiance()

        test_kernel(ti.math.vec3(*axis))
        assert flags[0] == 1
        assert flags[1] == 0
        assert pdfs[0] == pytest.approx(1.0 / sun_solid_angle(0.1), rel=1e-4)
        assert pdfs[1] == 0.0
        assert tuple(radiance[None]) == pytest.approx((3.0, 3.0, 3.0))

    def test_samples_inside_disc(self):
        from sunsky.config import SunParameters
        from sunsky.core.rng import rng_next_float2, rng_seed
        from sunsky.lights.sun import sample_sun, setup_sun, sun_contains

        setup_sun(SunParameters(enabled=True, elevation=1.1, azimuth=-0.4, angle=0.2))
        n = 10000
        outside = ti.field(dtype=ti.i32, shape=())
        mean = ti.Vector.field(3, dtype=ti.f32, shape=())

        @ti.kernel
        def test_kernel():
            for k in range(n):
                _, u = rng_next_float2(rng_seed(k, ti.cast(17, ti.u32)))
                direction, pdf, _ = sample_sun(u.x, u.y)
                if sun_contains(direction) == 0 or pdf <= 0.0:
                    outside[None] += 1
                mean[None] += direction / n

        test_kernel()
        # Rim samples may round across the edge in f32
        assert outside[None] <= n // 1000
        axis = (math.cos(1.1) * math.sin(-0.4), math.sin(1.1), math.cos(1.1) * math.cos(-0.4))
        m = mean[None]
        norm = math.sqrt(sum(m[c] ** 2 for c in range(3)))
        m = [m[c] / norm for c in range(3)]
        assert m[0] == pytest.approx(axis[0], abs=1e-3)
        assert m[1] == pytest.approx(axis[1], abs=1e-3)
        assert m[2] == pytest.approx(axis[2], abs=1e-3)
