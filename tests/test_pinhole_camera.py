"""Unit tests for the pinhole camera module.

Tests cover:
- Euler angle rotation matrix and look_at
- Camera setup, validation and serialization
- Ray generation for center and corner pixels
- Pixel filter offsets (box and tent)
"""

import math

import numpy as np
import pytest
import taichi as ti


def _generate(i, j, width, height, offset=(0.0, 0.0)):
    """Generate the primary ray of one pixel and return (origin, direction)."""
    from sunsky.camera.pinhole import generate_ray

    origin = ti.Vector.field(3, dtype=ti.f32, shape=())
    direction = ti.Vector.field(3, dtype=ti.f32, shape=())

    @ti.kernel
    def test_kernel(pi: ti.i32, pj: ti.i32, w: ti.i32, h: ti.i32, off: ti.math.vec2):
        ray = generate_ray(pi, pj, w, h, off)
        origin[None] = ray.origin
        direction[None] = ray.direction

    test_kernel(i, j, width, height, ti.math.vec2(*offset))
    return origin[None], direction[None]


class TestRotation:
    """Tests for euler_yxz_matrix and look_at."""

    def test_identity(self):
        from sunsky.camera.pinhole import euler_yxz_matrix

        np.testing.assert_allclose(euler_yxz_matrix((0.0, 0.0, 0.0)), np.eye(3), atol=1e-12)

    def test_matrix_is_orthonormal(self):
        from sunsky.camera.pinhole import euler_yxz_matrix

        mat = euler_yxz_matrix((20.0, -35.0, 10.0))
        np.testing.assert_allclose(mat @ mat.T, np.eye(3), atol=1e-12)
        assert np.linalg.det(mat) == pytest.approx(1.0)

    def test_yaw_turns_forward_toward_minus_x(self):
        """Test that a positive yaw of 90 degrees looks down -x."""
        from sunsky.camera.pinhole import euler_yxz_matrix

        forward = euler_yxz_matrix((0.0, 90.0, 0.0)) @ np.array([0.0, 0.0, -1.0])
        np.testing.assert_allclose(forward, [-1.0, 0.0, 0.0], atol=1e-12)

    def test_pitch_looks_up(self):
        from sunsky.camera.pinhole import euler_yxz_matrix

        forward = euler_yxz_matrix((90.0, 0.0, 0.0)) @ np.array([0.0, 0.0, -1.0])
        np.testing.assert_allclose(forward, [0.0, 1.0, 0.0], atol=1e-12)

    @pytest.mark.parametrize(
        "position,target",
        [
            ((0.0, 0.0, 5.0), (0.0, 0.0, 0.0)),
            ((3.0, 2.0, 1.0), (-1.0, 0.5, 4.0)),
            ((0.0, 1.6, 5.5), (0.0, 0.5, 0.0)),
        ],
    )
    def test_look_at_forward(self, position, target):
        from sunsky.camera.pinhole import euler_yxz_matrix, look_at

        camera = look_at(position, target, vfov=45.0)
        forward = euler_yxz_matrix(camera.rotation) @ np.array([0.0, 0.0, -1.0])
        expected = np.subtract(target, position)
        expected /= np.linalg.norm(expected)
        np.testing.assert_allclose(forward, expected, atol=1e-9)
        assert camera.rotation[2] == 0.0
        assert camera.vfov == 45.0

    def test_look_at_same_point_raises(self):
        from sunsky.camera.pinhole import look_at

        with pytest.raises(ValueError):
            look_at((1.0, 1.0, 1.0), (1.0, 1.0, 1.0))


class TestCameraSetup:
    """Tests for setup_camera and camera configuration."""

    def test_info_after_setup(self):
        from sunsky.camera.pinhole import get_camera_info, look_at, setup_camera

        setup_camera(look_at((1.0, 2.0, 3.0), (1.0, 2.0, 0.0), vfov=90.0))
        info = get_camera_info()
        assert info["origin"] == pytest.approx((1.0, 2.0, 3.0))
        assert info["forward"] == pytest.approx((0.0, 0.0, -1.0), abs=1e-6)
        assert info["tan_half_fov"] == pytest.approx(1.0, abs=1e-6)

    @pytest.mark.parametrize("vfov", [0.0, 180.0, -10.0])
    def test_invalid_fov(self, vfov):
        from sunsky.camera.pinhole import PinholeCamera, setup_camera

        with pytest.raises(ValueError):
            setup_camera(PinholeCamera(vfov=vfov))

    def test_dict_round_trip(self):
        from sunsky.camera.pinhole import PinholeCamera

        camera = PinholeCamera(position=(1.0, 2.0, 3.0), rotation=(-10.0, 30.0, 0.0), vfov=50.0)
        assert PinholeCamera.from_dict(camera.to_dict()) == camera


class TestRayGeneration:
    """Tests for generate_ray."""

    def test_center_ray_direction(self):
        """Test that the center of an odd-sized image looks straight ahead."""
        from sunsky.camera.pinhole import PinholeCamera, setup_camera

        setup_camera(PinholeCamera(position=(0.0, 0.0, 2.0), vfov=60.0))
        origin, direction = _generate(50, 50, 101, 101)
        assert tuple(origin) == pytest.approx((0.0, 0.0, 2.0))
        assert tuple(direction) == pytest.approx((0.0, 0.0, -1.0), abs=1e-6)

    def test_corner_rays(self):
        """Test the edge of a square 90 degree frustum and the bottom-up row order."""
        from sunsky.camera.pinhole import PinholeCamera, setup_camera

        setup_camera(PinholeCamera(vfov=90.0))
        # Offsets of -0.5 move the sample to the pixel's outer corner
        _, bottom_left = _generate(0, 0, 4, 4, offset=(-0.5, -0.5))
        _, top_right = _generate(3, 3, 4, 4, offset=(0.5, 0.5))
        expected = 1.0 / math.sqrt(3.0)
        assert tuple(bottom_left) == pytest.approx((-expected, -expected, -expected), abs=1e-5)
        assert tuple(top_right) == pytest.approx((expected, expected, -expected), abs=1e-5)

    def test_aspect_ratio_widens_horizontally(self):
        from sunsky.camera.pinhole import PinholeCamera, setup_camera

        setup_camera(PinholeCamera(vfov=90.0))
        _, direction = _generate(7, 1, 8, 4, offset=(0.5, 0.0))
        # x = 2 * tan(45) at the right edge of a 2:1 image
        assert direction[0] / -direction[2] == pytest.approx(2.0, abs=1e-5)

    def test_direction_normalized(self):
        from sunsky.camera.pinhole import look_at, setup_camera

        setup_camera(look_at((0.0, 1.0, 4.0), (0.5, 0.0, 0.0), vfov=70.0))
        _, direction = _generate(3, 9, 16, 12, offset=(0.2, -0.3))
        assert sum(c * c for c in direction) == pytest.approx(1.0, abs=1e-5)


class TestPixelFilter:
    """Tests for filter_offset and tent_offset."""

    def test_box_offset(self):
        from sunsky.camera.pinhole import FILTER_BOX, filter_offset

        result = ti.Vector.field(2, dtype=ti.f32, shape=())

        @ti.kernel
        def test_kernel():
            result[None] = filter_offset(ti.math.vec2(0.25, 0.9), FILTER_BOX)

        test_kernel()
        assert tuple(result[None]) == pytest.approx((-0.25, 0.4))

    def test_tent_offset_range_and_symmetry(self):
        from sunsky.camera.pinhole import tent_offset

        n = 1001
        values = ti.field(dtype=ti.f32, shape=n)

        @ti.kernel
        def test_kernel():
            for k in range(n):
                values[k] = tent_offset(ti.cast(k, ti.f32) / (n - 1) * 0.999999)

        test_kernel()
        arr = values.to_numpy()
        assert arr.min() >= -1.0
        assert arr.max() < 1.0
        assert np.all(np.diff(arr) >= 0.0)
        assert arr[n // 2] == pytest.approx(0.0, abs=1e-3)
        # Tent mass: half of the samples within |x| < 1 - sqrt(0.5)
        assert np.mean(np.abs(arr) < 1.0 - math.sqrt(0.5)) == pytest.approx(0.5, abs=0.01)
