"""Pinhole camera model for perspective projection ray generation.

The camera sits at ``position`` and looks down its local -z axis with +y up.
Its orientation is given as Euler angles in degrees, applied in YXZ order
(yaw around y, then pitch around x, then roll around z):

    R = Ry(rotation[1]) @ Rx(rotation[0]) @ Rz(rotation[2])

A pixel (i, j), with j = 0 at the bottom row, maps to the camera-space
direction

    ((2 (i + 0.5 + dx) / W - 1) * aspect * tan(fov / 2),
     (2 (j + 0.5 + dy) / H - 1) * tan(fov / 2),
     -1)

where (dx, dy) is the pixel-filter offset and ``fov`` the vertical field of
view. The aspect ratio follows the render target.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from sunsky.camera.pinhole import look_at, setup_camera
    >>> camera = look_at(position=(0.0, 1.0, 4.0), target=(0.0, 0.5, 0.0), vfov=45.0)
    >>> setup_camera(camera)
"""

import logging
import math
from dataclasses import asdict, dataclass
from typing import Any

import numpy as np
import taichi as ti
import taichi.math as tm

from sunsky.config import PixelFilter
from sunsky.core.ray import Ray, make_ray, vec3

logger = logging.getLogger(__name__)

FILTER_BOX = int(PixelFilter.BOX)
FILTER_TENT = int(PixelFilter.TENT)

# =============================================================================
# Camera Data Structures
# =============================================================================


@dataclass
class PinholeCamera:
    """Configuration for a pinhole (perspective) camera.

    Attributes:
        position: Camera position in world space (x, y, z).
        rotation: Euler angles in degrees around (x, y, z), applied YXZ.
        vfov: Vertical field of view in degrees.
    """

    position: tuple[float, float, float] = (0.0, 0.0, 0.0)
    rotation: tuple[float, float, float] = (0.0, 0.0, 0.0)
    vfov: float = 60.0

    def validate(self) -> None:
        if not 0.0 < self.vfov < 180.0:
            raise ValueError(f"vfov must be in (0, 180) degrees, got {self.vfov}")
        if len(self.position) != 3 or len(self.rotation) != 3:
            raise ValueError("position and rotation must have 3 components")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PinholeCamera":
        return cls(
            position=tuple(data.get("position", (0.0, 0.0, 0.0))),
            rotation=tuple(data.get("rotation", (0.0, 0.0, 0.0))),
            vfov=float(data.get("vfov", 60.0)),
        )


def euler_yxz_matrix(rotation_degrees) -> np.ndarray:
    """Rotation matrix Ry @ Rx @ Rz for Euler angles (x, y, z) in degrees."""
    rx, ry, rz = (math.radians(a) for a in rotation_degrees)
    cx, sx = math.cos(rx), math.sin(rx)
    cy, sy = math.cos(ry), math.sin(ry)
    cz, sz = math.cos(rz), math.sin(rz)
    mat_x = np.array([[1.0, 0.0, 0.0], [0.0, cx, -sx], [0.0, sx, cx]])
    mat_y = np.array([[cy, 0.0, sy], [0.0, 1.0, 0.0], [-sy, 0.0, cy]])
    mat_z = np.array([[cz, -sz, 0.0], [sz, cz, 0.0], [0.0, 0.0, 1.0]])
    return mat_y @ mat_x @ mat_z


def look_at(position, target, vfov: float = 60.0) -> PinholeCamera:
    """Build a camera at ``position`` aimed at ``target`` with no roll.

    Raises:
        ValueError: If position and target coincide.
    """
    direction = np.asarray(target, dtype=np.float64) - np.asarray(position, dtype=np.float64)
    length = np.linalg.norm(direction)
    if length < 1e-12:
        raise ValueError("look_at target must differ from the camera position")
    direction /= length
    # forward = R @ (0, 0, -1) = (-sin(yaw) cos(pitch), sin(pitch), -cos(yaw) cos(pitch))
    pitch = math.degrees(math.asin(max(-1.0, min(1.0, direction[1]))))
    yaw = math.degrees(math.atan2(-direction[0], -direction[2]))
    return PinholeCamera(
        position=tuple(float(c) for c in position),
        rotation=(pitch, yaw, 0.0),
        vfov=vfov,
    )


# =============================================================================
# Taichi Fields for Camera State
# =============================================================================

_camera_origin = ti.Vector.field(3, dtype=ti.f32, shape=())
_camera_rotation = ti.Matrix.field(3, 3, dtype=ti.f32, shape=())
_camera_tan_half_fov = ti.field(dtype=ti.f32, shape=())


def setup_camera(camera: PinholeCamera) -> None:
    """Write the camera transform into the Taichi fields.

    Args:
        camera: Camera configuration with position, rotation and FOV.

    Raises:
        ValueError: If the field of view is out of range.
    """
    camera.validate()
    _camera_origin[None] = [float(c) for c in camera.position]
    _camera_rotation[None] = euler_yxz_matrix(camera.rotation).astype(np.float32).tolist()
    _camera_tan_half_fov[None] = math.tan(math.radians(camera.vfov) / 2.0)
    logger.debug(
        "camera: position=%s rotation=%s vfov=%.1f", camera.position, camera.rotation, camera.vfov
    )


# =============================================================================
# Ray Generation
# =============================================================================


@ti.func
def tent_offset(u: ti.f32) -> ti.f32:
    """Map a uniform variate to a tent-distributed offset in (-1, 1)."""
    r = 2.0 * u
    offset = 0.0
    if r < 1.0:
        offset = ti.sqrt(r) - 1.0
    else:
        offset = 1.0 - ti.sqrt(2.0 - r)
    return offset


@ti.func
def filter_offset(u: tm.vec2, pixel_filter: ti.i32) -> tm.vec2:
    """Sub-pixel offset from the pixel center for one camera sample."""
    offset = u - 0.5
    if pixel_filter == FILTER_TENT:
        offset = tm.vec2(tent_offset(u.x), tent_offset(u.y))
    return offset


@ti.func
def generate_ray(
    pixel_i: ti.i32, pixel_j: ti.i32, width: ti.i32, height: ti.i32, offset: tm.vec2
) -> Ray:
    """Primary ray through pixel (pixel_i, pixel_j) shifted by ``offset`` pixels.

    Args:
        pixel_i: Pixel x-coordinate (0 = left).
        pixel_j: Pixel y-coordinate (0 = bottom).
        width: Image width in pixels.
        height: Image height in pixels.
        offset: Offset from the pixel center in pixels.

    Returns:
        A Ray from the camera position with a normalized direction.
    """
    w = ti.cast(width, ti.f32)
    h = ti.cast(height, ti.f32)
    t = _camera_tan_half_fov[None]
    x = (2.0 * (ti.cast(pixel_i, ti.f32) + 0.5 + offset.x) / w - 1.0) * (w / h) * t
    y = (2.0 * (ti.cast(pixel_j, ti.f32) + 0.5 + offset.y) / h - 1.0) * t
    direction = tm.normalize(_camera_rotation[None] @ vec3(x, y, -1.0))
    return make_ray(_camera_origin[None], direction)


@ti.func
def get_camera_origin() -> vec3:
    return _camera_origin[None]


def get_camera_info() -> dict[str, Any]:
    """Current camera state, for debugging and tests."""
    origin = _camera_origin[None]
    rotation = _camera_rotation[None]
    forward = [-float(rotation[r, 2]) for r in range(3)]
    return {
        "origin": tuple(float(origin[c]) for c in range(3)),
        "forward": tuple(forward),
        "tan_half_fov": float(_camera_tan_half_fov[None]),
    }
