"""Camera module for primary ray generation.

Components:
    pinhole: Pinhole (perspective) camera from Euler rotation, position and
        vertical field of view.

Pixel coordinates run left to right and bottom to top; the pixel filter
offset is applied around the pixel center.
"""

from .pinhole import (
    PinholeCamera,
    euler_yxz_matrix,
    filter_offset,
    generate_ray,
    get_camera_info,
    get_camera_origin,
    look_at,
    setup_camera,
    tent_offset,
)

__all__ = [
    "PinholeCamera",
    "euler_yxz_matrix",
    "filter_offset",
    "generate_ray",
    "get_camera_info",
    "get_camera_origin",
    "look_at",
    "setup_camera",
    "tent_offset",
]
