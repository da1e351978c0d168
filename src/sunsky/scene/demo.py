"""Outdoor demo scene lit by the sun and the sky.

A ground plane with a row of spheres showing the material variants: a
diffuse ball, a rough gold ball, a mirror, glass, and a half-transparent
plastic ball. The scene is meant for the sun and sky lights; it contains no
emitters of its own.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from sunsky.camera.pinhole import setup_camera
    >>> from sunsky.scene.demo import create_demo_scene, procedural_sky_image
    >>>
    >>> scene, camera = create_demo_scene()
    >>> setup_camera(camera)
    >>> sky = procedural_sky_image(256, 128)
"""

from dataclasses import dataclass

import numpy as np
import numpy.typing as npt

from sunsky.camera.pinhole import PinholeCamera, look_at
from sunsky.materials.material import Material
from sunsky.scene.manager import SceneManager


@dataclass
class DemoSceneParams:
    """Parameters for the demo scene.

    Attributes:
        ground_size: Half extent of the square ground quad.
        ground_color: RGB albedo of the ground.
        sphere_radius: Radius of each sphere.
        spacing: Distance between sphere centers along x.
        glass_eta: Index of refraction of the glass sphere.

    Example:
        >>> params = DemoSceneParams(ground_color=(0.3, 0.3, 0.3))
    """

    ground_size: float = 50.0
    ground_color: tuple[float, float, float] = (0.5, 0.5, 0.45)
    sphere_radius: float = 0.5
    spacing: float = 1.25
    glass_eta: float = 1.5


# =============================================================================
# Demo Scene Factory
# =============================================================================


def create_demo_scene(
    params: DemoSceneParams | None = None,
) -> tuple[SceneManager, PinholeCamera]:
    """Create the demo scene and a camera framing it.

    The ground is the y = 0 plane, facing up. Spheres rest on it along the x
    axis, centered on the origin. The camera looks at the row from +z.

    Args:
        params: Optional DemoSceneParams; defaults are used if None.

    Returns:
        A tuple of (SceneManager, PinholeCamera). The camera still has to be
        passed to ``setup_camera``.

    Example:
        >>> scene, camera = create_demo_scene()
        >>> scene.get_sphere_count(), scene.get_quad_count()
        (5, 1)
    """
    if params is None:
        params = DemoSceneParams()

    scene = SceneManager()
    size = params.ground_size

    # edge_u x edge_v points toward +y
    scene.add_diffuse_quad(
        corner=(-size, 0.0, size),
        edge_u=(2.0 * size, 0.0, 0.0),
        edge_v=(0.0, 0.0, -2.0 * size),
        color=params.ground_color,
    )

    r = params.sphere_radius
    materials = [
        Material.diffuse((0.8, 0.2, 0.2)),
        Material.standard((1.0, 0.78, 0.34), metallic=1.0, roughness=0.35),
        Material.standard((0.95, 0.95, 0.95), metallic=1.0, roughness=0.0),
        Material.glass(inner_eta=params.glass_eta),
        Material.standard((0.2, 0.4, 0.9, 0.5), metallic=0.0, roughness=0.2),
    ]
    x0 = -0.5 * params.spacing * (len(materials) - 1)
    for k, material in enumerate(materials):
        material_id = scene.add_material(material)
        scene.add_sphere(center=(x0 + k * params.spacing, r, 0.0), radius=r, material_id=material_id)

    camera = look_at(position=(0.0, 1.6, 5.5), target=(0.0, r, 0.0), vfov=40.0)
    return scene, camera


# =============================================================================
# Procedural Sky
# =============================================================================


def procedural_sky_image(
    width: int = 256,
    height: int = 128,
    zenith: tuple[float, float, float] = (0.25, 0.45, 0.95),
    horizon: tuple[float, float, float] = (0.85, 0.9, 1.0),
    ground: tuple[float, float, float] = (0.3, 0.27, 0.24),
) -> npt.NDArray[np.float32]:
    """Equirectangular gradient sky for use without an HDR image.

    Row 0 is straight up. The upper half blends from ``zenith`` to
    ``horizon``; the lower half is a constant ``ground`` color.

    Returns:
        Linear RGB image of shape (height, width, 3).
    """
    theta = (np.arange(height, dtype=np.float64) + 0.5) / height * np.pi
    elevation = np.clip(np.cos(theta), 0.0, 1.0)
    t = np.sqrt(elevation)[:, None]
    upper = (1.0 - t) * np.asarray(horizon)[None, :] + t * np.asarray(zenith)[None, :]
    rows = np.where((np.cos(theta) > 0.0)[:, None], upper, np.asarray(ground)[None, :])
    return np.repeat(rows[:, None, :], width, axis=1).astype(np.float32)
