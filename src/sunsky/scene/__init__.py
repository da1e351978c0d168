"""Scene module for scene management and ray queries.

Components:
    intersection: Sphere and quad tables with closest-hit and shadow queries
    manager: Unified scene manager coordinating primitives and materials
    demo: Outdoor demo scene for the sun and sky lights
"""

from .demo import DemoSceneParams, create_demo_scene, procedural_sky_image
from .intersection import (
    MAX_QUADS,
    MAX_SPHERES,
    add_quad,
    add_sphere,
    clear_scene,
    get_quad_count,
    get_sphere_count,
    trace,
    trace_shadow,
)
from .manager import QuadInfo, SceneConfig, SceneManager, SphereInfo

__all__ = [
    # Intersection module
    "add_sphere",
    "add_quad",
    "clear_scene",
    "get_sphere_count",
    "get_quad_count",
    "trace",
    "trace_shadow",
    "MAX_SPHERES",
    "MAX_QUADS",
    # Manager module
    "SceneManager",
    "SphereInfo",
    "QuadInfo",
    "SceneConfig",
    # Demo scene
    "DemoSceneParams",
    "create_demo_scene",
    "procedural_sky_image",
]
