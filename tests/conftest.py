"""Pytest configuration for sunsky tests.

This module provides shared fixtures for all test modules, including
Taichi initialization which must happen once per session.
"""

import pytest
import taichi as ti


@pytest.fixture(scope="session", autouse=True)
def init_taichi_session():
    """Initialize Taichi once for the entire test session.

    Using session scope prevents multiple ti.init() calls which can cause
    segmentation faults due to Taichi runtime conflicts.
    """
    ti.init(arch=ti.cpu, random_seed=42)
    yield


@pytest.fixture(autouse=True)
def clear_all_scene_data():
    """Reset the scene, the lights and the integrator settings around each test."""
    # Import here so that Taichi is initialized before any field is declared
    from sunsky.config import RenderSettings
    from sunsky.core.integrator import apply_settings
    from sunsky.lights.sky import clear_sky
    from sunsky.lights.sun import disable_sun
    from sunsky.materials.material import clear_materials
    from sunsky.materials.textures import clear_textures
    from sunsky.scene.intersection import clear_scene

    def _clear_all():
        clear_scene()
        clear_materials()
        clear_textures()
        clear_sky()
        disable_sun()
        apply_settings(RenderSettings())

    _clear_all()
    yield
    _clear_all()


@pytest.fixture
def camera_looking_down():
    """Camera one unit above the origin looking straight down."""
    from sunsky.camera.pinhole import look_at, setup_camera

    camera = look_at(position=(0.0, 1.0, 0.0), target=(0.0, 0.0, 0.0), vfov=40.0)
    setup_camera(camera)
    return camera
