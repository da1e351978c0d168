"""Taichi path tracer for scenes lit by a sun disc and an image-based sky.

This package provides GPU-accelerated path tracing using Taichi, with support for:
- One-sample multiple importance sampling against the sun and the sky
- A metallic-roughness material with GGX, Lambert and transparent lobes
- Geometric primitives (spheres, quads)
- Progressive rendering with accumulation

Subpackages:
    core: Random numbers, samplers, MIS, the path integrator and the
        progressive driver
    geometry: Shape primitives and intersection algorithms
    materials: Material table, shading records and BxDF lobes
    lights: Sun and sky light sources
    scene: Scene management and the intersection oracle
    camera: Camera models with ray generation
"""

__version__ = "0.1.0"
