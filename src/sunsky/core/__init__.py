"""Core rendering module.

Components:
    ray: Ray data structure and vector helpers
    rng: PCG random number generator
    sampler: Per-bounce sample vectors (independent or orthogonal array)
    mis: Multiple importance sampling weights
    integrator: Path tracing with next event estimation and Russian roulette
    progressive: Batched sample accumulation

All compute-intensive operations use Taichi kernels for GPU acceleration.
"""

from .mis import balance_heuristic, one_sample_mis_estimate, one_sample_mis_weight, power_heuristic
from .ray import (
    Ray,
    build_onb_from_normal,
    is_finite,
    local_to_world,
    luminance,
    make_ray,
    max_component,
    ray_at,
    reflect,
    sample_cosine_hemisphere,
    sample_uniform_cone,
    vec3,
    world_to_local,
)
from .rng import PcgRng, make_frame_seed, pcg_hash, pcg_hash_host, rng_next_float, rng_seed
from .sampler import OrthogonalArraySampler, configure_sampler, draw_bounce_samples, get_sampler_config

# Note: integrator and progressive are NOT imported here to avoid circular imports.
# Import them directly:
#   from sunsky.core.progressive import ProgressiveRenderer

__all__ = [
    "Ray",
    "ray_at",
    "make_ray",
    "vec3",
    "luminance",
    "max_component",
    "is_finite",
    "reflect",
    "build_onb_from_normal",
    "local_to_world",
    "world_to_local",
    "sample_cosine_hemisphere",
    "sample_uniform_cone",
    "PcgRng",
    "make_frame_seed",
    "pcg_hash",
    "pcg_hash_host",
    "rng_next_float",
    "rng_seed",
    "OrthogonalArraySampler",
    "configure_sampler",
    "draw_bounce_samples",
    "get_sampler_config",
    "balance_heuristic",
    "power_heuristic",
    "one_sample_mis_weight",
    "one_sample_mis_estimate",
]
