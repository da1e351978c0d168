"""Materials module for the metallic-roughness BxDF.

Components:
    textures: Texture atlas and image loading
    material: Material table and host-side Material description
    shading: Per-hit shading record (MaterialData)
    ggx: GGX microfacet distribution with visible-normal sampling
    lambertian: Ideal diffuse reflection
    dielectric: Smooth glass with exact Fresnel
    bxdf: Lobe selection, sampling and evaluation

All BSDF computations are implemented as Taichi functions for GPU execution.
"""

from .bxdf import BxdfEval, BxdfSample, eval_bxdf, eval_bxdf_reflection, has_smooth_lobes_only, sample_bxdf
from .dielectric import fresnel_dielectric, sample_glass
from .ggx import MIN_GGX_ALPHA, eval_ggx, ggx_d, ggx_pdf, sample_ggx, sample_vndf, smith_g1
from .lambertian import eval_lambertian, pdf_lambertian, sample_lambertian
from .material import (
    MAX_MATERIALS,
    AlphaMode,
    Material,
    MaterialKind,
    add_material,
    clear_materials,
    get_material,
    get_material_count,
)
from .shading import MaterialData, build_material_data
from .textures import NO_TEXTURE, add_texture, clear_textures, get_texture_count, load_image, load_texture

__all__ = [
    # Table
    "Material",
    "MaterialKind",
    "AlphaMode",
    "MAX_MATERIALS",
    "add_material",
    "clear_materials",
    "get_material",
    "get_material_count",
    # Textures
    "NO_TEXTURE",
    "add_texture",
    "clear_textures",
    "get_texture_count",
    "load_image",
    "load_texture",
    # Shading
    "MaterialData",
    "build_material_data",
    # Lobes
    "MIN_GGX_ALPHA",
    "eval_ggx",
    "ggx_d",
    "ggx_pdf",
    "sample_ggx",
    "sample_vndf",
    "smith_g1",
    "eval_lambertian",
    "pdf_lambertian",
    "sample_lambertian",
    "fresnel_dielectric",
    "sample_glass",
    # BxDF
    "BxdfSample",
    "BxdfEval",
    "sample_bxdf",
    "eval_bxdf",
    "eval_bxdf_reflection",
    "has_smooth_lobes_only",
]
