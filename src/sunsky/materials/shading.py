"""Shading record construction.

``build_material_data`` turns a raw hit record and the view direction into a
MaterialData record: every material channel resolved against its optional
texture, the alpha mode applied, the normal map blended in, normals oriented
toward the viewer and a local tangent frame in which the shading normal is
the z axis.

Orientation rules:
    1. The geometric normal is flipped to face the viewer.
    2. The shading normal (and the tangent with it) is flipped into the
       hemisphere of the oriented geometric normal.
"""

import taichi as ti
import taichi.math as tm

from sunsky.core.ray import build_onb_from_normal, local_to_world, world_to_local
from sunsky.geometry.sphere import HitRecord

from .material import (
    ALPHA_MASK,
    ALPHA_OPAQUE,
    KIND_STANDARD,
    material_alpha_cutoff,
    material_alpha_mode,
    material_base_color,
    material_base_color_texture,
    material_emissive,
    material_emissive_texture,
    material_eta,
    material_kinds,
    material_metallic,
    material_metallic_texture,
    material_normal_scale,
    material_normal_texture,
    material_roughness,
    material_roughness_texture,
)
from .textures import NO_TEXTURE, sample_texture

vec3 = tm.vec3

# Reflectance of dielectrics at normal incidence
DIELECTRIC_F0 = 0.04


@ti.dataclass
class MaterialData:
    """Resolved material parameters at one shading point.

    Attributes:
        kind: MaterialKind of the surface.
        position: World-space hit position.
        base_color: Resolved linear base color.
        alpha: Resolved opacity after the alpha mode.
        metallic: Resolved metallic.
        roughness: Resolved perceptual roughness.
        emissive: Emitted radiance.
        geometric_normal: Geometric normal facing the viewer.
        normal: Shading normal, same hemisphere as geometric_normal.
        tangent: Local x axis.
        bitangent: Local y axis.
        f0: Specular reflectance at normal incidence.
        diffuse: Diffuse reflectance.
        ggx_alpha: GGX width, roughness squared.
        inner_eta: Index of refraction inside a GLASS surface.
        outer_eta: Index of refraction outside a GLASS surface.
        front_face: 1 if the viewer is on the outside of the surface.
    """

    kind: ti.i32
    position: vec3
    base_color: vec3
    alpha: ti.f32
    metallic: ti.f32
    roughness: ti.f32
    emissive: vec3
    geometric_normal: vec3
    normal: vec3
    tangent: vec3
    bitangent: vec3
    f0: vec3
    diffuse: vec3
    ggx_alpha: ti.f32
    inner_eta: ti.f32
    outer_eta: ti.f32
    front_face: ti.i32

    @ti.func
    def to_local(self, v: vec3) -> vec3:
        return world_to_local(v, self.tangent, self.bitangent, self.normal)

    @ti.func
    def to_world(self, v: vec3) -> vec3:
        return local_to_world(v, self.tangent, self.bitangent, self.normal)


@ti.func
def _tangent_frame(normal: vec3, tangent: vec3, handedness: ti.f32):
    """Gram-Schmidt the tangent against the normal; fall back to an ONB."""
    t = tangent - normal * tm.dot(normal, tangent)
    length = tm.length(t)
    b = vec3(0.0)
    if length > 1e-6:
        t = t / length
        b = tm.cross(normal, t) * handedness
    else:
        onb_t, onb_b, _ = build_onb_from_normal(normal)
        t = onb_t
        b = onb_b
    return t, b


@ti.func
def apply_alpha_mode(alpha: ti.f32, mode: ti.i32, cutoff: ti.f32) -> ti.f32:
    """Opacity after the glTF alpha mode."""
    result = alpha
    if mode == ALPHA_OPAQUE:
        result = 1.0
    elif mode == ALPHA_MASK:
        result = ti.select(alpha >= cutoff, 1.0, 0.0)
    return result


@ti.func
def build_material_data(hit: HitRecord, view: vec3) -> MaterialData:
    """Resolve the material at a hit point.

    Args:
        hit: Hit record returned by the intersection oracle (hit == 1).
        view: Unit direction from the surface toward the viewer.

    Returns:
        The MaterialData record for the BxDF model.
    """
    mid = hit.material_id
    kind = material_kinds[mid]

    base = material_base_color[mid]
    if material_base_color_texture[mid] != NO_TEXTURE:
        base *= sample_texture(material_base_color_texture[mid], hit.uv)

    metallic = material_metallic[mid]
    if material_metallic_texture[mid] != NO_TEXTURE:
        metallic *= sample_texture(material_metallic_texture[mid], hit.uv).x

    roughness = material_roughness[mid]
    if material_roughness_texture[mid] != NO_TEXTURE:
        roughness *= sample_texture(material_roughness_texture[mid], hit.uv).x

    emissive = material_emissive[mid]
    if material_emissive_texture[mid] != NO_TEXTURE:
        emissive *= sample_texture(material_emissive_texture[mid], hit.uv).xyz

    metallic = tm.clamp(metallic, 0.0, 1.0)
    roughness = tm.clamp(roughness, 0.0, 1.0)
    alpha = 1.0
    if kind == KIND_STANDARD:
        alpha = apply_alpha_mode(
            tm.clamp(base.w, 0.0, 1.0), material_alpha_mode[mid], material_alpha_cutoff[mid]
        )
    else:
        metallic = 0.0

    # Normal mapping in the interpolated tangent frame
    normal = tm.normalize(hit.shading_normal)
    map_tangent, map_bitangent = _tangent_frame(normal, hit.tangent.xyz, hit.tangent.w)
    if material_normal_texture[mid] != NO_TEXTURE:
        texel = sample_texture(material_normal_texture[mid], hit.uv).xyz * 2.0 - 1.0
        mapped = tm.normalize(local_to_world(texel, map_tangent, map_bitangent, normal))
        normal = tm.normalize(tm.mix(normal, mapped, material_normal_scale[mid]))

    # Orientation fix-up
    geometric_normal = hit.normal
    if tm.dot(geometric_normal, view) < 0.0:
        geometric_normal = -geometric_normal
    tangent_dir = hit.tangent.xyz
    if tm.dot(normal, geometric_normal) < 0.0:
        normal = -normal
        tangent_dir = -tangent_dir
    tangent, bitangent = _tangent_frame(normal, tangent_dir, hit.tangent.w)

    color = base.xyz
    eta = material_eta[mid]
    return MaterialData(
        kind=kind,
        position=hit.point,
        base_color=color,
        alpha=alpha,
        metallic=metallic,
        roughness=roughness,
        emissive=emissive,
        geometric_normal=geometric_normal,
        normal=normal,
        tangent=tangent,
        bitangent=bitangent,
        f0=tm.mix(vec3(DIELECTRIC_F0), color, metallic),
        diffuse=color,
        ggx_alpha=roughness * roughness,
        inner_eta=eta[0],
        outer_eta=eta[1],
        front_face=ti.select(tm.dot(hit.normal, view) >= 0.0, 1, 0),
    )
