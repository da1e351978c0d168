"""Material table shared by every primitive in the scene.

A material is a tagged union over four kinds:

- DIFFUSE: Lambertian reflector with a base color.
- EMISSIVE: light source with color * strength, no scattering.
- GLASS: smooth dielectric interface between an inner and an outer medium,
  reflecting or refracting according to the exact Fresnel equations.
- STANDARD: glTF metallic-roughness material (Lambert diffuse + GGX
  specular + alpha-controlled transmission) with optional textures and
  normal map.

On the host a material is a :class:`Material` dataclass; :func:`add_material`
flattens it into one slot of the Taichi material table, which kernels read by
integer id. Texture slots use NO_TEXTURE (-1) when the factor is used alone.

Example:
    >>> from sunsky.materials.material import Material, add_material
    >>> red = add_material(Material.diffuse((0.8, 0.1, 0.1)))
    >>> lamp = add_material(Material.emissive_light((1.0, 0.9, 0.8), strength=10.0))
"""

import logging
from dataclasses import asdict, dataclass
from enum import IntEnum
from typing import Any

import taichi as ti
import taichi.math as tm

from .textures import NO_TEXTURE, get_texture_count

logger = logging.getLogger(__name__)

vec3 = tm.vec3
vec4 = tm.vec4


class MaterialKind(IntEnum):
    """Behavior variant of a material."""

    DIFFUSE = 0
    EMISSIVE = 1
    GLASS = 2
    STANDARD = 3


class AlphaMode(IntEnum):
    """How the base color alpha is interpreted (glTF alphaMode)."""

    OPAQUE = 0
    MASK = 1
    BLEND = 2


# Plain integer tags for use inside kernels
KIND_DIFFUSE = int(MaterialKind.DIFFUSE)
KIND_EMISSIVE = int(MaterialKind.EMISSIVE)
KIND_GLASS = int(MaterialKind.GLASS)
KIND_STANDARD = int(MaterialKind.STANDARD)
ALPHA_OPAQUE = int(AlphaMode.OPAQUE)
ALPHA_MASK = int(AlphaMode.MASK)
ALPHA_BLEND = int(AlphaMode.BLEND)


MAX_MATERIALS = 256


@dataclass
class Material:
    """Host-side description of a material.

    Only the attributes relevant to ``kind`` are used; the others keep their
    defaults.

    Attributes:
        kind: Behavior variant.
        base_color: Linear RGBA factor. Alpha is surface opacity.
        base_color_texture: Texture index multiplied into base_color.
        metallic: Metallic factor in [0, 1].
        metallic_texture: Gray texture multiplied into metallic.
        roughness: Perceptual roughness in [0, 1]; GGX alpha is its square.
        roughness_texture: Gray texture multiplied into roughness.
        normal_texture: Tangent-space normal map.
        normal_scale: Blend factor between the interpolated and the mapped
            normal.
        emissive: Emitted RGB radiance factor.
        emissive_strength: Scalar multiplier on emissive.
        emissive_texture: Texture multiplied into emissive.
        alpha_mode: Interpretation of the base color alpha.
        alpha_cutoff: Threshold for AlphaMode.MASK.
        inner_eta: Index of refraction inside a GLASS surface.
        outer_eta: Index of refraction outside a GLASS surface.
    """

    kind: MaterialKind = MaterialKind.STANDARD
    base_color: tuple[float, float, float, float] = (1.0, 1.0, 1.0, 1.0)
    base_color_texture: int = NO_TEXTURE
    metallic: float = 0.0
    metallic_texture: int = NO_TEXTURE
    roughness: float = 1.0
    roughness_texture: int = NO_TEXTURE
    normal_texture: int = NO_TEXTURE
    normal_scale: float = 1.0
    emissive: tuple[float, float, float] = (0.0, 0.0, 0.0)
    emissive_strength: float = 1.0
    emissive_texture: int = NO_TEXTURE
    alpha_mode: AlphaMode = AlphaMode.OPAQUE
    alpha_cutoff: float = 0.5
    inner_eta: float = 1.5
    outer_eta: float = 1.0

    @classmethod
    def diffuse(cls, color: tuple[float, float, float]) -> "Material":
        return cls(kind=MaterialKind.DIFFUSE, base_color=(*color, 1.0))

    @classmethod
    def emissive_light(
        cls, color: tuple[float, float, float], strength: float = 1.0
    ) -> "Material":
        return cls(kind=MaterialKind.EMISSIVE, emissive=tuple(color), emissive_strength=strength)

    @classmethod
    def glass(
        cls,
        inner_eta: float = 1.5,
        outer_eta: float = 1.0,
        tint: tuple[float, float, float] = (1.0, 1.0, 1.0),
    ) -> "Material":
        return cls(
            kind=MaterialKind.GLASS,
            base_color=(*tint, 1.0),
            inner_eta=inner_eta,
            outer_eta=outer_eta,
        )

    @classmethod
    def standard(
        cls,
        base_color: tuple[float, ...] = (1.0, 1.0, 1.0, 1.0),
        metallic: float = 0.0,
        roughness: float = 1.0,
        **kwargs: Any,
    ) -> "Material":
        if len(base_color) == 3:
            base_color = (*base_color, 1.0)
        if "alpha_mode" not in kwargs and base_color[3] < 1.0:
            kwargs["alpha_mode"] = AlphaMode.BLEND
        return cls(
            kind=MaterialKind.STANDARD,
            base_color=tuple(base_color),
            metallic=metallic,
            roughness=roughness,
            **kwargs,
        )

    def validate(self) -> None:
        """Check parameter ranges for the material's kind.

        Raises:
            ValueError: If a parameter is out of range or a texture index does
                not refer to a registered texture.
        """
        if len(self.base_color) != 4:
            raise ValueError(f"base_color must have 4 components, got {self.base_color}")
        if any(c < 0.0 for c in self.base_color):
            raise ValueError(f"base_color components must be non-negative, got {self.base_color}")

        match self.kind:
            case MaterialKind.DIFFUSE:
                if any(c > 1.0 for c in self.base_color[:3]):
                    raise ValueError(
                        f"Diffuse color components must be in [0, 1], got {self.base_color[:3]}"
                    )
            case MaterialKind.EMISSIVE:
                if any(c < 0.0 for c in self.emissive) or self.emissive_strength < 0.0:
                    raise ValueError("Emission color and strength must be non-negative")
            case MaterialKind.GLASS:
                if self.inner_eta <= 0.0 or self.outer_eta <= 0.0:
                    raise ValueError(
                        f"Indices of refraction must be positive, got "
                        f"inner={self.inner_eta}, outer={self.outer_eta}"
                    )
            case MaterialKind.STANDARD:
                if not 0.0 <= self.metallic <= 1.0:
                    raise ValueError(f"metallic must be in [0, 1], got {self.metallic}")
                if not 0.0 <= self.roughness <= 1.0:
                    raise ValueError(f"roughness must be in [0, 1], got {self.roughness}")
                if not 0.0 <= self.base_color[3] <= 1.0:
                    raise ValueError(f"alpha must be in [0, 1], got {self.base_color[3]}")
                if any(c < 0.0 for c in self.emissive) or self.emissive_strength < 0.0:
                    raise ValueError("Emission color and strength must be non-negative")
            case _:
                raise ValueError(f"Unknown material kind: {self.kind!r}")

        texture_count = get_texture_count()
        for name in (
            "base_color_texture",
            "metallic_texture",
            "roughness_texture",
            "normal_texture",
            "emissive_texture",
        ):
            index = getattr(self, name)
            if index != NO_TEXTURE and not 0 <= index < texture_count:
                raise ValueError(f"{name}={index} does not refer to a registered texture")

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind.name
        data["alpha_mode"] = self.alpha_mode.name
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Material":
        data = dict(data)
        data["kind"] = MaterialKind[data["kind"]]
        if "alpha_mode" in data:
            data["alpha_mode"] = AlphaMode[data["alpha_mode"]]
        for key in ("base_color", "emissive"):
            if key in data:
                data[key] = tuple(data[key])
        return cls(**data)


# =============================================================================
# Material table (Taichi fields)
# =============================================================================

material_kinds = ti.field(dtype=ti.i32, shape=MAX_MATERIALS)
material_base_color = ti.Vector.field(4, dtype=ti.f32, shape=MAX_MATERIALS)
material_base_color_texture = ti.field(dtype=ti.i32, shape=MAX_MATERIALS)
material_metallic = ti.field(dtype=ti.f32, shape=MAX_MATERIALS)
material_metallic_texture = ti.field(dtype=ti.i32, shape=MAX_MATERIALS)
material_roughness = ti.field(dtype=ti.f32, shape=MAX_MATERIALS)
material_roughness_texture = ti.field(dtype=ti.i32, shape=MAX_MATERIALS)
material_normal_texture = ti.field(dtype=ti.i32, shape=MAX_MATERIALS)
material_normal_scale = ti.field(dtype=ti.f32, shape=MAX_MATERIALS)
material_emissive = ti.Vector.field(3, dtype=ti.f32, shape=MAX_MATERIALS)
material_emissive_texture = ti.field(dtype=ti.i32, shape=MAX_MATERIALS)
material_alpha_mode = ti.field(dtype=ti.i32, shape=MAX_MATERIALS)
material_alpha_cutoff = ti.field(dtype=ti.f32, shape=MAX_MATERIALS)
material_eta = ti.Vector.field(2, dtype=ti.f32, shape=MAX_MATERIALS)  # (inner, outer)
num_materials = ti.field(dtype=ti.i32, shape=())

# Host-side copies for read-back and serialization
_host_materials: list[Material] = []


def clear_materials() -> None:
    """Remove all materials from the table."""
    num_materials[None] = 0
    _host_materials.clear()


def get_material_count() -> int:
    return num_materials[None]


def add_material(material: Material) -> int:
    """Validate a material and append it to the table.

    Args:
        material: The material description.

    Returns:
        The material id used by primitives.

    Raises:
        ValueError: If the material fails validation.
        RuntimeError: If the table is full.
    """
    material.validate()
    idx = num_materials[None]
    if idx >= MAX_MATERIALS:
        raise RuntimeError(f"Maximum number of materials ({MAX_MATERIALS}) exceeded")

    # Emission is pre-multiplied by its strength
    emissive = tuple(c * material.emissive_strength for c in material.emissive)

    material_kinds[idx] = int(material.kind)
    material_base_color[idx] = vec4(*material.base_color)
    material_base_color_texture[idx] = material.base_color_texture
    material_metallic[idx] = material.metallic
    material_metallic_texture[idx] = material.metallic_texture
    material_roughness[idx] = material.roughness
    material_roughness_texture[idx] = material.roughness_texture
    material_normal_texture[idx] = material.normal_texture
    material_normal_scale[idx] = material.normal_scale
    material_emissive[idx] = vec3(*emissive)
    material_emissive_texture[idx] = material.emissive_texture
    material_alpha_mode[idx] = int(material.alpha_mode)
    material_alpha_cutoff[idx] = material.alpha_cutoff
    material_eta[idx] = tm.vec2(material.inner_eta, material.outer_eta)

    num_materials[None] = idx + 1
    _host_materials.append(material)
    logger.debug("material %d: %s", idx, material.kind.name)
    return idx


def get_material(material_id: int) -> Material:
    """Return the host description of a registered material.

    Raises:
        ValueError: If the id is not registered.
    """
    if not 0 <= material_id < len(_host_materials):
        raise ValueError(f"Invalid material_id {material_id}")
    return _host_materials[material_id]


@ti.func
def get_material_kind(material_id: ti.i32) -> ti.i32:
    """Kind of a material, or -1 for an id outside the table."""
    result = -1
    if 0 <= material_id < num_materials[None]:
        result = material_kinds[material_id]
    return result
