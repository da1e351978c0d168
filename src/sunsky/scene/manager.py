"""Unified scene manager for coordinating primitives and materials.

The SceneManager is the host-side scene builder. It registers materials in
the material table, adds spheres and quads to the intersection oracle with a
checked material id, and keeps a Python-side record of everything so the
scene can be exported to and rebuilt from a plain dictionary (for JSON).

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from sunsky.materials.material import Material
    >>> from sunsky.scene.manager import SceneManager
    >>> scene = SceneManager()
    >>> red = scene.add_material(Material.diffuse((0.8, 0.1, 0.1)))
    >>> scene.add_sphere(center=(0, 0, -1), radius=0.5, material_id=red)
    >>> gold, _ = scene.add_standard_sphere((1, 0, -1), 0.5, (1.0, 0.8, 0.3), metallic=1.0, roughness=0.3)
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from sunsky.materials.material import (
    MAX_MATERIALS,
    Material,
    MaterialKind,
    add_material,
    clear_materials,
    get_material_count,
)
from sunsky.materials.textures import clear_textures
from sunsky.scene.intersection import (
    MAX_QUADS,
    MAX_SPHERES,
    add_quad,
    add_sphere,
    clear_scene,
    get_quad_count,
    get_sphere_count,
)

logger = logging.getLogger(__name__)

Vec3Tuple = tuple[float, float, float]


@dataclass
class SphereInfo:
    """Information about a sphere in the scene.

    Attributes:
        sphere_index: The index in the sphere storage arrays.
        center: The center of the sphere.
        radius: The radius of the sphere.
        material_id: The material ID assigned to the sphere.
    """

    sphere_index: int
    center: Vec3Tuple
    radius: float
    material_id: int


@dataclass
class QuadInfo:
    """Information about a quad in the scene.

    Attributes:
        quad_index: The index in the quad storage arrays.
        corner: The corner point (Q) of the quad.
        edge_u: The first edge vector.
        edge_v: The second edge vector.
        material_id: The material ID assigned to the quad.
    """

    quad_index: int
    corner: Vec3Tuple
    edge_u: Vec3Tuple
    edge_v: Vec3Tuple
    material_id: int


@dataclass
class SceneConfig:
    """Serializable form of a scene.

    Attributes:
        materials: Material dictionaries, in material id order.
        spheres: Sphere dictionaries.
        quads: Quad dictionaries.
    """

    materials: list[dict[str, Any]] = field(default_factory=list)
    spheres: list[dict[str, Any]] = field(default_factory=list)
    quads: list[dict[str, Any]] = field(default_factory=list)


def _vec3(values, name: str) -> Vec3Tuple:
    if len(values) != 3:
        raise ValueError(f"{name} must have 3 components, got {values}")
    return (float(values[0]), float(values[1]), float(values[2]))


class SceneManager:
    """Host-side scene builder over the material and primitive tables.

    Creating a SceneManager clears the global tables; there is one scene at
    a time.

    Attributes:
        materials: Registered materials, indexed by material id.
        spheres: SphereInfo for all spheres in the scene.
        quads: QuadInfo for all quads in the scene.
    """

    def __init__(self) -> None:
        self.materials: list[Material] = []
        self.spheres: list[SphereInfo] = []
        self.quads: list[QuadInfo] = []
        self._clear_all()

    def _clear_all(self) -> None:
        clear_scene()
        clear_materials()
        self.materials.clear()
        self.spheres.clear()
        self.quads.clear()

    def clear(self, textures: bool = False) -> None:
        """Clear primitives and materials, and optionally the texture atlas."""
        self._clear_all()
        if textures:
            clear_textures()

    # =========================================================================
    # Material Management
    # =========================================================================

    def add_material(self, material: Material) -> int:
        """Register a material.

        Returns:
            The material id to pass to add_sphere / add_quad.

        Raises:
            ValueError: If the material fails validation.
            RuntimeError: If the maximum number of materials is exceeded.
        """
        material_id = add_material(material)
        self.materials.append(material)
        return material_id

    def get_material_count(self) -> int:
        return get_material_count()

    def get_material(self, material_id: int) -> Material | None:
        """Registered material for an id, or None."""
        if 0 <= material_id < len(self.materials):
            return self.materials[material_id]
        return None

    def _check_material_id(self, material_id: int) -> None:
        if not 0 <= material_id < len(self.materials):
            raise ValueError(f"Invalid material_id: {material_id}")

    # =========================================================================
    # Primitive Management
    # =========================================================================

    def add_sphere(self, center: Vec3Tuple, radius: float, material_id: int) -> int:
        """Add a sphere to the scene.

        Returns:
            The index of the added sphere.

        Raises:
            ValueError: If material_id is not registered or radius <= 0.
            RuntimeError: If the maximum number of spheres is exceeded.
        """
        self._check_material_id(material_id)
        center = _vec3(center, "center")
        sphere_index = add_sphere(center, radius, material_id)
        self.spheres.append(SphereInfo(sphere_index, center, float(radius), material_id))
        return sphere_index

    def add_quad(self, corner: Vec3Tuple, edge_u: Vec3Tuple, edge_v: Vec3Tuple, material_id: int) -> int:
        """Add a parallelogram with vertices corner, corner+u, corner+v, corner+u+v.

        Returns:
            The index of the added quad.

        Raises:
            ValueError: If material_id is not registered or the edges are
                parallel.
            RuntimeError: If the maximum number of quads is exceeded.
        """
        self._check_material_id(material_id)
        corner = _vec3(corner, "corner")
        edge_u = _vec3(edge_u, "edge_u")
        edge_v = _vec3(edge_v, "edge_v")
        cross = (
            edge_u[1] * edge_v[2] - edge_u[2] * edge_v[1],
            edge_u[2] * edge_v[0] - edge_u[0] * edge_v[2],
            edge_u[0] * edge_v[1] - edge_u[1] * edge_v[0],
        )
        if sum(c * c for c in cross) <= 1e-16:
            raise ValueError("Quad edges must not be parallel")
        quad_index = add_quad(corner, edge_u, edge_v, material_id)
        self.quads.append(QuadInfo(quad_index, corner, edge_u, edge_v, material_id))
        return quad_index

    # =========================================================================
    # Convenience Methods (add object with material in one call)
    # =========================================================================

    def add_diffuse_sphere(self, center: Vec3Tuple, radius: float, color: Vec3Tuple) -> tuple[int, int]:
        """Add a sphere with a new DIFFUSE material.

        Returns:
            Tuple of (sphere_index, material_id).
        """
        material_id = self.add_material(Material.diffuse(color))
        return self.add_sphere(center, radius, material_id), material_id

    def add_standard_sphere(
        self,
        center: Vec3Tuple,
        radius: float,
        base_color: tuple[float, ...],
        metallic: float = 0.0,
        roughness: float = 1.0,
        **kwargs: Any,
    ) -> tuple[int, int]:
        """Add a sphere with a new STANDARD (metallic-roughness) material.

        Returns:
            Tuple of (sphere_index, material_id).
        """
        material_id = self.add_material(
            Material.standard(base_color, metallic=metallic, roughness=roughness, **kwargs)
        )
        return self.add_sphere(center, radius, material_id), material_id

    def add_glass_sphere(
        self,
        center: Vec3Tuple,
        radius: float,
        inner_eta: float = 1.5,
        outer_eta: float = 1.0,
        tint: Vec3Tuple = (1.0, 1.0, 1.0),
    ) -> tuple[int, int]:
        """Add a sphere with a new GLASS material.

        Returns:
            Tuple of (sphere_index, material_id).
        """
        material_id = self.add_material(Material.glass(inner_eta, outer_eta, tint))
        return self.add_sphere(center, radius, material_id), material_id

    def add_diffuse_quad(
        self, corner: Vec3Tuple, edge_u: Vec3Tuple, edge_v: Vec3Tuple, color: Vec3Tuple
    ) -> tuple[int, int]:
        """Add a quad with a new DIFFUSE material.

        Returns:
            Tuple of (quad_index, material_id).
        """
        material_id = self.add_material(Material.diffuse(color))
        return self.add_quad(corner, edge_u, edge_v, material_id), material_id

    def add_emissive_quad(
        self,
        corner: Vec3Tuple,
        edge_u: Vec3Tuple,
        edge_v: Vec3Tuple,
        color: Vec3Tuple,
        strength: float = 1.0,
    ) -> tuple[int, int]:
        """Add a quad with a new EMISSIVE material.

        Emitters are only found by paths that hit them; they are not sampled
        directly.

        Returns:
            Tuple of (quad_index, material_id).
        """
        material_id = self.add_material(Material.emissive_light(color, strength))
        return self.add_quad(corner, edge_u, edge_v, material_id), material_id

    # =========================================================================
    # Scene Queries
    # =========================================================================

    def get_sphere_count(self) -> int:
        return get_sphere_count()

    def get_quad_count(self) -> int:
        return get_quad_count()

    def get_primitive_count(self) -> int:
        return self.get_sphere_count() + self.get_quad_count()

    def count_materials_by_kind(self) -> dict[str, int]:
        """Number of registered materials per MaterialKind name."""
        counts = {kind.name: 0 for kind in MaterialKind}
        for material in self.materials:
            counts[MaterialKind(material.kind).name] += 1
        return counts

    # =========================================================================
    # Scene Serialization
    # =========================================================================

    def to_config(self) -> SceneConfig:
        """Export the scene to a configuration object."""
        config = SceneConfig()
        config.materials = [material.to_dict() for material in self.materials]
        config.spheres = [
            {"center": list(s.center), "radius": s.radius, "material_id": s.material_id}
            for s in self.spheres
        ]
        config.quads = [
            {
                "corner": list(q.corner),
                "edge_u": list(q.edge_u),
                "edge_v": list(q.edge_v),
                "material_id": q.material_id,
            }
            for q in self.quads
        ]
        return config

    def from_config(self, config: SceneConfig) -> None:
        """Clear the scene and rebuild it from a configuration object.

        Textures are not part of the configuration; texture indices in the
        materials must refer to textures that are already registered.

        Raises:
            ValueError: If the configuration contains invalid data.
        """
        self.clear()
        for mat_config in config.materials:
            self.add_material(Material.from_dict(mat_config))
        for sphere_config in config.spheres:
            self.add_sphere(
                sphere_config.get("center", (0.0, 0.0, 0.0)),
                sphere_config.get("radius", 1.0),
                sphere_config.get("material_id", 0),
            )
        for quad_config in config.quads:
            self.add_quad(
                quad_config.get("corner", (0.0, 0.0, 0.0)),
                quad_config.get("edge_u", (1.0, 0.0, 0.0)),
                quad_config.get("edge_v", (0.0, 1.0, 0.0)),
                quad_config.get("material_id", 0),
            )
        logger.info(
            "loaded scene: %d materials, %d spheres, %d quads",
            len(self.materials),
            len(self.spheres),
            len(self.quads),
        )

    def to_dict(self) -> dict[str, Any]:
        """Export the scene to a dictionary (for JSON serialization)."""
        config = self.to_config()
        return {
            "materials": config.materials,
            "spheres": config.spheres,
            "quads": config.quads,
        }

    def from_dict(self, data: dict[str, Any]) -> None:
        """Load a scene from a dictionary.

        Args:
            data: Dictionary with 'materials', 'spheres' and 'quads' keys.

        Raises:
            ValueError: On unknown keys or invalid entries.
        """
        config = SceneConfig()
        for key, entries in data.items():
            match key:
                case "materials":
                    config.materials = list(entries)
                case "spheres":
                    config.spheres = list(entries)
                case "quads":
                    config.quads = list(entries)
                case _:
                    raise ValueError(f"Unknown scene key: {key!r}")
        self.from_config(config)

    # =========================================================================
    # Capacity Information
    # =========================================================================

    @staticmethod
    def get_max_spheres() -> int:
        return MAX_SPHERES

    @staticmethod
    def get_max_quads() -> int:
        return MAX_QUADS

    @staticmethod
    def get_max_materials() -> int:
        return MAX_MATERIALS
