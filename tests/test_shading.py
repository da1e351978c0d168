"""Unit tests for MaterialData construction.

Tests cover:
- Orientation of geometric and shading normals toward the viewer
- Orthonormal local frame
- Derived channels (f0, ggx_alpha) and alpha modes
- Texture factors and normal mapping in the tangent frame
"""

import math

import numpy as np
import pytest
import taichi as ti


def _resolve(material_id, normal, view, front_face=1):
    """Build MaterialData for a synthetic hit and read back its fields."""
    from sunsky.geometry.sphere import HitRecord
    from sunsky.materials.shading import build_material_data

    vectors = ti.Vector.field(3, dtype=ti.f32, shape=5)
    scalars = ti.field(dtype=ti.f32, shape=4)

    @ti.kernel
    def test_kernel(n: ti.math.vec3, v: ti.math.vec3, mid: ti.i32, ff: ti.i32):
        hit = HitRecord(
            hit=1,
            t=1.0,
            point=ti.math.vec3(0.0),
            normal=n,
            shading_normal=n,
            tangent=ti.math.vec4(0.0, 0.0, 0.0, 1.0),
            uv=ti.math.vec2(0.5),
            front_face=ff,
            material_id=mid,
        )
        md = build_material_data(hit, ti.math.normalize(v))
        vectors[0] = md.geometric_normal
        vectors[1] = md.normal
        vectors[2] = md.tangent
        vectors[3] = md.bitangent
        vectors[4] = md.f0
        scalars[0] = md.alpha
        scalars[1] = md.ggx_alpha
        scalars[2] = md.metallic
        scalars[3] = md.front_face

    test_kernel(ti.math.vec3(*normal), ti.math.vec3(*view), material_id, front_face)
    return [vectors[k] for k in range(5)], [scalars[k] for k in range(4)]


class TestOrientation:
    """Tests for the normal orientation fix-up."""

    def test_viewer_in_front(self):
        from sunsky.materials.material import Material, add_material

        mid = add_material(Material.diffuse((0.5, 0.5, 0.5)))
        (ng, ns, _, _, _), scalars = _resolve(mid, (0.0, 1.0, 0.0), (0.0, 1.0, 0.0))
        assert ng[1] == pytest.approx(1.0)
        assert ns[1] == pytest.approx(1.0)
        assert scalars[3] == 1

    def test_viewer_behind_flips_normals(self):
        from sunsky.materials.material import Material, add_material

        mid = add_material(Material.diffuse((0.5, 0.5, 0.5)))
        (ng, ns, _, _, _), scalars = _resolve(mid, (0.0, 1.0, 0.0), (0.2, -1.0, 0.0))
        assert ng[1] == pytest.approx(-1.0)
        assert ns[1] == pytest.approx(-1.0)
        assert scalars[3] == 0

    def test_frame_is_orthonormal(self):
        from sunsky.materials.material import Material, add_material

        mid = add_material(Material.standard((0.5, 0.5, 0.5), roughness=0.5))
        normal = (0.36, 0.48, 0.8)
        (_, ns, t, b, _), _ = _resolve(mid, normal, (0.0, 0.0, 1.0))

        def dot(a, c):
            return sum(a[k] * c[k] for k in range(3))

        assert dot(t, ns) == pytest.approx(0.0, abs=1e-5)
        assert dot(b, ns) == pytest.approx(0.0, abs=1e-5)
        assert dot(t, b) == pytest.approx(0.0, abs=1e-5)
        assert dot(t, t) == pytest.approx(1.0, abs=1e-5)
        assert dot(b, b) == pytest.approx(1.0, abs=1e-5)


class TestDerivedChannels:
    """Tests for f0, ggx_alpha and alpha resolution."""

    def test_ggx_alpha_is_roughness_squared(self):
        from sunsky.materials.material import Material, add_material

        mid = add_material(Material.standard((0.5, 0.5, 0.5), roughness=0.5))
        _, scalars = _resolve(mid, (0.0, 0.0, 1.0), (0.0, 0.0, 1.0))
        assert scalars[1] == pytest.approx(0.25)

    def test_f0_dielectric_and_metal(self):
        from sunsky.materials.material import Material, add_material

        plastic = add_material(Material.standard((0.9, 0.2, 0.1), metallic=0.0))
        metal = add_material(Material.standard((0.9, 0.2, 0.1), metallic=1.0))
        (_, _, _, _, f0_plastic), _ = _resolve(plastic, (0.0, 0.0, 1.0), (0.0, 0.0, 1.0))
        (_, _, _, _, f0_metal), _ = _resolve(metal, (0.0, 0.0, 1.0), (0.0, 0.0, 1.0))
        assert tuple(f0_plastic) == pytest.approx((0.04, 0.04, 0.04))
        assert tuple(f0_metal) == pytest.approx((0.9, 0.2, 0.1))

    def test_non_standard_kinds_are_opaque_dielectric(self):
        from sunsky.materials.material import Material, add_material

        mid = add_material(Material.diffuse((0.5, 0.5, 0.5)))
        _, scalars = _resolve(mid, (0.0, 0.0, 1.0), (0.0, 0.0, 1.0))
        assert scalars[0] == pytest.approx(1.0)
        assert scalars[2] == pytest.approx(0.0)

    @pytest.mark.parametrize(
        "alpha_mode,alpha,expected",
        [("OPAQUE", 0.3, 1.0), ("BLEND", 0.3, 0.3), ("MASK", 0.3, 0.0), ("MASK", 0.7, 1.0)],
    )
    def test_alpha_modes(self, alpha_mode, alpha, expected):
        from sunsky.materials.material import AlphaMode, Material, add_material

        mid = add_material(
            Material.standard((1.0, 1.0, 1.0, alpha), alpha_mode=AlphaMode[alpha_mode])
        )
        _, scalars = _resolve(mid, (0.0, 0.0, 1.0), (0.0, 0.0, 1.0))
        assert scalars[0] == pytest.approx(expected)


def _resolve_textured(material_id):
    """Resolve a hit facing +y with tangent +x at uv (0.5, 0.5)."""
    from sunsky.geometry.sphere import HitRecord
    from sunsky.materials.shading import build_material_data

    vectors = ti.Vector.field(3, dtype=ti.f32, shape=3)
    scalars = ti.field(dtype=ti.f32, shape=2)

    @ti.kernel
    def test_kernel(mid: ti.i32):
        up = ti.math.vec3(0.0, 1.0, 0.0)
        hit = HitRecord(
            hit=1,
            t=1.0,
            point=ti.math.vec3(0.0),
            normal=up,
            shading_normal=up,
            tangent=ti.math.vec4(1.0, 0.0, 0.0, 1.0),
            uv=ti.math.vec2(0.5),
            front_face=1,
            material_id=mid,
        )
        md = build_material_data(hit, up)
        vectors[0] = md.normal
        vectors[1] = md.base_color
        vectors[2] = md.emissive
        scalars[0] = md.metallic
        scalars[1] = md.roughness

    test_kernel(material_id)
    return {
        "normal": tuple(vectors[0]),
        "base_color": tuple(vectors[1]),
        "emissive": tuple(vectors[2]),
        "metallic": scalars[0],
        "roughness": scalars[1],
    }


def _constant_texture(value):
    from sunsky.materials.textures import add_texture

    return add_texture(np.tile(np.asarray(value, dtype=np.float32), (2, 2, 1)))


class TestTextures:
    """Tests for texture factors and normal mapping."""

    def test_flat_normal_map_keeps_normal(self):
        from sunsky.materials.material import Material, add_material

        flat = _constant_texture((0.5, 0.5, 1.0))
        mid = add_material(Material.standard((0.5, 0.5, 0.5), normal_texture=flat))
        assert _resolve_textured(mid)["normal"] == pytest.approx((0.0, 1.0, 0.0), abs=1e-5)

    def test_tilted_normal_map_leans_toward_tangent(self):
        from sunsky.materials.material import Material, add_material

        s = math.sqrt(0.5)
        tilted = _constant_texture((0.5 + 0.5 * s, 0.5, 0.5 + 0.5 * s))
        mid = add_material(Material.standard((0.5, 0.5, 0.5), normal_texture=tilted))
        assert _resolve_textured(mid)["normal"] == pytest.approx((s, s, 0.0), abs=1e-4)

    def test_normal_scale_blends(self):
        from sunsky.materials.material import Material, add_material

        s = math.sqrt(0.5)
        tilted = _constant_texture((0.5 + 0.5 * s, 0.5, 0.5 + 0.5 * s))
        mid = add_material(
            Material.standard((0.5, 0.5, 0.5), normal_texture=tilted, normal_scale=0.5)
        )
        x, y = 0.5 * s, 0.5 + 0.5 * s
        length = math.hypot(x, y)
        assert _resolve_textured(mid)["normal"] == pytest.approx((x / length, y / length, 0.0), abs=1e-4)

    def test_base_color_texture_multiplies_factor(self):
        from sunsky.materials.material import Material, add_material

        texture = _constant_texture((0.5, 0.25, 1.0))
        mid = add_material(Material.standard((0.8, 0.8, 0.8), base_color_texture=texture))
        assert _resolve_textured(mid)["base_color"] == pytest.approx((0.4, 0.2, 0.8), abs=1e-5)

    def test_metallic_and_roughness_textures_multiply_factors(self):
        from sunsky.materials.material import Material, add_material

        metallic = _constant_texture((0.6, 0.6, 0.6))
        roughness = _constant_texture((0.5, 0.5, 0.5))
        mid = add_material(
            Material.standard(
                (0.5, 0.5, 0.5),
                metallic=0.5,
                roughness=0.8,
                metallic_texture=metallic,
                roughness_texture=roughness,
            )
        )
        resolved = _resolve_textured(mid)
        assert resolved["metallic"] == pytest.approx(0.3, abs=1e-5)
        assert resolved["roughness"] == pytest.approx(0.4, abs=1e-5)

    def test_emissive_texture_multiplies_emission(self):
        from sunsky.materials.material import Material, add_material

        texture = _constant_texture((1.0, 0.5, 0.0))
        mid = add_material(
            Material.standard(
                (0.5, 0.5, 0.5),
                emissive=(2.0, 2.0, 2.0),
                emissive_strength=1.5,
                emissive_texture=texture,
            )
        )
        assert _resolve_textured(mid)["emissive"] == pytest.approx((3.0, 1.5, 0.0), abs=1e-5)

    def test_untextured_channels_are_factors(self):
        from sunsky.materials.material import Material, add_material

        mid = add_material(Material.standard((0.2, 0.4, 0.6), metallic=0.7, roughness=0.9))
        resolved = _resolve_textured(mid)
        assert resolved["base_color"] == pytest.approx((0.2, 0.4, 0.6), abs=1e-6)
        assert resolved["metallic"] == pytest.approx(0.7, abs=1e-6)
        assert resolved["roughness"] == pytest.approx(0.9, abs=1e-6)
