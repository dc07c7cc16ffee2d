"""Tests for the canonical mesh representation."""

import math

import numpy as np
import pytest
import trimesh

from circuit_scene.mesh import (
    DEFAULT_MATERIAL_COLOR,
    Mesh,
    compute_bounding_box,
    compute_face_normals,
    group_by_color,
    merge_meshes,
    scale_mesh,
)


def _two_triangles():
    tris = np.array([
        [[0, 0, 0], [1, 0, 0], [0, 1, 0]],
        [[0, 0, 1], [2, 0, 1], [0, 3, 1]],
    ], dtype=float)
    return tris, compute_face_normals(tris)


class TestBoundingBox:

    def test_extents(self):
        tris, _ = _two_triangles()
        bbox = compute_bounding_box(tris)
        assert tuple(bbox.min) == (0, 0, 0)
        assert tuple(bbox.max) == (2, 3, 1)
        assert tuple(bbox.center) == (1, 1.5, 0.5)

    def test_empty_is_not_finite(self):
        bbox = compute_bounding_box(np.zeros((0, 3, 3)))
        assert not math.isfinite(bbox.size.x)


class TestMesh:

    def test_length_mismatch(self):
        tris, normals = _two_triangles()
        with pytest.raises(ValueError):
            Mesh(triangles=tris, normals=normals[:1])

    def test_to_trimesh_keeps_volume(self):
        box = trimesh.creation.box(extents=[1, 2, 3])
        mesh = Mesh.from_trimesh(box)
        assert mesh.triangle_count == 12
        assert mesh.to_trimesh().volume == pytest.approx(6.0)
        assert not mesh.has_materials

    def test_from_scene_bakes_transforms(self):
        box = trimesh.creation.box(extents=[1, 1, 1])
        scene = trimesh.Scene()
        scene.add_geometry(box, transform=trimesh.transformations.translation_matrix([10, 0, 0]))
        mesh = Mesh.from_trimesh(scene)
        assert mesh.bounding_box.center.x == pytest.approx(10.0)

    def test_face_colors_become_materials(self):
        box = trimesh.creation.box(extents=[1, 1, 1])
        colors = np.tile([255, 0, 0, 255], (12, 1))
        colors[6:] = [0, 255, 0, 255]
        box.visual.face_colors = colors
        mesh = Mesh.from_trimesh(box)
        assert [m.color for m in mesh.materials] == [(255, 0, 0, 1.0), (0, 255, 0, 1.0)]
        assert mesh.triangle_color(11) == (0, 255, 0, 1.0)


class TestGroupByColor:

    def test_first_appearance_order(self):
        tris, normals = _two_triangles()
        mesh = group_by_color(tris, normals, [(0, 0, 255, 1.0), (255, 0, 0, 1.0)])
        assert [m.name for m in mesh.materials] == ["Material_0", "Material_1"]
        assert mesh.materials[0].color == (0, 0, 255, 1.0)
        assert list(mesh.material_indices) == [0, 1]

    def test_uncolored_triangles_get_default(self):
        tris, normals = _two_triangles()
        mesh = group_by_color(tris, normals, [None, None])
        assert len(mesh.materials) == 1
        assert mesh.materials[0].color == DEFAULT_MATERIAL_COLOR


class TestScaleAndMerge:

    def test_scale_returns_new_mesh(self):
        tris, normals = _two_triangles()
        mesh = Mesh(triangles=tris, normals=normals)
        scaled = scale_mesh(mesh, 10)
        assert scaled.bounding_box.size.y == pytest.approx(30)
        assert mesh.bounding_box.size.y == pytest.approx(3)

    def test_merge_combines_material_tables(self):
        tris, normals = _two_triangles()
        red = group_by_color(tris, normals, [(255, 0, 0, 1.0)] * 2)
        plain = Mesh(triangles=tris, normals=normals)
        merged = merge_meshes([red, plain])
        assert merged.triangle_count == 4
        assert merged.triangle_color(0) == (255, 0, 0, 1.0)
        assert merged.triangle_color(3) == DEFAULT_MATERIAL_COLOR
