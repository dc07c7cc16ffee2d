"""Tests for axis-convention transforms."""

import numpy as np
import pytest

from circuit_scene.coordinate_transform import (
    COORDINATE_TRANSFORMS,
    IDENTITY,
    CoordinateTransform,
    get_transform,
    transform_mesh,
)
from circuit_scene.mesh import Material, Mesh, compute_face_normals


def _triangle_mesh():
    tris = np.array([[[0, 0, 0], [1, 0, 0], [0, 1, 0]]], dtype=float)
    return Mesh(triangles=tris, normals=compute_face_normals(tris))


class TestPresets:

    def test_z_up_to_y_up(self):
        t = COORDINATE_TRANSFORMS["Z_UP_TO_Y_UP"]
        assert t.apply_point((1, 2, 3)) == pytest.approx((1, 3, -2))
        assert np.linalg.det(t.matrix()) == pytest.approx(1.0)

    def test_usb_fix_is_a_mirror(self):
        t = COORDINATE_TRANSFORMS["Z_UP_TO_Y_UP_USB_FIX"]
        assert t.apply_point((1, 2, 3)) == pytest.approx((1, 3, 2))
        assert np.linalg.det(t.matrix()) == pytest.approx(-1.0)

    def test_obj_preset_turns_half_about_y(self):
        t = COORDINATE_TRANSFORMS["OBJ_Z_UP_TO_Y_UP"]
        assert t.apply_point((1, 2, 3)) == pytest.approx((-1, 3, 2))

    def test_footprint_preset(self):
        t = COORDINATE_TRANSFORMS["FOOTPRINTER_MODEL_TRANSFORM"]
        assert t.apply_point((1, 2, 3)) == pytest.approx((-1, 3, -2))

    def test_every_preset_maps_source_z_to_up(self):
        for name, t in COORDINATE_TRANSFORMS.items():
            if t == IDENTITY:
                continue
            assert t.apply_point((0, 0, 1))[1] == pytest.approx(1.0), name


class TestGetTransform:

    def test_by_name(self):
        assert get_transform("Z_UP_TO_Y_UP") is COORDINATE_TRANSFORMS["Z_UP_TO_Y_UP"]

    def test_unknown_name(self):
        with pytest.raises(ValueError, match="Unknown coordinate transform"):
            get_transform("SIDEWAYS")

    def test_from_mapping(self):
        t = get_transform({"axis_mapping": ["x", "z", "-y"], "scale": [2, 2, 2]})
        assert t.apply_point((1, 1, 1)) == pytest.approx((2, 2, -2))

    def test_none_passes_through(self):
        assert get_transform(None) is None

    def test_dict_form_survives_a_round_trip(self):
        t = CoordinateTransform(axis_mapping=("y", "-x", "z"), rotation=(0, 90, 0), flip=(True, False, False))
        assert CoordinateTransform.from_dict(t.to_dict()) == t

    def test_bad_axis(self):
        with pytest.raises(ValueError):
            CoordinateTransform(axis_mapping=("x", "w", "z")).matrix()


class TestTransformMesh:

    def test_none_returns_copy(self):
        mesh = _triangle_mesh()
        out = transform_mesh(mesh, None)
        assert out is not mesh
        np.testing.assert_allclose(out.triangles, mesh.triangles)

    def test_normals_follow_rotation(self):
        out = transform_mesh(_triangle_mesh(), COORDINATE_TRANSFORMS["Z_UP_TO_Y_UP"])
        # +Z normal becomes +Y
        np.testing.assert_allclose(out.normals[0], [0, 1, 0], atol=1e-9)

    def test_mirror_keeps_winding_consistent_with_normals(self):
        out = transform_mesh(_triangle_mesh(), COORDINATE_TRANSFORMS["Z_UP_TO_Y_UP_USB_FIX"])
        geometric = compute_face_normals(out.triangles)[0]
        assert float(np.dot(geometric, out.normals[0])) > 0

    def test_materials_preserved(self):
        tris = np.zeros((2, 3, 3))
        tris[:, 1, 0] = 1
        tris[:, 2, 1] = 1
        mesh = Mesh(
            triangles=tris,
            normals=compute_face_normals(tris),
            material_indices=np.array([0, 1]),
            materials=[Material("Material_0", (255, 0, 0, 1.0)), Material("Material_1", (0, 0, 255, 1.0))],
        )
        out = transform_mesh(mesh, COORDINATE_TRANSFORMS["OBJ_Z_UP_TO_Y_UP"])
        assert out.triangle_color(1) == (0, 0, 255, 1.0)
        assert [m.name for m in out.materials] == ["Material_0", "Material_1"]
