"""
Mapping of source axis conventions onto the canonical scene space.

The scene is right-handed and Y-up. Most mesh sources (STL, OBJ, STEP, the
footprint generator) are Z-up and some of them mirror an axis. A
``CoordinateTransform`` describes one such convention as an axis remap
followed by optional rotation, scale and flips, and compiles to a single
3x3 matrix.
"""
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Tuple, Union

import numpy as np

from circuit_scene.mesh import Mesh

_AXES = {"x": 0, "y": 1, "z": 2}


@dataclass(frozen=True)
class CoordinateTransform:
    """Source-to-canonical axis convention.

    Applied in order: axis mapping, rotation (degrees about X, then Y,
    then Z), per-axis scale, per-axis flips.

    ``axis_mapping`` names, for each output axis, the signed source axis it
    takes its value from, e.g. ``("x", "z", "-y")``.
    """
    axis_mapping: Tuple[str, str, str] = ("x", "y", "z")
    rotation: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    scale: Tuple[float, float, float] = (1.0, 1.0, 1.0)
    flip: Tuple[bool, bool, bool] = (False, False, False)

    def matrix(self) -> np.ndarray:
        mapping = np.zeros((3, 3))
        for out_axis, source in enumerate(self.axis_mapping):
            sign = -1.0 if source.startswith("-") else 1.0
            name = source.lstrip("+-").lower()
            if name not in _AXES:
                raise ValueError(f"Unknown axis in mapping: {source!r}")
            mapping[out_axis, _AXES[name]] = sign

        rx, ry, rz = (np.radians(a) for a in self.rotation)
        rot = _rot_z(rz) @ _rot_y(ry) @ _rot_x(rx)
        scale = np.diag(self.scale)
        flips = np.diag([-1.0 if f else 1.0 for f in self.flip])
        return flips @ scale @ rot @ mapping

    def apply_point(self, point) -> Tuple[float, float, float]:
        x, y, z = self.matrix() @ np.asarray(point, dtype=np.float64)
        return (float(x), float(y), float(z))

    def to_dict(self) -> dict:
        return {
            "axis_mapping": list(self.axis_mapping),
            "rotation": list(self.rotation),
            "scale": list(self.scale),
            "flip": list(self.flip),
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> "CoordinateTransform":
        return cls(
            axis_mapping=tuple(data.get("axis_mapping", ("x", "y", "z"))),
            rotation=tuple(float(v) for v in data.get("rotation", (0, 0, 0))),
            scale=tuple(float(v) for v in data.get("scale", (1, 1, 1))),
            flip=tuple(bool(v) for v in data.get("flip", (False, False, False))),
        )


IDENTITY = CoordinateTransform()

COORDINATE_TRANSFORMS: Dict[str, CoordinateTransform] = {
    "IDENTITY": IDENTITY,
    # Proper rotation of -90 degrees about X.
    "Z_UP_TO_Y_UP": CoordinateTransform(axis_mapping=("x", "z", "-y")),
    # Models from producers that export mirrored about the board plane.
    "Z_UP_TO_Y_UP_USB_FIX": CoordinateTransform(axis_mapping=("x", "z", "y")),
    "OBJ_Z_UP_TO_Y_UP": CoordinateTransform(
        axis_mapping=("x", "z", "-y"), rotation=(0.0, 180.0, 0.0),
    ),
    "FOOTPRINTER_MODEL_TRANSFORM": CoordinateTransform(
        axis_mapping=("x", "z", "y"), rotation=(0.0, 180.0, 0.0),
    ),
}


def get_transform(
    value: Union[None, str, Mapping, CoordinateTransform],
) -> Optional[CoordinateTransform]:
    """Normalise a preset name, dict or transform into a transform."""
    if value is None or isinstance(value, CoordinateTransform):
        return value
    if isinstance(value, str):
        try:
            return COORDINATE_TRANSFORMS[value]
        except KeyError:
            raise ValueError(
                f"Unknown coordinate transform preset {value!r}; "
                f"expected one of {sorted(COORDINATE_TRANSFORMS)}"
            ) from None
    return CoordinateTransform.from_dict(value)


def transform_mesh(mesh: Mesh, transform: Optional[CoordinateTransform]) -> Mesh:
    """Return *mesh* re-expressed in canonical space.

    Normals go through the inverse transpose. A mirroring transform
    (negative determinant) also reverses triangle winding so faces keep
    pointing outward.
    """
    if transform is None or transform == IDENTITY:
        return mesh.copy()

    m = transform.matrix()
    triangles = mesh.triangles @ m.T
    normal_matrix = np.linalg.inv(m).T
    normals = mesh.normals @ normal_matrix.T
    lengths = np.linalg.norm(normals, axis=1, keepdims=True)
    normals = np.divide(normals, lengths, out=np.zeros_like(normals), where=lengths > 0)

    if np.linalg.det(m) < 0:
        triangles = triangles[:, [0, 2, 1], :]

    return Mesh(
        triangles=triangles,
        normals=normals,
        material_indices=None if mesh.material_indices is None
        else mesh.material_indices.copy(),
        materials=list(mesh.materials),
    )


def _rot_x(a: float) -> np.ndarray:
    c, s = np.cos(a), np.sin(a)
    return np.array([[1, 0, 0], [0, c, -s], [0, s, c]])


def _rot_y(a: float) -> np.ndarray:
    c, s = np.cos(a), np.sin(a)
    return np.array([[c, 0, s], [0, 1, 0], [-s, 0, c]])


def _rot_z(a: float) -> np.ndarray:
    c, s = np.cos(a), np.sin(a)
    return np.array([[c, -s, 0], [s, c, 0], [0, 0, 1]])
