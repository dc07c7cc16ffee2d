"""
Canonical mesh representation.

Every loader and the board geometry builder hand back a ``Mesh``: a flat
triangle soup with one normal per triangle and an optional material table.
Meshes are treated as immutable once built; helpers here return new copies.
"""
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

import logging
import numpy as np
import trimesh

from circuit_scene.contracts import BoundingBox, Point3

logger = logging.getLogger(__name__)

RGBA = Tuple[int, int, int, float]

DEFAULT_MATERIAL_COLOR: RGBA = (179, 179, 179, 1.0)


@dataclass(frozen=True)
class Material:
    """Named flat appearance shared by a group of triangles."""
    name: str
    color: RGBA


@dataclass
class Mesh:
    """Triangle list in canonical (right-handed, Y-up, millimetre) space.

    Attributes:
        triangles: (n, 3, 3) triangle corner coordinates.
        normals: (n, 3) per-triangle normals.
        material_indices: (n,) index into ``materials``, or None when the
            mesh carries no color information.
        materials: material table; empty for uncolored meshes.
    """
    triangles: np.ndarray
    normals: np.ndarray
    material_indices: Optional[np.ndarray] = None
    materials: List[Material] = field(default_factory=list)
    bounding_box: BoundingBox = field(init=False)

    def __post_init__(self):
        self.triangles = np.asarray(self.triangles, dtype=np.float64).reshape(-1, 3, 3)
        self.normals = np.asarray(self.normals, dtype=np.float64).reshape(-1, 3)
        if len(self.normals) != len(self.triangles):
            raise ValueError(
                f"normals ({len(self.normals)}) and triangles "
                f"({len(self.triangles)}) must have the same length"
            )
        if self.material_indices is not None:
            self.material_indices = np.asarray(self.material_indices, dtype=np.int64)
            if len(self.material_indices) != len(self.triangles):
                raise ValueError("material_indices must have one entry per triangle")
        self.bounding_box = compute_bounding_box(self.triangles)

    @property
    def triangle_count(self) -> int:
        return int(len(self.triangles))

    @property
    def has_materials(self) -> bool:
        return self.material_indices is not None and bool(self.materials)

    def triangle_color(self, index: int) -> Optional[RGBA]:
        """Color of triangle ``index``, or None for uncolored meshes."""
        if not self.has_materials:
            return None
        return self.materials[int(self.material_indices[index])].color

    def copy(self) -> "Mesh":
        return Mesh(
            triangles=self.triangles.copy(),
            normals=self.normals.copy(),
            material_indices=None if self.material_indices is None
            else self.material_indices.copy(),
            materials=list(self.materials),
        )

    def to_trimesh(self) -> trimesh.Trimesh:
        vertices = self.triangles.reshape(-1, 3)
        faces = np.arange(len(vertices), dtype=np.int64).reshape(-1, 3)
        return trimesh.Trimesh(vertices=vertices, faces=faces, process=False)

    @classmethod
    def from_trimesh(cls, loaded) -> "Mesh":
        """Convert a ``trimesh.Trimesh`` or ``trimesh.Scene``.

        Scene graph transforms are baked in. Per-face colors (from color
        visuals or a material's main color) become a material table.
        """
        geometries = _scene_geometries(loaded)
        if not geometries:
            return cls(triangles=np.zeros((0, 3, 3)), normals=np.zeros((0, 3)))

        triangles = []
        normals = []
        colors: List[Optional[RGBA]] = []
        any_color = False
        for geom in geometries:
            if len(geom.faces) == 0:
                continue
            triangles.append(geom.vertices[geom.faces])
            normals.append(geom.face_normals)
            geom_colors = face_colors(geom)
            if geom_colors is None:
                colors.extend([None] * len(geom.faces))
            else:
                any_color = True
                colors.extend(rgba_from_uint8(c) for c in geom_colors)

        if not triangles:
            return cls(triangles=np.zeros((0, 3, 3)), normals=np.zeros((0, 3)))

        tri_array = np.concatenate(triangles, axis=0)
        normal_array = np.concatenate(normals, axis=0)
        if not any_color:
            return cls(triangles=tri_array, normals=normal_array)
        return group_by_color(tri_array, normal_array, colors)


def compute_bounding_box(triangles: np.ndarray) -> BoundingBox:
    """Bounds of a triangle array; empty input gives (+inf, -inf) bounds."""
    points = np.asarray(triangles, dtype=np.float64).reshape(-1, 3)
    if len(points) == 0:
        inf = float("inf")
        return BoundingBox(min=Point3(inf, inf, inf), max=Point3(-inf, -inf, -inf))
    lo = points.min(axis=0)
    hi = points.max(axis=0)
    return BoundingBox(
        min=Point3(float(lo[0]), float(lo[1]), float(lo[2])),
        max=Point3(float(hi[0]), float(hi[1]), float(hi[2])),
    )


def compute_face_normals(triangles: np.ndarray) -> np.ndarray:
    """Cross product of the two edges leaving each triangle's first corner."""
    tris = np.asarray(triangles, dtype=np.float64).reshape(-1, 3, 3)
    edge1 = tris[:, 1] - tris[:, 0]
    edge2 = tris[:, 2] - tris[:, 0]
    return np.cross(edge1, edge2)


def group_by_color(
    triangles: np.ndarray,
    normals: np.ndarray,
    colors: Sequence[Optional[RGBA]],
) -> Mesh:
    """Build a mesh with one material per distinct triangle color.

    Materials are numbered in order of first appearance. Uncolored
    triangles share a neutral grey default material.
    """
    materials: List[Material] = []
    index_by_color = {}
    indices = np.empty(len(colors), dtype=np.int64)

    for i, color in enumerate(colors):
        key = color if color is not None else "default"
        if key not in index_by_color:
            index_by_color[key] = len(materials)
            materials.append(Material(
                name=f"Material_{len(materials)}",
                color=DEFAULT_MATERIAL_COLOR if color is None else color,
            ))
        indices[i] = index_by_color[key]

    return Mesh(
        triangles=triangles,
        normals=normals,
        material_indices=indices,
        materials=materials,
    )


def scale_mesh(mesh: Mesh, factor: float) -> Mesh:
    """Return a uniformly scaled copy of *mesh*."""
    scaled = mesh.copy()
    if factor == 1:
        return scaled
    return Mesh(
        triangles=scaled.triangles * float(factor),
        normals=scaled.normals,
        material_indices=scaled.material_indices,
        materials=scaled.materials,
    )


def merge_meshes(meshes: Iterable[Mesh]) -> Mesh:
    """Concatenate meshes, merging material tables by color."""
    meshes = [m for m in meshes if m.triangle_count > 0]
    if not meshes:
        return Mesh(triangles=np.zeros((0, 3, 3)), normals=np.zeros((0, 3)))
    triangles = np.concatenate([m.triangles for m in meshes], axis=0)
    normals = np.concatenate([m.normals for m in meshes], axis=0)
    if not any(m.has_materials for m in meshes):
        return Mesh(triangles=triangles, normals=normals)
    colors: List[Optional[RGBA]] = []
    for m in meshes:
        colors.extend(m.triangle_color(i) for i in range(m.triangle_count))
    return group_by_color(triangles, normals, colors)


def _scene_geometries(loaded) -> List[trimesh.Trimesh]:
    if isinstance(loaded, trimesh.Trimesh):
        return [loaded]
    if isinstance(loaded, trimesh.Scene):
        return [g for g in loaded.dump() if isinstance(g, trimesh.Trimesh)]
    return []


def face_colors(geom: trimesh.Trimesh) -> Optional[np.ndarray]:
    """(n, 4) uint8 face colors, or None when the mesh carries no color."""
    visual = geom.visual
    kind = getattr(visual, "kind", None)
    if kind == "texture":
        material = getattr(visual, "material", None)
        main_color = getattr(material, "main_color", None)
        if main_color is None:
            return None
        return np.tile(np.asarray(main_color, dtype=np.uint8), (len(geom.faces), 1))
    if kind in ("face", "vertex"):
        return np.asarray(visual.face_colors, dtype=np.uint8)
    return None


def rgba_from_uint8(color) -> RGBA:
    r, g, b, a = (int(c) for c in color[:4])
    return (r, g, b, round(a / 255.0, 4))
