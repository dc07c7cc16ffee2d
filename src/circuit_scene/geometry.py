"""
Board and panel solids.

Outlines are built as shapely polygons, extruded with trimesh, and
drilled/cut by one boolean difference against the union of every hole and
cutout prism. The union runs in bounded batches so very large drill sets
(hundreds of plated holes) never hand the kernel a single huge operand list.
"""
from typing import Callable, List, Optional, Sequence

import logging
import math
import numpy as np
import trimesh
from shapely import affinity
from shapely.geometry import LineString, Point, Polygon, box

from circuit_scene.coordinate_transform import COORDINATE_TRANSFORMS, transform_mesh
from circuit_scene.entities import (
    Board, CircleCutout, Cutout, Hole, Panel, PolygonCutout, RectCutout, Vec2,
)
from circuit_scene.errors import GeometryError
from circuit_scene.mesh import Mesh

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50
CYLINDER_SECTIONS = 32
# Cutting prisms extend past both board faces to avoid coplanar booleans.
CUTTER_OVERSHOOT_MM = 0.5

BOOLEAN_ENGINE = "manifold"


def _kernel_union(meshes: Sequence[trimesh.Trimesh]) -> trimesh.Trimesh:
    return trimesh.boolean.union(list(meshes), engine=BOOLEAN_ENGINE)


def _kernel_difference(solid: trimesh.Trimesh, cutter: trimesh.Trimesh) -> trimesh.Trimesh:
    return trimesh.boolean.difference([solid, cutter], engine=BOOLEAN_ENGINE)


def batched_union(
    geoms: Sequence,
    union: Optional[Callable[[Sequence], object]] = None,
    batch_size: int = DEFAULT_BATCH_SIZE,
):
    """Union geometries in rounds of at most ``batch_size`` operands.

    Each round unions sibling batches; rounds repeat until one geometry
    remains.

    Raises:
        GeometryError: if *geoms* is empty or *batch_size* < 2.
    """
    if len(geoms) == 0:
        raise GeometryError("Cannot union an empty list of geometries")
    if batch_size < 2:
        raise GeometryError(f"batch_size must be >= 2, got {batch_size}")
    if union is None:
        union = _kernel_union

    results = list(geoms)
    while len(results) > 1:
        merged = []
        for start in range(0, len(results), batch_size):
            batch = results[start:start + batch_size]
            merged.append(batch[0] if len(batch) == 1 else union(batch))
        results = merged
    return results[0]


def batched_subtract(
    solid,
    cutters: Sequence,
    union: Optional[Callable[[Sequence], object]] = None,
    difference: Optional[Callable[[object, object], object]] = None,
    batch_size: int = DEFAULT_BATCH_SIZE,
):
    """Subtract the batched union of *cutters* from *solid* in one difference."""
    if difference is None:
        difference = _kernel_difference
    combined = batched_union(cutters, union=union, batch_size=batch_size)
    return difference(solid, combined)


# ─── 2D shapes ───────────────────────────────────────────────────────────────

def outline_polygon(
    center: Vec2,
    width: float,
    height: float,
    outline: Optional[Sequence[Vec2]] = None,
) -> Polygon:
    """Outline in coordinates local to *center*."""
    cx, cy = center
    if outline:
        return Polygon([(x - cx, y - cy) for x, y in outline])
    return box(-width / 2, -height / 2, width / 2, height / 2)


def hole_polygon(hole: Hole, origin: Vec2) -> Optional[Polygon]:
    """2D drill footprint of *hole*, local to *origin*; None if degenerate."""
    x = hole.center[0] - origin[0]
    y = hole.center[1] - origin[1]
    if hole.shape == "circle":
        if hole.diameter <= 0:
            return None
        return Point(x, y).buffer(hole.diameter / 2, quad_segs=CYLINDER_SECTIONS // 4)
    if hole.width <= 0 or hole.height <= 0:
        return None
    if hole.shape == "rect":
        shape = box(x - hole.width / 2, y - hole.height / 2,
                    x + hole.width / 2, y + hole.height / 2)
    else:
        # Stadium: a segment along the long axis buffered by half the short side.
        radius = min(hole.width, hole.height) / 2
        half_len = max(hole.width, hole.height) / 2 - radius
        if half_len <= 0:
            shape = Point(x, y).buffer(radius, quad_segs=CYLINDER_SECTIONS // 4)
        elif hole.width >= hole.height:
            shape = LineString([(x - half_len, y), (x + half_len, y)]).buffer(radius)
        else:
            shape = LineString([(x, y - half_len), (x, y + half_len)]).buffer(radius)
    if hole.rotation_deg:
        shape = affinity.rotate(shape, hole.rotation_deg, origin=(x, y))
    return shape


def cutout_polygon(cutout: Cutout, origin: Vec2) -> Optional[Polygon]:
    ox, oy = origin
    if isinstance(cutout, RectCutout):
        if cutout.width <= 0 or cutout.height <= 0:
            return None
        x, y = cutout.center[0] - ox, cutout.center[1] - oy
        shape = box(x - cutout.width / 2, y - cutout.height / 2,
                    x + cutout.width / 2, y + cutout.height / 2)
        if cutout.rotation_deg:
            shape = affinity.rotate(shape, cutout.rotation_deg, origin=(x, y))
        return shape
    if isinstance(cutout, CircleCutout):
        if cutout.radius <= 0:
            return None
        return Point(cutout.center[0] - ox, cutout.center[1] - oy).buffer(
            cutout.radius, quad_segs=CYLINDER_SECTIONS // 4,
        )
    if isinstance(cutout, PolygonCutout):
        shape = Polygon([(x - ox, y - oy) for x, y in cutout.points])
        if not shape.is_valid:
            shape = shape.buffer(0)
        return shape if not shape.is_empty else None
    raise GeometryError(f"Unsupported cutout type: {type(cutout).__name__}")


# ─── 3D solids ───────────────────────────────────────────────────────────────

def _extrude(polygon: Polygon, height: float) -> trimesh.Trimesh:
    """Extrude centred on z=0."""
    solid = trimesh.creation.extrude_polygon(polygon, height)
    solid.apply_translation([0.0, 0.0, -height / 2])
    return solid


def _cylinder(center: Vec2, radius: float, height: float) -> trimesh.Trimesh:
    solid = trimesh.creation.cylinder(radius=radius, height=height, sections=CYLINDER_SECTIONS)
    solid.apply_translation([center[0], center[1], 0.0])
    return solid


def _cutter_solids(
    origin: Vec2,
    thickness: float,
    holes: Sequence[Hole],
    cutouts: Sequence[Cutout],
) -> List[trimesh.Trimesh]:
    cutter_height = thickness + 2 * CUTTER_OVERSHOOT_MM
    solids = []
    for hole in holes:
        if hole.shape == "circle":
            if hole.diameter > 0:
                local = (hole.center[0] - origin[0], hole.center[1] - origin[1])
                solids.append(_cylinder(local, hole.diameter / 2, cutter_height))
            continue
        shape = hole_polygon(hole, origin)
        if shape is not None and not shape.is_empty:
            solids.append(_extrude(shape, cutter_height))
    for cutout in cutouts:
        if isinstance(cutout, CircleCutout):
            if cutout.radius > 0:
                local = (cutout.center[0] - origin[0], cutout.center[1] - origin[1])
                solids.append(_cylinder(local, cutout.radius, cutter_height))
            continue
        shape = cutout_polygon(cutout, origin)
        if shape is None or shape.is_empty:
            continue
        if shape.geom_type == "MultiPolygon":
            solids.extend(_extrude(part, cutter_height) for part in shape.geoms)
        else:
            solids.append(_extrude(shape, cutter_height))
    return solids


def build_solid(
    outline: Polygon,
    thickness: float,
    holes: Sequence[Hole] = (),
    plated_holes: Sequence[Hole] = (),
    cutouts: Sequence[Cutout] = (),
    origin: Vec2 = (0.0, 0.0),
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> Mesh:
    """Extrude *outline*, subtract drills and cutouts, and rotate to Y-up.

    *outline* is already local to *origin*; hole and cutout positions are
    absolute and shifted by *origin*. A zero-area outline produces an empty
    mesh whose bounding box is non-finite.

    Raises:
        GeometryError: non-positive thickness.
    """
    if not thickness or thickness <= 0 or not math.isfinite(thickness):
        raise GeometryError(f"thickness must be positive, got {thickness}")
    if outline.is_empty or outline.area <= 0:
        logger.debug("Degenerate outline; returning empty mesh")
        return Mesh(triangles=np.zeros((0, 3, 3)), normals=np.zeros((0, 3)))

    solid = _extrude(outline, thickness)
    cutters = _cutter_solids(origin, thickness, list(holes) + list(plated_holes), cutouts)
    if cutters:
        logger.debug("Subtracting %d drill/cutout solids", len(cutters))
        solid = batched_subtract(solid, cutters, batch_size=batch_size)

    mesh = Mesh.from_trimesh(solid)
    return transform_mesh(mesh, COORDINATE_TRANSFORMS["Z_UP_TO_Y_UP"])


# ─── Scoping ─────────────────────────────────────────────────────────────────

def cutouts_for_board(
    cutouts: Sequence[Cutout],
    board: Board,
    include_unscoped: bool = False,
) -> List[Cutout]:
    """Cutouts that subtract from *board*.

    Cutouts scoped to another board never apply. Unscoped cutouts belong to
    the panel and only apply to a board when ``include_unscoped`` is set
    (there is no panel).
    """
    return [
        c for c in cutouts
        if c.board_id == board.board_id or (include_unscoped and c.board_id is None)
    ]


def cutouts_for_panel(cutouts: Sequence[Cutout]) -> List[Cutout]:
    return [c for c in cutouts if c.board_id is None]


def holes_for_board(holes: Sequence[Hole], board: Board) -> List[Hole]:
    return [h for h in holes if h.board_id is None or h.board_id == board.board_id]


def build_board_mesh(
    board: Board,
    thickness: float,
    holes: Sequence[Hole] = (),
    plated_holes: Sequence[Hole] = (),
    cutouts: Sequence[Cutout] = (),
) -> Mesh:
    """Board solid in coordinates local to the board center.

    Callers pass cutouts already filtered with ``cutouts_for_board``.
    """
    outline = outline_polygon(board.center, board.width, board.height, board.outline)
    return build_solid(
        outline,
        thickness,
        holes=holes_for_board(holes, board),
        plated_holes=holes_for_board(plated_holes, board),
        cutouts=cutouts,
        origin=board.center,
    )


def build_panel_mesh(
    panel: Panel,
    thickness: float,
    holes: Sequence[Hole] = (),
    plated_holes: Sequence[Hole] = (),
    cutouts: Sequence[Cutout] = (),
) -> Mesh:
    """Panel solid in coordinates local to the panel center.

    Callers pass cutouts already filtered with ``cutouts_for_panel``.
    """
    outline = outline_polygon(panel.center, panel.width, panel.height, panel.outline)
    return build_solid(
        outline,
        thickness,
        holes=holes,
        plated_holes=plated_holes,
        cutouts=cutouts,
        origin=panel.center,
    )
