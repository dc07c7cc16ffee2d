"""
Typed projection of a circuit record list.

``resolve_entities`` runs once per conversion call and builds lookup
tables for every record kind the scene needs. Nothing downstream reads the
raw record dicts again.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import logging

logger = logging.getLogger(__name__)

Vec2 = Tuple[float, float]
Vec3 = Tuple[float, float, float]


class GeometryKind(Enum):
    """Supported component geometry sources, in precedence order."""
    STL = "stl"
    OBJ = "obj"
    GLB = "glb"
    GLTF = "gltf"
    STEP = "step"
    FOOTPRINT = "footprint"

    @property
    def is_scene_interchange(self) -> bool:
        return self in (GeometryKind.GLB, GeometryKind.GLTF)

    @property
    def is_solid_geometry(self) -> bool:
        return self in (GeometryKind.STL, GeometryKind.OBJ)


# Record field for each URL-based kind, highest precedence first.
_URL_FIELDS = (
    (GeometryKind.STL, "model_stl_url"),
    (GeometryKind.OBJ, "model_obj_url"),
    (GeometryKind.GLB, "model_glb_url"),
    (GeometryKind.GLTF, "model_gltf_url"),
    (GeometryKind.STEP, "model_step_url"),
)


@dataclass(frozen=True)
class GeometrySource:
    """Tagged geometry source: a URL for file formats, a descriptor for footprints."""
    kind: GeometryKind
    location: str

    @property
    def url(self) -> Optional[str]:
        return None if self.kind is GeometryKind.FOOTPRINT else self.location


@dataclass
class Board:
    board_id: str
    center: Vec2
    width: float
    height: float
    thickness: Optional[float] = None
    outline: Optional[List[Vec2]] = None
    panel_id: Optional[str] = None


@dataclass
class Panel:
    panel_id: str
    center: Vec2
    width: float
    height: float
    outline: Optional[List[Vec2]] = None


@dataclass
class Hole:
    """A drilled hole; only ever used as subtraction geometry.

    ``shape`` is one of "circle", "rect" or "pill". Circles use
    ``diameter``; rects and pills use ``width``/``height``.
    """
    hole_id: str
    center: Vec2
    shape: str
    diameter: float = 0.0
    width: float = 0.0
    height: float = 0.0
    rotation_deg: float = 0.0
    board_id: Optional[str] = None
    plated: bool = False


@dataclass
class Cutout:
    cutout_id: str
    board_id: Optional[str]


@dataclass
class RectCutout(Cutout):
    center: Vec2
    width: float
    height: float
    rotation_deg: float = 0.0


@dataclass
class CircleCutout(Cutout):
    center: Vec2
    radius: float


@dataclass
class PolygonCutout(Cutout):
    points: List[Vec2]


@dataclass
class SourceComponent:
    source_component_id: str
    name: Optional[str] = None


@dataclass
class PcbComponent:
    pcb_component_id: str
    center: Vec2
    width: float
    height: float
    layer: str = "top"
    source_component_id: Optional[str] = None
    board_id: Optional[str] = None

    @property
    def is_bottom(self) -> bool:
        return self.layer == "bottom"


@dataclass
class CadComponent:
    cad_component_id: str
    pcb_component_id: Optional[str]
    source: Optional[GeometrySource] = None
    size: Optional[Vec3] = None
    position: Optional[Vec3] = None
    rotation: Optional[Vec3] = None  # degrees, circuit (Z-up) axes
    model_unit_to_mm_scale_factor: float = 1.0
    show_as_translucent_model: bool = False


@dataclass
class CircuitEntities:
    """Lookup tables built from one record list."""
    panel: Optional[Panel] = None
    boards: List[Board] = field(default_factory=list)
    holes: List[Hole] = field(default_factory=list)
    plated_holes: List[Hole] = field(default_factory=list)
    cutouts: List[Cutout] = field(default_factory=list)
    pcb_components: List[PcbComponent] = field(default_factory=list)
    source_components: Dict[str, SourceComponent] = field(default_factory=dict)
    cad_components: List[CadComponent] = field(default_factory=list)
    _pcb_by_id: Dict[str, PcbComponent] = field(default_factory=dict, repr=False)

    @property
    def board(self) -> Optional[Board]:
        return self.boards[0] if self.boards else None

    @property
    def surface(self):
        """The rendering surface: the panel if present, else the first board."""
        return self.panel or self.board

    def pcb_component(self, pcb_component_id: Optional[str]) -> Optional[PcbComponent]:
        if pcb_component_id is None:
            return None
        return self._pcb_by_id.get(pcb_component_id)

    def source_component(self, source_component_id: Optional[str]) -> Optional[SourceComponent]:
        if source_component_id is None:
            return None
        return self.source_components.get(source_component_id)


def resolve_entities(records: Iterable[Mapping[str, Any]]) -> CircuitEntities:
    """Build typed lookup tables from a circuit record list.

    Records of unrecognised types are skipped. Only the first panel is
    kept; boards keep input order.
    """
    entities = CircuitEntities()
    for record in records:
        kind = record.get("type")
        if kind == "pcb_panel":
            if entities.panel is None:
                entities.panel = _panel(record)
        elif kind == "pcb_board":
            entities.boards.append(_board(record))
        elif kind == "pcb_hole":
            entities.holes.append(_hole(record, plated=False))
        elif kind == "pcb_plated_hole":
            entities.plated_holes.append(_hole(record, plated=True))
        elif kind == "pcb_cutout":
            cutout = _cutout(record)
            if cutout is not None:
                entities.cutouts.append(cutout)
        elif kind == "pcb_component":
            component = _pcb_component(record)
            entities.pcb_components.append(component)
            entities._pcb_by_id[component.pcb_component_id] = component
        elif kind == "source_component":
            source = SourceComponent(
                source_component_id=str(record.get("source_component_id", "")),
                name=record.get("name"),
            )
            entities.source_components[source.source_component_id] = source
        elif kind == "cad_component":
            entities.cad_components.append(_cad_component(record))
    return entities


def select_geometry_source(record: Mapping[str, Any]) -> Optional[GeometrySource]:
    """Pick the highest-precedence geometry source of a cad_component record."""
    for kind, key in _URL_FIELDS:
        url = record.get(key)
        if url:
            return GeometrySource(kind=kind, location=str(url))
    footprint = record.get("footprinter_string")
    if footprint:
        return GeometrySource(kind=GeometryKind.FOOTPRINT, location=str(footprint))
    return None


def _vec2(value: Optional[Mapping[str, Any]], default: Vec2 = (0.0, 0.0)) -> Vec2:
    if not value:
        return default
    return (float(value.get("x", 0.0)), float(value.get("y", 0.0)))


def _vec3(value: Optional[Mapping[str, Any]]) -> Optional[Vec3]:
    if not value:
        return None
    return (
        float(value.get("x", 0.0)),
        float(value.get("y", 0.0)),
        float(value.get("z", 0.0)),
    )


def _outline(value) -> Optional[List[Vec2]]:
    if not value or len(value) < 3:
        return None
    return [_vec2(p) for p in value]


def _panel(record: Mapping[str, Any]) -> Panel:
    return Panel(
        panel_id=str(record.get("pcb_panel_id", "")),
        center=_vec2(record.get("center")),
        width=float(record.get("width") or 0.0),
        height=float(record.get("height") or 0.0),
        outline=_outline(record.get("outline")),
    )


def _board(record: Mapping[str, Any]) -> Board:
    thickness = record.get("thickness")
    return Board(
        board_id=str(record.get("pcb_board_id", "")),
        center=_vec2(record.get("center")),
        width=float(record.get("width") or 0.0),
        height=float(record.get("height") or 0.0),
        thickness=float(thickness) if thickness is not None else None,
        outline=_outline(record.get("outline")),
        panel_id=record.get("pcb_panel_id"),
    )


def _hole(record: Mapping[str, Any], plated: bool) -> Hole:
    id_key = "pcb_plated_hole_id" if plated else "pcb_hole_id"
    shape_name = str(record.get("hole_shape") or record.get("shape") or "circle")
    center = (float(record.get("x", 0.0)), float(record.get("y", 0.0)))

    if "pill" in shape_name or "oval" in shape_name:
        shape = "pill"
    elif shape_name in ("rect", "square"):
        shape = "rect"
    else:
        shape = "circle"

    diameter = record.get("hole_diameter", record.get("diameter", 0.0)) or 0.0
    width = record.get("hole_width", diameter) or 0.0
    height = record.get("hole_height", width if shape == "rect" else diameter) or 0.0
    if shape == "circle" and not diameter and width:
        diameter = width

    return Hole(
        hole_id=str(record.get(id_key, "")),
        center=center,
        shape=shape,
        diameter=float(diameter),
        width=float(width),
        height=float(height),
        rotation_deg=float(record.get("ccw_rotation") or record.get("hole_ccw_rotation") or 0.0),
        board_id=record.get("pcb_board_id"),
        plated=plated,
    )


def _cutout(record: Mapping[str, Any]) -> Optional[Cutout]:
    cutout_id = str(record.get("pcb_cutout_id", ""))
    board_id = record.get("pcb_board_id")
    shape = record.get("shape")
    if shape == "rect":
        return RectCutout(
            cutout_id=cutout_id,
            board_id=board_id,
            center=_vec2(record.get("center")),
            width=float(record.get("width") or 0.0),
            height=float(record.get("height") or 0.0),
            rotation_deg=float(record.get("rotation") or 0.0),
        )
    if shape == "circle":
        return CircleCutout(
            cutout_id=cutout_id,
            board_id=board_id,
            center=_vec2(record.get("center")),
            radius=float(record.get("radius") or 0.0),
        )
    if shape == "polygon":
        points = [_vec2(p) for p in record.get("points") or []]
        if len(points) < 3:
            logger.debug("Skipping polygon cutout %s with < 3 points", cutout_id)
            return None
        return PolygonCutout(cutout_id=cutout_id, board_id=board_id, points=points)
    logger.debug("Skipping cutout %s with unsupported shape %r", cutout_id, shape)
    return None


def _pcb_component(record: Mapping[str, Any]) -> PcbComponent:
    return PcbComponent(
        pcb_component_id=str(record.get("pcb_component_id", "")),
        center=_vec2(record.get("center")),
        width=float(record.get("width") or 0.0),
        height=float(record.get("height") or 0.0),
        layer=str(record.get("layer") or "top"),
        source_component_id=record.get("source_component_id"),
        board_id=record.get("pcb_board_id"),
    )


def _cad_component(record: Mapping[str, Any]) -> CadComponent:
    scale = record.get("model_unit_to_mm_scale_factor")
    return CadComponent(
        cad_component_id=str(record.get("cad_component_id", "")),
        pcb_component_id=record.get("pcb_component_id"),
        source=select_geometry_source(record),
        size=_vec3(record.get("size")),
        position=_vec3(record.get("position")),
        rotation=_vec3(record.get("rotation")),
        model_unit_to_mm_scale_factor=float(scale) if scale is not None else 1.0,
        show_as_translucent_model=bool(record.get("show_as_translucent_model", False)),
    )
