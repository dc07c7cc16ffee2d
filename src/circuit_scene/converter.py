"""Circuit record list -> placed 3D scene."""

from __future__ import annotations

import asyncio
import logging
import math
from abc import ABC, abstractmethod
from typing import Any, List, Mapping, Optional, Sequence, Set, Union

from circuit_scene.camera import default_camera
from circuit_scene.config import SceneOptions
from circuit_scene.contracts import (
    BoardTextures, Box3D, Light3D, Point3, Scene3D, Size3,
)
from circuit_scene.coordinate_transform import COORDINATE_TRANSFORMS, CoordinateTransform
from circuit_scene.entities import (
    CadComponent, CircuitEntities, GeometryKind, GeometrySource, PcbComponent,
    resolve_entities,
)
from circuit_scene.errors import ParseError, ResourceFetchError
from circuit_scene.geometry import (
    build_board_mesh, build_panel_mesh, cutouts_for_board, cutouts_for_panel,
)
from circuit_scene.loaders import ModelLoaders, get_default_loaders
from circuit_scene.mesh import Mesh, scale_mesh

logger = logging.getLogger(__name__)

FAUX_BOARD_MARGIN = 2.0
DEFAULT_FAUX_BOARD_SIZE = 10.0
FAUX_BOARD_ID = "__faux_board__"
DEFAULT_COMPONENT_FOOTPRINT = 2.0
BOUNDING_BOX_LABEL_COLOR = "white"
MISSING_LABEL = "?"

# Loaders whose failures degrade to a flat box instead of aborting
DEGRADABLE_KINDS = (GeometryKind.STEP, GeometryKind.GLB)

Records = Sequence[Mapping[str, Any]]


class BoardTextureRenderer(ABC):
    """Produces top/bottom board images for a record list."""

    @abstractmethod
    async def render(self, records: Records, resolution: int,
                     options: SceneOptions) -> BoardTextures:
        ...


def default_lights() -> List[Light3D]:
    return [
        Light3D(type="ambient", color="white", intensity=0.5),
        Light3D(type="directional", color="white", intensity=0.5,
                direction=Point3(-1.0, -1.0, -1.0)),
    ]


def default_transform_for(kind: GeometryKind) -> Optional[CoordinateTransform]:
    """Transform applied when the caller does not override it."""
    if kind.is_scene_interchange:
        return None
    if kind is GeometryKind.FOOTPRINT:
        return COORDINATE_TRANSFORMS["FOOTPRINTER_MODEL_TRANSFORM"]
    if kind is GeometryKind.OBJ:
        return COORDINATE_TRANSFORMS["OBJ_Z_UP_TO_Y_UP"]
    return COORDINATE_TRANSFORMS["Z_UP_TO_Y_UP_USB_FIX"]


async def convert_circuit_json_to_3d(
    records: Records,
    options: Union[SceneOptions, Mapping[str, Any], None] = None,
    loaders: Optional[ModelLoaders] = None,
    texture_renderer: Optional[BoardTextureRenderer] = None,
) -> Scene3D:
    """Build a renderable scene from a circuit record list.

    Raises:
        ValueError: invalid options.
        GeometryError: the board/panel solid could not be built.
        ResourceFetchError, ParseError: a non-STEP, non-GLB model failed.
        KernelInitError: no STEP kernel could be initialised.
    """
    if not isinstance(options, SceneOptions):
        options = SceneOptions.from_dict(options)
    problems = options.validate()
    if problems:
        raise ValueError("Invalid scene options: " + "; ".join(problems))
    loaders = loaders or get_default_loaders()

    entities = resolve_entities(records)
    board = entities.board
    thickness = board.thickness if board and board.thickness is not None else options.board_thickness

    boxes: List[Box3D] = []
    surface_box = await _surface_box(records, entities, thickness, options, texture_renderer)
    if surface_box is not None:
        boxes.append(surface_box)

    with_3d: Set[str] = set()
    for cad in entities.cad_components:
        if cad.source is None:
            continue
        if cad.pcb_component_id is not None:
            with_3d.add(cad.pcb_component_id)
        boxes.append(await _cad_box(cad, entities, thickness, options, loaders))

    if options.show_bounding_boxes:
        for component in entities.pcb_components:
            if component.pcb_component_id in with_3d:
                continue
            boxes.append(_bounding_box(component, entities, thickness, options))

    return Scene3D(
        boxes=boxes,
        camera=default_camera(entities.surface, boxes),
        lights=default_lights(),
    )


def convert_circuit_json_to_3d_sync(
    records: Records,
    options: Union[SceneOptions, Mapping[str, Any], None] = None,
    loaders: Optional[ModelLoaders] = None,
    texture_renderer: Optional[BoardTextureRenderer] = None,
) -> Scene3D:
    return asyncio.run(convert_circuit_json_to_3d(records, options, loaders, texture_renderer))


# ─── Board / panel ───────────────────────────────────────────────────────────

def _finite_or(value: float, fallback: float) -> float:
    return value if math.isfinite(value) else fallback


async def _surface_box(
    records: Records,
    entities: CircuitEntities,
    thickness: float,
    options: SceneOptions,
    texture_renderer: Optional[BoardTextureRenderer],
) -> Optional[Box3D]:
    panel = entities.panel
    board = entities.board

    if panel is not None:
        mesh = build_panel_mesh(
            panel, thickness,
            holes=entities.holes,
            plated_holes=entities.plated_holes,
            cutouts=cutouts_for_panel(entities.cutouts),
        )
        surface = panel
    elif board is not None:
        mesh = build_board_mesh(
            board, thickness,
            holes=entities.holes,
            plated_holes=entities.plated_holes,
            cutouts=cutouts_for_board(entities.cutouts, board, include_unscoped=True),
        )
        surface = board
    elif options.draw_faux_board:
        return await _faux_board_box(records, entities, thickness, options, texture_renderer)
    else:
        return None

    size = mesh.bounding_box.size
    box = Box3D(
        center=Point3(surface.center[0], 0.0, surface.center[1]),
        size=Size3(_finite_or(size.x, surface.width), thickness, _finite_or(size.z, surface.height)),
        mesh=mesh,
        color=options.board_color,
    )
    box.texture = await _render_textures(records, options, texture_renderer)
    return box


async def _faux_board_box(
    records: Records,
    entities: CircuitEntities,
    thickness: float,
    options: SceneOptions,
    texture_renderer: Optional[BoardTextureRenderer],
) -> Box3D:
    """Stand-in board sized to the component footprint, with a margin.

    The circuit center (cx, cy) is placed at (cx, 0, cy), the same mapping
    real boards and component boxes use, so the board stays in the plane
    y=0 under its components instead of being lifted to y=cy.
    """
    components = entities.pcb_components
    if components:
        min_x = min(c.center[0] - c.width / 2 for c in components)
        max_x = max(c.center[0] + c.width / 2 for c in components)
        min_y = min(c.center[1] - c.height / 2 for c in components)
        max_y = max(c.center[1] + c.height / 2 for c in components)
        center_x, center_y = (min_x + max_x) / 2, (min_y + max_y) / 2
        width = max(max_x - min_x + FAUX_BOARD_MARGIN * 2, DEFAULT_FAUX_BOARD_SIZE)
        height = max(max_y - min_y + FAUX_BOARD_MARGIN * 2, DEFAULT_FAUX_BOARD_SIZE)
    else:
        center_x = center_y = 0.0
        width = height = DEFAULT_FAUX_BOARD_SIZE

    box = Box3D(
        center=Point3(center_x, 0.0, center_y),
        size=Size3(width, thickness, height),
        color=options.board_color,
    )

    board_id = next((c.board_id for c in components if isinstance(c.board_id, str)), FAUX_BOARD_ID)
    faux_records = list(records) + [{
        "type": "pcb_board",
        "pcb_board_id": board_id,
        "center": {"x": center_x, "y": center_y},
        "width": width,
        "height": height,
        "thickness": thickness,
    }]
    box.texture = await _render_textures(faux_records, options, texture_renderer)
    return box


async def _render_textures(
    records: Records,
    options: SceneOptions,
    texture_renderer: Optional[BoardTextureRenderer],
) -> Optional[BoardTextures]:
    """Board textures, or None to keep the flat board color."""
    if texture_renderer is None or not options.render_board_textures or options.texture_resolution <= 0:
        return None
    try:
        return await texture_renderer.render(records, options.texture_resolution, options)
    except Exception as e:
        logger.warning("Failed to render board textures, using flat color: %s", e)
        return None


# ─── Components ──────────────────────────────────────────────────────────────

def _cad_rotation(cad: CadComponent, kind: GeometryKind, is_bottom: bool) -> Optional[Point3]:
    """Euler rotation in radians, in the model's Y-up frame."""
    if cad.rotation is not None:
        rx, ry, rz = cad.rotation
        if kind.is_scene_interchange:
            # circuit Z is the model's Y
            ry, rz = rz, ry
        return Point3(math.radians(rx), math.radians(ry), math.radians(rz))
    if is_bottom:
        if kind.is_scene_interchange or kind is GeometryKind.FOOTPRINT:
            return Point3(0.0, 0.0, math.pi)
        return Point3(math.pi, 0.0, 0.0)
    return None


async def _load_mesh(
    source: GeometrySource,
    transform: Optional[CoordinateTransform],
    options: SceneOptions,
    loaders: ModelLoaders,
) -> Optional[Mesh]:
    loader = loaders.for_kind(source.kind)
    if source.kind is GeometryKind.FOOTPRINT:
        return await loader.load(source.location, transform)
    try:
        return await loader.load(
            source.location,
            transform=transform,
            project_base_url=options.project_base_url,
            auth_headers=options.auth_headers,
        )
    except (ResourceFetchError, ParseError) as e:
        if source.kind not in DEGRADABLE_KINDS:
            raise
        logger.warning("Failed to load %s from %s: %s", source.kind.value.upper(), source.location, e)
        return None


async def _cad_box(
    cad: CadComponent,
    entities: CircuitEntities,
    thickness: float,
    options: SceneOptions,
    loaders: ModelLoaders,
) -> Box3D:
    source = cad.source
    pcb = entities.pcb_component(cad.pcb_component_id)
    is_bottom = pcb is not None and pcb.is_bottom
    scale = cad.model_unit_to_mm_scale_factor

    if cad.size is not None:
        size = Size3(cad.size[0] * scale, cad.size[1] * scale, cad.size[2] * scale)
    else:
        size = Size3(
            pcb.width if pcb is not None else DEFAULT_COMPONENT_FOOTPRINT,
            options.default_component_height,
            pcb.height if pcb is not None else DEFAULT_COMPONENT_FOOTPRINT,
        )

    if cad.position is not None:
        x, y, z = cad.position
        center = Point3(x, z, y)
    else:
        offset = thickness / 2 + size.y / 2
        cx, cy = pcb.center if pcb is not None else (0.0, 0.0)
        center = Point3(cx, -offset if is_bottom else offset, cy)

    box = Box3D(
        center=center,
        size=size,
        rotation=_cad_rotation(cad, source.kind, is_bottom),
        is_translucent=cad.show_as_translucent_model,
    )
    if source.url is not None:
        box.mesh_url = source.url
        box.mesh_type = source.kind.value

    transform = options.coordinate_transform or default_transform_for(source.kind)
    mesh = await _load_mesh(source, transform, options, loaders)
    if mesh is not None and scale != 1:
        mesh = scale_mesh(mesh, scale)
    box.mesh = mesh
    if mesh is None:
        box.color = options.component_color
    return box


def _bounding_box(
    component: PcbComponent,
    entities: CircuitEntities,
    thickness: float,
    options: SceneOptions,
) -> Box3D:
    """Labelled placeholder for a component with no 3D model."""
    height = min(component.width, component.height, options.default_component_height)
    offset = thickness / 2 + height / 2
    source = entities.source_component(component.source_component_id)
    label = source.name if source is not None and source.name else MISSING_LABEL
    return Box3D(
        center=Point3(component.center[0], -offset if component.is_bottom else offset, component.center[1]),
        size=Size3(component.width, height, component.height),
        color=options.component_color,
        label=label,
        label_color=BOUNDING_BOX_LABEL_COLOR,
    )
