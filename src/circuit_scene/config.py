"""Options controlling scene construction."""
from dataclasses import dataclass, fields
from typing import Any, Dict, List, Mapping, Optional

from circuit_scene.contracts import Color
from circuit_scene.coordinate_transform import CoordinateTransform, get_transform

DEFAULT_BOARD_THICKNESS = 1.6
DEFAULT_COMPONENT_HEIGHT = 2.0
DEFAULT_BOARD_COLOR = "rgba(0,140,0,0.8)"
DEFAULT_COMPONENT_COLOR = "rgba(128,128,128,0.5)"
DEFAULT_COPPER_COLOR = "#C87B4B"
DEFAULT_TEXTURE_RESOLUTION = 1024


@dataclass(frozen=True)
class SceneOptions:
    """Configuration for circuit -> 3D scene conversion."""

    board_color: Color = DEFAULT_BOARD_COLOR
    component_color: Color = DEFAULT_COMPONENT_COLOR
    copper_color: Color = DEFAULT_COPPER_COLOR
    board_thickness: float = DEFAULT_BOARD_THICKNESS
    draw_faux_board: bool = False
    default_component_height: float = DEFAULT_COMPONENT_HEIGHT
    render_board_textures: bool = True
    texture_resolution: int = DEFAULT_TEXTURE_RESOLUTION
    # Overrides every loader's default transform when set
    coordinate_transform: Optional[CoordinateTransform] = None
    show_bounding_boxes: bool = True
    project_base_url: Optional[str] = None
    auth_headers: Optional[Mapping[str, str]] = None

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "SceneOptions":
        """Build options from camelCase option names or snake_case field names."""
        if not data:
            return cls()
        field_names = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        unknown = []
        for key, value in data.items():
            name = OPTION_ALIASES.get(key, key)
            if name not in field_names:
                unknown.append(key)
                continue
            kwargs[name] = value
        if unknown:
            raise ValueError(f"Unknown scene options: {sorted(unknown)}")
        if "coordinate_transform" in kwargs:
            kwargs["coordinate_transform"] = get_transform(kwargs["coordinate_transform"])
        if kwargs.get("auth_headers") is not None:
            kwargs["auth_headers"] = dict(kwargs["auth_headers"])
        return cls(**kwargs)

    def validate(self) -> List[str]:
        """Return a list of problems; empty means the options are usable."""
        errors = []
        if self.board_thickness < 0:
            errors.append(f"board_thickness must be >= 0, got {self.board_thickness}")
        if self.texture_resolution < 0:
            errors.append(f"texture_resolution must be >= 0, got {self.texture_resolution}")
        if self.default_component_height <= 0:
            errors.append(
                f"default_component_height must be > 0, got {self.default_component_height}"
            )
        return errors


OPTION_ALIASES = {
    "boardColor": "board_color",
    "pcbColor": "board_color",
    "componentColor": "component_color",
    "copperColor": "copper_color",
    "boardThickness": "board_thickness",
    "drawFauxBoard": "draw_faux_board",
    "defaultComponentHeight": "default_component_height",
    "renderBoardTextures": "render_board_textures",
    "textureResolution": "texture_resolution",
    "coordinateTransform": "coordinate_transform",
    "showBoundingBoxes": "show_bounding_boxes",
    "projectBaseUrl": "project_base_url",
    "authHeaders": "auth_headers",
}
