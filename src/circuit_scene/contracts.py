"""Scene contracts shared by the composer, loaders and camera helpers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, List, NamedTuple, Optional, Tuple, Union

if TYPE_CHECKING:
    from circuit_scene.mesh import Mesh

Color = Union[str, Tuple[float, float, float, float]]


class Point3(NamedTuple):
    x: float
    y: float
    z: float


class Size3(NamedTuple):
    x: float
    y: float
    z: float


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned bounds. Empty input yields non-finite extents."""

    min: Point3
    max: Point3

    @property
    def size(self) -> Size3:
        return Size3(
            self.max.x - self.min.x,
            self.max.y - self.min.y,
            self.max.z - self.min.z,
        )

    @property
    def center(self) -> Point3:
        return Point3(
            (self.min.x + self.max.x) / 2,
            (self.min.y + self.max.y) / 2,
            (self.min.z + self.max.z) / 2,
        )


@dataclass
class BoardTextures:
    """Top/bottom board images produced by the texture collaborator."""

    top: Any
    bottom: Any


@dataclass
class Box3D:
    """One placed renderable primitive."""

    center: Point3
    size: Size3
    mesh: Optional["Mesh"] = None
    mesh_url: Optional[str] = None
    mesh_type: Optional[str] = None
    color: Optional[Color] = None
    texture: Optional[BoardTextures] = None
    rotation: Optional[Point3] = None  # radians
    label: Optional[str] = None
    label_color: Optional[Color] = None
    is_translucent: bool = False


@dataclass
class Camera3D:
    position: Point3
    target: Point3
    up: Point3 = Point3(0.0, 1.0, 0.0)
    fov: float = 50.0
    near: float = 0.1
    far: float = 120.0


@dataclass
class Light3D:
    type: str  # "ambient" | "directional"
    color: Color = "white"
    intensity: float = 0.5
    direction: Optional[Point3] = None


@dataclass
class Scene3D:
    """Terminal artifact handed to the serializer."""

    boxes: List[Box3D]
    camera: Camera3D
    lights: List[Light3D] = field(default_factory=list)
