"""
Camera placement.

``default_camera`` is the quick diagonal heuristic stored on every scene.
``get_best_camera_position`` solves for the closest camera distance along
a viewing direction at which the whole board fits in a perspective
frustum, for viewers that want a tight framing.
"""
import math
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Sequence, Tuple

import numpy as np

from circuit_scene.contracts import Box3D, Camera3D, Point3
from circuit_scene.entities import resolve_entities

DEFAULT_CAMERA_DIRECTION = (-0.7, 1.2, -0.8)
DEFAULT_FOV_DEG = 50.0
DEFAULT_ASPECT_RATIO = 4 / 3
MIN_CAMERA_DISTANCE = 1.0
FOV_EPSILON_RAD = 0.01

FALLBACK_CAMERA_POSITION = (30.0, 30.0, 25.0)
FALLBACK_CAMERA_FAR = 120.0


@dataclass(frozen=True)
class CameraFit:
    cam_pos: Tuple[float, float, float]
    look_at: Tuple[float, float, float]
    fov: float  # vertical, degrees


# =============================================================================
# Default scene camera
# =============================================================================

def _diagonal_camera(center_x: float, center_z: float, width: float, depth: float) -> Camera3D:
    distance = math.hypot(width, depth) * 1.5
    return Camera3D(
        position=Point3(center_x + distance * 0.5, distance * 0.7, center_z + distance * 0.5),
        target=Point3(center_x, 0.0, center_z),
        up=Point3(0.0, 1.0, 0.0),
        fov=DEFAULT_FOV_DEG,
        near=0.1,
        far=distance * 4,
    )


def default_camera(surface=None, boxes: Sequence[Box3D] = ()) -> Camera3D:
    """Diagonal camera over the board/panel, else over the boxes' XZ footprint."""
    if surface is not None:
        return _diagonal_camera(surface.center[0], surface.center[1], surface.width, surface.height)

    if boxes:
        min_x = min(b.center.x - b.size.x / 2 for b in boxes)
        max_x = max(b.center.x + b.size.x / 2 for b in boxes)
        min_z = min(b.center.z - b.size.z / 2 for b in boxes)
        max_z = max(b.center.z + b.size.z / 2 for b in boxes)
        return _diagonal_camera(
            (min_x + max_x) / 2,
            (min_z + max_z) / 2,
            max(max_x - min_x, 1.0),
            max(max_z - min_z, 1.0),
        )

    return Camera3D(
        position=Point3(*FALLBACK_CAMERA_POSITION),
        target=Point3(0.0, 0.0, 0.0),
        up=Point3(0.0, 1.0, 0.0),
        fov=DEFAULT_FOV_DEG,
        near=0.1,
        far=FALLBACK_CAMERA_FAR,
    )


# =============================================================================
# Frustum fit
# =============================================================================

def _normalize(v: np.ndarray) -> np.ndarray:
    length = np.linalg.norm(v)
    if length == 0:
        return np.array([0.0, 1.0, 0.0])
    return v / length


def vertical_fov_radians(fov: Optional[float] = None,
                         focal_length: Optional[float] = None,
                         sensor_height: Optional[float] = None) -> float:
    """Vertical field of view. A focal length/sensor height pair wins over ``fov``."""
    if focal_length and sensor_height and focal_length > 0 and sensor_height > 0:
        return 2 * math.atan(sensor_height / (2 * focal_length))

    radians = math.radians(DEFAULT_FOV_DEG if fov is None else fov)
    if not math.isfinite(radians) or radians <= 0:
        return math.radians(DEFAULT_FOV_DEG)
    return min(max(radians, FOV_EPSILON_RAD), math.pi - FOV_EPSILON_RAD)


def _required_distance(corners: np.ndarray, direction: np.ndarray, right: np.ndarray,
                       up: np.ndarray, tan_half_h: float, tan_half_v: float) -> float:
    un = corners @ direction
    ur = np.abs(corners @ right)
    uu = np.abs(corners @ up)
    needed = np.maximum(un + ur / tan_half_h, un + uu / tan_half_v)
    return float(max(needed.max(initial=0.0), 0.0))


def get_best_camera_position(
    records: Iterable[Mapping[str, Any]],
    direction: Optional[Sequence[float]] = None,
    fov: Optional[float] = None,
    aspect_ratio: Optional[float] = None,
    focal_length: Optional[float] = None,
    sensor_height: Optional[float] = None,
) -> CameraFit:
    """Closest camera along *direction* that keeps the whole board in view.

    The distance is solved for both a vertical and a horizontal reading of
    ``fov`` and the larger one is used. The result is expressed in the
    X-mirrored space the glTF serializer renders in.
    """
    fov_rad = vertical_fov_radians(fov, focal_length, sensor_height)
    fov_deg = math.degrees(fov_rad)

    surface = resolve_entities(records).surface
    if surface is None or not surface.width or not surface.height:
        return CameraFit(cam_pos=FALLBACK_CAMERA_POSITION, look_at=(0.0, 0.0, 0.0), fov=fov_deg)

    look_x, look_z = surface.center
    cam_dir = _normalize(np.asarray(direction or DEFAULT_CAMERA_DIRECTION, dtype=np.float64))
    forward = -cam_dir
    right = _normalize(np.cross(forward, np.array([0.0, 1.0, 0.0])))
    up = _normalize(np.cross(right, forward))

    if aspect_ratio is None or not math.isfinite(aspect_ratio) or aspect_ratio <= 0:
        aspect_ratio = DEFAULT_ASPECT_RATIO

    tan_half_v = math.tan(fov_rad / 2)
    tan_half_h = tan_half_v * aspect_ratio

    hw, hh = surface.width / 2, surface.height / 2
    corners = np.array([
        [hw, 0.0, hh],
        [hw, 0.0, -hh],
        [-hw, 0.0, hh],
        [-hw, 0.0, -hh],
    ])

    # some viewers read fov as horizontal; solve both and take the safer one
    distance = max(
        _required_distance(corners, cam_dir, right, up, tan_half_h, tan_half_v),
        _required_distance(corners, cam_dir, right, up, tan_half_v, tan_half_v / aspect_ratio),
        MIN_CAMERA_DISTANCE,
    )

    cam_x = look_x + cam_dir[0] * distance
    cam_y = cam_dir[1] * distance
    cam_z = look_z + cam_dir[2] * distance
    return CameraFit(
        cam_pos=(float(-cam_x), float(cam_y), float(cam_z)),
        look_at=(float(-look_x), 0.0, float(look_z)),
        fov=fov_deg,
    )
