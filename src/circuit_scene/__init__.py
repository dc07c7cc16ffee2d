"""Public API for circuit -> 3D scene conversion."""

from circuit_scene.camera import CameraFit, get_best_camera_position
from circuit_scene.config import SceneOptions
from circuit_scene.contracts import (
    BoardTextures, BoundingBox, Box3D, Camera3D, Light3D, Point3, Scene3D, Size3,
)
from circuit_scene.converter import (
    BoardTextureRenderer,
    convert_circuit_json_to_3d,
    convert_circuit_json_to_3d_sync,
)
from circuit_scene.coordinate_transform import COORDINATE_TRANSFORMS, CoordinateTransform
from circuit_scene.errors import (
    GeometryError, KernelInitError, ParseError, ResourceFetchError, SceneError,
)
from circuit_scene.loaders import (
    ModelLoaders,
    clear_all_caches,
    clear_footprint_cache,
    clear_glb_cache,
    clear_gltf_cache,
    clear_obj_cache,
    clear_step_cache,
    clear_stl_cache,
    get_default_loaders,
)
from circuit_scene.mesh import Material, Mesh

__all__ = [
    "BoardTextureRenderer",
    "BoardTextures",
    "BoundingBox",
    "Box3D",
    "COORDINATE_TRANSFORMS",
    "Camera3D",
    "CameraFit",
    "CoordinateTransform",
    "GeometryError",
    "KernelInitError",
    "Light3D",
    "Material",
    "Mesh",
    "ModelLoaders",
    "ParseError",
    "Point3",
    "ResourceFetchError",
    "Scene3D",
    "SceneError",
    "SceneOptions",
    "Size3",
    "clear_all_caches",
    "clear_footprint_cache",
    "clear_glb_cache",
    "clear_gltf_cache",
    "clear_obj_cache",
    "clear_step_cache",
    "clear_stl_cache",
    "convert_circuit_json_to_3d",
    "convert_circuit_json_to_3d_sync",
    "get_best_camera_position",
    "get_default_loaders",
]
