"""Wavefront OBJ loader. Referenced .mtl files are fetched next to the model."""
from circuit_scene.coordinate_transform import COORDINATE_TRANSFORMS
from circuit_scene.loaders.base import FetchResolver, TrimeshLoader, parse_with_trimesh


class ObjLoader(TrimeshLoader):

    default_transform = COORDINATE_TRANSFORMS["OBJ_Z_UP_TO_Y_UP"]

    @property
    def name(self) -> str:
        return "obj"

    def parse(self, data, url, auth_headers=None):
        return parse_with_trimesh(data, "obj", resolver=FetchResolver(url, auth_headers))
