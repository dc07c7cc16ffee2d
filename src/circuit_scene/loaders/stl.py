"""STL (ASCII and binary) loader."""
from circuit_scene.coordinate_transform import COORDINATE_TRANSFORMS
from circuit_scene.loaders.base import TrimeshLoader, parse_with_trimesh


class StlLoader(TrimeshLoader):
    """STL files are Z-up; the default maps them to Y-up."""

    default_transform = COORDINATE_TRANSFORMS["Z_UP_TO_Y_UP"]

    @property
    def name(self) -> str:
        return "stl"

    def parse(self, data, url, auth_headers=None):
        return parse_with_trimesh(data, "stl")
