"""
glTF loaders (binary GLB and text glTF).

glTF is Y-up by definition, so neither loader forces a default transform;
a caller-supplied transform is still honoured.
"""
from circuit_scene.loaders.base import FetchResolver, TrimeshLoader, parse_with_trimesh


class GlbLoader(TrimeshLoader):

    @property
    def name(self) -> str:
        return "glb"

    def parse(self, data, url, auth_headers=None):
        return parse_with_trimesh(data, "glb")


class GltfLoader(TrimeshLoader):
    """Text glTF; external buffers and images resolve relative to the file URL."""

    @property
    def name(self) -> str:
        return "gltf"

    def parse(self, data, url, auth_headers=None):
        return parse_with_trimesh(data, "gltf", resolver=FetchResolver(url, auth_headers))
