"""
Abstract mesh loader interface.

Every loader resolves the model reference, memoises by
``(resolved URL, transform)``, fetches the bytes with the caller's auth
headers, decodes them, and re-expresses the result in canonical space.
Subclasses implement ``decode``; trimesh-backed formats subclass
``TrimeshLoader`` and only implement ``parse``.
"""
import asyncio
import io
import json
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Mapping, Optional, Tuple
from urllib.parse import urljoin

import logging
import trimesh

from circuit_scene.cache import SingleFlightCache
from circuit_scene.coordinate_transform import CoordinateTransform, transform_mesh
from circuit_scene.errors import ParseError, ResourceFetchError
from circuit_scene.fetch import fetch_bytes, fetch_bytes_async
from circuit_scene.mesh import Mesh
from circuit_scene.url_resolution import resolve_model_url

logger = logging.getLogger(__name__)

AuthHeaders = Mapping[str, str]
Fetcher = Callable[[str, Optional[AuthHeaders]], Awaitable[bytes]]


def transform_cache_key(transform: Optional[CoordinateTransform]) -> str:
    if transform is None:
        return "{}"
    return json.dumps(transform.to_dict(), sort_keys=True)


class MeshLoader(ABC):
    """Base class for one mesh file format."""

    default_transform: Optional[CoordinateTransform] = None

    def __init__(self, fetcher: Optional[Fetcher] = None,
                 cache: Optional[SingleFlightCache] = None):
        self.fetcher = fetcher or fetch_bytes_async
        self.cache = cache if cache is not None else SingleFlightCache(name=f"{self.name} cache")

    @property
    @abstractmethod
    def name(self) -> str:
        """Format identifier (e.g. 'stl', 'glb')."""
        ...

    @abstractmethod
    async def decode(self, data: bytes, url: str,
                     project_base_url: Optional[str] = None,
                     auth_headers: Optional[AuthHeaders] = None) -> Mesh:
        """Decode *data* into a mesh in the file's own axis convention.

        Raises:
            ParseError: if the payload is malformed.
        """
        ...

    async def load(
        self,
        url: str,
        transform: Optional[CoordinateTransform] = None,
        project_base_url: Optional[str] = None,
        auth_headers: Optional[AuthHeaders] = None,
    ) -> Mesh:
        """Load *url* into canonical space, memoised per URL and transform.

        ``transform`` overrides the format's default transform.

        Raises:
            ResourceFetchError: if the file cannot be retrieved.
            ParseError: if the payload is malformed or empty.
        """
        resolved = resolve_model_url(url, project_base_url)
        effective = transform if transform is not None else self.default_transform
        key: Tuple[str, str] = (resolved, transform_cache_key(effective))
        mesh = await self.cache.get_or_load(
            key,
            lambda: self._load_uncached(resolved, effective, project_base_url, auth_headers),
        )
        # callers get their own copy; the cached mesh is never handed out
        return mesh.copy()

    async def _load_uncached(
        self,
        resolved_url: str,
        transform: Optional[CoordinateTransform],
        project_base_url: Optional[str],
        auth_headers: Optional[AuthHeaders],
    ) -> Mesh:
        logger.info("Loading %s model: %s", self.name, resolved_url)
        data = await self.fetcher(resolved_url, auth_headers)
        mesh = await self.decode(data, resolved_url, project_base_url, auth_headers)
        if mesh.triangle_count == 0:
            raise ParseError(f"{self.name.upper()} file has no triangles: {resolved_url}")
        return transform_mesh(mesh, transform)

    def clear_cache(self) -> None:
        self.cache.clear()


class TrimeshLoader(MeshLoader):
    """Loader for a format trimesh parses; parsing runs off the event loop."""

    @abstractmethod
    def parse(self, data: bytes, url: str,
              auth_headers: Optional[AuthHeaders] = None) -> Mesh:
        """
        Raises:
            ParseError: if the payload is malformed.
        """
        ...

    async def decode(self, data, url, project_base_url=None, auth_headers=None):
        return await asyncio.to_thread(self.parse, data, url, auth_headers)


class FetchResolver(trimesh.resolvers.Resolver):
    """trimesh resolver that fetches sibling assets relative to a model URL."""

    def __init__(self, base_url: str, auth_headers: Optional[AuthHeaders] = None):
        self.base_url = base_url
        self.auth_headers = auth_headers

    def get(self, name: str) -> bytes:
        return fetch_bytes(urljoin(self.base_url, name), self.auth_headers)

    def keys(self):
        return iter(())

    def write(self, name, data):
        raise NotImplementedError("FetchResolver is read-only")

    def namespaced(self, namespace: str) -> "FetchResolver":
        base = urljoin(self.base_url, namespace.rstrip("/") + "/")
        return FetchResolver(base, self.auth_headers)


def parse_with_trimesh(data: bytes, file_type: str, **kwargs) -> Mesh:
    """Parse bytes with trimesh's format loaders into a ``Mesh``.

    Raises:
        ParseError: on any parser failure.
        ResourceFetchError: if a resolver could not fetch a sibling asset.
    """
    try:
        loaded = trimesh.load(io.BytesIO(data), file_type=file_type, force="scene", **kwargs)
    except ResourceFetchError:
        raise
    except Exception as e:
        raise ParseError(f"Failed to parse {file_type.upper()} data: {e}") from e
    return Mesh.from_trimesh(loaded)
