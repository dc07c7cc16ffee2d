"""
Exception hierarchy for scene construction.

Loaders and the geometry builder raise these; the scene composer decides
which of them degrade a single component and which abort the conversion.
"""
from typing import List, Optional


class SceneError(Exception):
    """Base exception for scene construction errors."""
    pass


class ResourceFetchError(SceneError):
    """A mesh file or kernel binary could not be retrieved."""

    def __init__(self, message: str, url: str = "",
                 status_code: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class ParseError(SceneError):
    """Payload is malformed for its declared format."""
    pass


class GeometryError(SceneError):
    """Invalid input to the solid-geometry builder."""
    pass


class KernelInitError(SceneError):
    """Every source for the CAD-exchange kernel failed."""

    def __init__(self, message: str, failures: Optional[List[str]] = None):
        super().__init__(message)
        self.failures = list(failures or [])
