"""
STEP loader.

STEP files are tessellated by a CAD-exchange kernel. Two runtimes are
supported:

- ``native`` (default): OpenCASCADE through ``cascadio``, reached via
  trimesh's STEP importer.
- ``wasm``: an OCCT WebAssembly build fetched from an ordered list of
  candidate locations and instantiated by a caller-supplied factory.

Initialised kernels are memoised per project base URL and auth header
set, single-flight, and evicted on failure so the next call retries.
"""
import asyncio
import importlib
import io
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, List, Mapping, Optional, Sequence, Tuple

import logging
import numpy as np
import trimesh

from circuit_scene.cache import SingleFlightCache
from circuit_scene.coordinate_transform import (
    COORDINATE_TRANSFORMS, CoordinateTransform, transform_mesh,
)
from circuit_scene.errors import KernelInitError, ParseError
from circuit_scene.fallback import Attempt, first_success
from circuit_scene.fetch import fetch_bytes_async
from circuit_scene.loaders.base import AuthHeaders, Fetcher, MeshLoader
from circuit_scene.mesh import (
    RGBA, Mesh, compute_face_normals, face_colors, group_by_color,
)
from circuit_scene.url_resolution import resolve_model_url

logger = logging.getLogger(__name__)

OCCT_WASM_MODULE_PATH = "node_modules/occt-import-js/dist/occt-import-js.wasm"
OCCT_WASM_CDN_URLS = (
    "https://cdn.jsdelivr.net/npm/occt-import-js@0.0.23/dist/occt-import-js.wasm",
    "https://unpkg.com/occt-import-js@0.0.23/dist/occt-import-js.wasm",
)
WASM_MAGIC = b"\x00asm"

RUNTIME_NATIVE = "native"
RUNTIME_WASM = "wasm"


# =============================================================================
# Kernel contract
# =============================================================================

@dataclass(frozen=True)
class KernelFaceRange:
    """Inclusive triangle index range tagged with an optional 0-1 RGB color."""
    first: int
    last: int
    color: Optional[Tuple[float, float, float]] = None


@dataclass
class KernelSubMesh:
    """One tessellated body as returned by a STEP kernel.

    ``positions`` and ``normals`` are flat xyz arrays, ``indices`` a flat
    triangle index array. ``color`` is 0-1 RGB.
    """
    positions: Sequence[float]
    indices: Sequence[int]
    normals: Optional[Sequence[float]] = None
    color: Optional[Tuple[float, float, float]] = None
    face_ranges: List[KernelFaceRange] = field(default_factory=list)


class StepKernel(ABC):
    """Tessellates STEP data in millimetres."""

    @abstractmethod
    def read_step(self, data: bytes) -> List[KernelSubMesh]:
        """
        Raises:
            ParseError: if the kernel rejects the file.
        """
        ...


class CascadeStepKernel(StepKernel):
    """OpenCASCADE via cascadio, through trimesh's STEP importer."""

    @classmethod
    def create(cls) -> "CascadeStepKernel":
        try:
            importlib.import_module("cascadio")
        except ImportError as e:
            raise KernelInitError(f"Native STEP kernel unavailable: {e}", failures=[str(e)]) from e
        return cls()

    def read_step(self, data: bytes) -> List[KernelSubMesh]:
        try:
            scene = trimesh.load(io.BytesIO(data), file_type="step", force="scene")
        except Exception as e:
            raise ParseError(f"Failed to parse STEP data: {e}") from e

        units = getattr(scene, "units", None)
        if units and units not in ("mm", "millimeter", "millimeters"):
            scene = scene.convert_units("millimeters")

        sub_meshes = []
        for geom in scene.dump():
            if not isinstance(geom, trimesh.Trimesh) or len(geom.faces) == 0:
                continue
            sub_meshes.append(KernelSubMesh(
                positions=geom.vertices.ravel(),
                indices=geom.faces.ravel(),
                normals=geom.vertex_normals.ravel(),
                face_ranges=_color_runs(face_colors(geom)),
            ))
        return sub_meshes


def _color_runs(colors: Optional[np.ndarray]) -> List[KernelFaceRange]:
    """Collapse per-face uint8 colors into runs of identical color."""
    if colors is None or len(colors) == 0:
        return []
    ranges = []
    start = 0
    for i in range(1, len(colors) + 1):
        if i == len(colors) or not np.array_equal(colors[i, :3], colors[start, :3]):
            rgb = tuple(float(c) / 255.0 for c in colors[start, :3])
            ranges.append(KernelFaceRange(first=start, last=i - 1, color=rgb))
            start = i
    return ranges


# =============================================================================
# Kernel binary candidates
# =============================================================================

@dataclass(frozen=True)
class WasmCandidate:
    url: str
    label: str
    use_auth_headers: bool = False


def get_wasm_candidates(project_base_url: Optional[str] = None,
                        origin: Optional[str] = None) -> List[WasmCandidate]:
    """Kernel binary locations in priority order, de-duplicated by URL.

    Project base URL (with auth), then the host origin (without auth),
    then the public CDNs.
    """
    candidates = []
    if project_base_url:
        candidates.append(WasmCandidate(
            url=resolve_model_url(OCCT_WASM_MODULE_PATH, project_base_url),
            label="project base URL",
            use_auth_headers=True,
        ))
    if origin:
        candidates.append(WasmCandidate(
            url=origin.rstrip("/") + "/" + OCCT_WASM_MODULE_PATH,
            label="origin",
        ))
    for i, url in enumerate(OCCT_WASM_CDN_URLS):
        candidates.append(WasmCandidate(url=url, label=f"CDN {i + 1}"))

    seen = set()
    unique = []
    for candidate in candidates:
        if candidate.url in seen:
            continue
        seen.add(candidate.url)
        unique.append(candidate)
    return unique


def is_valid_wasm_binary(data: bytes) -> bool:
    return len(data) >= 4 and data[:4] == WASM_MAGIC


def auth_headers_signature(headers: Optional[AuthHeaders]) -> str:
    """Order-independent signature of a header set."""
    if not headers:
        return ""
    return "|".join(sorted(f"{k}:{v}" for k, v in headers.items()))


def _kernel_init_error(failures: List[Attempt]) -> KernelInitError:
    messages = [f"{a.candidate.label} ({a.candidate.url}) failed: {a.error}" for a in failures]
    return KernelInitError(
        "Failed to load the STEP kernel from any source. " + "; ".join(messages),
        failures=messages,
    )


class StepKernelProvider:
    """Initialises and memoises STEP kernels.

    ``wasm_factory`` turns a validated kernel binary into a ``StepKernel``
    and is required for the ``wasm`` runtime.
    """

    def __init__(
        self,
        runtime: str = RUNTIME_NATIVE,
        wasm_factory: Optional[Callable[[bytes], StepKernel]] = None,
        native_factory: Callable[[], StepKernel] = CascadeStepKernel.create,
        origin: Optional[str] = None,
        fetcher: Optional[Fetcher] = None,
    ):
        if runtime not in (RUNTIME_NATIVE, RUNTIME_WASM):
            raise ValueError(f"Unknown STEP kernel runtime: {runtime!r}")
        if runtime == RUNTIME_WASM and wasm_factory is None:
            raise ValueError("The wasm runtime needs a wasm_factory")
        self.runtime = runtime
        self.wasm_factory = wasm_factory
        self.native_factory = native_factory
        self.origin = origin
        self.fetcher = fetcher or fetch_bytes_async
        self.cache: SingleFlightCache = SingleFlightCache(name="step kernel cache")

    def cache_key(self, project_base_url: Optional[str] = None,
                  auth_headers: Optional[AuthHeaders] = None) -> str:
        if self.runtime == RUNTIME_NATIVE:
            return RUNTIME_NATIVE
        base = project_base_url or self.origin or "no-project-base-url"
        return f"{base}::{auth_headers_signature(auth_headers)}"

    async def get_kernel(self, project_base_url: Optional[str] = None,
                         auth_headers: Optional[AuthHeaders] = None) -> StepKernel:
        """
        Raises:
            KernelInitError: if every kernel source failed.
        """
        key = self.cache_key(project_base_url, auth_headers)
        return await self.cache.get_or_load(
            key, lambda: self._initialize(project_base_url, auth_headers)
        )

    async def _initialize(self, project_base_url, auth_headers) -> StepKernel:
        if self.runtime == RUNTIME_NATIVE:
            logger.info("Initialising native STEP kernel")
            return await asyncio.to_thread(self.native_factory)

        async def attempt(candidate: WasmCandidate) -> StepKernel:
            logger.info("Fetching STEP kernel from %s: %s", candidate.label, candidate.url)
            headers = auth_headers if candidate.use_auth_headers else None
            try:
                binary = await self.fetcher(candidate.url, headers)
                if not is_valid_wasm_binary(binary):
                    raise ParseError("response is not a WebAssembly binary")
                return self.wasm_factory(binary)
            except Exception as e:
                logger.warning("STEP kernel from %s failed: %s", candidate.label, e)
                raise

        candidates = get_wasm_candidates(project_base_url, self.origin)
        return await first_success(candidates, attempt, on_exhausted=_kernel_init_error)

    def clear(self) -> None:
        self.cache.clear()


# =============================================================================
# Result conversion
# =============================================================================

def _rgb_to_rgba(color: Tuple[float, float, float]) -> RGBA:
    r, g, b = (int(round(float(c) * 255)) for c in color[:3])
    return (r, g, b, 1.0)


def sub_mesh_triangle_colors(sub: KernelSubMesh, triangle_count: int) -> List[Optional[RGBA]]:
    """Per-triangle color: first colored face range containing it, else the body color."""
    fallback = _rgb_to_rgba(sub.color) if sub.color is not None else None
    colors: List[Optional[RGBA]] = [fallback] * triangle_count
    assigned = [False] * triangle_count
    for face_range in sub.face_ranges:
        if face_range.color is None:
            continue
        rgba = _rgb_to_rgba(face_range.color)
        for t in range(max(face_range.first, 0), min(face_range.last, triangle_count - 1) + 1):
            if not assigned[t]:
                colors[t] = rgba
                assigned[t] = True
    return colors


def convert_kernel_result(sub_meshes: Sequence[KernelSubMesh],
                          transform: Optional[CoordinateTransform] = None) -> Mesh:
    """Flatten kernel output into one mesh in canonical space.

    Raises:
        ParseError: if the kernel produced no triangles.
    """
    triangles = []
    normals = []
    colors: List[Optional[RGBA]] = []
    for sub in sub_meshes:
        positions = np.asarray(sub.positions, dtype=np.float64).reshape(-1, 3)
        indices = np.asarray(sub.indices, dtype=np.int64).reshape(-1, 3)
        if len(indices) == 0:
            continue
        tris = positions[indices]
        if sub.normals is not None and len(sub.normals) == positions.size:
            vertex_normals = np.asarray(sub.normals, dtype=np.float64).reshape(-1, 3)
            face_normals = vertex_normals[indices].mean(axis=1)
        else:
            face_normals = compute_face_normals(tris)
        lengths = np.linalg.norm(face_normals, axis=1, keepdims=True)
        lengths[lengths == 0] = 1.0
        triangles.append(tris)
        normals.append(face_normals / lengths)
        colors.extend(sub_mesh_triangle_colors(sub, len(indices)))

    if not triangles:
        raise ParseError("STEP kernel produced no triangles")

    tri_array = np.concatenate(triangles, axis=0)
    normal_array = np.concatenate(normals, axis=0)
    if any(c is not None for c in colors):
        mesh = group_by_color(tri_array, normal_array, colors)
    else:
        mesh = Mesh(triangles=tri_array, normals=normal_array)
    return transform_mesh(mesh, transform)


# =============================================================================
# Loader
# =============================================================================

class StepLoader(MeshLoader):
    """STEP files are Z-up; the default maps them to Y-up."""

    default_transform = COORDINATE_TRANSFORMS["Z_UP_TO_Y_UP"]

    def __init__(self, kernel_provider: Optional[StepKernelProvider] = None,
                 fetcher: Optional[Fetcher] = None,
                 cache: Optional[SingleFlightCache] = None):
        super().__init__(fetcher=fetcher, cache=cache)
        self.kernel_provider = kernel_provider or StepKernelProvider()

    @property
    def name(self) -> str:
        return "step"

    async def decode(self, data, url, project_base_url=None, auth_headers=None):
        # runs after the fetch, so an unreachable file never initialises a kernel
        kernel = await self.kernel_provider.get_kernel(project_base_url, auth_headers)
        sub_meshes = await asyncio.to_thread(kernel.read_step, data)
        return convert_kernel_result(sub_meshes)

    def clear_cache(self) -> None:
        super().clear_cache()
        self.kernel_provider.clear()
