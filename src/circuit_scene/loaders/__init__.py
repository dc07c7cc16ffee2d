"""
Format loaders and the process-wide loader registry.
"""
from dataclasses import dataclass, field
from typing import Optional, Union

from circuit_scene.entities import GeometryKind
from circuit_scene.loaders.base import FetchResolver, MeshLoader, TrimeshLoader, parse_with_trimesh
from circuit_scene.loaders.footprint import FootprintLoader
from circuit_scene.loaders.footprint_models import generate_footprint_model
from circuit_scene.loaders.gltf import GlbLoader, GltfLoader
from circuit_scene.loaders.obj import ObjLoader
from circuit_scene.loaders.step import (
    CascadeStepKernel,
    KernelFaceRange,
    KernelSubMesh,
    StepKernel,
    StepKernelProvider,
    StepLoader,
    WasmCandidate,
    get_wasm_candidates,
    is_valid_wasm_binary,
)
from circuit_scene.loaders.stl import StlLoader


@dataclass
class ModelLoaders:
    """One loader per geometry source kind, each with its own cache."""
    stl: StlLoader = field(default_factory=StlLoader)
    obj: ObjLoader = field(default_factory=ObjLoader)
    glb: GlbLoader = field(default_factory=GlbLoader)
    gltf: GltfLoader = field(default_factory=GltfLoader)
    step: StepLoader = field(default_factory=StepLoader)
    footprint: FootprintLoader = field(default_factory=FootprintLoader)

    def for_kind(self, kind: GeometryKind) -> Union[MeshLoader, FootprintLoader]:
        return getattr(self, kind.value)

    def clear(self) -> None:
        for loader in (self.stl, self.obj, self.glb, self.gltf, self.step, self.footprint):
            loader.clear_cache()


_default_loaders: Optional[ModelLoaders] = None


def get_default_loaders() -> ModelLoaders:
    global _default_loaders
    if _default_loaders is None:
        _default_loaders = ModelLoaders()
    return _default_loaders


def clear_stl_cache() -> None:
    get_default_loaders().stl.clear_cache()


def clear_obj_cache() -> None:
    get_default_loaders().obj.clear_cache()


def clear_glb_cache() -> None:
    get_default_loaders().glb.clear_cache()


def clear_gltf_cache() -> None:
    get_default_loaders().gltf.clear_cache()


def clear_step_cache() -> None:
    """Clears parsed STEP models and initialised kernels."""
    get_default_loaders().step.clear_cache()


def clear_footprint_cache() -> None:
    get_default_loaders().footprint.clear_cache()


def clear_all_caches() -> None:
    get_default_loaders().clear()


__all__ = [
    "CascadeStepKernel",
    "FetchResolver",
    "FootprintLoader",
    "GlbLoader",
    "GltfLoader",
    "KernelFaceRange",
    "KernelSubMesh",
    "MeshLoader",
    "ModelLoaders",
    "ObjLoader",
    "StepKernel",
    "StepKernelProvider",
    "StepLoader",
    "StlLoader",
    "TrimeshLoader",
    "WasmCandidate",
    "clear_all_caches",
    "clear_footprint_cache",
    "clear_glb_cache",
    "clear_gltf_cache",
    "clear_obj_cache",
    "clear_step_cache",
    "clear_stl_cache",
    "generate_footprint_model",
    "get_default_loaders",
    "get_wasm_candidates",
    "is_valid_wasm_binary",
    "parse_with_trimesh",
]
