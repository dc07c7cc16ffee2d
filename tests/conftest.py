"""
Shared test fixtures for scene construction tests.
"""
import sys
from pathlib import Path

import pytest
import trimesh

# Add src/ to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from circuit_scene.loaders import ModelLoaders, clear_all_caches


@pytest.fixture(autouse=True)
def _clear_default_caches():
    clear_all_caches()
    yield
    clear_all_caches()


@pytest.fixture
def cube_mesh():
    """A 2x4x6mm box centred on the origin (Z-up)."""
    return trimesh.creation.box(extents=[2, 4, 6])


@pytest.fixture
def model_files(tmp_path, cube_mesh):
    """The cube exported as STL, OBJ and GLB; maps format -> path."""
    paths = {}
    for ext in ("stl", "obj", "glb"):
        path = tmp_path / f"cube.{ext}"
        cube_mesh.export(str(path))
        paths[ext] = path
    return paths


@pytest.fixture
def loaders():
    """A fresh loader registry so caches never leak between tests."""
    return ModelLoaders()


def make_board(width=40.0, height=40.0, center=(0.0, 0.0), board_id="board1", **extra):
    record = {
        "type": "pcb_board",
        "pcb_board_id": board_id,
        "center": {"x": center[0], "y": center[1]},
        "width": width,
        "height": height,
    }
    record.update(extra)
    return record


def make_component(pcb_id, center=(0.0, 0.0), width=4.0, height=3.0, layer="top",
                   name=None, board_id=None):
    """A pcb_component plus its source_component."""
    source_id = f"src_{pcb_id}"
    pcb = {
        "type": "pcb_component",
        "pcb_component_id": pcb_id,
        "source_component_id": source_id,
        "center": {"x": center[0], "y": center[1]},
        "width": width,
        "height": height,
        "layer": layer,
    }
    if board_id is not None:
        pcb["pcb_board_id"] = board_id
    source = {"type": "source_component", "source_component_id": source_id}
    if name is not None:
        source["name"] = name
    return [source, pcb]


def make_cad(pcb_id, cad_id=None, **fields):
    record = {
        "type": "cad_component",
        "cad_component_id": cad_id or f"cad_{pcb_id}",
        "pcb_component_id": pcb_id,
    }
    record.update(fields)
    return record
