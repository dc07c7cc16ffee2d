"""Scenario tests for circuit -> scene conversion."""

import asyncio
import logging
import math

import pytest

from circuit_scene.config import SceneOptions
from circuit_scene.contracts import BoardTextures
from circuit_scene.converter import (
    BoardTextureRenderer,
    convert_circuit_json_to_3d,
    convert_circuit_json_to_3d_sync,
)
from circuit_scene.errors import ResourceFetchError
from circuit_scene.loaders import ModelLoaders, StlLoader
from conftest import make_board, make_cad, make_component

NO_TEXTURES = {"renderBoardTextures": False}


def _convert(records, options=None, loaders=None, texture_renderer=None):
    return asyncio.run(convert_circuit_json_to_3d(
        records, NO_TEXTURES if options is None else options, loaders=loaders or ModelLoaders(),
        texture_renderer=texture_renderer,
    ))


class _Renderer(BoardTextureRenderer):
    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    async def render(self, records, resolution, options):
        self.calls.append((list(records), resolution))
        if self.fail:
            raise RuntimeError("no canvas")
        return BoardTextures(top="top.png", bottom="bottom.png")


class TestSurface:

    def test_board_box(self):
        scene = _convert([make_board(width=30, height=20, center=(5, 7))])
        board = scene.boxes[0]
        assert tuple(board.center) == pytest.approx((5, 0, 7))
        assert tuple(board.size) == pytest.approx((30, 1.6, 20))
        assert board.mesh is not None
        assert board.color == "rgba(0,140,0,0.8)"

    def test_board_thickness_overrides_option(self):
        scene = _convert([make_board(thickness=1.0)])
        assert scene.boxes[0].size.y == pytest.approx(1.0)

    def test_panel_takes_priority(self):
        records = [
            {"type": "pcb_panel", "pcb_panel_id": "p", "center": {"x": 0, "y": 0}, "width": 100, "height": 50},
            make_board(width=40, height=40),
        ]
        scene = _convert(records)
        surfaces = [b for b in scene.boxes if b.mesh is not None and b.label is None]
        assert len(surfaces) == 1
        assert surfaces[0].size.x == pytest.approx(100)
        assert surfaces[0].size.z == pytest.approx(50)

    def test_no_surface_without_faux_board(self):
        scene = _convert(make_component("pcb1", name="R1"))
        assert all(b.label == "R1" for b in scene.boxes)

    def test_faux_board(self):
        records = make_component("pcb1", center=(15, 5), width=2, height=2)
        scene = _convert(records, {"drawFauxBoard": True, "renderBoardTextures": False})
        faux = scene.boxes[0]
        assert tuple(faux.center) == pytest.approx((15, 0, 5))
        assert tuple(faux.size) == pytest.approx((10, 1.6, 10))
        assert faux.mesh is None

    def test_faux_board_grows_with_components(self):
        records = [
            *make_component("a", center=(0, 0), width=2, height=2),
            *make_component("b", center=(20, 0), width=2, height=2),
        ]
        scene = _convert(records, {"drawFauxBoard": True, "renderBoardTextures": False})
        assert scene.boxes[0].size.x == pytest.approx(22 + 4)
        assert scene.boxes[0].size.z == pytest.approx(10)

    def test_faux_board_textures_get_a_synthetic_board(self):
        renderer = _Renderer()
        records = make_component("pcb1", board_id="real_board")
        scene = _convert(records, {"drawFauxBoard": True}, texture_renderer=renderer)
        synthetic = renderer.calls[0][0][-1]
        assert synthetic["type"] == "pcb_board"
        assert synthetic["pcb_board_id"] == "real_board"
        assert scene.boxes[0].texture.top == "top.png"


class TestTextures:

    def test_rendered_textures(self):
        renderer = _Renderer()
        scene = _convert([make_board()], {"textureResolution": 512}, texture_renderer=renderer)
        assert scene.boxes[0].texture == BoardTextures(top="top.png", bottom="bottom.png")
        assert renderer.calls[0][1] == 512

    def test_failure_falls_back_to_flat_color(self, caplog):
        with caplog.at_level(logging.WARNING, logger="circuit_scene.converter"):
            scene = _convert([make_board()], {}, texture_renderer=_Renderer(fail=True))
        board = scene.boxes[0]
        assert board.texture is None
        assert board.color == "rgba(0,140,0,0.8)"
        assert "no canvas" in caplog.text

    def test_disabled_or_zero_resolution_skips_rendering(self):
        renderer = _Renderer()
        _convert([make_board()], {"renderBoardTextures": False}, texture_renderer=renderer)
        _convert([make_board()], {"textureResolution": 0}, texture_renderer=renderer)
        assert renderer.calls == []


class TestBoundingBoxes:

    def test_labelled_box_above_board(self):
        records = [make_board(), *make_component("pcb1", width=4, height=3, name="U1")]
        scene = _convert(records)
        box = scene.boxes[1]
        assert box.label == "U1"
        assert box.label_color == "white"
        assert tuple(box.size) == pytest.approx((4, 2, 3))
        assert box.center.y == pytest.approx(0.8 + 1.0)
        assert box.color == "rgba(128,128,128,0.5)"

    def test_small_component_height(self):
        scene = _convert([make_board(), *make_component("pcb1", width=1, height=0.5)])
        assert scene.boxes[1].size.y == pytest.approx(0.5)

    def test_bottom_layer_is_mirrored(self):
        scene = _convert([make_board(), *make_component("pcb1", layer="bottom")])
        assert scene.boxes[1].center.y == pytest.approx(-(0.8 + 1.0))

    def test_missing_name(self):
        scene = _convert([make_board(), *make_component("pcb1")])
        assert scene.boxes[1].label == "?"

    def test_disabled(self):
        scene = _convert([make_board(), *make_component("pcb1")],
                         {"showBoundingBoxes": False, "renderBoardTextures": False})
        assert len(scene.boxes) == 1


class TestCadComponents:

    def test_stl_model_replaces_bounding_box(self, model_files):
        records = [
            make_board(),
            *make_component("pcb1", center=(3, 4), width=4, height=3),
            make_cad("pcb1", model_stl_url=model_files["stl"].as_uri(), show_as_translucent_model=True),
        ]
        scene = _convert(records)
        assert len(scene.boxes) == 2
        box = scene.boxes[1]
        assert box.mesh is not None
        assert box.color is None
        assert box.label is None
        assert box.mesh_type == "stl"
        assert box.mesh_url == model_files["stl"].as_uri()
        assert box.is_translucent
        assert tuple(box.center) == pytest.approx((3, 0.8 + 1.0, 4))
        assert tuple(box.size) == pytest.approx((4, 2, 3))
        assert box.rotation is None

    def test_explicit_position_and_size(self, model_files):
        records = [
            *make_component("pcb1"),
            make_cad("pcb1", model_stl_url=model_files["stl"].as_uri(),
                     position={"x": 1, "y": 2, "z": 3}, size={"x": 1, "y": 2, "z": 3},
                     model_unit_to_mm_scale_factor=2),
        ]
        box = _convert(records).boxes[0]
        assert tuple(box.center) == pytest.approx((1, 3, 2))
        assert tuple(box.size) == pytest.approx((2, 4, 6))

    def test_scale_factor_rescales_mesh(self, model_files):
        records = [*make_component("pcb1"),
                   make_cad("pcb1", model_stl_url=model_files["stl"].as_uri(), model_unit_to_mm_scale_factor=10)]
        mesh = _convert(records).boxes[0].mesh
        assert mesh.bounding_box.size.x == pytest.approx(20)

    def test_stl_uses_mirrored_default_transform(self, model_files):
        records = [*make_component("pcb1"), make_cad("pcb1", model_stl_url=model_files["stl"].as_uri())]
        mesh = _convert(records).boxes[0].mesh
        size = mesh.bounding_box.size
        assert (size.x, size.y, size.z) == pytest.approx((2, 6, 4))

    def test_bottom_flip_solid_vs_scene_formats(self, model_files):
        records = [
            *make_component("s", layer="bottom"),
            make_cad("s", model_stl_url=model_files["stl"].as_uri()),
            *make_component("g", layer="bottom"),
            make_cad("g", model_glb_url=model_files["glb"].as_uri()),
            *make_component("f", layer="bottom"),
            make_cad("f", footprinter_string="soic8"),
        ]
        stl, glb, footprint = _convert(records).boxes
        assert tuple(stl.rotation) == pytest.approx((math.pi, 0, 0))
        assert tuple(glb.rotation) == pytest.approx((0, 0, math.pi))
        assert tuple(footprint.rotation) == pytest.approx((0, 0, math.pi))
        assert stl.center.y < 0

    def test_explicit_rotation_wins_over_bottom_flip(self, model_files):
        rotation = {"x": 10, "y": 20, "z": 30}
        records = [
            *make_component("s", layer="bottom"),
            make_cad("s", model_stl_url=model_files["stl"].as_uri(), rotation=rotation),
            *make_component("g", layer="bottom"),
            make_cad("g", model_glb_url=model_files["glb"].as_uri(), rotation=rotation),
        ]
        stl, glb = _convert(records).boxes
        assert tuple(stl.rotation) == pytest.approx(tuple(math.radians(a) for a in (10, 20, 30)))
        assert tuple(glb.rotation) == pytest.approx(tuple(math.radians(a) for a in (10, 30, 20)))

    def test_footprint_model(self):
        records = [*make_component("pcb1"), make_cad("pcb1", footprinter_string="0805")]
        box = _convert(records).boxes[0]
        assert box.mesh is not None
        assert box.mesh_url is None

    def test_unknown_footprint_gets_flat_color(self):
        records = [*make_component("pcb1"), make_cad("pcb1", footprinter_string="mystery")]
        box = _convert(records).boxes[0]
        assert box.mesh is None
        assert box.color == "rgba(128,128,128,0.5)"

    def test_unreachable_step_degrades(self, tmp_path, caplog):
        records = [
            make_board(),
            *make_component("pcb1", name="J1"),
            make_cad("pcb1", model_step_url=(tmp_path / "missing.step").as_uri()),
        ]
        with caplog.at_level(logging.WARNING, logger="circuit_scene.converter"):
            scene = _convert(records)
        box = scene.boxes[1]
        assert box.mesh is None
        assert box.color == "rgba(128,128,128,0.5)"
        assert box.mesh_type == "step"
        assert "Failed to load STEP" in caplog.text

    def test_broken_glb_degrades(self, tmp_path):
        path = tmp_path / "broken.glb"
        path.write_bytes(b"not a glb at all")
        records = [*make_component("pcb1"), make_cad("pcb1", model_glb_url=path.as_uri())]
        box = _convert(records).boxes[0]
        assert box.mesh is None
        assert box.color == "rgba(128,128,128,0.5)"

    def test_unreachable_stl_is_fatal(self, tmp_path):
        records = [*make_component("pcb1"), make_cad("pcb1", model_stl_url=(tmp_path / "missing.stl").as_uri())]
        with pytest.raises(ResourceFetchError):
            _convert(records)

    def test_identical_url_fetched_once(self, model_files):
        fetched = []
        stl_bytes = model_files["stl"].read_bytes()

        async def fetcher(url, headers=None):
            fetched.append(url)
            return stl_bytes

        loaders = ModelLoaders(stl=StlLoader(fetcher=fetcher))
        url = "https://models.example/cube.stl"
        records = [
            *make_component("a"), make_cad("a", model_stl_url=url),
            *make_component("b"), make_cad("b", model_stl_url=url),
        ]
        scene = _convert(records, loaders=loaders)
        assert fetched == [url]
        assert all(b.mesh is not None for b in scene.boxes)

    def test_caller_transform_applies_to_every_format(self, model_files):
        records = [*make_component("pcb1"), make_cad("pcb1", model_stl_url=model_files["stl"].as_uri())]
        mesh = _convert(records, {"coordinateTransform": "IDENTITY", "renderBoardTextures": False}).boxes[0].mesh
        size = mesh.bounding_box.size
        assert (size.x, size.y, size.z) == pytest.approx((2, 4, 6))

    def test_auth_headers_are_forwarded(self):
        seen = []

        async def fetcher(url, headers=None):
            seen.append((url, headers))
            return b"solid t\nfacet normal 0 0 1\nouter loop\nvertex 0 0 0\nvertex 1 0 0\nvertex 0 1 0\nendloop\nendfacet\nendsolid t\n"

        loaders = ModelLoaders(stl=StlLoader(fetcher=fetcher))
        records = [*make_component("pcb1"), make_cad("pcb1", model_stl_url="./node_modules/@tsci/me.lib/a.stl")]
        _convert(records, {
            "renderBoardTextures": False,
            "projectBaseUrl": "https://project.example/",
            "authHeaders": {"Authorization": "Bearer t"},
        }, loaders=loaders)
        url, headers = seen[0]
        assert url.startswith("https://project.example/package_files/download?")
        assert headers == {"Authorization": "Bearer t"}


class TestCameraAndLights:

    def test_board_camera(self):
        scene = _convert([make_board(width=30, height=40, center=(10, 20))])
        distance = 50 * 1.5
        camera = scene.camera
        assert tuple(camera.position) == pytest.approx((10 + distance * 0.5, distance * 0.7, 20 + distance * 0.5))
        assert tuple(camera.target) == pytest.approx((10, 0, 20))
        assert camera.far == pytest.approx(distance * 4)
        assert camera.fov == 50

    def test_camera_over_components(self):
        records = [*make_component("a", center=(0, 0), width=0.2, height=0.2)]
        camera = _convert(records).camera
        # footprint floored at 1x1
        distance = math.sqrt(2) * 1.5
        assert camera.far == pytest.approx(distance * 4)

    def test_fallback_camera(self):
        camera = _convert([]).camera
        assert tuple(camera.position) == (30, 30, 25)
        assert camera.far == 120

    def test_lights(self):
        lights = _convert([]).lights
        assert [l.type for l in lights] == ["ambient", "directional"]
        assert tuple(lights[1].direction) == (-1, -1, -1)


class TestOptions:

    def test_invalid_options(self):
        with pytest.raises(ValueError):
            _convert([], {"boardThickness": -1})

    def test_sync_facade(self):
        scene = convert_circuit_json_to_3d_sync([make_board()], SceneOptions(render_board_textures=False),
                                                loaders=ModelLoaders())
        assert len(scene.boxes) == 1
