"""
Parametric footprint models.

Turns a footprint descriptor such as ``"0603"``, ``"soic8"`` or
``"qfn32_p0.5mm"`` into a simple Z-up package body with separately
colored leads, centered on the origin with the seating plane at z=0.
Dimensions are nominal JEDEC/EIA values, good enough for a preview.
"""
import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np
import trimesh

from circuit_scene.mesh import RGBA, Mesh, group_by_color

BODY_COLOR: RGBA = (40, 40, 40, 1.0)
CAPACITOR_BODY_COLOR: RGBA = (190, 150, 90, 1.0)
LEAD_COLOR: RGBA = (200, 200, 200, 1.0)

# code -> (length, width, height)
CHIP_SIZES: Dict[str, Tuple[float, float, float]] = {
    "0201": (0.6, 0.3, 0.3),
    "0402": (1.0, 0.5, 0.35),
    "0603": (1.6, 0.8, 0.45),
    "0805": (2.0, 1.25, 0.5),
    "1206": (3.2, 1.6, 0.55),
    "1210": (3.2, 2.5, 0.55),
    "2010": (5.0, 2.5, 0.6),
    "2512": (6.4, 3.2, 0.6),
}

_CHIP_RE = re.compile(r"^(res|cap|led|diode)?(\d{4})$")
_FAMILY_RE = re.compile(r"^([a-z]+?)(\d+)$")
_PITCH_RE = re.compile(r"^p(\d+(?:\.\d+)?)(?:mm)?$")


@dataclass
class Part:
    extents: Tuple[float, float, float]
    center: Tuple[float, float, float]
    color: RGBA


def _chip(prefix: Optional[str], code: str) -> Optional[List[Part]]:
    size = CHIP_SIZES.get(code)
    if size is None:
        return None
    length, width, height = size
    cap = length * 0.2
    body_color = CAPACITOR_BODY_COLOR if prefix == "cap" else BODY_COLOR
    parts = [Part((length - 2 * cap, width, height), (0.0, 0.0, height / 2), body_color)]
    for sign in (-1, 1):
        x = sign * (length / 2 - cap / 2)
        parts.append(Part((cap, width, height * 1.02), (x, 0.0, height * 0.51), LEAD_COLOR))
    return parts


def _dual_row(pins: int, pitch: float, body_width: float, body_height: float,
              span: float, lead_width: float, standoff: float = 0.1) -> Optional[List[Part]]:
    """Gull-wing leads on two opposite sides (SOIC, TSSOP)."""
    if pins < 2 or pins % 2:
        return None
    per_side = pins // 2
    body_length = per_side * pitch + 0.6
    parts = [Part((body_width, body_length, body_height),
                  (0.0, 0.0, standoff + body_height / 2), BODY_COLOR)]
    lead_length = (span - body_width) / 2
    for i in range(per_side):
        y = (per_side - 1) * pitch / 2 - i * pitch
        for sign in (-1, 1):
            x = sign * (body_width / 2 + lead_length / 2)
            parts.append(Part((lead_length, lead_width, 0.2), (x, y, 0.1), LEAD_COLOR))
    return parts


def _dip(pins: int, pitch: float = 2.54) -> Optional[List[Part]]:
    if pins < 2 or pins % 2:
        return None
    per_side = pins // 2
    row_spacing = 7.62
    body_length = per_side * pitch
    parts = [Part((6.35, body_length, 3.3), (0.0, 0.0, 0.5 + 3.3 / 2), BODY_COLOR)]
    for i in range(per_side):
        y = (per_side - 1) * pitch / 2 - i * pitch
        for sign in (-1, 1):
            parts.append(Part((0.5, 0.5, 3.5), (sign * row_spacing / 2, y, -1.25), LEAD_COLOR))
    return parts


def _quad(pins: int, pitch: float, body_height: float, lead_length: float,
          standoff: float, margin: float) -> Optional[List[Part]]:
    """Leads on all four sides (QFN pads when lead_length is short, QFP wings otherwise)."""
    if pins < 4 or pins % 4:
        return None
    per_side = pins // 4
    size = per_side * pitch + margin
    parts = [Part((size, size, body_height), (0.0, 0.0, standoff + body_height / 2), BODY_COLOR)]
    offset = size / 2 + lead_length / 2 - 0.05
    for i in range(per_side):
        t = (per_side - 1) * pitch / 2 - i * pitch
        lead_w = pitch * 0.5
        parts.append(Part((lead_length, lead_w, 0.2), (offset, t, 0.1), LEAD_COLOR))
        parts.append(Part((lead_length, lead_w, 0.2), (-offset, t, 0.1), LEAD_COLOR))
        parts.append(Part((lead_w, lead_length, 0.2), (t, offset, 0.1), LEAD_COLOR))
        parts.append(Part((lead_w, lead_length, 0.2), (t, -offset, 0.1), LEAD_COLOR))
    return parts


def _sot23() -> List[Part]:
    parts = [Part((2.9, 1.3, 1.0), (0.0, 0.0, 0.6), BODY_COLOR)]
    for x, y in ((-0.95, -1.0), (0.95, -1.0), (0.0, 1.0)):
        parts.append(Part((0.4, 0.7, 0.15), (x, y, 0.075), LEAD_COLOR))
    return parts


def _sot223() -> List[Part]:
    parts = [Part((6.5, 3.5, 1.6), (0.0, 0.0, 0.9), BODY_COLOR)]
    for x in (-2.3, 0.0, 2.3):
        parts.append(Part((0.7, 1.6, 0.25), (x, -2.55, 0.125), LEAD_COLOR))
    parts.append(Part((3.0, 1.6, 0.25), (0.0, 2.55, 0.125), LEAD_COLOR))
    return parts


def _to220() -> List[Part]:
    parts = [
        Part((10.0, 4.5, 9.0), (0.0, 0.0, 4.5), BODY_COLOR),
        Part((10.0, 1.3, 6.5), (0.0, 1.6, 12.25), LEAD_COLOR),
    ]
    for x in (-2.54, 0.0, 2.54):
        parts.append(Part((0.8, 0.5, 13.0), (x, 0.0, -6.5), LEAD_COLOR))
    return parts


FAMILIES: Dict[str, Callable[[int, Optional[float]], Optional[List[Part]]]] = {
    "soic": lambda n, p: _dual_row(n, p or 1.27, 3.9, 1.5, 6.0, 0.4),
    "tssop": lambda n, p: _dual_row(n, p or 0.65, 4.4, 1.0, 6.4, 0.25),
    "dip": lambda n, p: _dip(n, p or 2.54),
    "qfn": lambda n, p: _quad(n, p or 0.5, 0.9, 0.4, 0.0, 1.0),
    "qfp": lambda n, p: _quad(n, p or 0.5, 1.4, 1.0, 0.1, 1.5),
}

FIXED_PACKAGES: Dict[str, Callable[[], List[Part]]] = {
    "sot23": _sot23,
    "sot223": _sot223,
    "to220": _to220,
}


def parse_footprint(footprint: str) -> Optional[List[Part]]:
    """Package parts for *footprint*, or None if it is not recognised."""
    tokens = footprint.strip().lower().split("_")
    if not tokens or not tokens[0]:
        return None
    head = tokens[0]

    if head in FIXED_PACKAGES:
        return FIXED_PACKAGES[head]()

    chip = _CHIP_RE.match(head)
    if chip:
        return _chip(chip.group(1), chip.group(2))

    family = _FAMILY_RE.match(head)
    if not family or family.group(1) not in FAMILIES:
        return None
    pitch = None
    for token in tokens[1:]:
        m = _PITCH_RE.match(token)
        if m:
            pitch = float(m.group(1))
    return FAMILIES[family.group(1)](int(family.group(2)), pitch)


def generate_footprint_model(footprint: str) -> Optional[Mesh]:
    """Z-up mesh for *footprint*, or None for unrecognised descriptors."""
    parts = parse_footprint(footprint)
    if not parts:
        return None

    triangles = []
    normals = []
    colors: List[RGBA] = []
    for part in parts:
        box = trimesh.creation.box(
            extents=part.extents,
            transform=trimesh.transformations.translation_matrix(part.center),
        )
        triangles.append(box.vertices[box.faces])
        normals.append(box.face_normals)
        colors.extend([part.color] * len(box.faces))
    return group_by_color(np.concatenate(triangles), np.concatenate(normals), colors)
