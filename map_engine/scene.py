"""Scene description for the 3D neighborhood.

The browser draws whatever ``build_scene`` returns: a ground plane, one box
per building, ambient and directional light, a camera and orbit controls
with clamped zoom, pan and tilt. Clicking a box raises the payload from
``building_info``; hovering swaps to ``HOVER_COLOR``.
"""

from __future__ import annotations

import math
from typing import Dict, Sequence

from .config import GeometrySettings
from .geometry import Building

HOVER_COLOR = "#ff6b6b"
GROUND_COLOR = "#e0e0e0"
BORDER_COLOR = "#000000"
MIN_GROUND = 20.0


def format_currency(amount: float) -> str:
    return f"${amount:,.2f}"


def building_info(building: Building) -> Dict:
    return {
        "id": building.id,
        "name": building.name,
        "type": building.category,
        "description": f"Total Spent: {format_currency(building.total_spent)}",
    }


def _extent(buildings: Sequence[Building], axis: int) -> float:
    if not buildings:
        return 0.0
    return max(abs(b.position[axis]) + b.size[axis] / 2 for b in buildings)


def build_scene(buildings: Sequence[Building], settings: GeometrySettings) -> Dict:
    half_x = _extent(buildings, 0)
    half_z = _extent(buildings, 2)
    margin = settings.spacing * 2
    width = max(MIN_GROUND, 2 * (half_x + margin))
    depth = max(MIN_GROUND, 2 * (half_z + margin))
    tallest = max((b.size[1] for b in buildings), default=settings.base_height)
    reach = max(width, depth)

    return {
        "ground": {
            "width": width,
            "depth": depth,
            "color": GROUND_COLOR,
            "border_color": BORDER_COLOR,
            "border_width": 0.1,
        },
        "lights": [
            {"type": "ambient", "intensity": 0.7},
            {"type": "directional", "intensity": 0.5, "position": [reach / 2, tallest * 2 + 10, reach / 2]},
        ],
        "camera": {
            "fov": 50,
            "position": [0.0, max(tallest * 1.5, reach), reach],
            "target": [0.0, 0.0, 0.0],
        },
        "controls": {
            "enable_pan": True,
            "enable_zoom": True,
            "enable_rotate": True,
            "min_distance": 2.0,
            "max_distance": reach * 4,
            "min_polar_angle": 0.0,
            "max_polar_angle": math.pi / 2.2,
            "pan_bounds": {"x": [-width / 2, width / 2], "z": [-depth / 2, depth / 2]},
        },
        "hover_color": HOVER_COLOR,
        "buildings": [dict(b.to_dict(), info=building_info(b)) for b in buildings],
    }
