"""Spending to geometry transform.

Maps locations with totals to box buildings: extruded height grows linearly
with money spent, position comes from a deterministic layout, color from a
deterministic palette. Boxes sit on the ground plane (y = 0), so the center
of each box is at half its height.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

from .config import LAYOUTS, PALETTES, GeometrySettings

Vector3 = Tuple[float, float, float]

DEFAULT_COLOR = "#808080"

CATEGORY_COLORS: Dict[str, str] = {
    "Restaurant": "#ff7f50",
    "Groceries": "#3cb371",
    "Retail": "#4a90e2",
    "Entertainment": "#ba55d3",
    "Services": "#20b2aa",
    "Transportation": "#ffa500",
    "Gas": "#dc143c",
    "Healthcare": "#ff69b4",
    "Education": "#6a5acd",
    "The Internet": "#00bfff",
    "Other": DEFAULT_COLOR,
}

CYCLE_PALETTE: Sequence[str] = (
    "#ff595e",
    "#ffca3a",
    "#8ac926",
    "#1982c4",
    "#6a4c93",
    "#ff924c",
    "#52a675",
    "#4267ac",
)


@dataclass
class Building:
    id: str
    name: str
    category: str
    total_spent: float
    position: Vector3
    size: Vector3
    color: str

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "total_spent": self.total_spent,
            "position": list(self.position),
            "size": list(self.size),
            "color": self.color,
        }


def building_height(total_spent: float, settings: GeometrySettings) -> float:
    # Refunds never shrink a building below the base height.
    return settings.base_height + max(float(total_spent), 0.0) * settings.height_per_dollar


def grid_position(index: int, count: int, spacing: float) -> Tuple[float, float]:
    """(x, z) of ``index`` in a square-ish grid centered on the origin."""
    cols = max(1, math.ceil(math.sqrt(count)))
    rows = max(1, math.ceil(count / cols))
    row, col = divmod(index, cols)
    x = (col - (cols - 1) / 2) * spacing
    z = (row - (rows - 1) / 2) * spacing
    return x, z


def row_position(index: int, count: int, spacing: float) -> Tuple[float, float]:
    """(x, z) of ``index`` in one row centered on x = 0."""
    return (index - (count - 1) / 2) * spacing, 0.0


def color_for(category: str, index: int, palette: str) -> str:
    if palette == "cycle":
        return CYCLE_PALETTE[index % len(CYCLE_PALETTE)]
    return CATEGORY_COLORS.get(category, DEFAULT_COLOR)


def build_buildings(locations: Sequence, settings: GeometrySettings) -> List[Building]:
    """Turn ``LocationWithTotal``-like objects into buildings, preserving order."""
    if settings.layout not in LAYOUTS:
        raise ValueError(f"Unknown layout: {settings.layout}")
    if settings.palette not in PALETTES:
        raise ValueError(f"Unknown palette: {settings.palette}")
    place = grid_position if settings.layout == "grid" else row_position
    count = len(locations)
    buildings: List[Building] = []
    for index, loc in enumerate(locations):
        height = building_height(loc.total_spent, settings)
        x, z = place(index, count, settings.spacing)
        buildings.append(
            Building(
                id=loc.id,
                name=loc.name,
                category=loc.category,
                total_spent=loc.total_spent,
                position=(x, height / 2, z),
                size=(settings.footprint, height, settings.footprint),
                color=color_for(loc.category, index, settings.palette),
            )
        )
    return buildings
