"""Spending aggregations.

Pure functions that combine spending locations with their summed amounts.
Nothing here is cached; callers recompute on every page load.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import asdict, dataclass
from typing import Dict, Iterable, List, Mapping, Optional


@dataclass
class LocationWithTotal:
    id: str
    user_id: str
    name: str
    category: str
    total_spent: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


def locations_with_totals(locations: Iterable, totals: Mapping[str, float]) -> List[LocationWithTotal]:
    """Attach ``totals[location.id]`` to each location, defaulting to 0."""
    return [
        LocationWithTotal(
            id=loc.id,
            user_id=loc.user_id,
            name=loc.name,
            category=loc.category,
            total_spent=round(float(totals.get(loc.id, 0.0)), 2),
        )
        for loc in locations
    ]


def spending_by_category(locations: Iterable[LocationWithTotal]) -> Dict[str, float]:
    totals: Dict[str, float] = defaultdict(float)
    for loc in locations:
        totals[loc.category or "Other"] += loc.total_spent
    return {k: round(v, 2) for k, v in sorted(totals.items(), key=lambda kv: kv[1], reverse=True)}


def top_location(locations: Iterable[LocationWithTotal]) -> Optional[LocationWithTotal]:
    ranked = sorted(locations, key=lambda loc: loc.total_spent, reverse=True)
    if not ranked or ranked[0].total_spent <= 0:
        return None
    return ranked[0]


def spending_summary(locations: Iterable[LocationWithTotal]) -> Dict:
    locations = list(locations)
    top = top_location(locations)
    return {
        "total_spent": round(sum(loc.total_spent for loc in locations), 2),
        "location_count": len(locations),
        "top_location": top.to_dict() if top else None,
        "by_category": spending_by_category(locations),
    }
