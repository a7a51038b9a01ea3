"""Synthetic GeoJSON shapes placed inside a fixed ~1 degree window."""

from __future__ import annotations

import random
from typing import Any, Dict, List, Optional

from .predicate import Predicate

LON_ORIGIN = -111.0
LAT_ORIGIN = 33.0

Coordinate = List[float]


def jitter_coordinate(rng: random.Random) -> Coordinate:
    """Return ``[lon, lat]`` with lon in (-112, -111] and lat in [33, 34)."""
    return [LON_ORIGIN - rng.random(), LAT_ORIGIN + rng.random()]


def synth_point(rng: random.Random) -> Dict[str, Any]:
    return {"type": "Point", "coordinates": jitter_coordinate(rng)}


def synth_multilinestring(rng: random.Random) -> Dict[str, Any]:
    first = [jitter_coordinate(rng), jitter_coordinate(rng)]
    second = [jitter_coordinate(rng), jitter_coordinate(rng)]
    return {"type": "MultiLineString", "coordinates": [first, second]}


def synth_polygon(rng: random.Random) -> Dict[str, Any]:
    """Closed quadrilateral ring ``[start, p2, p3, p4, start]``.

    ``p2`` shares the start latitude and ``p4`` takes the start longitude with
    ``p3``'s latitude, so opposite corners line up like a skewed rectangle.
    """

    start = jitter_coordinate(rng)
    p2 = [LON_ORIGIN - rng.random(), start[1]]
    p3 = jitter_coordinate(rng)
    p4 = [start[0], p3[1]]
    ring = [start, p2, p3, p4, list(start)]
    return {"type": "Polygon", "coordinates": [ring]}


def geometry_predicate(name: str, geometry: Optional[Dict[str, Any]]) -> Predicate:
    return Predicate(name=name, value_object=geometry)
