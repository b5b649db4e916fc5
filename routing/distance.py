"""
Purpose: Distance evaluator used by dispatch and shared-ride grouping.
What it does:
Great-circle (haversine) distance in meters between two coordinates.
Same earth radius as the geolib getDistance the mobile apps use, so numbers line up.
"""

from __future__ import annotations

import math
from typing import Union

from .coordinates import Coordinate, LatLon

EARTH_RADIUS_M = 6378137.0

Point = Union[Coordinate, LatLon]


def _latlon(point: Point) -> LatLon:
    if isinstance(point, Coordinate):
        return point.as_latlon()
    return point


def haversine_meters(origin: Point, destination: Point) -> float:
    """
    Great-circle distance between two points, in meters.
    Accepts Coordinate objects or raw (lat, lon) tuples.
    """
    lat1, lon1 = _latlon(origin)
    lat2, lon2 = _latlon(destination)

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lon2 - lon1)

    a = math.sin(delta_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    # clamp: floating error can push a slightly above 1 for antipodal points
    c = 2 * math.atan2(math.sqrt(min(1.0, a)), math.sqrt(max(0.0, 1 - a)))
    return EARTH_RADIUS_M * c


def haversine_km(origin: Point, destination: Point) -> float:
    return haversine_meters(origin, destination) / 1000.0
