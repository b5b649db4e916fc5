"""
Purpose: Coordinate value object shared by every component.
What it does:
A resolved point on the map plus the locality metadata the resolver gave us.
Immutable: whoever references a Coordinate owns its own copy.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

LatLon = Tuple[float, float]


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float
    address: str = ""
    locality: str = ""
    country: str = ""
    place_ref: Optional[str] = None

    @classmethod
    def at(cls, latitude: float, longitude: float, address: str = "") -> Coordinate:
        return cls(latitude=float(latitude), longitude=float(longitude), address=address)

    def as_latlon(self) -> LatLon:
        return (self.latitude, self.longitude)
