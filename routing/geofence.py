#Purpose: Zone geofencing for metered/zone-priced taxi trips.
#Decides which taxi zone (if any) a coordinate falls in.
#Typical responsibilities:
#Point-in-polygon test on a zone boundary (lat, lon ring)
#Resolve pickup/dropoff zones for zone-to-zone pricing
#Output: the zone a point belongs to, or None.

from dataclasses import dataclass, field #for simple data structures
from typing import List, Optional, Sequence, Tuple #for type annotations

from .coordinates import Coordinate, LatLon


@dataclass(frozen=True) #immutable zone definition (reference data)
class TaxiZone:
    """
    A priced taxi zone.
    boundary is a closed or open ring of (lat, lon) vertices.
    """
    id: str
    name: str
    base_price: float
    boundary: Tuple[LatLon, ...] = field(default_factory=tuple)

    def contains(self, point: Coordinate) -> bool:
        return point_in_polygon(point.as_latlon(), self.boundary)


def point_in_polygon(point: LatLon, polygon: Sequence[LatLon]) -> bool:
    """
    Ray casting test. Points exactly on an edge may land either side,
    which is fine for pricing zones.
    """
    if len(polygon) < 3:
        return False

    lat, lon = point
    inside = False
    j = len(polygon) - 1
    for i in range(len(polygon)):
        lat_i, lon_i = polygon[i]
        lat_j, lon_j = polygon[j]
        crosses = (lon_i > lon) != (lon_j > lon)
        if crosses:
            lat_at_lon = (lat_j - lat_i) * (lon - lon_i) / (lon_j - lon_i) + lat_i
            if lat < lat_at_lon:
                inside = not inside
        j = i
    return inside


def locate_zone(point: Coordinate, zones: List[TaxiZone]) -> Optional[TaxiZone]:
    """
    Returns the zone containing the point.
    Overlapping zones: the last matching zone in the list wins.
    """
    found = None
    for zone in zones:
        if not zone.boundary:
            continue #skip zones with no boundary configured
        if zone.contains(point):
            found = zone
    return found
