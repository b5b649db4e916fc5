#Marks routing as a package.
#Re-exports clean public APIs (Coordinate, haversine distance, geocoder, zones)
#so other modules import from routing without knowing internal file names.
#No business logic.

from .coordinates import Coordinate, LatLon
from .distance import haversine_meters, haversine_km
from .geofence import TaxiZone, locate_zone, point_in_polygon
from .geocoder import MapboxGeocoder, ResolvedAddress, GeocoderError

__all__ = [
    "Coordinate",
    "LatLon",
    "haversine_meters",
    "haversine_km",
    "TaxiZone",
    "locate_zone",
    "point_in_polygon",
    "MapboxGeocoder",
    "ResolvedAddress",
    "GeocoderError",
]
