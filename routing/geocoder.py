#Purpose: The geocoding "adapter/client" (coordinate resolver).
#Sole responsibility: talk to the forward-geocoding HTTP API and return normalized outputs.
#Encapsulates provider-specific details:
#URL construction and query escaping
#response parsing (center is lon,lat!)
#locality/country extraction from the feature context
#It should not contain dispatch rules or pricing.


from dotenv import load_dotenv
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests

from .coordinates import Coordinate

# Read geocoder settings from environment
# Example in .env:
# GEOCODER_BASE_URL=https://api.mapbox.com
# GEOCODER_ACCESS_TOKEN=pk.xxxx
load_dotenv()
BASE_URL = os.getenv("GEOCODER_BASE_URL", "https://api.mapbox.com")
ACCESS_TOKEN = os.getenv("GEOCODER_ACCESS_TOKEN")

logger = logging.getLogger(__name__)


class GeocoderError(Exception):
    """Raised when the geocoding service fails (transport or bad payload)."""
    pass


@dataclass(frozen=True)
class ResolvedAddress:
    coordinate: Coordinate
    locality: str
    place_ref: Optional[str]


class MapboxGeocoder:
    """
    Geocoder Adapter / Client

    Sole responsibility:
    - Talk to the forward-geocoding endpoint via HTTP
    - Convert the provider (lon, lat) center into an internal Coordinate
    - Return None when nothing matches (not an error)
    """
    def __init__(self, access_token: Optional[str] = None, base_url: Optional[str] = None,
                 timeout: int = 5, http=None):
        self.base_url = (base_url or BASE_URL).rstrip("/")
        self.access_token = access_token or ACCESS_TOKEN
        self.timeout = timeout #seconds to wait for the geocoder before giving up
        self.http = http or requests #anything with a requests-style .get()

        if not self.access_token:
            raise ValueError("Geocoder access token not set. Please set GEOCODER_ACCESS_TOKEN in the .env file.")

    def resolve(self, text: str) -> Optional[ResolvedAddress]:
        """
        Forward-geocode free text into a coordinate plus locality metadata.

        Returns:
            ResolvedAddress for the best match, or None when nothing matched.
        """
        query = (text or "").strip()
        if not query:
            return None

        url = f"{self.base_url}/geocoding/v5/mapbox.places/{quote(query)}.json"
        try:
            response = self.http.get(
                url,
                params={
                    "access_token": self.access_token,
                    "limit": 1,
                },
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise GeocoderError(f"Geocoder request failed: {exc}") from exc

        if response.status_code != 200:
            raise GeocoderError(f"Geocoder error: HTTP {response.status_code}")

        data = response.json()
        features = data.get("features") or []
        if not features:
            logger.info("No geocoding match for %r", query)
            return None

        return self._parse_feature(features[0])

    def _parse_feature(self, feature: Dict[str, Any]) -> ResolvedAddress:
        center = feature.get("center")
        if not center or len(center) < 2:
            raise GeocoderError("Geocoder feature has no center")

        context: List[Dict[str, Any]] = feature.get("context") or []
        locality = _context_text(context, "place")
        country = _context_text(context, "country")

        #center is [lon, lat]
        coordinate = Coordinate(
            latitude=float(center[1]),
            longitude=float(center[0]),
            address=feature.get("place_name", ""),
            locality=locality,
            country=country,
            place_ref=feature.get("id"),
        )
        return ResolvedAddress(coordinate=coordinate, locality=locality, place_ref=feature.get("id"))


def _context_text(context: List[Dict[str, Any]], kind: str) -> str:
    for entry in context:
        if kind in str(entry.get("id", "")):
            return entry.get("text", "")
    return ""
