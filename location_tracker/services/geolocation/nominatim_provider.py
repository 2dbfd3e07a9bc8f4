import logging
from typing import Any, Dict, Optional

import requests

from location_tracker.models.location import LocationRecord, Position
from .base import ReverseGeocoder, fetch_json
from .errors import GeocodeError
from .normalizer import normalize_nominatim

logger = logging.getLogger(__name__)


class NominatimProvider(ReverseGeocoder):
    """
    OpenStreetMap Nominatim reverse-geocoding provider.

    - No API key required.
    - Sends a descriptive User-Agent as required by the Nominatim usage policy.
    - Any failure (network, non-2xx, error payload, empty address) raises
      GeocodeError; the resolver decides whether that is fatal.
    """

    name = "nominatim"
    BASE_URL = "https://nominatim.openstreetmap.org/reverse"

    def __init__(
        self,
        user_agent: str = "LocationTrackerApp/1.0",
        timeout: float = 10.0,
        base_url: Optional[str] = None,
        http: Any = None,
    ):
        self.user_agent = user_agent
        self.timeout = timeout
        self.base_url = base_url or self.BASE_URL
        self.http = http or requests

    def fetch_raw(self, latitude: float, longitude: float) -> Dict[str, Any]:
        params = {
            "format": "json",
            "lat": latitude,
            "lon": longitude,
            "addressdetails": 1,
        }
        headers = {
            "User-Agent": self.user_agent,
        }
        return fetch_json(
            self.http,
            self.base_url,
            provider=self.name,
            timeout=self.timeout,
            params=params,
            headers=headers,
            error_cls=GeocodeError,
            timeout_cls=GeocodeError,
        )

    def geocode(self, position: Position) -> LocationRecord:
        raw = self.fetch_raw(position.latitude, position.longitude)
        record = normalize_nominatim(raw, position, provider=self.name)
        logger.info(f"Geocoding result: {record.address}")
        return record
