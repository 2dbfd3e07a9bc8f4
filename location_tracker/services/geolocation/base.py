from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from threading import Event
from typing import Any, Dict, List, Optional, Type
import logging

import requests

from location_tracker.models.location import LocationRecord, Position, PositionOptions
from .errors import ProviderError, ProviderTimeout
from .normalizer import normalize_ip_reply

logger = logging.getLogger(__name__)


@dataclass
class ChainOutcome:
    """Record produced by an IP lookup, plus the provider failures absorbed on the way."""
    record: LocationRecord
    service_used: Optional[str]
    failures: List[ProviderError] = field(default_factory=list)


def fetch_json(
    http: Any,
    url: str,
    *,
    provider: str,
    timeout: Optional[float],
    params: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    error_cls: Type[ProviderError] = ProviderError,
    timeout_cls: Type[ProviderError] = ProviderTimeout,
) -> Dict[str, Any]:
    """
    GET a JSON object from a provider.

    Raises timeout_cls when the timeout expires and error_cls for any other
    transport failure, non-2xx status or a body that is not a JSON object.
    timeout=None leaves the network default in place.
    """
    try:
        resp = http.get(url, params=params, headers=headers, timeout=timeout)
    except requests.Timeout as e:
        raise timeout_cls(provider, f"timed out after {timeout}s") from e
    except requests.RequestException as e:
        raise error_cls(provider, f"request failed: {e}") from e

    if not 200 <= resp.status_code < 300:
        raise error_cls(provider, f"HTTP {resp.status_code}")

    try:
        payload = resp.json()
    except ValueError as e:
        raise error_cls(provider, "reply is not valid JSON") from e
    if not isinstance(payload, dict):
        raise error_cls(provider, "reply is not a JSON object")
    return payload


class IPGeolocationProvider(ABC):
    """
    One IP geolocation service.

    Contract:
    - fetch_raw(ip) returns the provider's JSON reply or raises ProviderError.
      ip=None lets the provider infer the caller's address.
    - is_success(raw) is the provider-specific success predicate.
    - normalize(raw) maps a successful reply onto LocationRecord.
    """

    name: str = ""

    def __init__(self, timeout: Optional[float] = 5.0, http: Any = None):
        self.timeout = timeout
        self.http = http or requests

    @abstractmethod
    def build_url(self, ip: Optional[str]) -> str:
        raise NotImplementedError

    @abstractmethod
    def is_success(self, raw: Dict[str, Any]) -> bool:
        raise NotImplementedError

    def normalize(self, raw: Dict[str, Any]) -> LocationRecord:
        return normalize_ip_reply(self.name, raw)

    def failure_reason(self, raw: Dict[str, Any]) -> str:
        return str(raw.get("reason") or raw.get("message") or "provider reported failure")

    def fetch_raw(self, ip: Optional[str] = None) -> Dict[str, Any]:
        return fetch_json(self.http, self.build_url(ip), provider=self.name, timeout=self.timeout)


class ReverseGeocoder(ABC):
    """
    Reverse geocoder turning a device position into a GPS-sourced record.

    Implementations raise GeocodeError on any failure, including a reply
    that is structurally valid but carries no address.
    """

    name: str = ""

    @abstractmethod
    def geocode(self, position: Position) -> LocationRecord:
        raise NotImplementedError


class PositionSource(ABC):
    """Device location capability (browser geolocation, platform service, ...)."""

    @abstractmethod
    def get_current_position(self, options: PositionOptions) -> Position:
        """Return a position or raise PermissionDenied / PositionUnavailable / PositionTimeout."""
        raise NotImplementedError


class LocationCapability(ABC):
    """
    One way of resolving an IP-based location.

    The resolver holds an ordered list of these; BackendUnreachable from
    one capability means the next one is tried.
    """

    name: str = ""

    @abstractmethod
    def resolve(self, ip: Optional[str] = None, cancel_event: Optional[Event] = None) -> ChainOutcome:
        raise NotImplementedError
