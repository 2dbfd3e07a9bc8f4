"""
IP-lookup capabilities and client-side adapters.

A capability is one complete way of answering "where is this IP?":
- ProviderChainCapability runs the provider chain in-process (server side).
- BackendCapability asks the Location Tracker API to run the chain.
- ClientDirectCapability queries ipapi.co straight from the caller's
  environment; it is the last resort when the API cannot be reached.

The resolver walks an ordered list of these and only moves on when a
capability raises BackendUnreachable.
"""

import logging
from threading import Event
from typing import Any, Dict, Optional

import requests
from pydantic import ValidationError

from location_tracker.core.settings import ResolverConfig
from location_tracker.models.location import LocationRecord, LocationSource, Position
from .base import ChainOutcome, LocationCapability, ReverseGeocoder
from .chain import FallbackChain
from .errors import (
    AllProvidersExhausted,
    BackendUnreachable,
    GeocodeError,
    ProviderError,
    ResolutionCancelled,
)
from .ip_providers import IpapiCoProvider

logger = logging.getLogger(__name__)

# Gateway statuses mean a proxy in front of the API could not reach it.
GATEWAY_STATUSES = {502, 504}


class ProviderChainCapability(LocationCapability):
    """Runs the IP provider chain in the current process."""

    name = "provider-chain"

    def __init__(self, chain: FallbackChain):
        self.chain = chain

    def resolve(self, ip: Optional[str] = None, cancel_event: Optional[Event] = None) -> ChainOutcome:
        return self.chain.run(ip, cancel_event=cancel_event)


class BackendCapability(LocationCapability):
    """
    Backend-mediated IP lookup.

    Mirrors what a browser client does: discover the public IP (ipify)
    when none is given, then call GET {api}/location/ip/{ip}. Failing to
    reach either endpoint raises BackendUnreachable; a 503 from the API
    means the server-side chain was exhausted.
    """

    name = "backend"

    def __init__(self, config: ResolverConfig, http: Any = None):
        self.config = config
        self.http = http or requests

    def _get(self, url: str) -> requests.Response:
        try:
            resp = self.http.get(url, timeout=self.config.client_timeout)
        except requests.RequestException as e:
            raise BackendUnreachable(f"Could not reach {url}: {e}") from e
        if resp.status_code in GATEWAY_STATUSES:
            raise BackendUnreachable(f"{url} answered HTTP {resp.status_code}")
        return resp

    def public_ip(self) -> str:
        resp = self._get(self.config.public_ip_url)
        try:
            client_ip = (resp.json() or {}).get("ip")
        except (ValueError, AttributeError):
            client_ip = None
        if not client_ip:
            raise BackendUnreachable("Could not retrieve client IP address")
        return client_ip

    def resolve(self, ip: Optional[str] = None, cancel_event: Optional[Event] = None) -> ChainOutcome:
        client_ip = ip or self.public_ip()
        if cancel_event is not None and cancel_event.is_set():
            raise ResolutionCancelled("Location request was cancelled")

        resp = self._get(f"{self.config.api_base_url}/location/ip/{client_ip}")
        try:
            body: Dict[str, Any] = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if resp.status_code == 503:
            raise AllProvidersExhausted(
                [], message=body.get("error") or "All IP geolocation services are unavailable"
            )
        if not 200 <= resp.status_code < 300 or not body.get("success"):
            reason = body.get("message") or body.get("error") or f"HTTP {resp.status_code}"
            raise ProviderError(self.name, f"Failed to get IP location: {reason}")

        data = dict(body.get("data") or {})
        if not data.get("serviceUsed"):
            data["serviceUsed"] = body.get("service")
        data["source"] = LocationSource.IP.value
        try:
            record = LocationRecord.model_validate(data)
        except ValidationError as e:
            raise ProviderError(self.name, f"API returned an invalid record: {e.errors()[0]['msg']}") from e
        return ChainOutcome(record=record, service_used=record.service_used)


class ClientDirectCapability(LocationCapability):
    """Last-resort lookup against ipapi.co with the network's default timeout."""

    name = "client-direct"

    def __init__(self, config: ResolverConfig, http: Any = None):
        self.provider = IpapiCoProvider(
            timeout=config.client_direct_timeout,
            http=http,
            base_url=config.client_direct_url,
        )

    def resolve(self, ip: Optional[str] = None, cancel_event: Optional[Event] = None) -> ChainOutcome:
        if cancel_event is not None and cancel_event.is_set():
            raise ResolutionCancelled("Location request was cancelled")
        raw = self.provider.fetch_raw(ip)
        if not self.provider.is_success(raw):
            raise ProviderError(self.provider.name, self.provider.failure_reason(raw))
        record = self.provider.normalize(raw)
        return ChainOutcome(record=record, service_used=self.provider.name)


class BackendGeocoder(ReverseGeocoder):
    """Reverse geocoding through POST {api}/location/geocode."""

    name = "backend-geocode"

    def __init__(self, config: ResolverConfig, http: Any = None):
        self.config = config
        self.http = http or requests

    def geocode(self, position: Position) -> LocationRecord:
        url = f"{self.config.api_base_url}/location/geocode"
        try:
            resp = self.http.post(
                url,
                json={"latitude": position.latitude, "longitude": position.longitude},
                timeout=self.config.client_timeout,
            )
        except requests.RequestException as e:
            raise GeocodeError(self.name, f"request failed: {e}") from e

        if not 200 <= resp.status_code < 300:
            raise GeocodeError(self.name, f"HTTP {resp.status_code}")
        try:
            body = resp.json()
            data = dict(body.get("data") or {})
        except (ValueError, AttributeError, TypeError) as e:
            raise GeocodeError(self.name, "reply is not a location envelope") from e
        if not data.get("address"):
            raise GeocodeError(self.name, "reply has no address")

        data.update(
            latitude=position.latitude,
            longitude=position.longitude,
            accuracy=position.accuracy,
            source=LocationSource.GPS.value,
        )
        try:
            return LocationRecord.model_validate(data)
        except ValidationError as e:
            raise GeocodeError(self.name, f"API returned an invalid record: {e.errors()[0]['msg']}") from e
