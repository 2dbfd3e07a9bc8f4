"""
Location resolution facade.

Two policies are exposed:

- resolve_gps_first: device position -> reverse geocode. A failed
  geocode degrades to a coordinate-only GPS record; a failed position
  request falls back to resolve_ip_first.
- resolve_ip_first: walk the configured capabilities (in-process chain,
  or backend API then client-direct lookup). Only BackendUnreachable
  moves on to the next capability.

Each call keeps its own attempt state; the resolver itself holds only
configuration and stateless adapters, so one instance can serve
concurrent requests.
"""

import logging
from threading import Event
from typing import Any, List, Optional, Sequence

from location_tracker.core.settings import ResolverConfig
from location_tracker.models.location import LocationResult, PositionOptions, ResolutionStatus
from .base import LocationCapability, PositionSource, ReverseGeocoder
from .capabilities import BackendCapability, BackendGeocoder, ClientDirectCapability, ProviderChainCapability
from .chain import FallbackChain
from .device_gps import ReportedPositionSource
from .errors import (
    AllProvidersExhausted,
    BackendUnreachable,
    GeocodeError,
    LocationError,
    LocationUnavailable,
    PositionError,
    ResolutionCancelled,
)
from .ip_providers import build_ip_providers
from .nominatim_provider import NominatimProvider
from .normalizer import coordinates_only

logger = logging.getLogger(__name__)


class _Attempt:
    """Per-call state: state-machine trace and absorbed errors."""

    def __init__(self, cancel_event: Optional[Event]):
        self.cancel_event = cancel_event
        self.transitions: List[str] = ["idle"]
        self.diagnostics: List[str] = []

    def enter(self, state: str) -> None:
        self.transitions.append(state)
        logger.debug(f"resolution state -> {state}")

    def absorb(self, error: LocationError, label: Optional[str] = None) -> None:
        self.diagnostics.append(f"{label}: {error.message}" if label else error.message)

    def check_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            self.enter("failed")
            raise ResolutionCancelled("Location request was cancelled")

    def result(self, outcome_record, status: ResolutionStatus, note: Optional[str] = None) -> LocationResult:
        return LocationResult(
            record=outcome_record,
            status=status,
            note=note,
            diagnostics=list(self.diagnostics),
            transitions=list(self.transitions),
        )


class LocationResolver:
    """Top-level entry point for resolving a caller's location."""

    def __init__(
        self,
        config: ResolverConfig,
        position_source: PositionSource,
        geocoder: ReverseGeocoder,
        capabilities: Sequence[LocationCapability],
    ):
        if not capabilities:
            raise ValueError("LocationResolver needs at least one IP lookup capability")
        self.config = config
        self.position_source = position_source
        self.geocoder = geocoder
        self.capabilities = list(capabilities)

    @property
    def position_options(self) -> PositionOptions:
        return PositionOptions(
            high_accuracy=self.config.gps_high_accuracy,
            timeout=self.config.gps_timeout,
            max_cached_age=self.config.gps_max_cached_age,
        )

    def resolve_ip_first(self, ip: Optional[str] = None, cancel_event: Optional[Event] = None) -> LocationResult:
        """
        Resolve by IP address (the caller's own when ip is None).

        Raises:
            AllProvidersExhausted: every IP provider in the chain failed
            LocationUnavailable: no capability could produce a record
            ResolutionCancelled: cancel_event was set
        """
        return self._resolve_ip(ip, _Attempt(cancel_event))

    def _resolve_ip(self, ip: Optional[str], attempt: _Attempt) -> LocationResult:
        unreachable: List[LocationError] = []

        for index, capability in enumerate(self.capabilities):
            attempt.check_cancelled()
            attempt.enter(f"requesting(ip:{capability.name})")
            try:
                outcome = capability.resolve(ip, cancel_event=attempt.cancel_event)
            except BackendUnreachable as e:
                logger.warning(f"{capability.name} unreachable: {e.message}")
                unreachable.append(e)
                attempt.absorb(e, capability.name)
                if index + 1 < len(self.capabilities):
                    attempt.enter(f"falling_back(ip:{self.capabilities[index + 1].name})")
                continue
            except (AllProvidersExhausted, ResolutionCancelled):
                attempt.enter("failed")
                raise
            except LocationError as e:
                attempt.enter("failed")
                logger.error(f"IP location via {capability.name} failed: {e.message}")
                raise LocationUnavailable("Failed to get IP location", unreachable + [e]) from e

            for failure in outcome.failures:
                attempt.absorb(failure)
            attempt.enter("succeeded")
            note = None
            if unreachable:
                note = f"Location API unreachable; resolved via {capability.name}"
            logger.info(f"IP location resolved via {capability.name} ({outcome.service_used})")
            return attempt.result(outcome.record, ResolutionStatus.SUCCEEDED, note)

        attempt.enter("failed")
        raise LocationUnavailable("Failed to get location via client-side IP lookup", unreachable)

    def resolve_gps_first(
        self,
        ip: Optional[str] = None,
        cancel_event: Optional[Event] = None,
        position_source: Optional[PositionSource] = None,
    ) -> LocationResult:
        """
        Resolve from the device position, falling back to IP geolocation.

        position_source overrides the configured source for this call only
        (the HTTP layer passes the position reported in the request).
        """
        attempt = _Attempt(cancel_event)
        source = position_source or self.position_source

        attempt.enter("requesting(gps)")
        try:
            position = source.get_current_position(self.position_options)
        except PositionError as gps_error:
            logger.warning(f"GPS unavailable ({type(gps_error).__name__}): {gps_error.message}. Using IP-based location")
            attempt.absorb(gps_error, "gps")
            attempt.enter("falling_back(ip)")
            try:
                result = self._resolve_ip(ip, attempt)
            except ResolutionCancelled:
                raise
            except LocationUnavailable as ip_error:
                raise LocationUnavailable(
                    f"GPS failed ({gps_error.message}) and IP lookup failed ({ip_error.message})",
                    [gps_error, *ip_error.errors],
                ) from ip_error
            note = f"GPS unavailable: {gps_error.message}. Used IP-based location"
            if result.note:
                note = f"{note}. {result.note}"
            return result.model_copy(update={"note": note})

        attempt.check_cancelled()
        attempt.enter(f"requesting(geocode:{self.geocoder.name})")
        try:
            record = self.geocoder.geocode(position)
        except GeocodeError as e:
            # Coordinates are still better than nothing.
            logger.warning(f"Geocoding failed, returning raw coordinates: {e.message}")
            attempt.absorb(e, "geocode")
            attempt.enter("degraded")
            return attempt.result(
                coordinates_only(position),
                ResolutionStatus.DEGRADED,
                note="Address lookup failed; showing coordinates only",
            )

        attempt.enter("succeeded")
        return attempt.result(record, ResolutionStatus.SUCCEEDED)


def build_server_resolver(
    config: ResolverConfig,
    position_source: Optional[PositionSource] = None,
    http: Any = None,
) -> LocationResolver:
    """Resolver that runs the provider chain and Nominatim in-process."""
    providers = build_ip_providers(config.ip_provider_order, timeout=config.ip_provider_timeout, http=http)
    return LocationResolver(
        config=config,
        position_source=position_source or ReportedPositionSource(),
        geocoder=NominatimProvider(
            user_agent=config.geocode_user_agent,
            timeout=config.geocode_timeout,
            base_url=config.geocode_url,
            http=http,
        ),
        capabilities=[ProviderChainCapability(FallbackChain(providers))],
    )


def build_client_resolver(
    config: ResolverConfig,
    position_source: Optional[PositionSource] = None,
    http: Any = None,
) -> LocationResolver:
    """Resolver that goes through the Location Tracker API, then ipapi.co directly."""
    return LocationResolver(
        config=config,
        position_source=position_source or ReportedPositionSource(),
        geocoder=BackendGeocoder(config, http=http),
        capabilities=[BackendCapability(config, http=http), ClientDirectCapability(config, http=http)],
    )
