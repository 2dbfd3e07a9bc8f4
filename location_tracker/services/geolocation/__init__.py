"""
Location resolution core.

GPS-first and IP-first resolution over unreliable third-party providers,
normalized into a single LocationRecord shape.
"""

from location_tracker.services.geolocation.errors import (
    AllProvidersExhausted,
    BackendUnreachable,
    GeocodeError,
    LocationError,
    LocationUnavailable,
    PermissionDenied,
    PositionTimeout,
    PositionUnavailable,
    ProviderError,
    ProviderTimeout,
    ResolutionCancelled,
)
from location_tracker.services.geolocation.resolver import (
    LocationResolver,
    build_client_resolver,
    build_server_resolver,
)

__all__ = [
    "AllProvidersExhausted",
    "BackendUnreachable",
    "GeocodeError",
    "LocationError",
    "LocationUnavailable",
    "LocationResolver",
    "PermissionDenied",
    "PositionTimeout",
    "PositionUnavailable",
    "ProviderError",
    "ProviderTimeout",
    "ResolutionCancelled",
    "build_client_resolver",
    "build_server_resolver",
]
