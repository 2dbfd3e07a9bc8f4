"""
Error taxonomy for location resolution.

Provider-level errors (ProviderError and subclasses) never leave the
fallback chain on their own; they only surface inside
AllProvidersExhausted.failures. Callers of the resolver see either a
LocationResult or a LocationUnavailable (of which AllProvidersExhausted
is the IP-chain flavour).
"""

from typing import Any, Dict, List, Optional, Sequence


class LocationError(Exception):
    """Base class; carries a human-readable message."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"type": type(self).__name__, "message": self.message}


class ProviderError(LocationError):
    """A provider was unreachable, replied non-2xx, or replied with an error payload."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["provider"] = self.provider
        return data


class ProviderTimeout(ProviderError):
    """A provider did not answer within its timeout."""


class GeocodeError(ProviderError):
    """Reverse geocoding failed. Non-fatal: the resolver degrades to coordinates."""


class PositionError(LocationError):
    """The device location capability could not produce a position."""

    code: int = 0


class PermissionDenied(PositionError):
    code = 1


class PositionUnavailable(PositionError):
    code = 2


class PositionTimeout(PositionError):
    code = 3


POSITION_ERRORS_BY_CODE = {
    PermissionDenied.code: PermissionDenied,
    PositionUnavailable.code: PositionUnavailable,
    PositionTimeout.code: PositionTimeout,
}


class BackendUnreachable(LocationError):
    """The backend orchestration could not be reached at all (not a provider error)."""


class ResolutionCancelled(LocationError):
    """The caller abandoned the resolution before it completed."""


class LocationUnavailable(LocationError):
    """Terminal failure: no avenue produced a location."""

    def __init__(self, message: str, errors: Optional[Sequence[LocationError]] = None):
        super().__init__(message)
        self.errors: List[LocationError] = list(errors or [])

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["errors"] = [e.to_dict() for e in self.errors]
        return data


class AllProvidersExhausted(LocationUnavailable):
    """Every IP geolocation provider in the chain failed."""

    def __init__(
        self,
        failures: Sequence[ProviderError],
        message: str = "All IP geolocation services are unavailable",
    ):
        super().__init__(message, failures)

    @property
    def failures(self) -> List[LocationError]:
        return self.errors
