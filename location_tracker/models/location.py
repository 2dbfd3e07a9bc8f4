"""
Pydantic models for resolved locations.

LocationRecord is the single canonical shape every provider reply is
normalized into. Records are immutable and built fresh for each
resolution request; nothing here is persisted.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

UNKNOWN = "Unknown"


class LocationSource(str, Enum):
    """Acquisition path that produced a record."""
    GPS = "GPS"
    IP = "IP"


class ResolutionStatus(str, Enum):
    """
    Terminal success states of a resolution.

    DEGRADED means a secondary enrichment step (address lookup) failed
    and a lower-quality record was returned instead of an error.
    """
    SUCCEEDED = "succeeded"
    DEGRADED = "degraded"


class LocationRecord(BaseModel):
    """
    Canonical location record.

    Source consistency:
    - ip / isp only on IP-sourced records
    - accuracy only on GPS-sourced records
    - address fields may appear on either (GPS records get them via geocoding)
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    latitude: float = Field(..., ge=-90, le=90, description="Latitude in decimal degrees")
    longitude: float = Field(..., ge=-180, le=180, description="Longitude in decimal degrees")
    address: str = Field(..., description="Human-readable address, provider supplied or synthesized")
    city: Optional[str] = None
    region: Optional[str] = None
    country: Optional[str] = None
    ip: Optional[str] = None
    accuracy: Optional[float] = Field(None, ge=0, description="Reported accuracy in meters (GPS only)")
    isp: Optional[str] = None
    timezone: Optional[str] = None
    postal_code: Optional[str] = Field(None, alias="postalCode")
    source: LocationSource
    service_used: Optional[str] = Field(None, alias="serviceUsed")

    @model_validator(mode="after")
    def _check_source_fields(self) -> "LocationRecord":
        if self.source == LocationSource.GPS:
            if self.ip is not None or self.isp is not None:
                raise ValueError("GPS-sourced records cannot carry ip or isp")
        elif self.accuracy is not None:
            raise ValueError("IP-sourced records cannot carry accuracy")
        return self

    def to_api(self) -> Dict[str, Any]:
        """JSON-ready dict using the public camelCase field names."""
        return self.model_dump(mode="json", by_alias=True)

    def display_fields(self) -> Dict[str, Any]:
        """Presentation copy with missing city/region/country shown as 'Unknown'."""
        data = self.to_api()
        for key in ("city", "region", "country"):
            if not data.get(key):
                data[key] = UNKNOWN
        return data


class PositionOptions(BaseModel):
    """Options for a single device position request."""
    high_accuracy: bool = True
    timeout: float = Field(15.0, gt=0, description="Seconds to wait for a position")
    max_cached_age: float = Field(300.0, ge=0, description="Oldest acceptable cached position, in seconds")


class Position(BaseModel):
    """A position reported by the device location capability."""

    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    accuracy: Optional[float] = Field(None, ge=0)
    timestamp: Optional[datetime] = None


class LocationResult(BaseModel):
    """
    Successful outcome of one resolution call.

    Succeeded and Degraded results are handled the same way by callers;
    the note and diagnostics only explain what was absorbed on the way.
    """

    record: LocationRecord
    status: ResolutionStatus = ResolutionStatus.SUCCEEDED
    note: Optional[str] = None
    diagnostics: List[str] = Field(default_factory=list)
    transitions: List[str] = Field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return self.status == ResolutionStatus.DEGRADED

    def envelope(self) -> Dict[str, Any]:
        """Response body used by the HTTP layer."""
        body: Dict[str, Any] = {
            "success": True,
            "source": self.record.source.value,
            "service": self.record.service_used,
            "status": self.status.value,
            "data": self.record.to_api(),
        }
        if self.note:
            body["note"] = self.note
        return body


class GeocodeRequest(BaseModel):
    """Body of POST /api/location/geocode. Missing values are reported as 400 by the route."""
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    model_config = ConfigDict(
        json_schema_extra={"example": {"latitude": 37.7749, "longitude": -122.4194}}
    )


class ResolveRequest(BaseModel):
    """
    Body of POST /api/location/resolve.

    A browser client reports either the position it obtained or the
    W3C GeolocationPositionError code (1 denied, 2 unavailable, 3 timeout).
    """
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    accuracy: Optional[float] = None
    timestamp: Optional[datetime] = None
    error_code: Optional[int] = Field(None, ge=1, le=3)
    error_message: Optional[str] = None
    ip: Optional[str] = None
