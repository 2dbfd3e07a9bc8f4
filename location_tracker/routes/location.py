"""
Location routes - thin HTTP layer over LocationResolver.

Handlers are plain `def` so FastAPI runs them in its threadpool; the
resolver makes blocking provider calls.
"""

import ipaddress
import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from location_tracker.core.settings import ResolverConfig, settings
from location_tracker.models.location import GeocodeRequest, Position, ResolveRequest
from location_tracker.services.geolocation import (
    AllProvidersExhausted,
    GeocodeError,
    LocationError,
    LocationResolver,
    LocationUnavailable,
    build_server_resolver,
)
from location_tracker.services.geolocation.device_gps import ReportedPositionSource

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/location", tags=["Location"])

_resolver: Optional[LocationResolver] = None


def get_resolver() -> LocationResolver:
    """Server-side resolver, built once from settings."""
    global _resolver
    if _resolver is None:
        _resolver = build_server_resolver(ResolverConfig.from_settings(settings))
    return _resolver


def client_ip_from(request: Request, ip: Optional[str] = None) -> Optional[str]:
    """
    Pick the IP to look up: explicit path value, then the first
    X-Forwarded-For entry, then the socket peer.

    Loopback and private addresses are dropped (None) so the providers
    fall back to the address the request reaches them from.
    """
    candidate = ip
    if not candidate:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            candidate = forwarded.split(",")[0].strip()
    if not candidate and request.client is not None:
        candidate = request.client.host

    if not candidate:
        return None
    try:
        parsed = ipaddress.ip_address(candidate)
    except ValueError:
        return candidate if ip else None
    if not parsed.is_global and not ip:
        return None
    return candidate


def _unavailable_response(exc: LocationUnavailable, client_ip: Optional[str]) -> JSONResponse:
    content = {"error": exc.message, "ip": client_ip}
    if isinstance(exc, AllProvidersExhausted):
        content["error"] = "All IP geolocation services are unavailable"
    content["failures"] = [e.to_dict() for e in exc.errors]
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=content)


@router.get("/ip")
@router.get("/ip/{ip}")
def location_by_ip(request: Request, ip: Optional[str] = None, resolver: LocationResolver = Depends(get_resolver)):
    """
    Get location by IP address.

    Without an IP in the path the caller's own address is used.
    """
    client_ip = client_ip_from(request, ip)
    try:
        result = resolver.resolve_ip_first(client_ip)
    except LocationUnavailable as e:
        logger.error(f"IP location unavailable for {client_ip}: {e.message}")
        return _unavailable_response(e, client_ip)
    except LocationError as e:
        logger.error(f"IP location error: {e.message}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Failed to get IP location", "message": e.message},
        )
    return result.envelope()


@router.post("/geocode")
def geocode_coordinates(
    body: Optional[GeocodeRequest] = Body(None),
    resolver: LocationResolver = Depends(get_resolver),
):
    """Reverse geocode GPS coordinates into an address."""
    if body is None or body.latitude is None or body.longitude is None:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Latitude and longitude are required"},
        )
    try:
        position = Position(latitude=body.latitude, longitude=body.longitude)
    except ValidationError:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Latitude and longitude are out of range"},
        )

    try:
        record = resolver.geocoder.geocode(position)
    except GeocodeError as e:
        logger.error(f"Geocoding error: {e.message}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Failed to geocode coordinates", "message": e.message},
        )
    return {"success": True, "source": record.source.value, "data": record.to_api()}


@router.post("/resolve")
def resolve_location(
    request: Request,
    body: ResolveRequest,
    resolver: LocationResolver = Depends(get_resolver),
):
    """
    GPS-first resolution for a browser client.

    The client reports what its geolocation API produced (coordinates or
    an error code); IP lookup is used when that is not usable.
    """
    client_ip = client_ip_from(request, body.ip)
    source = ReportedPositionSource.from_request(body)
    try:
        result = resolver.resolve_gps_first(ip=client_ip, position_source=source)
    except LocationUnavailable as e:
        logger.error(f"Location unavailable for {client_ip}: {e.message}")
        return _unavailable_response(e, client_ip)
    except LocationError as e:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Failed to resolve location", "message": e.message},
        )
    return result.envelope()
