"""
Provider reply -> LocationRecord normalization.

Every function here is pure: it only reads the raw reply it is given.
Absent optional fields become None; a reply without usable coordinates
is rejected, since a record must always carry both latitude and
longitude.
"""

import logging
from typing import Any, Callable, Dict, Optional, Tuple

from pydantic import ValidationError

from location_tracker.models.location import LocationRecord, LocationSource, Position
from .errors import GeocodeError, ProviderError

logger = logging.getLogger(__name__)

RawReply = Dict[str, Any]


def format_coordinates(latitude: float, longitude: float) -> str:
    """Coordinate-only address, four decimals each."""
    return f"{latitude:.4f}, {longitude:.4f}"


def synthesize_address(
    city: Optional[str],
    region: Optional[str],
    country: Optional[str],
    latitude: float,
    longitude: float,
) -> str:
    parts = [p for p in (city, region, country) if p]
    if not parts:
        return format_coordinates(latitude, longitude)
    return ", ".join(parts)


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _coordinates(raw: RawReply, lat_key: str, lon_key: str, provider: str) -> Tuple[float, float]:
    lat = raw.get(lat_key)
    lon = raw.get(lon_key)
    if lat is None or lon is None or isinstance(lat, bool) or isinstance(lon, bool):
        raise ProviderError(provider, "reply is missing coordinates")
    try:
        return float(lat), float(lon)
    except (TypeError, ValueError) as e:
        raise ProviderError(provider, f"reply has malformed coordinates: {lat!r}, {lon!r}") from e


def _ip_record(provider: str, latitude: float, longitude: float, **fields: Any) -> LocationRecord:
    address = synthesize_address(
        fields.get("city"), fields.get("region"), fields.get("country"), latitude, longitude
    )
    try:
        return LocationRecord(
            latitude=latitude,
            longitude=longitude,
            address=address,
            source=LocationSource.IP,
            service_used=provider,
            **fields,
        )
    except ValidationError as e:
        raise ProviderError(provider, f"reply could not be normalized: {e.errors()[0]['msg']}") from e


def normalize_ipapi_co(raw: RawReply) -> LocationRecord:
    lat, lon = _coordinates(raw, "latitude", "longitude", "ipapi.co")
    return _ip_record(
        "ipapi.co",
        lat,
        lon,
        ip=_text(raw.get("ip")),
        city=_text(raw.get("city")),
        region=_text(raw.get("region")),
        country=_text(raw.get("country_name")),
        isp=_text(raw.get("org")),
        timezone=_text(raw.get("timezone")),
        postal_code=_text(raw.get("postal")),
    )


def normalize_ip_api_com(raw: RawReply) -> LocationRecord:
    lat, lon = _coordinates(raw, "lat", "lon", "ip-api.com")
    return _ip_record(
        "ip-api.com",
        lat,
        lon,
        ip=_text(raw.get("query")),
        city=_text(raw.get("city")),
        region=_text(raw.get("regionName")),
        country=_text(raw.get("country")),
        isp=_text(raw.get("isp")),
        timezone=_text(raw.get("timezone")),
        postal_code=_text(raw.get("zip")),
    )


def normalize_ipwhois_app(raw: RawReply) -> LocationRecord:
    lat, lon = _coordinates(raw, "latitude", "longitude", "ipwhois.app")
    # ipwhois.app nests the timezone id when the caller asks for objects
    tz = raw.get("timezone")
    if isinstance(tz, dict):
        tz = tz.get("id")
    return _ip_record(
        "ipwhois.app",
        lat,
        lon,
        ip=_text(raw.get("ip")),
        city=_text(raw.get("city")),
        region=_text(raw.get("region")),
        country=_text(raw.get("country")),
        isp=_text(raw.get("isp")),
        timezone=_text(tz),
        postal_code=_text(raw.get("postal")),
    )


NORMALIZERS: Dict[str, Callable[[RawReply], LocationRecord]] = {
    "ipapi.co": normalize_ipapi_co,
    "ip-api.com": normalize_ip_api_com,
    "ipwhois.app": normalize_ipwhois_app,
}


def normalize_ip_reply(provider: str, raw: RawReply) -> LocationRecord:
    try:
        normalizer = NORMALIZERS[provider]
    except KeyError:
        raise ProviderError(provider, "no normalizer registered for this provider") from None
    return normalizer(raw)


def normalize_nominatim(raw: RawReply, position: Position, provider: str = "nominatim") -> LocationRecord:
    """
    Combine a Nominatim reverse-geocode reply with the device position.

    Coordinates and accuracy always come from the position, never from
    the geocoder. A reply without display_name counts as a failed geocode.
    """
    display_name = _text(raw.get("display_name"))
    if raw.get("error") or not display_name:
        reason = _text(raw.get("error")) or "reply has no address"
        raise GeocodeError(provider, reason)

    address = raw.get("address")
    if not isinstance(address, dict):
        address = {}

    try:
        return LocationRecord(
            latitude=position.latitude,
            longitude=position.longitude,
            accuracy=position.accuracy,
            address=display_name,
            city=_text(address.get("city") or address.get("town") or address.get("village")),
            region=_text(address.get("state") or address.get("region")),
            country=_text(address.get("country")),
            postal_code=_text(address.get("postcode")),
            source=LocationSource.GPS,
        )
    except ValidationError as e:
        raise GeocodeError(provider, f"reply could not be normalized: {e.errors()[0]['msg']}") from e


def coordinates_only(position: Position) -> LocationRecord:
    """GPS record for when geocoding failed: raw coordinates and a numeric address."""
    return LocationRecord(
        latitude=position.latitude,
        longitude=position.longitude,
        accuracy=position.accuracy,
        address=format_coordinates(position.latitude, position.longitude),
        source=LocationSource.GPS,
    )
