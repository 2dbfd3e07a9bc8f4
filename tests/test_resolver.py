from threading import Event

import pytest
import requests

from location_tracker.core.settings import ResolverConfig
from location_tracker.models.location import LocationSource, Position, ResolutionStatus
from location_tracker.services.geolocation import (
    AllProvidersExhausted,
    GeocodeError,
    LocationUnavailable,
    PermissionDenied,
    ResolutionCancelled,
    build_client_resolver,
    build_server_resolver,
)
from location_tracker.services.geolocation.device_gps import ReportedPositionSource
from tests.fakes import (
    IP_API_COM_OK,
    IPAPI_CO_OK,
    NOMINATIM_OK,
    FailingGeocoder,
    FakeResponse,
    FakeSession,
)

CONFIG = ResolverConfig(api_base_url="http://api.test/api")
NOMINATIM = "https://nominatim.openstreetmap.org/reverse"
POSITION = Position(latitude=37.774929, longitude=-122.419416, accuracy=15.0)


def server_resolver(routes, position=POSITION, error_code=None):
    session = FakeSession(routes)
    source = ReportedPositionSource(position=position, error_code=error_code)
    return build_server_resolver(CONFIG, position_source=source, http=session), session


def test_gps_first_uses_geocoded_address():
    resolver, _ = server_resolver({NOMINATIM: FakeResponse(NOMINATIM_OK)})

    result = resolver.resolve_gps_first()

    assert result.status == ResolutionStatus.SUCCEEDED
    assert result.record.source == LocationSource.GPS
    assert result.record.address == NOMINATIM_OK["display_name"]
    assert result.record.accuracy == 15.0
    assert result.transitions == ["idle", "requesting(gps)", "requesting(geocode:nominatim)", "succeeded"]


@pytest.mark.parametrize(
    "answer",
    [
        requests.Timeout("slow"),
        FakeResponse({}, status_code=500),
        FakeResponse({"error": "Unable to geocode"}),
    ],
)
def test_gps_first_degrades_when_geocoding_fails(answer):
    resolver, _ = server_resolver({NOMINATIM: answer})

    result = resolver.resolve_gps_first()

    assert result.status == ResolutionStatus.DEGRADED
    assert result.degraded
    assert result.record.source == LocationSource.GPS
    assert result.record.address == "37.7749, -122.4194"
    assert result.record.accuracy == 15.0
    assert result.note
    assert result.diagnostics[0].startswith("geocode:")


def test_gps_first_degrades_for_any_geocoder():
    resolver, _ = server_resolver({})
    resolver.geocoder = FailingGeocoder(GeocodeError("failing", "empty address"))

    result = resolver.resolve_gps_first()

    assert result.degraded
    assert result.record.latitude == POSITION.latitude


def test_permission_denied_falls_back_to_ip_lookup():
    routes = {"https://ipapi.co/": FakeResponse(IPAPI_CO_OK)}
    denied, session = server_resolver(routes, position=None, error_code=PermissionDenied.code)
    ip_only, _ = server_resolver(routes)

    result = denied.resolve_gps_first(ip="8.8.8.8")

    assert result.record == ip_only.resolve_ip_first("8.8.8.8").record
    assert result.record.source == LocationSource.IP
    assert "GPS unavailable" in result.note
    assert result.diagnostics[0].startswith("gps:")
    assert "falling_back(ip)" in result.transitions
    assert not any(NOMINATIM in url for url in session.urls())


def test_gps_and_ip_failing_is_location_unavailable():
    resolver, _ = server_resolver({}, position=None, error_code=PermissionDenied.code)

    with pytest.raises(LocationUnavailable) as excinfo:
        resolver.resolve_gps_first(ip="8.8.8.8")

    errors = excinfo.value.errors
    assert isinstance(errors[0], PermissionDenied)
    assert len(errors) == 4


def test_ip_first_reports_serving_provider_only():
    resolver, _ = server_resolver(
        {
            "https://ipapi.co/": FakeResponse({"error": "invalid"}),
            "http://ip-api.com/json/": FakeResponse(IP_API_COM_OK),
        }
    )

    result = resolver.resolve_ip_first("203.0.113.5")

    assert result.record.service_used == "ip-api.com"
    assert result.record.address == "San Francisco, California, United States"
    assert result.status == ResolutionStatus.SUCCEEDED
    assert result.note is None
    assert result.diagnostics == ["ipapi.co: provider reported failure"]


def test_ip_first_exhaustion_propagates():
    resolver, _ = server_resolver({})
    with pytest.raises(AllProvidersExhausted) as excinfo:
        resolver.resolve_ip_first("8.8.8.8")
    assert len(excinfo.value.failures) == 3


def test_cancelled_resolution():
    resolver, session = server_resolver({"https://ipapi.co/": FakeResponse(IPAPI_CO_OK)})
    cancel = Event()
    cancel.set()

    with pytest.raises(ResolutionCancelled):
        resolver.resolve_ip_first("8.8.8.8", cancel_event=cancel)
    assert session.calls == []


def test_position_source_override_per_call():
    resolver, _ = server_resolver({NOMINATIM: FakeResponse(NOMINATIM_OK)}, position=None)
    other = ReportedPositionSource(position=Position(latitude=48.8566, longitude=2.3522))

    result = resolver.resolve_gps_first(position_source=other)

    assert result.record.latitude == 48.8566


def test_position_options_come_from_config():
    resolver, _ = server_resolver({})
    options = resolver.position_options
    assert (options.high_accuracy, options.timeout, options.max_cached_age) == (True, 15.0, 300.0)


def client_resolver(routes):
    session = FakeSession(routes)
    return build_client_resolver(CONFIG, http=session), session


def test_client_falls_back_to_direct_lookup_when_backend_unreachable():
    resolver, session = client_resolver(
        {
            "https://api.ipify.org": FakeResponse({"ip": "8.8.8.8"}),
            "http://api.test/api/": requests.ConnectionError("connection refused"),
            "https://ipapi.co/": FakeResponse(IPAPI_CO_OK),
        }
    )

    result = resolver.resolve_ip_first()

    assert result.record.service_used == "ipapi.co"
    assert "unreachable" in result.note
    assert session.urls()[-1] == "https://ipapi.co/json/"
    assert "falling_back(ip:client-direct)" in result.transitions


def test_client_does_not_fall_back_when_backend_reports_exhaustion():
    resolver, session = client_resolver(
        {
            "http://api.test/api/": FakeResponse({"error": "All IP geolocation services are unavailable"}, 503),
            "https://ipapi.co/": FakeResponse(IPAPI_CO_OK),
        }
    )

    with pytest.raises(AllProvidersExhausted):
        resolver.resolve_ip_first("8.8.8.8")
    assert not any(url.startswith("https://ipapi.co") for url in session.urls())


def test_client_direct_failure_is_location_unavailable():
    resolver, _ = client_resolver(
        {
            "http://api.test/api/": requests.ConnectionError("connection refused"),
            "https://ipapi.co/": FakeResponse({"error": True, "reason": "RateLimited"}),
        }
    )

    with pytest.raises(LocationUnavailable) as excinfo:
        resolver.resolve_ip_first("8.8.8.8")
    assert not isinstance(excinfo.value, AllProvidersExhausted)
    assert len(excinfo.value.errors) == 2


def test_client_gps_first_geocodes_through_backend():
    reply = {
        "success": True,
        "source": "GPS",
        "data": {"latitude": 1.0, "longitude": 2.0, "address": "Gulf of Guinea", "city": None},
    }
    session = FakeSession({"http://api.test/api/location/geocode": FakeResponse(reply)})
    source = ReportedPositionSource(position=POSITION)
    resolver = build_client_resolver(CONFIG, position_source=source, http=session)

    result = resolver.resolve_gps_first()

    assert result.record.address == "Gulf of Guinea"
    assert result.record.latitude == POSITION.latitude


def test_adapters_default_to_per_call_requests():
    resolver = build_server_resolver(CONFIG)
    chain = resolver.capabilities[0].chain

    assert all(provider.http is requests for provider in chain.providers)
    assert resolver.geocoder.http is requests

    client = build_client_resolver(CONFIG)
    assert client.capabilities[0].http is requests
    assert client.capabilities[1].provider.http is requests
    assert client.geocoder.http is requests
