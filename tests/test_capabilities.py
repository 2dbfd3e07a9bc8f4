import pytest
import requests

from location_tracker.core.settings import ResolverConfig
from location_tracker.models.location import Position
from location_tracker.services.geolocation.capabilities import (
    BackendCapability,
    BackendGeocoder,
    ClientDirectCapability,
)
from location_tracker.services.geolocation.errors import (
    AllProvidersExhausted,
    BackendUnreachable,
    GeocodeError,
    ProviderError,
)
from tests.fakes import IPAPI_CO_OK, FakeResponse, FakeSession

CONFIG = ResolverConfig(api_base_url="http://api.test/api")
IPIFY = "https://api.ipify.org?format=json"

API_REPLY = {
    "success": True,
    "source": "IP",
    "service": "ip-api.com",
    "data": {
        "ip": "8.8.8.8",
        "latitude": 37.77,
        "longitude": -122.41,
        "address": "San Francisco, California, United States",
        "city": "San Francisco",
        "region": "California",
        "country": "United States",
        "isp": "ExampleISP",
        "timezone": None,
        "postalCode": "94103",
        "accuracy": None,
        "source": "IP",
        "serviceUsed": "ip-api.com",
    },
}


def test_backend_discovers_public_ip_first():
    session = FakeSession(
        {
            IPIFY: FakeResponse({"ip": "8.8.8.8"}),
            "http://api.test/api/location/ip/8.8.8.8": FakeResponse(API_REPLY),
        }
    )
    outcome = BackendCapability(CONFIG, http=session).resolve()

    assert session.urls() == [IPIFY, "http://api.test/api/location/ip/8.8.8.8"]
    assert all(kwargs["timeout"] == 10.0 for _, _, kwargs in session.calls)
    assert outcome.record.postal_code == "94103"
    assert outcome.service_used == "ip-api.com"


def test_backend_uses_given_ip_without_discovery():
    session = FakeSession({"http://api.test/api/location/ip/": FakeResponse(API_REPLY)})
    BackendCapability(CONFIG, http=session).resolve("8.8.8.8")
    assert session.urls() == ["http://api.test/api/location/ip/8.8.8.8"]


@pytest.mark.parametrize(
    "answer",
    [requests.ConnectionError("refused"), requests.Timeout("slow"), FakeResponse({}, status_code=502)],
)
def test_unreachable_backend(answer):
    session = FakeSession({"http://api.test/api/": answer})
    with pytest.raises(BackendUnreachable):
        BackendCapability(CONFIG, http=session).resolve("8.8.8.8")


def test_public_ip_discovery_failure_counts_as_unreachable():
    session = FakeSession({IPIFY: FakeResponse({})})
    with pytest.raises(BackendUnreachable, match="client IP"):
        BackendCapability(CONFIG, http=session).resolve()


def test_backend_503_means_providers_exhausted():
    session = FakeSession(
        {"http://api.test/api/": FakeResponse({"error": "All IP geolocation services are unavailable"}, 503)}
    )
    with pytest.raises(AllProvidersExhausted):
        BackendCapability(CONFIG, http=session).resolve("8.8.8.8")


def test_backend_500_is_a_provider_error():
    session = FakeSession(
        {"http://api.test/api/": FakeResponse({"error": "Failed to get IP location", "message": "boom"}, 500)}
    )
    with pytest.raises(ProviderError, match="boom"):
        BackendCapability(CONFIG, http=session).resolve("8.8.8.8")


def test_client_direct_queries_ipapi_without_timeout():
    session = FakeSession({"https://ipapi.co/json/": FakeResponse(IPAPI_CO_OK)})
    outcome = ClientDirectCapability(CONFIG, http=session).resolve()

    _, url, kwargs = session.calls[0]
    assert url == "https://ipapi.co/json/"
    assert kwargs["timeout"] is None
    assert outcome.service_used == "ipapi.co"
    assert outcome.record.country == "United States"


def test_client_direct_error_payload():
    session = FakeSession({"https://ipapi.co/json/": FakeResponse({"error": True, "reason": "RateLimited"})})
    with pytest.raises(ProviderError, match="RateLimited"):
        ClientDirectCapability(CONFIG, http=session).resolve()


def test_backend_geocoder_keeps_device_accuracy():
    reply = {
        "success": True,
        "source": "GPS",
        "data": {
            "latitude": 37.7749,
            "longitude": -122.4194,
            "address": "Market Street, San Francisco",
            "city": "San Francisco",
            "region": None,
            "country": "United States",
            "postalCode": None,
        },
    }
    session = FakeSession({"http://api.test/api/location/geocode": FakeResponse(reply)})
    record = BackendGeocoder(CONFIG, http=session).geocode(Position(latitude=37.7749, longitude=-122.4194, accuracy=9))

    method, _, kwargs = session.calls[0]
    assert method == "POST"
    assert kwargs["json"] == {"latitude": 37.7749, "longitude": -122.4194}
    assert record.accuracy == 9
    assert record.address == "Market Street, San Francisco"
    assert record.source.value == "GPS"


@pytest.mark.parametrize(
    "answer",
    [
        requests.ConnectionError("refused"),
        FakeResponse({"error": "Failed to geocode coordinates"}, 500),
        FakeResponse({"success": True, "data": {"address": ""}}),
    ],
)
def test_backend_geocoder_failures(answer):
    session = FakeSession({"http://api.test/api/location/geocode": answer})
    with pytest.raises(GeocodeError):
        BackendGeocoder(CONFIG, http=session).geocode(Position(latitude=1.0, longitude=2.0))
