# Tests for the Google Maps adapter with a stubbed requests session.
# Checks request parameters, one-shot parsing into tagged results, and error mapping.

import pytest
import requests

from delivery_core.services.maps_client import (
    GoogleMapsClient, MapsProviderError, parse_directions, parse_distance_matrix, parse_geocode,
)


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []

    def get(self, url, params=None, timeout=None):
        self.requests.append((url, params, timeout))
        if self.error is not None:
            raise self.error
        return self.response


def client(session):
    return GoogleMapsClient(api_key="test-key", base_url="https://maps.test/api/", timeout=3, session=session)


MATRIX_OK = {
    "status": "OK",
    "rows": [{"elements": [
        {"status": "OK", "duration": {"value": 100}, "duration_in_traffic": {"value": 130},
         "distance": {"value": 1500}},
        {"status": "ZERO_RESULTS"},
        {"status": "OK", "duration": {"value": 250}},
    ]}],
}


def test_distance_matrix_request_and_parsing():
    session = FakeSession(FakeResponse(MATRIX_OK))
    result = client(session).distance_matrix((34.05, -118.25), [(34.1, -118.3), (34.2, -118.4), (34.3, -118.5)])

    url, params, timeout = session.requests[0]
    assert url == "https://maps.test/api/distancematrix/json"
    assert params == {
        "origins": "34.05,-118.25",
        "destinations": "34.1,-118.3|34.2,-118.4|34.3,-118.5",
        "departure_time": "now",
        "traffic_model": "best_guess",
        "key": "test-key",
    }
    assert timeout == 3

    first, second, third = result.elements
    assert first.ok and first.base_duration_s == 130 and first.distance_m == 1500
    assert not second.ok and second.base_duration_s == 0
    assert third.ok and third.base_duration_s == 250

def test_distance_matrix_without_destinations_makes_no_request():
    session = FakeSession(FakeResponse(MATRIX_OK))
    assert client(session).distance_matrix((0, 0), []).elements == []
    assert session.requests == []

def test_non_ok_status_raises_with_provider_message():
    session = FakeSession(FakeResponse({"status": "REQUEST_DENIED", "error_message": "bad key"}))
    with pytest.raises(MapsProviderError, match="bad key") as info:
        client(session).distance_matrix((0, 0), [(1, 1)])
    assert info.value.status == "REQUEST_DENIED"

def test_non_ok_without_message_uses_default():
    with pytest.raises(MapsProviderError, match="Failed to fetch distance matrix"):
        parse_distance_matrix({"status": "OVER_QUERY_LIMIT"})

def test_malformed_elements_are_tagged_invalid():
    result = parse_distance_matrix({"status": "OK", "rows": [{"elements": ["junk", {"duration": "x"}]}]})
    assert [e.status for e in result.elements] == ["INVALID", "INVALID"]
    assert parse_distance_matrix({"status": "OK", "rows": []}).elements == []

def test_transport_errors_become_provider_errors():
    with pytest.raises(MapsProviderError):
        client(FakeSession(error=requests.ConnectionError("down"))).distance_matrix((0, 0), [(1, 1)])
    with pytest.raises(MapsProviderError):
        client(FakeSession(FakeResponse({}, status_code=500))).distance_matrix((0, 0), [(1, 1)])
    with pytest.raises(MapsProviderError, match="malformed JSON"):
        client(FakeSession(FakeResponse(ValueError("no json")))).distance_matrix((0, 0), [(1, 1)])

def test_missing_api_key(monkeypatch):
    from delivery_core.config import settings
    monkeypatch.setattr(settings, "GOOGLE_MAPS_API_KEY", None)
    with pytest.raises(ValueError, match="GOOGLE_MAPS_API_KEY"):
        GoogleMapsClient(session=FakeSession())

def test_geocode_parses_canonical_address():
    payload = {
        "status": "OK",
        "results": [{
            "formatted_address": "123 Main St, Los Angeles, CA 90012, USA",
            "geometry": {"location": {"lat": 34.05, "lng": -118.24}},
            "address_components": [
                {"long_name": "123", "short_name": "123", "types": ["street_number"]},
                {"long_name": "Main Street", "short_name": "Main St", "types": ["route"]},
                {"long_name": "Los Angeles", "short_name": "LA", "types": ["locality", "political"]},
                {"long_name": "California", "short_name": "CA", "types": ["administrative_area_level_1"]},
                {"long_name": "90012", "short_name": "90012", "types": ["postal_code"]},
                {"long_name": "United States", "short_name": "US", "types": ["country"]},
            ],
        }],
    }
    session = FakeSession(FakeResponse(payload))
    result = client(session).geocode("123 main st")
    assert session.requests[0][1]["address"] == "123 main st"
    assert (result.lat, result.lng) == (34.05, -118.24)
    assert result.canonical_address() == {
        "line1": "123 Main Street",
        "city": "Los Angeles",
        "state": "CA",
        "postal_code": "90012",
        "country": "US",
    }

def test_geocode_zero_results():
    session = FakeSession(FakeResponse({"status": "ZERO_RESULTS", "results": []}))
    with pytest.raises(MapsProviderError, match="Unable to geocode"):
        client(session).geocode("nowhere")

def test_directions_sums_legs_and_optimizes_waypoints():
    payload = {
        "status": "OK",
        "routes": [{
            "overview_polyline": {"points": "abc"},
            "waypoint_order": [1, 0],
            "legs": [
                {"distance": {"value": 1000}, "duration": {"value": 60}, "start_address": "A", "end_address": "B"},
                {"distance": {"value": 2000}, "duration": {"value": 120}, "start_address": "B", "end_address": "C"},
                {"start_address": "C", "end_address": "D"},
            ],
        }],
    }
    session = FakeSession(FakeResponse(payload))
    route = client(session).directions("A", "D", waypoints=["B", "C"], optimize=True)
    assert session.requests[0][1]["waypoints"] == "optimize:true|B|C"
    assert (route.distance_m, route.duration_s, route.polyline) == (3000, 180, "abc")
    assert route.waypoint_order == [1, 0]
    assert len(route.legs) == 3

def test_directions_waypoint_limit():
    with pytest.raises(ValueError, match="Too many waypoints"):
        client(FakeSession()).directions("A", "B", waypoints=[str(i) for i in range(26)])

@pytest.mark.parametrize("payload", [
    [],
    "OK",
    {"status": "OK", "rows": [{"elements": None}]},
    {"status": "OK", "rows": [{"elements": "x"}]},
    {"status": "OK", "rows": ["junk"]},
    {"status": "OK", "rows": {"elements": []}},
])
def test_malformed_matrix_payload_raises_provider_error(payload):
    with pytest.raises(MapsProviderError, match="malformed distance matrix"):
        client(FakeSession(FakeResponse(payload))).distance_matrix((0, 0), [(1, 1)])

def test_ok_element_without_numeric_duration_is_invalid():
    result = parse_distance_matrix({"status": "OK", "rows": [{"elements": [
        {"status": "OK"},
        {"status": "OK", "duration": {"value": "120"}},
        {"status": "OK", "duration": {"value": True}},
        {"status": "OK", "duration_in_traffic": {"value": 90}},
    ]}]})
    assert [e.status for e in result.elements] == ["INVALID", "INVALID", "INVALID", "OK"]
    assert result.elements[3].base_duration_s == 90

@pytest.mark.parametrize("payload", [
    None,
    {"status": "OK", "results": {"formatted_address": "x"}},
    {"status": "OK", "results": [None]},
    {"status": "OK", "results": [{"geometry": {"location": {"lat": "34", "lng": -118}}}]},
    {"status": "OK", "results": [{"geometry": "here"}]},
    {"status": "OK", "results": [{"geometry": {"location": {"lat": 34, "lng": -118}},
                                  "address_components": "none"}]},
])
def test_malformed_geocode_payload_raises_provider_error(payload):
    with pytest.raises(MapsProviderError):
        parse_geocode(payload)

def test_geocode_ignores_odd_component_entries():
    result = parse_geocode({"status": "OK", "results": [{
        "geometry": {"location": {"lat": 1, "lng": 2}},
        "address_components": [
            {"long_name": "Reno", "types": [["locality"], "locality"]},
            {"long_name": 89501, "types": ["postal_code"]},
        ],
    }]})
    assert result.components == {"locality": "Reno"}
    assert result.formatted_address == ""

@pytest.mark.parametrize("payload", [
    ["routes"],
    {"status": "OK", "routes": "fast"},
    {"status": "OK", "routes": [{"legs": [1, 2]}]},
    {"status": "OK", "routes": [{"legs": {"distance": {"value": 1}}}]},
])
def test_malformed_directions_payload_raises_provider_error(payload):
    with pytest.raises(MapsProviderError, match="malformed directions"):
        parse_directions(payload)
