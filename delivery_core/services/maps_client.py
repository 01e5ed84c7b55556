# delivery_core/services/maps_client.py

# Google Maps Web Services adapter.
# Sole responsibility: talk to the mapping provider over HTTPS and return
# normalized, already-validated results (distance matrix, geocode, directions).
# No scheduling or ETA policy lives here.

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import requests

from delivery_core.config import settings

logger = logging.getLogger(__name__)

# internal coordinate type: (lat, lng)
LatLng = Tuple[float, float]

# Google limit, excluding origin and destination
MAX_WAYPOINTS = 25


class MapsProviderError(Exception):
    """Provider answered with a non-OK status, or could not be reached."""

    def __init__(self, message: str, status: str | None = None):
        super().__init__(message)
        self.status = status


@dataclass(frozen=True)
class MatrixElement:
    """One origin -> destination cell of a distance matrix."""

    status: str
    duration_s: Optional[float] = None
    duration_in_traffic_s: Optional[float] = None
    distance_m: Optional[float] = None

    @property
    def ok(self) -> bool:
        return self.status == "OK"

    @property
    def base_duration_s(self) -> float:
        # traffic-aware first, then free-flow
        if self.duration_in_traffic_s is not None:
            return self.duration_in_traffic_s
        if self.duration_s is not None:
            return self.duration_s
        return 0.0


@dataclass(frozen=True)
class DistanceMatrix:
    elements: List[MatrixElement]


@dataclass(frozen=True)
class GeocodeResult:
    formatted_address: str
    lat: float
    lng: float
    components: Dict[str, str] = field(default_factory=dict)

    def canonical_address(self) -> Dict[str, Optional[str]]:
        street = " ".join(
            part for part in (self.components.get("street_number"), self.components.get("route")) if part
        )
        return {
            "line1": street or self.formatted_address,
            "city": self.components.get("locality"),
            "state": self.components.get("administrative_area_level_1"),
            "postal_code": self.components.get("postal_code"),
            "country": self.components.get("country") or "US",
        }


@dataclass(frozen=True)
class DirectionsLeg:
    distance_m: float
    duration_s: float
    start_address: str
    end_address: str


@dataclass(frozen=True)
class DirectionsResult:
    polyline: str
    distance_m: float
    duration_s: float
    legs: List[DirectionsLeg]
    waypoint_order: Optional[List[int]] = None


def _number(value: Any) -> Optional[float]:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    return None


def _value(block: Any) -> Optional[float]:
    return _number(block.get("value")) if isinstance(block, dict) else None


def _payload(data: Any, what: str) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise MapsProviderError(f"malformed {what} response")
    return data


def _dict_list(value: Any, what: str) -> List[Dict[str, Any]]:
    """A missing or null list is empty; anything else must be a list of objects."""
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, dict) for item in value):
        raise MapsProviderError(f"malformed {what} response")
    return value


def _check_status(data: Dict[str, Any], default_message: str) -> None:
    if data.get("status") != "OK":
        raise MapsProviderError(data.get("error_message") or default_message, status=data.get("status"))


def _matrix_element(raw: Any) -> MatrixElement:
    if not isinstance(raw, dict):
        return MatrixElement(status="INVALID")
    status = str(raw.get("status", "INVALID"))
    duration_s = _value(raw.get("duration"))
    duration_in_traffic_s = _value(raw.get("duration_in_traffic"))
    if status == "OK" and duration_s is None and duration_in_traffic_s is None:
        # OK without a usable duration would put the ETA at "now"
        return MatrixElement(status="INVALID")
    return MatrixElement(
        status=status,
        duration_s=duration_s,
        duration_in_traffic_s=duration_in_traffic_s,
        distance_m=_value(raw.get("distance")),
    )


def parse_distance_matrix(data: Any) -> DistanceMatrix:
    """Validate a /distancematrix response once; non-OK top-level status or a bad shape raises."""
    data = _payload(data, "distance matrix")
    _check_status(data, "Failed to fetch distance matrix.")
    rows = _dict_list(data.get("rows"), "distance matrix")
    if not rows:
        return DistanceMatrix(elements=[])
    raw_elements = rows[0].get("elements")
    if not isinstance(raw_elements, list):
        raise MapsProviderError("malformed distance matrix response")
    return DistanceMatrix(elements=[_matrix_element(raw) for raw in raw_elements])


# component type -> name field kept
_COMPONENT_FIELDS = {
    "street_number": "long_name",
    "route": "long_name",
    "locality": "long_name",
    "administrative_area_level_1": "short_name",
    "postal_code": "long_name",
    "country": "short_name",
}


def parse_geocode(data: Any) -> GeocodeResult:
    data = _payload(data, "geocode")
    results = _dict_list(data.get("results"), "geocode")
    if data.get("status") != "OK" or not results:
        raise MapsProviderError(
            data.get("error_message") or "Unable to geocode address.",
            status=data.get("status"),
        )
    first = results[0]
    geometry = first.get("geometry")
    location = geometry.get("location") if isinstance(geometry, dict) else None
    lat = _number(location.get("lat")) if isinstance(location, dict) else None
    lng = _number(location.get("lng")) if isinstance(location, dict) else None
    if lat is None or lng is None:
        raise MapsProviderError("Geocode result has no location.", status=data.get("status"))

    components: Dict[str, str] = {}
    for component in _dict_list(first.get("address_components"), "geocode"):
        kinds = component.get("types")
        for kind in kinds if isinstance(kinds, list) else []:
            name_field = _COMPONENT_FIELDS.get(kind) if isinstance(kind, str) else None
            if name_field and isinstance(component.get(name_field), str):
                components[kind] = component[name_field]

    formatted = first.get("formatted_address")
    return GeocodeResult(
        formatted_address=formatted if isinstance(formatted, str) else "",
        lat=lat,
        lng=lng,
        components=components,
    )


def parse_directions(data: Any) -> DirectionsResult:
    data = _payload(data, "directions")
    routes = _dict_list(data.get("routes"), "directions")
    if data.get("status") != "OK" or not routes:
        raise MapsProviderError(
            data.get("error_message") or "Unable to build directions route.",
            status=data.get("status"),
        )
    route = routes[0]
    legs = [
        DirectionsLeg(
            distance_m=_value(leg.get("distance")) or 0.0,
            duration_s=_value(leg.get("duration")) or 0.0,
            start_address=str(leg.get("start_address") or ""),
            end_address=str(leg.get("end_address") or ""),
        )
        for leg in _dict_list(route.get("legs"), "directions")
    ]
    overview = route.get("overview_polyline")
    order = route.get("waypoint_order")
    return DirectionsResult(
        polyline=str(overview.get("points") or "") if isinstance(overview, dict) else "",
        distance_m=sum(leg.distance_m for leg in legs),
        duration_s=sum(leg.duration_s for leg in legs),
        legs=legs,
        waypoint_order=order if isinstance(order, list) else None,
    )


class GoogleMapsClient:
    """
    Google Maps adapter.

    - formats (lat, lng) pairs the way the web services expect
    - issues one HTTPS GET per call with the configured timeout
    - raises MapsProviderError for transport failures and non-OK statuses
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ):
        self.api_key = api_key or settings.GOOGLE_MAPS_API_KEY
        self.base_url = (base_url or settings.MAPS_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.MAPS_TIMEOUT_S
        self.session = session or requests.Session()

        if not self.api_key:
            raise ValueError("Missing GOOGLE_MAPS_API_KEY.")

    @staticmethod
    def format_latlng(coord: LatLng) -> str:
        lat, lng = coord
        return f"{lat},{lng}"

    def _get(self, endpoint: str, params: Dict[str, str]) -> Dict[str, Any]:
        url = f"{self.base_url}/{endpoint}/json"
        try:
            response = self.session.get(url, params={**params, "key": self.api_key}, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.RequestException as exc:
            raise MapsProviderError(f"{endpoint} request failed: {exc}") from exc
        except ValueError as exc:  # body was not JSON
            raise MapsProviderError(f"{endpoint} returned malformed JSON") from exc

    def distance_matrix(self, origin: LatLng, destinations: List[LatLng]) -> DistanceMatrix:
        """One traffic-aware request from origin to every destination, in order."""
        if not destinations:
            return DistanceMatrix(elements=[])
        data = self._get(
            "distancematrix",
            {
                "origins": self.format_latlng(origin),
                "destinations": "|".join(self.format_latlng(d) for d in destinations),
                "departure_time": "now",
                "traffic_model": "best_guess",
            },
        )
        matrix = parse_distance_matrix(data)
        logger.debug("distance matrix: %d destinations, %d elements", len(destinations), len(matrix.elements))
        return matrix

    def geocode(self, address: str) -> GeocodeResult:
        return parse_geocode(self._get("geocode", {"address": address}))

    def directions(
        self,
        origin: str,
        destination: str,
        waypoints: Optional[List[str]] = None,
        optimize: bool = False,
    ) -> DirectionsResult:
        params = {"origin": origin, "destination": destination}
        if waypoints:
            if len(waypoints) > MAX_WAYPOINTS:
                raise ValueError(
                    f"Too many waypoints ({len(waypoints)}); the provider allows at most {MAX_WAYPOINTS}."
                )
            prefix = "optimize:true|" if optimize else ""
            params["waypoints"] = prefix + "|".join(waypoints)
        return parse_directions(self._get("directions", params))
