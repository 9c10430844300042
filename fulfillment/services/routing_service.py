"""
Routing Service - OpenRouteService Integration

Provides the routing/geocoding primitives the allocation engine consumes:
- Optimized tour cost (one vehicle, start/end at the first stop)
- Route geometry with cumulative travel time per point
- Reverse geocoding to a locality (city/town) name
- Position interpolation along a route after an elapsed time
- Google Maps directions link for an optimized stop order
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, List, Dict, Any

import httpx

from fulfillment.config import settings
from fulfillment.core.exceptions import RoutingProviderError
from fulfillment.services.allocation_types import Coordinates, RouteDetails

logger = logging.getLogger(__name__)

GOOGLE_MAPS_DIR_URL = "https://www.google.com/maps/dir/"


@dataclass
class RouteGeometry:
    """Route polyline with the cumulative travel time (s) at every point."""
    points: List[Coordinates]
    cumulative_times: List[float]

    @property
    def total_duration(self) -> float:
        return self.cumulative_times[-1] if self.cumulative_times else 0.0


@dataclass
class OptimizedTour:
    summary: RouteDetails
    ordered_stops: List[Coordinates]


class RoutingProvider(ABC):
    """Routing and geocoding operations used by the allocation engine."""

    @abstractmethod
    async def optimized_tour(self, stops: List[Coordinates]) -> OptimizedTour:
        """Optimal tour starting and ending at ``stops[0]`` visiting the rest in any order."""
        pass

    @abstractmethod
    async def route_geometry(self, start: Coordinates, end: Coordinates) -> RouteGeometry:
        """Driving route between two points with per-point cumulative time."""
        pass

    @abstractmethod
    async def reverse_locality(self, point: Coordinates) -> Optional[str]:
        """Locality name for a point, or None when unknown or the lookup failed."""
        pass


def interpolate_position(route: RouteGeometry, elapsed_seconds: float) -> Coordinates:
    """
    Theoretical position on ``route`` after ``elapsed_seconds`` of driving.

    Clamps to the first point for non-positive elapsed time and to the last
    point once the route duration is exceeded; in between, interpolates
    linearly inside the segment whose time span contains the elapsed time.
    """
    points = route.points
    times = route.cumulative_times
    if not points:
        raise ValueError("Route geometry has no points")

    if elapsed_seconds <= 0:
        return points[0]
    if elapsed_seconds >= route.total_duration:
        return points[-1]

    for i in range(1, len(times)):
        time_b = times[i]
        if time_b >= elapsed_seconds:
            time_a = times[i - 1]
            a = points[i - 1]
            b = points[i]
            segment_time = time_b - time_a
            factor = 0.0 if segment_time == 0 else (elapsed_seconds - time_a) / segment_time
            return Coordinates(
                latitude=a.latitude + (b.latitude - a.latitude) * factor,
                longitude=a.longitude + (b.longitude - a.longitude) * factor,
            )

    return points[-1]


def google_maps_link(stops: List[Coordinates]) -> str:
    """Directions URL visiting ``stops`` in the given order."""
    if len(stops) < 2:
        raise ValueError("At least two locations are required for a route link")
    path = "/".join(f"{s.latitude},{s.longitude}" for s in stops)
    return f"{GOOGLE_MAPS_DIR_URL}{path}"


class OpenRouteServiceClient(RoutingProvider):
    """
    RoutingProvider backed by the OpenRouteService HTTP API.

    Tour and route failures raise RoutingProviderError. Reverse geocoding
    failures are logged and reported as an unknown locality.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        profile: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.ORS_API_KEY
        self.base_url = (base_url or settings.ORS_BASE_URL).rstrip("/")
        self.profile = profile or settings.ORS_PROFILE
        self.timeout = timeout or settings.ROUTING_TIMEOUT_SECONDS
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
        )

    async def _post_json(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.post(
                    path,
                    json=payload,
                    headers={"Authorization": self.api_key},
                )
                response.raise_for_status()
                return response.json()
        except httpx.HTTPError as e:
            logger.error(f"OpenRouteService POST {path} failed: {e}")
            raise RoutingProviderError(f"Routing request to {path} failed: {e}") from e
        except ValueError as e:
            raise RoutingProviderError(f"Routing response from {path} is not JSON") from e

    async def optimized_tour(self, stops: List[Coordinates]) -> OptimizedTour:
        if not stops:
            raise ValueError("Locations list cannot be empty")

        # A lone start point is a zero-length tour; the optimizer rejects empty job lists
        if len(stops) == 1:
            return OptimizedTour(summary=RouteDetails(0.0, 0.0), ordered_stops=list(stops))

        depot = stops[0].lon_lat()
        payload = {
            "jobs": [
                {"id": i, "location": stop.lon_lat()}
                for i, stop in enumerate(stops[1:], start=1)
            ],
            "vehicles": [
                {"id": 0, "profile": self.profile, "start": depot, "end": depot}
            ],
            "options": {"g": True},  # geometry, so the summary carries distance
        }
        data = await self._post_json("/optimization", payload)

        try:
            if data.get("unassigned"):
                raise RoutingProviderError(
                    f"Optimizer left {len(data['unassigned'])} stop(s) unassigned"
                )
            summary = data["summary"]
            ordered = [
                Coordinates(latitude=step["location"][1], longitude=step["location"][0])
                for step in data["routes"][0]["steps"]
                if "location" in step
            ]
            return OptimizedTour(
                summary=RouteDetails(
                    distance_m=float(summary.get("distance", 0.0)),
                    duration_s=float(summary["duration"]),
                ),
                ordered_stops=ordered,
            )
        except (KeyError, IndexError, TypeError) as e:
            raise RoutingProviderError(f"Malformed optimization response: {e}") from e

    async def route_details(self, start: Coordinates, end: Coordinates) -> RouteDetails:
        """Point-to-point driving distance and duration."""
        data = await self._directions(start, end)
        try:
            summary = data["features"][0]["properties"]["summary"]
            return RouteDetails(
                distance_m=float(summary.get("distance", 0.0)),
                duration_s=float(summary.get("duration", 0.0)),
            )
        except (KeyError, IndexError, TypeError) as e:
            raise RoutingProviderError(f"Malformed directions response: {e}") from e

    async def route_geometry(self, start: Coordinates, end: Coordinates) -> RouteGeometry:
        data = await self._directions(start, end)

        try:
            feature = data["features"][0]
            raw_points = feature["geometry"]["coordinates"]
            points = [Coordinates(latitude=p[1], longitude=p[0]) for p in raw_points]
            steps = [
                step
                for segment in feature["properties"].get("segments", [])
                for step in segment.get("steps", [])
            ]
        except (KeyError, IndexError, TypeError) as e:
            raise RoutingProviderError(f"Malformed directions response: {e}") from e

        if not points:
            raise RoutingProviderError("Directions response carries no route geometry")

        return RouteGeometry(points=points, cumulative_times=_cumulative_times(len(points), steps))

    async def _directions(self, start: Coordinates, end: Coordinates) -> Dict[str, Any]:
        payload = {"coordinates": [start.lon_lat(), end.lon_lat()]}
        return await self._post_json(f"/v2/directions/{self.profile}/geojson", payload)

    async def reverse_locality(self, point: Coordinates) -> Optional[str]:
        params = {
            "api_key": self.api_key,
            "point.lon": point.longitude,
            "point.lat": point.latitude,
            "layers": "locality",
            "size": 1,
        }
        try:
            async with self._client() as client:
                response = await client.get("/geocode/reverse", params=params)
                response.raise_for_status()
                data = response.json()

            features = data.get("features") or []
            if not features:
                return None
            return features[0].get("properties", {}).get("locality")
        except (httpx.HTTPError, ValueError, AttributeError) as e:
            logger.warning(f"Reverse geocoding failed for {point}: {e}")
            return None


def _cumulative_times(point_count: int, steps: List[Dict[str, Any]]) -> List[float]:
    """
    Spread each step's duration over the polyline points it covers.

    Directions steps carry ``way_points: [first_index, last_index]`` and a
    ``duration``; points inside a step are assigned linearly increasing times.
    """
    times = [0.0] * point_count
    elapsed = 0.0
    for step in steps:
        first, last = step.get("way_points", [0, 0])
        duration = float(step.get("duration", 0.0))
        span = last - first
        for idx in range(first, min(last, point_count - 1) + 1):
            fraction = 1.0 if span == 0 else (idx - first) / span
            times[idx] = elapsed + duration * fraction
        elapsed += duration
    # Points past the last step keep the final time
    for idx in range(1, point_count):
        if times[idx] < times[idx - 1]:
            times[idx] = times[idx - 1]
    return times
