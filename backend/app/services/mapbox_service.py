"""
ArchiRoutes Backend: Mapbox Backend
====================================

What:  Directions and waypoint optimization through the Mapbox APIs.
How:   Directions:   GET {base}/directions/v5/mapbox/{profile}/{lng,lat;...}
       Optimization: GET {base}/optimization/v1/mapbox/{profile}/{lng,lat;...}
                     with source=first, destination=last, roundtrip=false
       The access token travels as the access_token query parameter.
Who:   Selected by ROUTING_PROVIDER=mapbox with MAPBOX_ACCESS_TOKEN set.

Request limits:
    Directions accepts at most 25 waypoints, Optimization at most 12.
    Larger requests skip the provider: straight-line route, original order.

Instruction spans:
    Mapbox steps carry their own geometry instead of indices. Spans are
    rebuilt by walking the steps in order: each step starts where the
    previous one ended and advances by its coordinate count minus one.
    The last span is stretched to the final coordinate.
"""

from typing import Any, Dict, List

from app.exceptions import LookupFailureError
from app.schemas.routing import (
    LineString,
    RouteInstruction,
    RouteOptions,
    RoutePoint,
    RouteResult,
    RouteSummary,
)
from app.services.routing_base import ProviderBackend, expect_object

MAPBOX_PROFILES: Dict[str, str] = {
    "walking": "walking",
    "cycling": "cycling",
    "driving": "driving",
    "public_transport": "walking",
}

MAX_DIRECTIONS_WAYPOINTS = 25
MAX_OPTIMIZATION_WAYPOINTS = 12


class MapboxBackend(ProviderBackend):
    """ProviderBackend speaking the Mapbox Directions and Optimization APIs."""

    name = "mapbox"

    def __init__(self, access_token: str, base_url: str = "https://api.mapbox.com", **kwargs: Any):
        super().__init__(**kwargs)
        self.access_token = access_token
        self.base_url = base_url.rstrip("/")

    async def route(self, points: List[RoutePoint], options: RouteOptions) -> RouteResult:
        if len(points) > MAX_DIRECTIONS_WAYPOINTS:
            self.logger.warning(
                "%d waypoints exceed the Mapbox directions limit of %d, using straight-line route",
                len(points),
                MAX_DIRECTIONS_WAYPOINTS,
            )
            return await self.fallback.route(points, options)
        return await super().route(points, options)

    async def optimize(self, points: List[RoutePoint], options: RouteOptions) -> List[int]:
        if len(points) > MAX_OPTIMIZATION_WAYPOINTS:
            self.logger.warning(
                "%d waypoints exceed the Mapbox optimization limit of %d, keeping original order",
                len(points),
                MAX_OPTIMIZATION_WAYPOINTS,
            )
            return list(range(len(points)))
        return await super().optimize(points, options)

    # ── Directions ────────────────────────────────────────────────────────

    async def _fetch_route(self, points: List[RoutePoint], options: RouteOptions) -> RouteResult:
        profile = MAPBOX_PROFILES[options.transport_mode]
        params: Dict[str, str] = {
            "access_token": self.access_token,
            "steps": "true",
            "geometries": "geojson",
            "overview": "full",
        }
        if options.transport_mode == "driving":
            exclude = []
            if options.avoid_tolls:
                exclude.append("toll")
            if options.avoid_ferries:
                exclude.append("ferry")
            if exclude:
                params["exclude"] = ",".join(exclude)

        response = await self.http_client.get(
            f"{self.base_url}/directions/v5/mapbox/{profile}/{_coordinate_path(points)}",
            params=params,
        )
        response.raise_for_status()
        data = response.json()
        self._check_code(data, "directions")
        return parse_directions(data)

    # ── Optimization ──────────────────────────────────────────────────────

    async def _fetch_interior_order(
        self, points: List[RoutePoint], options: RouteOptions
    ) -> List[int]:
        profile = MAPBOX_PROFILES[options.transport_mode]
        response = await self.http_client.get(
            f"{self.base_url}/optimization/v1/mapbox/{profile}/{_coordinate_path(points)}",
            params={
                "access_token": self.access_token,
                "source": "first",
                "destination": "last",
                "roundtrip": "false",
            },
        )
        response.raise_for_status()
        data = response.json()
        self._check_code(data, "optimization")

        # waypoints[i].waypoint_index is the trip position of input point i
        waypoints = data["waypoints"]
        order = sorted(range(len(waypoints)), key=lambda i: int(waypoints[i]["waypoint_index"]))
        return order[1:-1]

    def _check_code(self, data: Any, operation: str) -> None:
        data = expect_object(data, f"{operation} response", self.name)
        code = data.get("code")
        if code != "Ok":
            raise LookupFailureError(
                message=f"Mapbox {operation} returned {code}: {data.get('message', '')}",
                source=self.name,
                context={"operation": operation, "code": code},
            )


def _coordinate_path(points: List[RoutePoint]) -> str:
    return ";".join(f"{p.longitude},{p.latitude}" for p in points)


def parse_directions(data: Dict[str, Any]) -> RouteResult:
    """Maps a Mapbox directions response (geojson geometries) to a RouteResult."""
    source = MapboxBackend.name
    data = expect_object(data, "directions response", source)
    route = expect_object(data["routes"][0], "route", source)
    coordinates = expect_object(route["geometry"], "geometry", source)["coordinates"]
    last = len(coordinates) - 1
    distance = float(route.get("distance", 0.0))
    duration = float(route.get("duration", 0.0))

    instructions: List[RouteInstruction] = []
    cursor = 0
    for leg in route.get("legs", []):
        leg = expect_object(leg, "leg", source)
        for step in leg.get("steps", []):
            step = expect_object(step, "step", source)
            step_geometry = expect_object(step.get("geometry", {}), "step geometry", source)
            step_points = len(step_geometry.get("coordinates", []))
            end = min(cursor + max(step_points - 1, 0), last)
            maneuver = expect_object(step.get("maneuver", {}), "maneuver", source)
            instructions.append(
                RouteInstruction(
                    instruction=maneuver.get("instruction", "Continue"),
                    distance_meters=float(step.get("distance", 0.0)),
                    duration_seconds=float(step.get("duration", 0.0)),
                    type=maneuver.get("type", "continue"),
                    way_points=(cursor, end),
                )
            )
            cursor = end

    if instructions:
        final = instructions[-1]
        instructions[-1] = final.model_copy(update={"way_points": (final.way_points[0], last)})

    return RouteResult(
        geometry=LineString(coordinates=coordinates),
        distance_meters=distance,
        duration_seconds=duration,
        instructions=instructions,
        summary=RouteSummary(distance=distance, duration=duration),
    )
