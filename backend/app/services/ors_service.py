"""
ArchiRoutes Backend: OpenRouteService Backend
==============================================

What:  Directions and waypoint optimization through OpenRouteService.
How:   Directions: POST {ors_base_url}/directions/{profile}/geojson
       Optimization: POST {ors_optimization_url} (VROOM job/vehicle model)
       Both authenticate with the raw API key in the Authorization header.
Who:   Selected by ROUTING_PROVIDER=openrouteservice with ORS_API_KEY set.

Transport profiles:
    walking           → foot-walking
    cycling           → cycling-regular
    driving           → driving-car
    public_transport  → foot-walking (ORS has no transit profile)

Response shape (directions, GeoJSON):
    features[0].geometry                    LineString
    features[0].properties.summary          {distance, duration}
    features[0].properties.segments[].steps {instruction, distance, duration,
                                             type (int), way_points}
    features[0].properties.ascent/descent   only with elevation data
"""

from typing import Any, Dict, List

from app.schemas.routing import (
    LineString,
    RouteInstruction,
    RouteOptions,
    RoutePoint,
    RouteResult,
    RouteSummary,
)
from app.services.routing_base import ProviderBackend, expect_object

ORS_PROFILES: Dict[str, str] = {
    "walking": "foot-walking",
    "cycling": "cycling-regular",
    "driving": "driving-car",
    "public_transport": "foot-walking",
}

# ORS instruction type codes
ORS_STEP_TYPES: Dict[int, str] = {
    0: "left",
    1: "right",
    2: "sharp_left",
    3: "sharp_right",
    4: "slight_left",
    5: "slight_right",
    6: "straight",
    7: "enter_roundabout",
    8: "exit_roundabout",
    9: "u_turn",
    10: "arrive",
    11: "depart",
    12: "keep_left",
    13: "keep_right",
}


class OpenRouteServiceBackend(ProviderBackend):
    """ProviderBackend speaking the OpenRouteService v2 API."""

    name = "openrouteservice"

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openrouteservice.org/v2",
        optimization_url: str = "https://api.openrouteservice.org/optimization",
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.optimization_url = optimization_url

    # ── Directions ────────────────────────────────────────────────────────

    async def _fetch_route(self, points: List[RoutePoint], options: RouteOptions) -> RouteResult:
        profile = ORS_PROFILES[options.transport_mode]
        if options.transport_mode == "public_transport":
            self.logger.info("public_transport is approximated with the %s profile", profile)

        response = await self.http_client.post(
            f"{self.base_url}/directions/{profile}/geojson",
            json=self._directions_body(points, options, profile),
            headers=self._headers(),
        )
        response.raise_for_status()
        return parse_directions(response.json())

    def _directions_body(
        self, points: List[RoutePoint], options: RouteOptions, profile: str
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "coordinates": [[p.longitude, p.latitude] for p in points],
            "instructions": True,
        }
        provider_options: Dict[str, Any] = {}

        if options.transport_mode == "driving":
            avoid = []
            if options.avoid_tolls:
                avoid.append("tollways")
            if options.avoid_ferries:
                avoid.append("ferries")
            if avoid:
                provider_options["avoid_features"] = avoid

        if options.prefer_green and profile.startswith("foot"):
            provider_options["profile_params"] = {"weightings": {"green": 1.0}}

        if provider_options:
            body["options"] = provider_options
        return body

    # ── Optimization ──────────────────────────────────────────────────────

    async def _fetch_interior_order(
        self, points: List[RoutePoint], options: RouteOptions
    ) -> List[int]:
        coordinates = [[p.longitude, p.latitude] for p in points]
        body = {
            # Job id = index of the point in the request, so no offset is needed
            "jobs": [
                {"id": index, "location": coordinates[index]}
                for index in range(1, len(points) - 1)
            ],
            "vehicles": [
                {
                    "id": 1,
                    "profile": ORS_PROFILES[options.transport_mode],
                    "start": coordinates[0],
                    "end": coordinates[-1],
                }
            ],
        }
        response = await self.http_client.post(
            self.optimization_url, json=body, headers=self._headers()
        )
        response.raise_for_status()
        data = expect_object(response.json(), "optimization response", self.name)
        return [int(step["job"]) for step in data["routes"][0]["steps"] if step["type"] == "job"]

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": self.api_key,
            "Content-Type": "application/json",
            "Accept": "application/json, application/geo+json",
        }


def parse_directions(data: Dict[str, Any]) -> RouteResult:
    """
    Maps an ORS GeoJSON directions response to a RouteResult.

    Raises MalformedResponseError when a node is not a JSON object, and
    KeyError / IndexError / ValueError on other unexpected shapes; the
    caller turns those into LookupFailureError.
    """
    source = OpenRouteServiceBackend.name
    data = expect_object(data, "directions response", source)
    feature = expect_object(data["features"][0], "feature", source)
    properties = expect_object(feature["properties"], "feature properties", source)
    summary = expect_object(properties.get("summary", {}), "summary", source)
    # ORS omits zero-valued summary fields
    distance = float(summary.get("distance", 0.0))
    duration = float(summary.get("duration", 0.0))

    instructions = []
    for segment in properties.get("segments", []):
        segment = expect_object(segment, "segment", source)
        for step in segment.get("steps", []):
            step = expect_object(step, "step", source)
            instructions.append(
                RouteInstruction(
                    instruction=step.get("instruction", ""),
                    distance_meters=float(step.get("distance", 0.0)),
                    duration_seconds=float(step.get("duration", 0.0)),
                    type=ORS_STEP_TYPES.get(step.get("type"), str(step.get("type", "continue"))),
                    way_points=(int(step["way_points"][0]), int(step["way_points"][1])),
                )
            )

    geometry = expect_object(feature["geometry"], "geometry", source)
    return RouteResult(
        geometry=LineString(coordinates=geometry["coordinates"]),
        distance_meters=distance,
        duration_seconds=duration,
        instructions=instructions,
        summary=RouteSummary(
            distance=distance,
            duration=duration,
            ascent=properties.get("ascent"),
            descent=properties.get("descent"),
        ),
    )
