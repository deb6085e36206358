"""
ArchiRoutes Backend: Straight-Line Routing
===========================================

What:  Local route computation when no provider can be used.
How:   The path is the waypoints themselves joined by straight segments.
       Distance is the sum of haversine segment lengths; duration comes
       from a fixed average speed per transport mode.
Who:   Selected directly when routing_provider is "straight_line" or a
       provider key is missing; the fallback of every ProviderBackend.

Average speeds (km/h):
    walking 5 · cycling 15 · driving 40 · public_transport 25
"""

from typing import Dict, List

from app.schemas.routing import (
    LineString,
    RouteOptions,
    RoutePoint,
    RouteResult,
    RouteSummary,
    TransportMode,
)
from app.services.geo import haversine_distance
from app.services.routing_base import RoutingBackend, single_span_instruction

TRANSPORT_SPEEDS_KMH: Dict[str, float] = {
    "walking": 5.0,
    "cycling": 15.0,
    "driving": 40.0,
    "public_transport": 25.0,
}


def build_straight_line_route(points: List[RoutePoint], transport_mode: TransportMode) -> RouteResult:
    """
    Straight-line route through the points in the given order.

    Produces exactly one instruction spanning the whole geometry.
    Zero-length segments (repeated points) contribute 0 m.
    """
    coordinates = [[p.longitude, p.latitude] for p in points]

    total_distance = sum(
        haversine_distance(a.latitude, a.longitude, b.latitude, b.longitude)
        for a, b in zip(points, points[1:])
    )

    speed_ms = TRANSPORT_SPEEDS_KMH[transport_mode] * 1000 / 3600
    duration = total_distance / speed_ms

    return RouteResult(
        geometry=LineString(coordinates=coordinates),
        distance_meters=total_distance,
        duration_seconds=duration,
        instructions=[single_span_instruction(total_distance, duration, len(coordinates) - 1)],
        summary=RouteSummary(distance=total_distance, duration=duration),
    )


class StraightLineBackend(RoutingBackend):
    """Haversine routing. Never fails and never reorders waypoints."""

    name = "straight_line"

    async def route(self, points: List[RoutePoint], options: RouteOptions) -> RouteResult:
        return build_straight_line_route(points, options.transport_mode)

    async def optimize(self, points: List[RoutePoint], options: RouteOptions) -> List[int]:
        return list(range(len(points)))

    def status(self) -> str:
        return "local"
