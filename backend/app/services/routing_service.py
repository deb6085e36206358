"""
ArchiRoutes Backend: Routing Service
=====================================

What:  Turns waypoints into a traversable route and optionally reorders the
       interior waypoints to shorten the trip.
How:   Delegates to one RoutingBackend (straight-line, OpenRouteService or
       Mapbox, chosen from settings). Provider failures are absorbed inside
       the backend; only a precondition violation (< 2 points) reaches the
       caller, as InvalidInputError.
Who:   The /api/routes endpoints, through app.state.routing_service.
When:  Created once in the app lifespan; shared by all requests.

Optimization flow:
    points (n <= 3)  → no optimization, build_route(points)
    points (n > 3)   → backend.optimize() → [start, *interior in order, end]
                     → build_route(reordered)
    provider failure → original order → build_route(points)
"""

import logging
from typing import List, Optional

import httpx

from app.config import Settings
from app.exceptions import InvalidInputError, LookupFailureError
from app.schemas.routing import OptimizedRoute, RouteOptions, RoutePoint, RouteResult
from app.services.circuit_breaker import CircuitBreaker
from app.services.formatting import format_distance, format_duration
from app.services.geo import haversine_distance
from app.services.mapbox_service import MapboxBackend
from app.services.ors_service import OpenRouteServiceBackend
from app.services.routing_base import RoutingBackend
from app.services.straight_line import StraightLineBackend

__all__ = [
    "RoutingService",
    "build_routing_backend",
    "format_distance",
    "format_duration",
    "haversine_distance",
]

logger = logging.getLogger(__name__)

# Below this many points there is nothing worth reordering
MIN_POINTS_TO_OPTIMIZE = 4


class RoutingService:
    """Stateless apart from its backend; safe for concurrent requests."""

    def __init__(self, backend: RoutingBackend, logger: Optional[logging.Logger] = None):
        self.backend = backend
        self.logger = logger if logger is not None else logging.getLogger(__name__)

    async def build_route(
        self,
        points: List[RoutePoint],
        options: Optional[RouteOptions] = None,
    ) -> RouteResult:
        """
        Route through the points in the given order.

        Raises:
            InvalidInputError: fewer than 2 points.

        Never raises for provider trouble: a failing provider yields the
        straight-line route.
        """
        self._require_points(points)
        options = options or RouteOptions()

        self.logger.info(
            "Building %s route through %d points with %s",
            options.transport_mode,
            len(points),
            self.backend.name,
        )
        result = await self.backend.route(points, options)
        self.logger.info(
            "Route built: %s, %s, %d instructions",
            format_distance(result.distance_meters),
            format_duration(result.duration_seconds),
            len(result.instructions),
        )
        return result

    async def optimize_route(
        self,
        points: List[RoutePoint],
        options: Optional[RouteOptions] = None,
    ) -> OptimizedRoute:
        """
        Reorders interior waypoints, then builds the route over the new order.

        The first and last points never move. With 3 or fewer points the
        input order is kept. If the optimization provider fails, the input
        order is kept and a route is still returned.
        """
        self._require_points(points)
        options = options or RouteOptions()

        if len(points) < MIN_POINTS_TO_OPTIMIZE:
            route = await self.build_route(points, options)
            return OptimizedRoute(optimized_points=list(points), route=route)

        self.logger.info("Optimizing visiting order of %d points", len(points))
        try:
            order = await self.backend.optimize(points, options)
        except LookupFailureError as e:
            self.logger.warning(
                "Route optimization failed, using original order: %s",
                e.message,
                extra={"operation": "optimize_route", "error_type": type(e).__name__},
            )
            order = list(range(len(points)))

        optimized_points = [points[index] for index in order]
        route = await self.build_route(optimized_points, options)
        return OptimizedRoute(optimized_points=optimized_points, route=route)

    @staticmethod
    def _require_points(points: List[RoutePoint]) -> None:
        if len(points) < 2:
            raise InvalidInputError(
                message="At least 2 points required to build a route",
                field="points",
                context={"count": len(points)},
            )


def build_routing_backend(settings: Settings, http_client: httpx.AsyncClient) -> RoutingBackend:
    """
    Selects the RoutingBackend variant named by settings.routing_provider.

    A provider without credentials is replaced by the straight-line backend
    with a warning, so the service always starts.
    """
    fallback = StraightLineBackend()
    provider = settings.routing_provider

    def breaker(name: str) -> CircuitBreaker:
        return CircuitBreaker(
            name=name,
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
        )

    if provider == "openrouteservice":
        if settings.ors_api_key:
            return OpenRouteServiceBackend(
                api_key=settings.ors_api_key,
                base_url=settings.ors_base_url,
                optimization_url=settings.ors_optimization_url,
                http_client=http_client,
                fallback=fallback,
                timeout_seconds=settings.routing_timeout_seconds,
                circuit_breaker=breaker("openrouteservice"),
            )
        logger.warning("ORS_API_KEY is not set, routing with straight lines")
    elif provider == "mapbox":
        if settings.mapbox_access_token:
            return MapboxBackend(
                access_token=settings.mapbox_access_token,
                base_url=settings.mapbox_base_url,
                http_client=http_client,
                fallback=fallback,
                timeout_seconds=settings.routing_timeout_seconds,
                circuit_breaker=breaker("mapbox"),
            )
        logger.warning("MAPBOX_ACCESS_TOKEN is not set, routing with straight lines")

    logger.info("Routing backend: %s", fallback.name)
    return fallback
