"""
ArchiRoutes Backend: Route Building Handlers
=============================================

What:  POST /api/routes/build and POST /api/routes/optimize.
How:   Thin handlers over the RoutingService created in the app lifespan
       (app.state.routing_service). Fewer than 2 points raises
       InvalidInputError, which the global handler turns into a 400.
Who:   Route editors and the tour planner.
"""

import logging

from fastapi import APIRouter, Depends, Request

from app.schemas.common import ErrorResponse
from app.schemas.routing import OptimizedRoute, RouteRequest, RouteResult
from app.services.routing_service import RoutingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/routes", tags=["Routing"])


def get_routing_service(request: Request) -> RoutingService:
    return request.app.state.routing_service


@router.post(
    "/build",
    response_model=RouteResult,
    responses={400: {"description": "Fewer than 2 points", "model": ErrorResponse}},
    summary="Build a route through waypoints in the given order",
    description=(
        "Returns geometry, distance, duration and turn-by-turn instructions. "
        "When the routing provider is unavailable the route is a straight-line "
        "approximation instead of an error."
    ),
)
async def build_route(
    body: RouteRequest,
    service: RoutingService = Depends(get_routing_service),
) -> RouteResult:
    return await service.build_route(body.points, body.options)


@router.post(
    "/optimize",
    response_model=OptimizedRoute,
    responses={400: {"description": "Fewer than 2 points", "model": ErrorResponse}},
    summary="Reorder interior waypoints and build the route",
    description=(
        "The first and last points stay fixed. With 3 or fewer points, or when the "
        "optimization provider fails, the original order is kept."
    ),
)
async def optimize_route(
    body: RouteRequest,
    service: RoutingService = Depends(get_routing_service),
) -> OptimizedRoute:
    return await service.optimize_route(body.points, body.options)
