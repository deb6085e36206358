"""
ArchiRoutes Backend: Health Check Route
========================================

What:  Health check endpoint for monitoring and load balancer probes.
How:   Checks the database and reads the routing backend's status.
Who:   Docker health checks, load balancers and monitoring systems.

Status levels:
    healthy    database reachable, routing provider available
    degraded   database reachable, routing provider circuit open
               (routes are still produced, as straight lines)
    unhealthy  database unreachable
"""

import logging
import time

from fastapi import APIRouter, Request
from sqlalchemy import text

from app import __version__
from app.database import engine
from app.schemas.common import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    description="Returns the health status of the backend service and its dependencies.",
)
async def health_check(request: Request) -> HealthResponse:
    """
    Lightweight checks only: SELECT 1, and the routing backend's in-process
    status (no provider call, so health probes never spend API quota).
    """
    db_status = "connected"
    overall = "healthy"

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    routing_service = getattr(request.app.state, "routing_service", None)
    if routing_service is None:
        provider_name = "none"
        routing_status = "unavailable"
    else:
        provider_name = routing_service.backend.name
        routing_status = routing_service.backend.status()

    if routing_status not in ("available", "local") and overall == "healthy":
        overall = "degraded"

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        routing_provider=provider_name,
        routing=routing_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
