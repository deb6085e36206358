"""
ArchiRoutes Backend: Building Duplicate Route Handlers
=======================================================

What:  HTTP surface of the duplicate detection service.
How:   Each request gets its own AsyncSession (Depends(get_db_session)),
       wrapped in a SqlGeodataStore and a DuplicateDetectionService.
Who:   The "create building" form (full check, quick search, nearby probe).

Every endpoint is fail-open: a catalog outage yields an empty result with
HTTP 200, never an error that would block building creation.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db_session
from app.schemas.common import ErrorResponse
from app.schemas.duplicates import (
    BuildingCandidatesResponse,
    DuplicateCheckRequest,
    DuplicateCheckResult,
)
from app.services.duplicate_service import DuplicateDetectionService
from app.services.geodata_store import SqlGeodataStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/buildings", tags=["Buildings"])


def get_duplicate_service(
    db: AsyncSession = Depends(get_db_session),
) -> DuplicateDetectionService:
    """Request-scoped service over the request's session. Overridden in tests."""
    return DuplicateDetectionService(SqlGeodataStore(db))


@router.post(
    "/duplicates/check",
    response_model=DuplicateCheckResult,
    responses={422: {"description": "Malformed request body", "model": ErrorResponse}},
    summary="Check whether a proposed building already exists",
    description=(
        "Runs the aggregate duplicate lookup (location radius, exact name, fuzzy name) "
        "and returns every candidate with its match type and confidence."
    ),
)
async def check_duplicates(
    body: DuplicateCheckRequest,
    service: DuplicateDetectionService = Depends(get_duplicate_service),
) -> DuplicateCheckResult:
    return await service.check_building_duplicates(
        name=body.name,
        city=body.city,
        latitude=body.latitude,
        longitude=body.longitude,
    )


@router.get(
    "/similar",
    response_model=BuildingCandidatesResponse,
    summary="Quick name search for as-you-type warnings",
)
async def search_similar(
    name: str = Query(..., description="Name fragment; fewer than 3 characters returns nothing"),
    city: Optional[str] = Query(default=None, description="Restrict to this city"),
    limit: Optional[int] = Query(default=None, ge=1, le=50),
    service: DuplicateDetectionService = Depends(get_duplicate_service),
) -> BuildingCandidatesResponse:
    """
    Lightweight probe, not the authoritative check.

    Only approved and pending buildings are searched. Results are ordered
    by name similarity, best first.
    """
    buildings = await service.search_similar_buildings(name, city=city, limit=limit)
    return BuildingCandidatesResponse(buildings=buildings)


@router.get(
    "/nearby",
    response_model=BuildingCandidatesResponse,
    summary="Buildings within a radius of a point",
)
async def nearby(
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
    radius_meters: Optional[float] = Query(default=None, gt=0, le=5000),
    service: DuplicateDetectionService = Depends(get_duplicate_service),
) -> BuildingCandidatesResponse:
    buildings = await service.find_nearby_buildings(latitude, longitude, radius_meters)
    return BuildingCandidatesResponse(buildings=buildings)
