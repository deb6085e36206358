"""
ArchiRoutes Backend: Geodata Store (catalog lookups)
=====================================================

What:  The narrow query interface the duplicate detection service reads the
       building catalog through, plus its async SQLAlchemy implementation.
How:   GeodataStore is abstract; SqlGeodataStore runs the two stored
       functions from migration 001 and an ORM name search on one session.
Who:   Built per request in the buildings routes; injected into
       DuplicateDetectionService. Tests substitute an AsyncMock.
When:  Every duplicate check, quick search and radius search.

Failure contract:
    Every method returns plain row dicts or raises LookupFailureError.
    Transient connection errors (OperationalError) are retried with tenacity
    before giving up; the lookups are read-only, so a retry is always safe.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select, text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from app.config import settings
from app.exceptions import LookupFailureError
from app.models.building import Building

logger = logging.getLogger(__name__)

Row = Dict[str, Any]


class GeodataStore(ABC):
    """
    Read-only lookups against the building catalog.

    Implementations:
        - SqlGeodataStore: PostgreSQL via async SQLAlchemy (default)
        - AsyncMock(spec=GeodataStore): unit tests
    """

    @abstractmethod
    async def check_building_duplicates(
        self, name: str, city: str, latitude: float, longitude: float
    ) -> List[Row]:
        """
        Aggregate duplicate lookup (radius match + exact name + fuzzy name).

        Returns rows with keys duplicate_id, duplicate_name, duplicate_address,
        duplicate_latitude, duplicate_longitude, distance_meters,
        similarity_score, match_type, confidence.
        """
        ...

    @abstractmethod
    async def search_buildings(
        self,
        name: str,
        city: Optional[str],
        limit: int,
        statuses: Sequence[str],
    ) -> List[Row]:
        """
        Case-insensitive substring search on name, optionally within a city.

        Returns rows with keys id, name, city, address, latitude, longitude.
        """
        ...

    @abstractmethod
    async def find_nearby_buildings(
        self, latitude: float, longitude: float, radius_meters: float
    ) -> List[Row]:
        """Radius search. Rows carry id, name, city, address, latitude, longitude, distance_meters."""
        ...


def escape_like(value: str, escape_char: str = "\\") -> str:
    """Escapes LIKE wildcards so user input matches literally."""
    return (
        value.replace(escape_char, escape_char * 2)
        .replace("%", f"{escape_char}%")
        .replace("_", f"{escape_char}_")
    )


class SqlGeodataStore(GeodataStore):
    """
    GeodataStore backed by one AsyncSession.

    SQL used:
        SELECT * FROM check_building_duplicates(:building_name, :building_city,
                                                :building_lat, :building_lng)
        SELECT id, name, city, address, latitude, longitude FROM buildings
            WHERE name ILIKE :pattern [AND city = :city]
              AND moderation_status IN (...) LIMIT :limit
        SELECT * FROM find_nearby_buildings(:lat, :lng, :radius_meters)
    """

    CHECK_DUPLICATES_SQL = text(
        "SELECT * FROM check_building_duplicates("
        ":building_name, :building_city, :building_lat, :building_lng)"
    )
    FIND_NEARBY_SQL = text("SELECT * FROM find_nearby_buildings(:lat, :lng, :radius_meters)")

    def __init__(
        self,
        session: AsyncSession,
        retry_attempts: Optional[int] = None,
        retry_min_wait: Optional[float] = None,
        retry_max_wait: Optional[float] = None,
    ):
        self.session = session
        self.retry_attempts = retry_attempts or settings.db_retry_attempts
        self.retry_min_wait = settings.db_retry_min_wait if retry_min_wait is None else retry_min_wait
        self.retry_max_wait = settings.db_retry_max_wait if retry_max_wait is None else retry_max_wait

    async def check_building_duplicates(
        self, name: str, city: str, latitude: float, longitude: float
    ) -> List[Row]:
        return await self._fetch_rows(
            "check_building_duplicates",
            self.CHECK_DUPLICATES_SQL,
            {
                "building_name": name,
                "building_city": city,
                "building_lat": latitude,
                "building_lng": longitude,
            },
        )

    async def search_buildings(
        self,
        name: str,
        city: Optional[str],
        limit: int,
        statuses: Sequence[str],
    ) -> List[Row]:
        query = (
            select(
                Building.id,
                Building.name,
                Building.city,
                Building.address,
                Building.latitude,
                Building.longitude,
            )
            .where(Building.name.ilike(f"%{escape_like(name)}%", escape="\\"))
            .where(Building.moderation_status.in_(list(statuses)))
        )
        if city:
            query = query.where(Building.city == city)
        query = query.limit(limit)
        return await self._fetch_rows("search_buildings", query)

    async def find_nearby_buildings(
        self, latitude: float, longitude: float, radius_meters: float
    ) -> List[Row]:
        return await self._fetch_rows(
            "find_nearby_buildings",
            self.FIND_NEARBY_SQL,
            {"lat": latitude, "lng": longitude, "radius_meters": radius_meters},
        )

    async def _fetch_rows(
        self, operation: str, statement: Any, params: Optional[Dict[str, Any]] = None
    ) -> List[Row]:
        """
        Executes a statement and returns its rows as dicts.

        Retries OperationalError (dropped connection, failover) with
        exponential backoff + jitter; anything else fails at once.
        """
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(OperationalError),
                stop=stop_after_attempt(self.retry_attempts),
                wait=wait_exponential_jitter(
                    initial=self.retry_min_wait,
                    max=self.retry_max_wait,
                    jitter=self.retry_min_wait,
                ),
                before_sleep=before_sleep_log(logger, logging.WARNING),
                reraise=True,
            ):
                with attempt:
                    try:
                        result = await self.session.execute(statement, params or {})
                    except OperationalError:
                        # The failed transaction must be rolled back before the session is reused
                        await self.session.rollback()
                        raise
            rows = [dict(row) for row in result.mappings().all()]
        except SQLAlchemyError as e:
            logger.error(
                "Catalog lookup %s failed: %s",
                operation,
                str(e),
                extra={"operation": operation, "error_type": type(e).__name__},
            )
            raise LookupFailureError(
                message="Building catalog lookup failed",
                source=operation,
                context={"error_type": type(e).__name__},
            ) from e

        logger.debug("Catalog lookup %s returned %d rows", operation, len(rows))
        return rows
