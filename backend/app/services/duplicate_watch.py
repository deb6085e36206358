"""
ArchiRoutes Backend: Duplicate Check Session
=============================================

What:  Stateful, as-you-type duplicate checking for one "create building" form.
How:   Each update() records the form fields and schedules asyncio tasks:
         - a debounced quick search (name >= 3 chars and a city), where only
           the last call inside the debounce window runs
         - an immediate full check once name, city and non-zero
           latitude/longitude are all known
       A newer update cancels the pending task of the same kind, whether it
       is still sleeping or already awaiting the store.
Who:   Form-facing code (e.g. a websocket or server-driven form handler).

Derived flags:
    has_high_confidence_duplicates  full check's highest confidence is high
    has_duplicates                  full check found any OR quick search found any
"""

import asyncio
import logging
from typing import List, Optional

from app.config import settings
from app.schemas.duplicates import DuplicateCandidate, DuplicateCheckResult
from app.services.duplicate_service import DuplicateDetectionService

logger = logging.getLogger(__name__)


class DuplicateCheckSession:
    """
    Duplicate-check state for one form. Must be used inside a running event loop.

    Usage:
        session = DuplicateCheckSession(service)
        session.update("Reichstag", "Berlin")                 # quick search after 500 ms
        session.update("Reichstag", "Berlin", 52.5186, 13.3762)  # + full check
        await session.wait_idle()
        if session.has_high_confidence_duplicates:
            ...
    """

    def __init__(
        self,
        service: DuplicateDetectionService,
        debounce_ms: Optional[int] = None,
    ):
        self.service = service
        debounce = settings.duplicate_debounce_ms if debounce_ms is None else debounce_ms
        self.debounce_seconds = debounce / 1000

        self.name = ""
        self.city = ""
        self.latitude = 0.0
        self.longitude = 0.0

        self.checking = False
        self.quick_results: List[DuplicateCandidate] = []
        self.full_check_result: Optional[DuplicateCheckResult] = None

        self._quick_task: Optional[asyncio.Task] = None
        self._full_task: Optional[asyncio.Task] = None

    # ── Derived state ─────────────────────────────────────────────────────

    @property
    def has_high_confidence_duplicates(self) -> bool:
        return (
            self.full_check_result is not None
            and self.full_check_result.highest_confidence == "high"
        )

    @property
    def has_duplicates(self) -> bool:
        # Union: the quick search can flag a duplicate before coordinates exist
        full_count = len(self.full_check_result.duplicates) if self.full_check_result else 0
        return full_count > 0 or len(self.quick_results) > 0

    # ── Input ─────────────────────────────────────────────────────────────

    def update(
        self,
        name: str,
        city: str,
        latitude: float = 0.0,
        longitude: float = 0.0,
    ) -> None:
        """Records the current form values and (re)schedules the checks."""
        self.name = name
        self.city = city
        self.latitude = latitude
        self.longitude = longitude

        self._schedule_quick_search()
        if self._has_full_input():
            self._cancel(self._full_task)
            self._full_task = asyncio.create_task(self.perform_full_check())

    async def perform_full_check(self) -> Optional[DuplicateCheckResult]:
        """
        Runs the authoritative check with the current values.

        Returns None (and changes nothing) when name, city or coordinates
        are missing.
        """
        if not self._has_full_input():
            logger.warning("Not enough data for a full duplicate check")
            return None

        self.checking = True
        try:
            result = await self.service.check_building_duplicates(
                name=self.name,
                city=self.city,
                latitude=self.latitude,
                longitude=self.longitude,
            )
        finally:
            self.checking = False

        self.full_check_result = result
        return result

    def reset(self) -> None:
        """Cancels pending checks and clears all results."""
        self._cancel(self._quick_task)
        self._cancel(self._full_task)
        self._quick_task = None
        self._full_task = None
        self.full_check_result = None
        self.quick_results = []
        self.checking = False

    async def wait_idle(self) -> None:
        """Waits until every scheduled check has finished or been cancelled."""
        tasks = [t for t in (self._quick_task, self._full_task) if t is not None]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ── Internals ─────────────────────────────────────────────────────────

    def _has_full_input(self) -> bool:
        return bool(self.name and self.city and self.latitude != 0 and self.longitude != 0)

    def _schedule_quick_search(self) -> None:
        self._cancel(self._quick_task)
        self._quick_task = None

        if not self.name or len(self.name) < settings.duplicate_min_name_length or not self.city:
            self.quick_results = []
            return

        self._quick_task = asyncio.create_task(self._debounced_search(self.name, self.city))

    async def _debounced_search(self, name: str, city: str) -> None:
        await asyncio.sleep(self.debounce_seconds)
        self.quick_results = await self.service.search_similar_buildings(
            name, city=city, limit=settings.duplicate_search_limit
        )

    @staticmethod
    def _cancel(task: Optional[asyncio.Task]) -> None:
        if task is not None and not task.done():
            task.cancel()
