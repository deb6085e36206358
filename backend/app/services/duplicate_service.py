"""
ArchiRoutes Backend: Building Duplicate Detection Service
==========================================================

What:  Decides whether a proposed building is probably already cataloged.
How:   Three strategies run against the catalog (location proximity, exact
       name, fuzzy name) and their candidates are merged into one
       confidence-ranked result.
Who:   The buildings routes, and DuplicateCheckSession for as-you-type checks.
When:  Before a "create building" form is submitted.

Fail-open contract:
    A failing lookup NEVER blocks building creation. Every operation catches
    the failure, logs it with structured context, and returns the empty
    result (no duplicates, `low` confidence, or an empty list).

Operations:
    check_building_duplicates()  authoritative check (stored function)
    search_similar_buildings()   lightweight name probe for autocomplete
    find_nearby_buildings()      radius search, confidence from distance
    calculate_string_similarity  pure Levenshtein-based score in [0, 1]
"""

import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError
from rapidfuzz.distance import Levenshtein

from app.config import settings
from app.exceptions import MalformedResponseError
from app.models.building import ACTIVE_MODERATION_STATUSES
from app.schemas.duplicates import DuplicateCandidate, DuplicateCheckResult
from app.services.geodata_store import GeodataStore


def calculate_string_similarity(a: str, b: str) -> float:
    """
    (max_len - levenshtein(a, b)) / max_len, and 1.0 when both are empty.

    Case-sensitive; callers normalize case first if they need to.
    Symmetric, and always within [0, 1].
    """
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 1.0
    return (max_len - Levenshtein.distance(a, b)) / max_len


class DuplicateDetectionService:
    """
    Duplicate detection over an injected GeodataStore.

    Stateless apart from its collaborators; one instance may serve
    concurrent checks.
    """

    def __init__(self, store: GeodataStore, logger: Optional[logging.Logger] = None):
        self.store = store
        self.logger = logger if logger is not None else logging.getLogger(__name__)

    async def check_building_duplicates(
        self,
        name: str,
        city: str,
        latitude: float,
        longitude: float,
    ) -> DuplicateCheckResult:
        """
        Full duplicate check for a proposed building.

        Flow:
            1. One aggregate store lookup (stored function); each row arrives
               tagged with match_type, distance or similarity, and confidence
            2. Rows become DuplicateCandidates (city = the queried city)
            3. highest_confidence = max over candidates, is_duplicate = any

        Returns:
            DuplicateCheckResult. The empty result on zero rows or on any
            lookup failure, including malformed rows.
        """
        self.logger.info("Checking duplicates for '%s' in %s", name, city)
        try:
            rows = await self.store.check_building_duplicates(
                name=name, city=city, latitude=latitude, longitude=longitude
            )
            duplicates = [self._candidate_from_duplicate_row(row, city) for row in rows]
        except Exception as e:
            self._log_failure("check_building_duplicates", e)
            return DuplicateCheckResult.empty()

        result = DuplicateCheckResult.from_candidates(duplicates)
        self.logger.info(
            "Duplicate check for '%s': %d candidates, highest confidence %s",
            name,
            len(duplicates),
            result.highest_confidence,
        )
        return result

    async def search_similar_buildings(
        self,
        name: str,
        city: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[DuplicateCandidate]:
        """
        Lightweight name probe for autocomplete-style warnings.

        Names shorter than `duplicate_min_name_length` (3) return [] without
        touching the store. Only approved or pending buildings are considered.
        Every result is `similar_name` / `medium`; the similarity_score is
        computed locally (case-folded) and orders the results, best first.
        """
        if len(name) < settings.duplicate_min_name_length:
            return []

        try:
            rows = await self.store.search_buildings(
                name=name,
                city=city,
                limit=limit if limit is not None else settings.duplicate_search_limit,
                statuses=ACTIVE_MODERATION_STATUSES,
            )
            query = name.casefold()
            candidates = [
                DuplicateCandidate(
                    id=str(row["id"]),
                    name=row["name"],
                    city=row["city"],
                    address=row.get("address"),
                    latitude=row.get("latitude"),
                    longitude=row.get("longitude"),
                    similarity_score=calculate_string_similarity(query, row["name"].casefold()),
                    match_type="similar_name",
                    confidence="medium",
                )
                for row in rows
            ]
        except Exception as e:
            self._log_failure("search_similar_buildings", e)
            return []

        # Stable sort: the store's order breaks ties
        candidates.sort(key=lambda c: c.similarity_score or 0.0, reverse=True)
        return candidates

    async def find_nearby_buildings(
        self,
        latitude: float,
        longitude: float,
        radius_meters: Optional[float] = None,
    ) -> List[DuplicateCandidate]:
        """
        Buildings within radius_meters (default 50) of a point.

        Confidence: high if distance < high_confidence_distance_meters (20),
        else medium. match_type is always exact_location.
        """
        radius = radius_meters if radius_meters is not None else settings.nearby_radius_meters
        try:
            rows = await self.store.find_nearby_buildings(
                latitude=latitude, longitude=longitude, radius_meters=radius
            )
            candidates = [self._candidate_from_nearby_row(row) for row in rows]
        except Exception as e:
            self._log_failure("find_nearby_buildings", e)
            return []
        return candidates

    # ── Row mapping ───────────────────────────────────────────────────────

    def _candidate_from_duplicate_row(self, row: Dict[str, Any], city: str) -> DuplicateCandidate:
        if row.get("duplicate_id") is None:
            raise MalformedResponseError(
                message="Duplicate row without duplicate_id",
                source="check_building_duplicates",
                context={"keys": sorted(row)},
            )
        try:
            return DuplicateCandidate(
                id=str(row["duplicate_id"]),
                name=row["duplicate_name"],
                city=city,
                address=row.get("duplicate_address"),
                latitude=row.get("duplicate_latitude"),
                longitude=row.get("duplicate_longitude"),
                distance_meters=row.get("distance_meters"),
                similarity_score=row.get("similarity_score"),
                match_type=row["match_type"],
                confidence=row["confidence"],
            )
        except (KeyError, ValidationError) as e:
            raise MalformedResponseError(
                message="Duplicate row has an unexpected shape",
                source="check_building_duplicates",
                context={"error": str(e)},
            ) from e

    def _candidate_from_nearby_row(self, row: Dict[str, Any]) -> DuplicateCandidate:
        try:
            distance = float(row["distance_meters"])
            return DuplicateCandidate(
                id=str(row["id"]),
                name=row["name"],
                city=row["city"],
                address=row.get("address"),
                latitude=row.get("latitude"),
                longitude=row.get("longitude"),
                distance_meters=distance,
                match_type="exact_location",
                confidence=(
                    "high" if distance < settings.high_confidence_distance_meters else "medium"
                ),
            )
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            raise MalformedResponseError(
                message="Nearby row has an unexpected shape",
                source="find_nearby_buildings",
                context={"error": str(e)},
            ) from e

    def _log_failure(self, operation: str, error: Exception) -> None:
        self.logger.error(
            "%s failed, continuing without duplicates: %s",
            operation,
            str(error),
            exc_info=True,
            extra={"operation": operation, "error_type": type(error).__name__},
        )
