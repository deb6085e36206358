"""
ArchiRoutes Backend: Duplicate Detection Schemas
=================================================

What:  Pydantic models for duplicate candidates, check results and their requests.
Who:   Returned by DuplicateDetectionService and the /api/buildings routes.
When:  Created fresh per check; never persisted.

Confidence rule:
    exact_location  high if distance_meters < 20, else medium
    exact_name      high (computed by the store)
    similar_name    medium / low from the store's similarity; quick-search
                    results are always medium
"""

from typing import Dict, Iterable, List, Literal, Optional

from pydantic import BaseModel, Field


MatchType = Literal["exact_location", "exact_name", "similar_name"]
Confidence = Literal["high", "medium", "low"]

# Ordering used for highest_confidence: high > medium > low
CONFIDENCE_RANK: Dict[str, int] = {"low": 0, "medium": 1, "high": 2}


class DuplicateCandidate(BaseModel):
    """
    A cataloged building that may be the same as the one being created.

    distance_meters is only set for location matches and similarity_score
    only for name matches; both stay optional on one type so consumers can
    handle every match type uniformly.
    """
    id: str = Field(description="Identifier of the existing building")
    name: str = Field(description="Name of the existing building")
    city: str = Field(description="City of the existing building")
    address: Optional[str] = Field(default=None, description="Street address, if known")
    latitude: Optional[float] = Field(
        default=None,
        description="Latitude in degrees. Null when the lookup does not report positions",
    )
    longitude: Optional[float] = Field(default=None, description="Longitude in degrees")
    distance_meters: Optional[float] = Field(
        default=None,
        description="Great-circle distance from the queried point (location matches only)",
    )
    similarity_score: Optional[float] = Field(
        default=None,
        description="Normalized name similarity in [0, 1] (name matches only)",
    )
    match_type: MatchType = Field(description="Strategy that produced this candidate")
    confidence: Confidence = Field(description="How likely this is a true duplicate")


def highest_confidence(candidates: Iterable[DuplicateCandidate]) -> Confidence:
    """Maximum confidence across candidates (high > medium > low), `low` when empty."""
    best: Confidence = "low"
    for candidate in candidates:
        if CONFIDENCE_RANK[candidate.confidence] > CONFIDENCE_RANK[best]:
            best = candidate.confidence
    return best


class DuplicateCheckResult(BaseModel):
    """
    Outcome of a full duplicate check for one proposed building.

    Invariant: is_duplicate == bool(duplicates) and highest_confidence is
    the maximum over duplicates (low when empty).
    """
    is_duplicate: bool = Field(description="True iff at least one duplicate was found")
    duplicates: List[DuplicateCandidate] = Field(default_factory=list)
    highest_confidence: Confidence = Field(default="low")

    @classmethod
    def from_candidates(cls, candidates: List[DuplicateCandidate]) -> "DuplicateCheckResult":
        return cls(
            is_duplicate=len(candidates) > 0,
            duplicates=candidates,
            highest_confidence=highest_confidence(candidates),
        )

    @classmethod
    def empty(cls) -> "DuplicateCheckResult":
        """The fail-open result: nothing flagged."""
        return cls(is_duplicate=False, duplicates=[], highest_confidence="low")


# ══════════════════════════════════════════════════════════════════════════
# Request / Response wrappers for the HTTP layer
# ══════════════════════════════════════════════════════════════════════════


class DuplicateCheckRequest(BaseModel):
    """Body of POST /api/buildings/duplicates/check."""
    name: str = Field(min_length=1, max_length=255)
    city: str = Field(min_length=1, max_length=255)
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class BuildingCandidatesResponse(BaseModel):
    """Wrapper for the quick-search and nearby endpoints."""
    buildings: List[DuplicateCandidate] = Field(default_factory=list)
