"""
ArchiRoutes Backend: Custom Exception Hierarchy
================================================

What:  Application-specific exceptions for the duplicate detection and routing services.
How:   Each exception class carries a message and optional context dict.
       Global exception handlers (registered in main.py) turn the ones that
       escape a service into structured JSON error responses.
Who:   Raised by the store, provider backends and services; caught by services
       (fail-open) or by the global handlers.

Exception Hierarchy:
    ArchiRoutesError (base)
    ├── InvalidInputError            → 400 Bad Request (caller precondition violated)
    └── LookupFailureError           → absorbed by services; 503 if it escapes
        ├── MalformedResponseError   → unexpected row / payload shape
        └── CircuitBreakerOpenError  → provider short-circuited after repeated failures

Propagation policy:
    Only InvalidInputError is meant to reach a caller. Every LookupFailureError
    has a deterministic fallback in the service that observes it: an empty
    duplicate result, a straight-line route, or the original waypoint order.
"""

from typing import Any, Dict, Optional


class ArchiRoutesError(Exception):
    """
    Base exception for all ArchiRoutes application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class InvalidInputError(ArchiRoutesError):
    """
    Raised when a caller violates an operation's precondition.

    When:    build_route / optimize_route called with fewer than 2 points.
    HTTP:    400 Bad Request. Never retried.
    """

    def __init__(
        self,
        message: str = "Invalid input",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class LookupFailureError(ArchiRoutesError):
    """
    Raised when an external store or provider call fails.

    When:    Network error, timeout, auth failure, HTTP error status, store error.
    Handling: Always fail-open. The duplicate service returns an empty result;
              the routing service falls back to local computation.
    """

    def __init__(
        self,
        message: str = "External lookup failed",
        source: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if source:
            ctx["source"] = source
        super().__init__(message=message, context=ctx)
        self.source = source


class MalformedResponseError(LookupFailureError):
    """
    Raised when a store row or provider payload has an unexpected shape.

    Examples: a duplicate row without `duplicate_id`, a directions payload with
    no features, `way_points` outside the geometry, an optimization order that
    is not a permutation of the interior waypoints.
    """

    def __init__(
        self,
        message: str = "External lookup returned an unexpected response",
        source: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, source=source, context=context)


class CircuitBreakerOpenError(LookupFailureError):
    """
    Raised when a provider's circuit breaker is OPEN.

    What:    Too many consecutive provider failures; calls are skipped until
             the recovery timeout elapses.
    Handling: Same as any LookupFailureError, so the fallback engages at once
              instead of after another timeout.
    """

    def __init__(
        self,
        recovery_time: int = 60,
        source: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Routing provider is temporarily disabled after repeated failures. "
            f"It will be retried in approximately {recovery_time} seconds."
        )
        ctx = context or {}
        ctx["recovery_time"] = recovery_time
        super().__init__(message=message, source=source, context=ctx)
        self.recovery_time = recovery_time
