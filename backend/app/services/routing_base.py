"""
ArchiRoutes Backend: Routing Backend Interface
===============================================

What:  The RoutingBackend capability and the shared machinery of the
       external-provider variants.
How:   RoutingService talks to exactly one RoutingBackend, chosen from
       configuration (see routing_service.build_routing_backend):

           RoutingBackend (abstract)
           ├── StraightLineBackend        local haversine computation
           └── ProviderBackend            circuit breaker + timeout + fallback
               ├── OpenRouteServiceBackend
               └── MapboxBackend

       A ProviderBackend never lets a provider failure escape: route()
       defers to its StraightLineBackend and optimize() returns the
       original order. "Provider disabled" is a configuration choice
       (StraightLineBackend selected), never a silent branch inside a
       provider.
Who:   RoutingService; the health endpoint reads status().
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

import httpx

from app.exceptions import LookupFailureError, MalformedResponseError
from app.schemas.routing import RouteInstruction, RouteOptions, RoutePoint, RouteResult
from app.services.circuit_breaker import CircuitBreaker
from app.services.formatting import format_distance

T = TypeVar("T")


class RoutingBackend(ABC):
    """
    Contract:
        - route() returns a RouteResult whose geometry has >= 2 coordinates
          and whose instruction spans are valid indices covering the path
        - optimize() returns a visiting order of point indices that starts
          with 0, ends with len(points) - 1, and permutes the rest
        - Neither raises for provider trouble; both expect len(points) >= 2
    """

    name: str = "routing"

    @abstractmethod
    async def route(self, points: List[RoutePoint], options: RouteOptions) -> RouteResult:
        ...

    @abstractmethod
    async def optimize(self, points: List[RoutePoint], options: RouteOptions) -> List[int]:
        ...

    def status(self) -> str:
        """Lightweight status for the health endpoint (no provider call, no quota)."""
        return "available"

    async def aclose(self) -> None:
        return None


def expect_object(value: Any, what: str, source: str) -> Dict[str, Any]:
    """Returns value if it is a JSON object, else raises MalformedResponseError."""
    if not isinstance(value, dict):
        raise MalformedResponseError(
            message=f"Expected a JSON object for {what}, got {type(value).__name__}",
            source=source,
            context={"node": what},
        )
    return value


def single_span_instruction(distance: float, duration: float, last_index: int) -> RouteInstruction:
    """One "depart" instruction spanning the whole geometry."""
    return RouteInstruction(
        instruction=f"Follow {format_distance(distance)} to destination",
        distance_meters=distance,
        duration_seconds=duration,
        type="depart",
        way_points=(0, last_index),
    )


def ensure_route_invariants(result: RouteResult, source: str) -> RouteResult:
    """
    Validates a provider route; adds a whole-path instruction if it has none.

    Raises:
        MalformedResponseError: fewer than 2 coordinates, a span outside the
            geometry, or spans that leave part of the path uncovered.
    """
    coordinates = result.geometry.coordinates
    if len(coordinates) < 2:
        raise MalformedResponseError(
            message="Route geometry has fewer than 2 coordinates",
            source=source,
            context={"coordinates": len(coordinates)},
        )
    last = len(coordinates) - 1

    if not result.instructions:
        return result.model_copy(
            update={
                "instructions": [
                    single_span_instruction(result.distance_meters, result.duration_seconds, last)
                ]
            }
        )

    reach: Optional[int] = None
    for start, end in sorted(step.way_points for step in result.instructions):
        if start < 0 or end > last or start > end:
            raise MalformedResponseError(
                message="Instruction way_points outside the route geometry",
                source=source,
                context={"way_points": [start, end], "last_index": last},
            )
        if reach is None:
            if start != 0:
                break
            reach = end
        elif start > reach:
            break
        else:
            reach = max(reach, end)

    if reach != last:
        raise MalformedResponseError(
            message="Instructions do not cover the whole route geometry",
            source=source,
            context={"covered_until": reach, "last_index": last},
        )
    return result


def full_visiting_order(interior: List[int], point_count: int, source: str) -> List[int]:
    """[0, *interior, n - 1] after checking interior permutes 1..n-2."""
    if sorted(interior) != list(range(1, point_count - 1)):
        raise MalformedResponseError(
            message="Optimization order is not a permutation of the interior waypoints",
            source=source,
            context={"order": interior, "point_count": point_count},
        )
    return [0, *interior, point_count - 1]


class ProviderBackend(RoutingBackend):
    """
    Base for external directions/optimization providers.

    Error Handling Chain:
        circuit OPEN → CircuitBreakerOpenError → fallback at once
        call exceeds timeout_seconds → LookupFailureError → fallback
        httpx error / bad status / undecodable payload
            → LookupFailureError → fallback
        payload node of the wrong JSON type (null body, list properties)
            → MalformedResponseError → fallback
        Every failure is counted by the circuit breaker; there are no retries.

    Subclasses implement _fetch_route() and _fetch_interior_order().
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        fallback: RoutingBackend,
        timeout_seconds: float = 10.0,
        circuit_breaker: Optional[CircuitBreaker] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.http_client = http_client
        self.fallback = fallback
        self.timeout_seconds = timeout_seconds
        self.circuit_breaker = circuit_breaker or CircuitBreaker(name=self.name)
        self.logger = logger if logger is not None else logging.getLogger(__name__)

    @abstractmethod
    async def _fetch_route(self, points: List[RoutePoint], options: RouteOptions) -> RouteResult:
        ...

    @abstractmethod
    async def _fetch_interior_order(
        self, points: List[RoutePoint], options: RouteOptions
    ) -> List[int]:
        """Visiting order of the interior point indices (1..n-2)."""
        ...

    async def route(self, points: List[RoutePoint], options: RouteOptions) -> RouteResult:
        async def fetch() -> RouteResult:
            result = await self._fetch_route(points, options)
            return ensure_route_invariants(result, self.name)

        try:
            return await self._guarded("directions", fetch)
        except LookupFailureError as e:
            self._log_fallback("directions", e, "using straight-line route")
            return await self.fallback.route(points, options)

    async def optimize(self, points: List[RoutePoint], options: RouteOptions) -> List[int]:
        async def fetch() -> List[int]:
            interior = await self._fetch_interior_order(points, options)
            return full_visiting_order(interior, len(points), self.name)

        try:
            return await self._guarded("optimization", fetch)
        except LookupFailureError as e:
            self._log_fallback("optimization", e, "keeping original order")
            return list(range(len(points)))

    def status(self) -> str:
        if self.circuit_breaker.state == CircuitBreaker.OPEN:
            return "circuit_open"
        return "available"

    async def _guarded(self, operation: str, call: Callable[[], Awaitable[T]]) -> T:
        """
        Runs one provider call under the circuit breaker and a hard timeout,
        translating every provider-side failure into LookupFailureError.
        """
        self.circuit_breaker.can_execute()

        start_time = time.perf_counter()
        try:
            result = await asyncio.wait_for(call(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            self.circuit_breaker.record_failure()
            raise LookupFailureError(
                message=f"{self.name} {operation} timed out",
                source=self.name,
                context={"operation": operation, "timeout_seconds": self.timeout_seconds},
            ) from e
        except LookupFailureError:
            self.circuit_breaker.record_failure()
            raise
        except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError, AttributeError) as e:
            # ValueError covers JSON decode errors and pydantic validation errors;
            # AttributeError covers JSON nodes of the wrong type (null, list, string)
            self.circuit_breaker.record_failure()
            raise LookupFailureError(
                message=f"{self.name} {operation} failed: {e}",
                source=self.name,
                context={"operation": operation, "error_type": type(e).__name__},
            ) from e

        self.circuit_breaker.record_success()
        self.logger.debug(
            "%s %s completed in %.0fms",
            self.name,
            operation,
            (time.perf_counter() - start_time) * 1000,
        )
        return result

    def _log_fallback(self, operation: str, error: LookupFailureError, action: str) -> None:
        self.logger.warning(
            "%s %s failed, %s: %s",
            self.name,
            operation,
            action,
            error.message,
            extra={
                "provider": self.name,
                "operation": operation,
                "error_type": type(error).__name__,
            },
        )
