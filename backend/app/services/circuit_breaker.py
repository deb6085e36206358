"""
ArchiRoutes Backend: Provider Circuit Breaker
==============================================

What:  Per-provider circuit breaker for the external routing APIs.
How:   Counts consecutive failures; once the threshold is reached, calls are
       rejected instantly with CircuitBreakerOpenError until the recovery
       timeout elapses, then one test call is let through.
Who:   ProviderBackend (routing_base.py) wraps every directions and
       optimization call with one breaker per provider instance.

Routing is fail-open, so an OPEN breaker means "use the straight-line route
(or original order) now" instead of waiting for another timeout.

State Machine:
    CLOSED (normal operation)
        → On failure: increment failure_count
        → When failure_count >= threshold: transition to OPEN

    OPEN (rejecting all requests)
        → All calls raise CircuitBreakerOpenError immediately
        → After recovery_timeout seconds: transition to HALF_OPEN

    HALF_OPEN (testing recovery)
        → Allow ONE request through; concurrent callers are rejected
        → On success: transition to CLOSED (reset failure_count)
        → On failure: transition back to OPEN (reset timer)

Concurrency:
    Plain counters, no locks. All callers share one event loop and there
    is no await between reading and updating the state.
"""

import logging
import time
from typing import Optional

from app.exceptions import CircuitBreakerOpenError

logger = logging.getLogger(__name__)


class CircuitBreaker:

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, name: str = "provider", failure_threshold: int = 5, recovery_timeout: int = 60):
        """
        Args:
            name: Provider name, used in logs and raised errors
            failure_threshold: Consecutive failures before opening circuit
            recovery_timeout: Seconds to wait before testing recovery
        """
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None
        # Start of the single test request allowed while HALF_OPEN
        self.test_request_started_at: Optional[float] = None

    def can_execute(self) -> bool:
        """
        Check if a request is allowed through the circuit breaker.

        Returns:
            True if the request can proceed (CLOSED, or the one HALF_OPEN test request).

        Raises:
            CircuitBreakerOpenError if circuit is OPEN and recovery timeout hasn't elapsed,
            or HALF_OPEN with the test request still in flight.
        """
        if self.state == self.CLOSED:
            return True

        if self.state == self.OPEN:
            elapsed = time.time() - (self.last_failure_time or 0)
            if elapsed >= self.recovery_timeout:
                logger.info(
                    "Circuit breaker for %s transitioning to HALF_OPEN after %.1fs",
                    self.name,
                    elapsed,
                )
                self.state = self.HALF_OPEN
                self.test_request_started_at = time.time()
                return True
            remaining = int(self.recovery_timeout - elapsed)
            raise CircuitBreakerOpenError(recovery_time=remaining, source=self.name)

        # HALF_OPEN: the test request is in flight. A test request that never
        # reported back (cancelled) frees the slot after recovery_timeout.
        waited = time.time() - (self.test_request_started_at or 0)
        if waited >= self.recovery_timeout:
            self.test_request_started_at = time.time()
            return True
        raise CircuitBreakerOpenError(
            recovery_time=int(self.recovery_timeout - waited), source=self.name
        )

    def record_success(self) -> None:
        """Record a successful call. Resets the circuit breaker to CLOSED."""
        if self.state == self.HALF_OPEN:
            logger.info("Circuit breaker for %s transitioning to CLOSED (provider recovered)", self.name)
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None
        self.test_request_started_at = None

    def record_failure(self) -> None:
        """Record a failed call. May trigger CLOSED → OPEN transition."""
        self.failure_count += 1
        self.last_failure_time = time.time()

        if self.state == self.HALF_OPEN:
            logger.warning("Circuit breaker for %s returning to OPEN (test request failed)", self.name)
            self.state = self.OPEN
            self.test_request_started_at = None
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Circuit breaker for %s OPENING after %d consecutive failures",
                self.name,
                self.failure_count,
            )
            self.state = self.OPEN
