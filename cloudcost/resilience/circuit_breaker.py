"""
Circuit breaker guarding pricing catalog queries.
Stops hammering a catalog that keeps failing; each query failure stays
local to that query, the breaker only decides whether to attempt the call.
"""
from enum import Enum
from typing import Callable, Optional
import logging
import time

logger = logging.getLogger(__name__)


FAILURE_THRESHOLD = 3  # Trip breaker after N consecutive failures
OPEN_STATE_DURATION = 60.0  # Seconds to remain OPEN before HALF_OPEN
HALF_OPEN_MAX_REQUESTS = 1


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing fast, not calling the catalog
    HALF_OPEN = "half_open"  # Testing if the catalog recovered


class CircuitBreaker:
    """
    Circuit breaker for one pricing catalog.

    Transitions:
    - CLOSED -> OPEN: after failure_threshold consecutive failures
    - OPEN -> HALF_OPEN: after open_duration seconds
    - HALF_OPEN -> CLOSED: on a successful request
    - HALF_OPEN -> OPEN: on a failed request
    """

    def __init__(
        self,
        service_name: str,
        failure_threshold: int = FAILURE_THRESHOLD,
        open_duration: float = OPEN_STATE_DURATION,
        half_open_max_requests: int = HALF_OPEN_MAX_REQUESTS,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize circuit breaker.

        Args:
            service_name: Name used in log messages (e.g., "aws_pricing")
            failure_threshold: Consecutive failures before opening
            open_duration: Seconds to remain OPEN before HALF_OPEN
            half_open_max_requests: Requests allowed while HALF_OPEN
            clock: Monotonic time source, injectable for tests
        """
        self.service_name = service_name
        self.failure_threshold = failure_threshold
        self.open_duration = open_duration
        self.half_open_max_requests = half_open_max_requests
        self._clock = clock

        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.opened_at: Optional[float] = None
        self.half_open_requests = 0

    def _transition(self, new_state: CircuitState, reason: str) -> None:
        logger.warning(
            "Circuit breaker for %s: %s -> %s (%s)",
            self.service_name, self.state.name, new_state.name, reason
        )
        self.state = new_state

    def allow_request(self) -> bool:
        """Return True if a catalog call may proceed."""
        if self.state == CircuitState.OPEN:
            if self.opened_at is not None and self._clock() - self.opened_at >= self.open_duration:
                self._transition(CircuitState.HALF_OPEN, "testing recovery")
                self.half_open_requests = 1
                return True
            return False

        if self.state == CircuitState.HALF_OPEN:
            if self.half_open_requests < self.half_open_max_requests:
                self.half_open_requests += 1
                return True
            return False

        return True

    def record_success(self) -> None:
        if self.state == CircuitState.HALF_OPEN:
            self._transition(CircuitState.CLOSED, "catalog recovered")
            self.opened_at = None
            self.half_open_requests = 0
        self.failure_count = 0

    def record_failure(self) -> None:
        self.failure_count += 1

        if self.state == CircuitState.HALF_OPEN:
            self._transition(CircuitState.OPEN, "catalog still failing")
            self.opened_at = self._clock()
            self.half_open_requests = 0
        elif self.state == CircuitState.CLOSED and self.failure_count >= self.failure_threshold:
            self._transition(CircuitState.OPEN, f"{self.failure_count} consecutive failures")
            self.opened_at = self._clock()
