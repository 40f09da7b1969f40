"""Per-source circuit breaker used by the adapter registry.

State machine: CLOSED → OPEN → CLOSED.

- CLOSED: Calls pass through. Consecutive failures are counted.
- OPEN: Once failures reach the threshold, calls are rejected until
  ``reset_timeout`` seconds have passed.
- After the timeout the next call goes straight through to the source.
  Success closes the circuit; failure keeps it OPEN and pushes the reset
  time forward.

There is no HALF_OPEN trial state: concurrent callers arriving right after the
timeout are all let through.

Usage:
    breaker = SourceCircuitBreaker(failure_threshold=5, reset_timeout=60.0, name="FDA")
    if not breaker.allow_request():
        ...  # short-circuit
    breaker.record_success() / breaker.record_failure()
"""

import enum
import logging
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)


class CircuitState(enum.Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"


class SourceCircuitBreaker:
    """Failure counter with a cooldown window for one source.

    Args:
        failure_threshold: Consecutive failures before opening circuit.
        reset_timeout: Seconds the circuit stays open.
        name: Source name for logging.
        clock: Monotonic time source (injectable for tests).
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        reset_timeout: float = 60.0,
        name: str = "circuit_breaker",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._failure_threshold = failure_threshold
        self._reset_timeout = reset_timeout
        self._name = name
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._reset_time: float = 0.0

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state == CircuitState.OPEN

    @property
    def failures(self) -> int:
        """Number of consecutive failures."""
        return self._failures

    @property
    def failure_threshold(self) -> int:
        return self._failure_threshold

    @property
    def reset_time(self) -> float:
        """Clock value after which calls are let through again."""
        return self._reset_time

    def allow_request(self) -> bool:
        """False while the circuit is open and the cooldown has not elapsed."""
        if self._state == CircuitState.OPEN and self._clock() < self._reset_time:
            return False
        return True

    def record_success(self) -> None:
        if self._state == CircuitState.OPEN:
            logger.info("Circuit breaker %s: OPEN → CLOSED (call succeeded)", self._name)
        self._state = CircuitState.CLOSED
        self._failures = 0

    def record_failure(self) -> None:
        """Record a failure and potentially open the circuit."""
        self._failures += 1

        if self._failures >= self._failure_threshold:
            was_open = self._state == CircuitState.OPEN
            self._state = CircuitState.OPEN
            self._reset_time = self._clock() + self._reset_timeout
            if not was_open:
                logger.warning(
                    "Circuit breaker %s: CLOSED → OPEN after %d failures",
                    self._name,
                    self._failures,
                )

    def reset(self) -> None:
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._reset_time = 0.0
