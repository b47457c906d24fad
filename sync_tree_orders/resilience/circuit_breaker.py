"""
Three-state circuit breaker guarding the PMS API.

CLOSED passes calls through. After ``failure_threshold`` consecutive failures
the breaker OPENs and rejects calls with ``CircuitOpen`` until ``timeout``
seconds have elapsed. The next attempt after the deadline moves it to
HALF_OPEN (lazily, on that attempt). ``success_threshold`` consecutive
successes close it again. Any failure while HALF_OPEN re-opens it with a fresh
deadline.
"""

from __future__ import annotations

import threading
import time
from enum import Enum
from typing import Callable, TypeVar

import structlog

from sync_tree_orders.errors import CircuitOpen, UpstreamClientError
from sync_tree_orders.metrics import circuit_state, circuit_transitions

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"
    HALF_OPEN = "half_open"
    OPEN = "open"


_STATE_GAUGE_VALUE = {
    CircuitState.CLOSED: 0,
    CircuitState.HALF_OPEN: 1,
    CircuitState.OPEN: 2,
}


def counts_as_failure(exc: BaseException) -> bool:
    """
    Decide whether an exception should trip the breaker.

    Client errors (4xx other than 429) mean the request was wrong, not that the
    API is unhealthy, so they do not count against it.
    """
    return not isinstance(exc, UpstreamClientError)


class CircuitBreaker:
    def __init__(
        self,
        failure_threshold: int = 5,
        success_threshold: int = 2,
        timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        name: str = "pms",
    ) -> None:
        self.failure_threshold = failure_threshold
        self.success_threshold = success_threshold
        self.timeout = timeout
        self.name = name
        self._clock = clock
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._next_attempt = 0.0
        circuit_state.labels(name=name).set(_STATE_GAUGE_VALUE[CircuitState.CLOSED])

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def success_count(self) -> int:
        return self._success_count

    def _transition(self, to_state: CircuitState) -> None:
        # Caller holds self._lock
        if to_state == self._state:
            return
        logger.warning(
            "circuit_state_changed",
            breaker=self.name,
            from_state=self._state.value,
            to_state=to_state.value,
        )
        self._state = to_state
        circuit_state.labels(name=self.name).set(_STATE_GAUGE_VALUE[to_state])
        circuit_transitions.labels(name=self.name, to_state=to_state.value).inc()

    def before_call(self) -> None:
        """
        Admit or reject a call attempt.

        Raises:
            CircuitOpen: If the breaker is open and the cool-down has not elapsed
        """
        with self._lock:
            if self._state != CircuitState.OPEN:
                return
            now = self._clock()
            if now < self._next_attempt:
                raise CircuitOpen(
                    f"Circuit breaker '{self.name}' is open",
                    retry_after=self._next_attempt - now,
                )
            self._success_count = 0
            self._transition(CircuitState.HALF_OPEN)

    def record_success(self) -> None:
        with self._lock:
            self._failure_count = 0
            if self._state == CircuitState.HALF_OPEN:
                self._success_count += 1
                if self._success_count >= self.success_threshold:
                    self._success_count = 0
                    self._transition(CircuitState.CLOSED)

    def record_failure(self) -> None:
        with self._lock:
            self._failure_count += 1
            self._success_count = 0
            if (
                self._state == CircuitState.HALF_OPEN
                or self._failure_count >= self.failure_threshold
            ):
                self._next_attempt = self._clock() + self.timeout
                self._transition(CircuitState.OPEN)

    def execute(self, fn: Callable[[], T]) -> T:
        """Run ``fn`` and record its outcome. Does not perform admission."""
        try:
            result = fn()
        except Exception as exc:
            # Client errors leave the counters alone
            if counts_as_failure(exc):
                self.record_failure()
            raise
        self.record_success()
        return result

    def call(self, fn: Callable[[], T]) -> T:
        """Admit, run and record ``fn``."""
        self.before_call()
        return self.execute(fn)

    def reset(self) -> None:
        with self._lock:
            self._failure_count = 0
            self._success_count = 0
            self._next_attempt = 0.0
            self._transition(CircuitState.CLOSED)
