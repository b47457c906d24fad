"""
Token-bucket rate limiter shared by every outbound PMS call in the process.

The bucket starts full and refills continuously at ``capacity / 60`` tokens per
second. ``acquire()`` polls at a short fixed interval until a token is free, so
a waiting caller sleeps instead of spinning and other threads keep running.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Optional

import structlog

from sync_tree_orders.metrics import rate_limit_wait

logger = structlog.get_logger(__name__)

DEFAULT_CAPACITY = 90
DEFAULT_POLL_INTERVAL = 0.1


class TokenBucketRateLimiter:
    """
    Blocking token bucket.

    Args:
        capacity: Maximum number of tokens (burst size)
        refill_per_second: Tokens added per second (default: capacity / 60)
        poll_interval: Seconds to sleep between availability checks
        clock: Monotonic clock, injectable for tests
        sleep: Sleep function, injectable for tests
        name: Label used for metrics and logs
    """

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        refill_per_second: Optional[float] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        name: str = "pms",
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self.refill_per_second = (
            refill_per_second if refill_per_second is not None else capacity / 60.0
        )
        self.poll_interval = poll_interval
        self.name = name
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(capacity)
        self._last_refill = clock()
        self._lock = threading.Lock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._last_refill
        if elapsed > 0:
            self._tokens = min(self.capacity, self._tokens + elapsed * self.refill_per_second)
            self._last_refill = now

    def try_acquire(self) -> bool:
        """Take one token if available without waiting."""
        with self._lock:
            self._refill()
            if self._tokens >= 1:
                self._tokens -= 1
                return True
            return False

    def acquire(self) -> float:
        """
        Block until a token is available, then debit it.

        Returns:
            float: Seconds spent waiting
        """
        started = self._clock()
        while not self.try_acquire():
            self._sleep(self.poll_interval)
        waited = self._clock() - started

        if waited > 0:
            logger.debug("rate_limit_waited", limiter=self.name, waited_seconds=round(waited, 3))
        rate_limit_wait.labels(name=self.name).observe(waited)
        return waited

    @property
    def available(self) -> float:
        """Current token count after refill."""
        with self._lock:
            self._refill()
            return self._tokens
