"""
Process-wide resilience context: one rate limiter and one circuit breaker per PMS API.

The quota and any outage belong to the API endpoint, not to a single account,
so concurrent account syncs share the same bucket and breaker. The context is
passed explicitly into clients and fetchers so tests can build their own with a
fake clock.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from sync_tree_orders.config import (
    CIRCUIT_FAILURE_THRESHOLD,
    CIRCUIT_SUCCESS_THRESHOLD,
    CIRCUIT_TIMEOUT_SECONDS,
    RATE_LIMIT_PER_MINUTE,
)
from sync_tree_orders.resilience.circuit_breaker import CircuitBreaker
from sync_tree_orders.resilience.rate_limiter import TokenBucketRateLimiter

T = TypeVar("T")


@dataclass
class ResilienceContext:
    limiter: TokenBucketRateLimiter
    breaker: CircuitBreaker

    def call(self, fn: Callable[[], T]) -> T:
        """
        Run one outbound call under the breaker and the rate limiter.

        The breaker is consulted first: while it is open the call fails with
        ``CircuitOpen`` before a token is taken or the network is touched.

        Args:
            fn: Zero-argument callable performing the request

        Returns:
            Whatever ``fn`` returns

        Raises:
            CircuitOpen: If the breaker rejects the attempt
        """
        self.breaker.before_call()
        self.limiter.acquire()
        return self.breaker.execute(fn)


def build_resilience_context(name: str = "mews") -> ResilienceContext:
    """Build a context from configured thresholds."""
    return ResilienceContext(
        limiter=TokenBucketRateLimiter(capacity=RATE_LIMIT_PER_MINUTE, name=name),
        breaker=CircuitBreaker(
            failure_threshold=CIRCUIT_FAILURE_THRESHOLD,
            success_threshold=CIRCUIT_SUCCESS_THRESHOLD,
            timeout=CIRCUIT_TIMEOUT_SECONDS,
            name=name,
        ),
    )


_contexts: dict[str, ResilienceContext] = {}
_contexts_lock = threading.Lock()


def get_shared_context(name: str = "mews") -> ResilienceContext:
    """
    Return the process-wide context for an API, creating it on first use.

    Args:
        name: API the context guards (one per PMS endpoint)
    """
    with _contexts_lock:
        ctx: Optional[ResilienceContext] = _contexts.get(name)
        if ctx is None:
            ctx = build_resilience_context(name)
            _contexts[name] = ctx
        return ctx
