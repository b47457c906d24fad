"""
Unit tests for the circuit breaker state machine.
"""

from __future__ import annotations

from unittest.mock import Mock

import pytest

from sync_tree_orders.errors import CircuitOpen, UpstreamClientError, UpstreamServerError
from sync_tree_orders.resilience.circuit_breaker import CircuitBreaker, CircuitState


def failing() -> None:
    raise UpstreamServerError("boom", status_code=503)


def bad_request() -> None:
    raise UpstreamClientError("bad", status_code=400)


def trip(breaker: CircuitBreaker, times: int) -> None:
    for _ in range(times):
        with pytest.raises(UpstreamServerError):
            breaker.call(failing)


@pytest.fixture
def breaker(fake_clock) -> CircuitBreaker:
    return CircuitBreaker(failure_threshold=5, success_threshold=2, timeout=60, clock=fake_clock)


@pytest.mark.unit
def test_opens_after_threshold_consecutive_failures(breaker: CircuitBreaker) -> None:
    trip(breaker, 4)
    assert breaker.state == CircuitState.CLOSED

    trip(breaker, 1)
    assert breaker.state == CircuitState.OPEN


@pytest.mark.unit
def test_success_resets_failure_count(breaker: CircuitBreaker) -> None:
    trip(breaker, 4)
    breaker.call(lambda: "ok")

    assert breaker.failure_count == 0
    trip(breaker, 4)
    assert breaker.state == CircuitState.CLOSED


@pytest.mark.unit
def test_open_breaker_rejects_without_calling(breaker: CircuitBreaker, fake_clock) -> None:
    trip(breaker, 5)
    fn = Mock()

    fake_clock.advance(30)
    with pytest.raises(CircuitOpen) as exc_info:
        breaker.call(fn)

    fn.assert_not_called()
    assert exc_info.value.retry_after == pytest.approx(30)


@pytest.mark.unit
def test_half_open_after_timeout_then_closes(breaker: CircuitBreaker, fake_clock) -> None:
    trip(breaker, 5)
    fake_clock.advance(60)

    breaker.call(lambda: "ok")
    assert breaker.state == CircuitState.HALF_OPEN

    breaker.call(lambda: "ok")
    assert breaker.state == CircuitState.CLOSED


@pytest.mark.unit
def test_failure_in_half_open_reopens_with_fresh_timeout(
    breaker: CircuitBreaker, fake_clock
) -> None:
    trip(breaker, 5)
    fake_clock.advance(61)

    trip(breaker, 1)
    assert breaker.state == CircuitState.OPEN

    fake_clock.advance(59)
    with pytest.raises(CircuitOpen):
        breaker.call(lambda: "ok")


@pytest.mark.unit
def test_client_errors_do_not_trip(breaker: CircuitBreaker) -> None:
    for _ in range(10):
        with pytest.raises(UpstreamClientError):
            breaker.call(bad_request)

    assert breaker.state == CircuitState.CLOSED


@pytest.mark.unit
def test_client_errors_do_not_reset_failure_count(breaker: CircuitBreaker) -> None:
    trip(breaker, 4)
    with pytest.raises(UpstreamClientError):
        breaker.call(bad_request)

    assert breaker.failure_count == 4
    trip(breaker, 1)
    assert breaker.state == CircuitState.OPEN


@pytest.mark.unit
def test_client_errors_do_not_close_half_open(breaker: CircuitBreaker, fake_clock) -> None:
    trip(breaker, 5)
    fake_clock.advance(61)

    for _ in range(2):
        with pytest.raises(UpstreamClientError):
            breaker.call(bad_request)

    assert breaker.state == CircuitState.HALF_OPEN
    assert breaker.success_count == 0


@pytest.mark.unit
def test_reset_closes(breaker: CircuitBreaker) -> None:
    trip(breaker, 5)
    breaker.reset()

    assert breaker.state == CircuitState.CLOSED
    assert breaker.call(lambda: 1) == 1
