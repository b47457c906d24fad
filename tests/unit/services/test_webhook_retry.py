"""
Unit tests for the webhook retry scheduler.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from fakes import NOW
from sync_tree_orders.services.webhook_retry import (
    check_alert,
    get_retry_stats,
    next_attempt_at,
    retry_failed_webhooks,
)


class FakeEventStore:
    def __init__(self, events: list[dict[str, Any]], exhausted: int = 0) -> None:
        self.events = events
        self.exhausted = exhausted
        self.updates: dict[int, dict[str, Any]] = {}

    def find_pending(self, max_retries: int, limit: int) -> list[dict[str, Any]]:
        return [e for e in self.events if e["retry_count"] < max_retries][:limit]

    def update(self, event_pk: int, fields: dict[str, Any]) -> None:
        self.updates[event_pk] = fields

    def count_exhausted_since(self, max_retries: int, since: datetime) -> int:
        return self.exhausted


def event(pk: int, age_seconds: int, retry_count: int = 0, account_id: str = "acc-1") -> dict:
    return {
        "id": pk,
        "source": "mews",
        "account_id": account_id,
        "payload": "{}",
        "retry_count": retry_count,
        "received_at": NOW - timedelta(seconds=age_seconds),
    }


def account_lookup(account_id: str):
    return {"id": account_id, "pms_type": "mews"}


@pytest.mark.unit
@pytest.mark.parametrize("retry_count,delay", [(0, 60), (1, 300), (2, 900), (7, 900)])
def test_backoff_schedule(retry_count: int, delay: int) -> None:
    assert next_attempt_at(NOW, retry_count) == NOW + timedelta(seconds=delay)


@pytest.mark.unit
def test_events_inside_backoff_are_skipped() -> None:
    store = FakeEventStore([event(1, age_seconds=30), event(2, age_seconds=200, retry_count=1)])
    process = MagicMock()

    stats = retry_failed_webhooks(store, account_lookup, process, now=NOW)

    assert stats.skipped == 2
    assert stats.processed == 0
    process.assert_not_called()


@pytest.mark.unit
def test_successful_retry_marks_processed() -> None:
    store = FakeEventStore([event(1, age_seconds=120)])

    stats = retry_failed_webhooks(store, account_lookup, MagicMock(), now=NOW)

    assert stats.succeeded == 1
    assert store.updates[1] == {"processed": True, "processed_at": NOW, "last_error": None}


@pytest.mark.unit
def test_failed_retry_increments_count() -> None:
    store = FakeEventStore([event(1, age_seconds=400, retry_count=1)])
    process = MagicMock(side_effect=RuntimeError("catalog unavailable"))

    stats = retry_failed_webhooks(store, account_lookup, process, now=NOW)

    assert stats.failed == 1
    assert store.updates[1] == {"retry_count": 2, "last_error": "catalog unavailable"}


@pytest.mark.unit
def test_deleted_account_exhausts_event() -> None:
    store = FakeEventStore([event(1, age_seconds=120), event(2, age_seconds=120, account_id=None)])
    process = MagicMock()

    stats = retry_failed_webhooks(store, lambda _id: None, process, now=NOW, max_retries=3)

    assert stats.failed == 2
    assert store.updates[1] == {"retry_count": 3, "last_error": "Account not found (deleted)"}
    assert store.updates[2]["retry_count"] == 3
    process.assert_not_called()


@pytest.mark.unit
def test_one_failure_does_not_stop_batch() -> None:
    store = FakeEventStore([event(1, age_seconds=120), event(2, age_seconds=120)])
    process = MagicMock(side_effect=[RuntimeError("boom"), None])

    stats = retry_failed_webhooks(store, account_lookup, process, now=NOW)

    assert stats.failed == 1
    assert stats.succeeded == 1


@pytest.mark.unit
def test_store_error_on_one_event_does_not_stop_batch() -> None:
    store = FakeEventStore([event(1, age_seconds=120), event(2, age_seconds=120)])
    store.update = MagicMock(side_effect=[OperationalError("update", {}, Exception("gone")), None])
    process = MagicMock()

    stats = retry_failed_webhooks(store, account_lookup, process, now=NOW)

    assert process.call_count == 2
    assert stats.processed == 2
    assert stats.failed == 1
    assert stats.succeeded == 1


@pytest.mark.unit
def test_account_lookup_error_does_not_stop_batch() -> None:
    store = FakeEventStore(
        [event(1, age_seconds=120, account_id="acc-x"), event(2, age_seconds=120)]
    )

    def lookup(account_id: str):
        if account_id == "acc-x":
            raise OperationalError("select", {}, Exception("timeout"))
        return account_lookup(account_id)

    stats = retry_failed_webhooks(store, lookup, MagicMock(), now=NOW)

    assert stats.failed == 1
    assert stats.succeeded == 1
    assert 1 not in store.updates
    assert store.updates[2]["processed"] is True


@pytest.mark.unit
def test_exhausted_events_are_not_picked_up() -> None:
    store = FakeEventStore([event(1, age_seconds=5000, retry_count=3)])

    stats = retry_failed_webhooks(store, account_lookup, MagicMock(), now=NOW, max_retries=3)

    assert stats.processed == 0


@pytest.mark.unit
@pytest.mark.parametrize("exhausted,fired", [(5, False), (6, True)])
def test_alert_fires_above_threshold(exhausted: int, fired: bool) -> None:
    store = FakeEventStore([], exhausted=exhausted)

    with patch("sync_tree_orders.services.webhook_retry.logger") as mock_logger:
        count, triggered = check_alert(store, NOW, threshold=5)

    assert count == exhausted
    assert triggered is fired
    assert mock_logger.critical.called is fired


@pytest.mark.unit
def test_stats_report_alert() -> None:
    store = FakeEventStore([], exhausted=10)

    stats = retry_failed_webhooks(store, account_lookup, MagicMock(), now=NOW)

    assert stats.alert_triggered is True
    assert stats.exhausted_recent == 10


@pytest.mark.unit
def test_retry_stats_use_last_24_hours() -> None:
    engine = MagicMock()
    counts = {"pending_retry": 3, "exhausted": 1, "received_recent": 12, "processed_recent": 9}

    with patch(
        "sync_tree_orders.services.webhook_retry.get_retry_counts", return_value=counts
    ) as mock_counts:
        stats = get_retry_stats(engine, now=NOW, max_retries=3)

    mock_counts.assert_called_once_with(
        engine.connect.return_value.__enter__.return_value, 3, NOW - timedelta(hours=24)
    )
    assert stats.pending_retry == 3
    assert stats.exhausted == 1
    assert stats.received_24h == 12
    assert stats.processed_24h == 9
