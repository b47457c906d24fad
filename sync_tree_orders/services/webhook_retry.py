"""
Retries webhook deliveries whose inline processing failed.

Triggered from outside (the cron route); it does not schedule itself. Each
pass takes the oldest unprocessed events that still have retries left, waits
out a per-attempt backoff measured from receipt, and re-runs the processing
path on the stored payload. One bad event never stops the batch.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Callable, Optional, Protocol, Sequence

import structlog
from sqlalchemy.engine import Engine

from sync_tree_orders.config import (
    WEBHOOK_ALERT_THRESHOLD,
    WEBHOOK_ALERT_WINDOW_MINUTES,
    WEBHOOK_MAX_RETRIES,
    WEBHOOK_RETRY_BATCH_SIZE,
)
from sync_tree_orders.db.engine import engine as default_engine
from sync_tree_orders.db.readers.accounts import get_account
from sync_tree_orders.db.readers.webhook_events import get_retry_counts
from sync_tree_orders.db.stores import SqlOrderLineStore, SqlWebhookEventStore
from sync_tree_orders.metrics import webhook_alerts, webhooks_processed
from sync_tree_orders.schemas.sync import RetryStats, WebhookQueueStats
from sync_tree_orders.services.credentials import CredentialStore
from sync_tree_orders.services.webhooks import process_stored_payload
from sync_tree_orders.utils.datetime import utc_now

logger = structlog.get_logger(__name__)

# Seconds after receipt before attempt N; the last entry repeats
BACKOFF_SCHEDULE: tuple[int, ...] = (60, 300, 900)

AccountLookup = Callable[[str], Optional[dict[str, Any]]]
EventProcessor = Callable[[dict[str, Any], dict[str, Any]], Any]


class WebhookEventStore(Protocol):
    def find_pending(self, max_retries: int, limit: int) -> list[dict[str, Any]]: ...

    def update(self, event_pk: int, fields: dict[str, Any]) -> None: ...

    def count_exhausted_since(self, max_retries: int, since: datetime) -> int: ...


def next_attempt_at(
    received_at: datetime, retry_count: int, schedule: Sequence[int] = BACKOFF_SCHEDULE
) -> datetime:
    """Earliest time the event may be retried, given the attempts so far."""
    delay = schedule[min(retry_count, len(schedule) - 1)]
    return received_at + timedelta(seconds=delay)


def check_alert(
    store: WebhookEventStore,
    now: datetime,
    max_retries: int = WEBHOOK_MAX_RETRIES,
    threshold: int = WEBHOOK_ALERT_THRESHOLD,
    window_minutes: int = WEBHOOK_ALERT_WINDOW_MINUTES,
) -> tuple[int, bool]:
    """
    Count events that used up their retries in the trailing window.

    Returns:
        Tuple of (exhausted count, whether the alert fired)
    """
    exhausted = store.count_exhausted_since(max_retries, now - timedelta(minutes=window_minutes))
    if exhausted > threshold:
        webhook_alerts.inc()
        logger.critical(
            "webhook_failures_critical",
            exhausted=exhausted,
            threshold=threshold,
            window_minutes=window_minutes,
        )
        return exhausted, True
    return exhausted, False


def _retry_event(
    store: WebhookEventStore,
    event: dict[str, Any],
    get_account_fn: AccountLookup,
    process_fn: EventProcessor,
    now: datetime,
    max_retries: int,
) -> bool:
    """Retry one due event and persist the outcome. Returns True on success."""
    source = event["source"]
    account = get_account_fn(event["account_id"]) if event.get("account_id") else None

    if account is None:
        # Deleted or never routed: retrying cannot succeed
        store.update(
            event["id"],
            {"retry_count": max_retries, "last_error": "Account not found (deleted)"},
        )
        webhooks_processed.labels(source=source, outcome="permanent_failure").inc()
        logger.error("retry_account_missing", event_pk=event["id"])
        return False

    try:
        process_fn(account, event)
    except Exception as e:
        store.update(
            event["id"],
            {
                "retry_count": event["retry_count"] + 1,
                "last_error": str(e) or e.__class__.__name__,
            },
        )
        webhooks_processed.labels(source=source, outcome="failure").inc()
        logger.warning(
            "retry_failed",
            event_pk=event["id"],
            retry_count=event["retry_count"] + 1,
            error=str(e),
        )
        return False

    store.update(event["id"], {"processed": True, "processed_at": now, "last_error": None})
    webhooks_processed.labels(source=source, outcome="success").inc()
    logger.info("retry_succeeded", event_pk=event["id"], retry_count=event["retry_count"])
    return True


def retry_failed_webhooks(
    store: WebhookEventStore,
    get_account_fn: AccountLookup,
    process_fn: EventProcessor,
    now: Optional[datetime] = None,
    max_retries: int = WEBHOOK_MAX_RETRIES,
    batch_size: int = WEBHOOK_RETRY_BATCH_SIZE,
    schedule: Sequence[int] = BACKOFF_SCHEDULE,
) -> RetryStats:
    """
    Run one retry pass.

    Args:
        store: Webhook event persistence
        get_account_fn: Resolves an account id to its row, or None if deleted
        process_fn: Re-runs processing for ``(account, event)``; raises on failure
        now: Reference time (default: current UTC time)
        max_retries: Attempts before an event counts as exhausted
        batch_size: Events examined per pass
        schedule: Backoff delays in seconds, indexed by retry count

    Returns:
        RetryStats: Attempt counts and whether the failure alert fired
    """
    now = now or utc_now()
    stats = RetryStats()
    events = store.find_pending(max_retries, batch_size)

    logger.info("retry_batch_started", events=len(events))

    for event in events:
        if now < next_attempt_at(event["received_at"], event["retry_count"], schedule):
            stats.skipped += 1
            continue

        stats.processed += 1
        try:
            succeeded = _retry_event(store, event, get_account_fn, process_fn, now, max_retries)
        except Exception as e:
            # Lookup or bookkeeping failed; the event stays pending for the next pass
            stats.failed += 1
            webhooks_processed.labels(source=event["source"], outcome="failure").inc()
            logger.exception("retry_event_error", event_pk=event["id"], error=str(e))
            continue

        if succeeded:
            stats.succeeded += 1
        else:
            stats.failed += 1

    stats.exhausted_recent, stats.alert_triggered = check_alert(store, now, max_retries)

    logger.info("retry_batch_completed", **stats.model_dump())
    return stats


def run_webhook_retries(engine: Optional[Engine] = None) -> RetryStats:
    """Wire the retry pass to the database. Used by the cron route."""
    engine = engine or default_engine
    order_store = SqlOrderLineStore(engine)
    credential_store = CredentialStore(engine)

    def lookup(account_id: str) -> Optional[dict[str, Any]]:
        with engine.connect() as conn:
            return get_account(conn, account_id)

    def process(account: dict[str, Any], event: dict[str, Any]) -> None:
        process_stored_payload(
            account, event["source"], event["payload"], order_store, credential_store
        )

    return retry_failed_webhooks(SqlWebhookEventStore(engine), lookup, process)


def get_retry_stats(
    engine: Optional[Engine] = None,
    now: Optional[datetime] = None,
    max_retries: int = WEBHOOK_MAX_RETRIES,
) -> WebhookQueueStats:
    """Current queue state plus delivery totals for the last 24 hours."""
    engine = engine or default_engine
    now = now or utc_now()
    with engine.connect() as conn:
        counts = get_retry_counts(conn, max_retries, now - timedelta(hours=24))
    return WebhookQueueStats(
        pending_retry=counts["pending_retry"],
        exhausted=counts["exhausted"],
        received_24h=counts["received_recent"],
        processed_24h=counts["processed_recent"],
    )
