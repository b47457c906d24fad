from datetime import datetime
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.engine import Connection

from sync_tree_orders.models.webhook_events import WebhookEvent

EVENT_COLUMNS = (
    WebhookEvent.id,
    WebhookEvent.event_id,
    WebhookEvent.account_id,
    WebhookEvent.source,
    WebhookEvent.event_type,
    WebhookEvent.payload,
    WebhookEvent.processed,
    WebhookEvent.processed_at,
    WebhookEvent.retry_count,
    WebhookEvent.last_error,
    WebhookEvent.received_at,
)


def find_pending_events(conn: Connection, max_retries: int, limit: int) -> list[dict[str, Any]]:
    """
    Unprocessed events that still have retries left, oldest first.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        max_retries (int): Events at or above this retry count are excluded.
        limit (int): Batch size.
    """
    result = conn.execute(
        select(*EVENT_COLUMNS)
        .where(WebhookEvent.processed == False)  # noqa: E712
        .where(WebhookEvent.retry_count < max_retries)
        .order_by(WebhookEvent.received_at.asc(), WebhookEvent.id.asc())
        .limit(limit)
    )
    return [dict(row) for row in result.mappings().all()]


def count_exhausted_since(conn: Connection, max_retries: int, since: datetime) -> int:
    """Count unprocessed events that used up their retries and arrived after ``since``."""
    result = conn.execute(
        select(func.count())
        .select_from(WebhookEvent)
        .where(WebhookEvent.processed == False)  # noqa: E712
        .where(WebhookEvent.retry_count >= max_retries)
        .where(WebhookEvent.received_at >= since)
    )
    return int(result.scalar() or 0)


def get_event(conn: Connection, event_pk: int) -> Optional[dict[str, Any]]:
    stmt = select(*EVENT_COLUMNS).where(WebhookEvent.id == event_pk)
    row = conn.execute(stmt).mappings().fetchone()
    return dict(row) if row else None


def processed_event_exists(conn: Connection, source: str, event_id: str) -> bool:
    """True if a delivery with this external event id was already processed."""
    result = conn.execute(
        select(WebhookEvent.id)
        .where(WebhookEvent.source == source)
        .where(WebhookEvent.event_id == event_id)
        .where(WebhookEvent.processed == True)  # noqa: E712
        .limit(1)
    )
    return result.fetchone() is not None


def get_retry_counts(conn: Connection, max_retries: int, since: datetime) -> dict[str, int]:
    """
    Count events by retry state.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        max_retries (int): Retry count at which an event is exhausted.
        since (datetime): Start of the recent window for the totals.

    Returns:
        dict: ``pending_retry``, ``exhausted``, ``received_recent`` and
        ``processed_recent``
    """
    unprocessed = WebhookEvent.processed == False  # noqa: E712
    processed = WebhookEvent.processed == True  # noqa: E712
    recent = WebhookEvent.received_at >= since
    has_retries = WebhookEvent.retry_count < max_retries
    exhausted = WebhookEvent.retry_count >= max_retries
    row = (
        conn.execute(
            select(
                func.count().filter(unprocessed, has_retries).label("pending_retry"),
                func.count().filter(unprocessed, exhausted).label("exhausted"),
                func.count().filter(recent).label("received_recent"),
                func.count().filter(recent, processed).label("processed_recent"),
            ).select_from(WebhookEvent)
        )
        .mappings()
        .one()
    )
    return {key: int(value or 0) for key, value in row.items()}
