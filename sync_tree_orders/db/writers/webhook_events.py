from typing import Any, Optional

from sqlalchemy import insert, update
from sqlalchemy.engine import Connection

from sync_tree_orders.models.webhook_events import WebhookEvent
from sync_tree_orders.utils.datetime import utc_now


def insert_webhook_event(
    conn: Connection,
    source: str,
    event_type: str,
    payload: str,
    account_id: Optional[str] = None,
    event_id: Optional[str] = None,
) -> int:
    """
    Record a webhook delivery as received and unprocessed.

    Returns:
        int: Primary key of the new record
    """
    result = conn.execute(
        insert(WebhookEvent)
        .values(
            source=source,
            event_type=event_type,
            payload=payload,
            account_id=account_id,
            event_id=event_id,
            processed=False,
            retry_count=0,
            received_at=utc_now(),
        )
        .returning(WebhookEvent.id)
    )
    return int(result.scalar_one())


def update_webhook_event(conn: Connection, event_pk: int, fields: dict[str, Any]) -> None:
    """
    Update retry state of an event.

    A processed event is never reverted: rows already processed are left untouched.
    """
    conn.execute(
        update(WebhookEvent)
        .where(WebhookEvent.id == event_pk)
        .where(WebhookEvent.processed == False)  # noqa: E712
        .values(**fields)
    )
