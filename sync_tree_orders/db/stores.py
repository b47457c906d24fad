"""
Engine-backed stores used by the reconciler and the webhook retry scheduler.

Each method opens its own transaction, so every store call is atomic on its
own and a failure never leaves a half-applied batch behind.
"""

from datetime import datetime
from typing import Any

from sqlalchemy.engine import Engine

from sync_tree_orders.db.readers.order_lines import get_order_lines
from sync_tree_orders.db.readers.webhook_events import count_exhausted_since, find_pending_events
from sync_tree_orders.db.writers.order_lines import delete_order_lines, upsert_order_lines
from sync_tree_orders.db.writers.webhook_events import update_webhook_event
from sync_tree_orders.schemas.orders import OrderLine


class SqlOrderLineStore:
    def __init__(self, engine: Engine):
        self.engine = engine

    def find_all(self, account_id: str) -> list[OrderLine]:
        with self.engine.connect() as conn:
            rows = get_order_lines(conn, account_id)
        return [OrderLine(**row) for row in rows]

    def upsert(self, lines: list[OrderLine]) -> None:
        if not lines:
            return
        with self.engine.begin() as conn:
            upsert_order_lines(conn, [line.model_dump() for line in lines])

    def delete_many(self, account_id: str, external_ids: list[str]) -> int:
        with self.engine.begin() as conn:
            return delete_order_lines(conn, account_id, external_ids)


class SqlWebhookEventStore:
    def __init__(self, engine: Engine):
        self.engine = engine

    def find_pending(self, max_retries: int, limit: int) -> list[dict[str, Any]]:
        with self.engine.connect() as conn:
            return find_pending_events(conn, max_retries=max_retries, limit=limit)

    def update(self, event_pk: int, fields: dict[str, Any]) -> None:
        with self.engine.begin() as conn:
            update_webhook_event(conn, event_pk, fields)

    def count_exhausted_since(self, max_retries: int, since: datetime) -> int:
        with self.engine.connect() as conn:
            return count_exhausted_since(conn, max_retries=max_retries, since=since)
