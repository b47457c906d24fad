from typing import Any

import structlog
from sqlalchemy import delete
from sqlalchemy.engine import Connection

from sync_tree_orders.db.writers._upsert import upsert_with_distinct_check
from sync_tree_orders.models.order_lines import OrderLineRow
from sync_tree_orders.utils.datetime import utc_now

logger = structlog.get_logger(__name__)

COMPARED_COLUMNS = [
    "account_id",
    "quantity",
    "amount",
    "currency",
    "booked_at",
    "check_in_at",
    "pms_type",
]


def upsert_order_lines(conn: Connection, rows: list[dict[str, Any]]) -> None:
    """
    Upsert order lines keyed by external_id, only rewriting changed rows.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        rows (list[dict]): Order line fields (see OrderLine)
    """
    if not rows:
        return

    now = utc_now()
    values = [{**row, "created_at": now, "updated_at": now} for row in rows]

    upsert_with_distinct_check(
        conn=conn,
        table=OrderLineRow,
        rows=values,
        conflict_column="external_id",
        distinct_columns=COMPARED_COLUMNS,
    )
    logger.debug("order_lines_upserted", count=len(rows))


def delete_order_lines(conn: Connection, account_id: str, external_ids: list[str]) -> int:
    """
    Delete order lines of one account in a single statement.

    Returns:
        int: Number of rows deleted
    """
    if not external_ids:
        return 0
    result = conn.execute(
        delete(OrderLineRow)
        .where(OrderLineRow.account_id == account_id)
        .where(OrderLineRow.external_id.in_(external_ids))
    )
    return int(result.rowcount or 0)
