from decimal import Decimal
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.engine import Connection

from sync_tree_orders.models.order_lines import OrderLineRow

ORDER_LINE_COLUMNS = (
    OrderLineRow.external_id,
    OrderLineRow.account_id,
    OrderLineRow.quantity,
    OrderLineRow.amount,
    OrderLineRow.currency,
    OrderLineRow.booked_at,
    OrderLineRow.check_in_at,
    OrderLineRow.pms_type,
)


def get_order_lines(conn: Connection, account_id: str) -> list[dict[str, Any]]:
    """
    Fetch every stored order line of an account.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        account_id (str): Internal account id.

    Returns:
        list[dict]: Order line rows
    """
    result = conn.execute(select(*ORDER_LINE_COLUMNS).where(OrderLineRow.account_id == account_id))
    return [dict(row) for row in result.mappings().all()]


def get_recent_order_lines(
    conn: Connection, account_id: str, limit: int = 20
) -> list[dict[str, Any]]:
    """Latest bookings of an account, most recent first."""
    result = conn.execute(
        select(*ORDER_LINE_COLUMNS)
        .where(OrderLineRow.account_id == account_id)
        .order_by(OrderLineRow.booked_at.desc(), OrderLineRow.external_id)
        .limit(limit)
    )
    return [dict(row) for row in result.mappings().all()]


def get_order_totals(conn: Connection, account_id: str) -> dict[str, Any]:
    """
    Sum trees and revenue of an account.

    Lines with a zero amount are voided bookings kept for audit and are left
    out of both sums.

    Returns:
        dict: ``total_trees`` (int) and ``total_revenue`` (Decimal)
    """
    row = (
        conn.execute(
            select(
                func.coalesce(func.sum(OrderLineRow.quantity), 0).label("total_trees"),
                func.coalesce(func.sum(OrderLineRow.amount), 0).label("total_revenue"),
            )
            .where(OrderLineRow.account_id == account_id)
            .where(OrderLineRow.amount > 0)
        )
        .mappings()
        .one()
    )
    return {"total_trees": int(row["total_trees"]), "total_revenue": Decimal(row["total_revenue"])}
