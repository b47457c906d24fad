"""
Integration tests for the order line writer.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import select

from sync_tree_orders.db.engine import engine
from sync_tree_orders.db.readers.order_lines import (
    get_order_lines,
    get_order_totals,
    get_recent_order_lines,
)
from sync_tree_orders.db.writers.order_lines import delete_order_lines, upsert_order_lines
from sync_tree_orders.models.order_lines import OrderLineRow

BOOKED = datetime(2024, 6, 10, 10, 0, tzinfo=timezone.utc)


def row(account_id: str, external_id: str, quantity: int = 1, amount: str = "5.90") -> dict:
    return {
        "external_id": external_id,
        "account_id": account_id,
        "quantity": quantity,
        "amount": Decimal(amount),
        "currency": "EUR",
        "booked_at": BOOKED,
        "check_in_at": None,
        "pms_type": "mews",
    }


def updated_at(external_id: str) -> datetime:
    with engine.connect() as conn:
        return conn.execute(
            select(OrderLineRow.updated_at).where(OrderLineRow.external_id == external_id)
        ).scalar_one()


@pytest.mark.integration
def test_upsert_creates_lines(test_account: str) -> None:
    with engine.begin() as conn:
        upsert_order_lines(conn, [row(test_account, f"{test_account}-a", 4, "23.60")])

    with engine.connect() as conn:
        lines = get_order_lines(conn, test_account)

    assert len(lines) == 1
    assert lines[0]["quantity"] == 4
    assert lines[0]["amount"] == Decimal("23.60")


@pytest.mark.integration
def test_unchanged_line_is_not_rewritten(test_account: str) -> None:
    line_id = f"{test_account}-a"
    with engine.begin() as conn:
        upsert_order_lines(conn, [row(test_account, line_id)])
    first = updated_at(line_id)

    with engine.begin() as conn:
        upsert_order_lines(conn, [row(test_account, line_id)])

    assert updated_at(line_id) == first


@pytest.mark.integration
def test_changed_line_is_updated(test_account: str) -> None:
    line_id = f"{test_account}-a"
    with engine.begin() as conn:
        upsert_order_lines(conn, [row(test_account, line_id)])
    with engine.begin() as conn:
        upsert_order_lines(conn, [row(test_account, line_id, 2, "11.80")])

    with engine.connect() as conn:
        (line,) = get_order_lines(conn, test_account)

    assert line["quantity"] == 2
    assert line["amount"] == Decimal("11.80")


@pytest.mark.integration
def test_delete_is_scoped_to_account(test_account: str) -> None:
    ids = [f"{test_account}-a", f"{test_account}-b"]
    with engine.begin() as conn:
        upsert_order_lines(conn, [row(test_account, i) for i in ids])

    with engine.begin() as conn:
        assert delete_order_lines(conn, "some-other-account", ids) == 0
        assert delete_order_lines(conn, test_account, ids[:1]) == 1

    with engine.connect() as conn:
        remaining = [line["external_id"] for line in get_order_lines(conn, test_account)]

    assert remaining == ids[1:]


@pytest.mark.integration
def test_totals_skip_voided_lines(test_account: str) -> None:
    with engine.begin() as conn:
        upsert_order_lines(
            conn,
            [
                row(test_account, f"{test_account}-a", 4, "23.60"),
                row(test_account, f"{test_account}-b", 1, "5.90"),
                row(test_account, f"{test_account}-void", 2, "0.00"),
            ],
        )

    with engine.connect() as conn:
        totals = get_order_totals(conn, test_account)

    assert totals == {"total_trees": 5, "total_revenue": Decimal("29.50")}


@pytest.mark.integration
def test_totals_for_account_without_lines(test_account: str) -> None:
    with engine.connect() as conn:
        totals = get_order_totals(conn, test_account)

    assert totals == {"total_trees": 0, "total_revenue": Decimal("0")}


@pytest.mark.integration
def test_recent_lines_newest_first(test_account: str) -> None:
    older = row(test_account, f"{test_account}-old")
    newer = row(test_account, f"{test_account}-new")
    newer["booked_at"] = datetime(2024, 6, 12, tzinfo=timezone.utc)
    with engine.begin() as conn:
        upsert_order_lines(conn, [older, newer])

    with engine.connect() as conn:
        recent = get_recent_order_lines(conn, test_account, limit=1)

    assert [line["external_id"] for line in recent] == [f"{test_account}-new"]
