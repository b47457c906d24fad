"""
Integration test: reconciliation against the PostgreSQL-backed store.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from sync_tree_orders.db.engine import engine
from sync_tree_orders.db.stores import SqlOrderLineStore
from sync_tree_orders.schemas.orders import OrderLine
from sync_tree_orders.services.reconcile import reconcile

NOW = datetime.now(timezone.utc).replace(microsecond=0)


def line(account_id: str, suffix: str, quantity: int = 1) -> OrderLine:
    return OrderLine(
        external_id=f"{account_id}-{suffix}",
        account_id=account_id,
        quantity=quantity,
        amount=Decimal("5.90") * quantity,
        currency="EUR",
        booked_at=NOW - timedelta(days=1),
        pms_type="mews",
    )


@pytest.mark.integration
def test_two_runs_with_cancellation(test_account: str) -> None:
    store = SqlOrderLineStore(engine)
    a, b = line(test_account, "A", 4), line(test_account, "B")

    first = reconcile(store, test_account, {a.external_id: a, b.external_id: b}, now=NOW)
    second = reconcile(store, test_account, {a.external_id: a}, now=NOW)
    third = reconcile(store, test_account, {a.external_id: a}, now=NOW)

    assert first.inserted == 2
    assert second.deleted == 1
    assert second.unchanged == 1
    assert third.upserted == 0 and third.deleted == 0
    assert [stored.external_id for stored in store.find_all(test_account)] == [a.external_id]
    assert store.find_all(test_account)[0].amount == Decimal("23.60")
