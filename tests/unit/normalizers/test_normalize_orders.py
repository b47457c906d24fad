"""
Unit tests for raw record normalization.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from sync_tree_orders.normalizers.orders import (
    matches_targets,
    normalize_record,
    normalize_records,
    parse_quantity,
)
from sync_tree_orders.schemas.orders import (
    OrderItemRecord,
    PostedItemRecord,
    ProductAssignmentRecord,
)

TREE = "prod-tree"


def order_item(**overrides) -> OrderItemRecord:
    payload = {
        "Id": "oi-1",
        "Type": "ProductOrder",
        "ProductId": TREE,
        "Name": "CLICK_A_TREE",
        "UnitCount": 1,
        "UnitAmount": {"GrossValue": 5.90, "Currency": "EUR"},
        "ConsumedUtc": "2024-06-10T10:00:00Z",
    }
    payload.update(overrides)
    return OrderItemRecord(payload=payload)


@pytest.mark.unit
@pytest.mark.parametrize(
    "count,name,expected",
    [
        (3, "CLICK_A_TREE", 3),
        ("2", None, 2),
        (None, "4 × CLICK_A_TREE", 4),
        (None, "2x Tree", 2),
        (None, "CLICK_A_TREE", 1),
        (None, None, 1),
    ],
)
def test_parse_quantity(count, name, expected) -> None:
    assert parse_quantity(count, name) == expected


@pytest.mark.unit
def test_unit_price_is_multiplied_by_quantity() -> None:
    """A unit amount of 5.90 with four units stores a total of 23.60, never 5.90."""
    record = order_item(UnitCount=None, Name="4 × CLICK_A_TREE")

    line = normalize_record(record, "acc-1", "mews")

    assert line.quantity == 4
    assert line.amount == Decimal("23.60")
    assert line.currency == "EUR"


@pytest.mark.unit
def test_total_amount_is_kept_as_is() -> None:
    record = order_item(
        UnitCount=3, Amount={"GrossValue": "17.70", "Currency": "CHF"}, UnitAmount=None
    )

    line = normalize_record(record, "acc-1", "mews")

    assert line.amount == Decimal("17.70")
    assert line.currency == "CHF"


@pytest.mark.unit
def test_missing_currency_uses_default() -> None:
    line = normalize_record(order_item(UnitAmount=5), "acc-1", "mews")

    assert line.amount == Decimal("5.00")
    assert line.currency == "EUR"


@pytest.mark.unit
def test_order_item_booked_at_is_creation_time() -> None:
    """A tree booked 40 days ago for a stay 5 days ago keeps its booking time."""
    line = normalize_record(
        order_item(CreatedUtc="2024-05-06T12:00:00Z", ConsumedUtc="2024-06-10T12:00:00Z"),
        "acc-1",
        "mews",
    )

    assert line.booked_at == datetime(2024, 5, 6, 12, 0, tzinfo=timezone.utc)
    assert line.check_in_at == datetime(2024, 6, 10, 12, 0, tzinfo=timezone.utc)


@pytest.mark.unit
def test_order_item_booked_at_falls_back_to_consumption() -> None:
    line = normalize_record(order_item(StartUtc="2024-06-11T14:00:00Z"), "acc-1", "mews")

    assert line.booked_at == datetime(2024, 6, 10, 10, 0, tzinfo=timezone.utc)
    assert line.check_in_at == datetime(2024, 6, 11, 14, 0, tzinfo=timezone.utc)


@pytest.mark.unit
def test_canceled_order_item_is_skipped() -> None:
    snapshot = normalize_records(
        [order_item(CanceledUtc="2024-06-11T00:00:00Z")], "acc-1", {TREE}, "mews"
    )

    assert snapshot == {}


@pytest.mark.unit
def test_invalid_record_is_skipped_without_aborting() -> None:
    records = [
        order_item(Id="oi-bad", UnitAmount={"GrossValue": 5.90, "Currency": "EURO"}),
        order_item(Id="oi-2"),
    ]

    snapshot = normalize_records(records, "acc-1", {TREE}, "mews")

    assert set(snapshot) == {"oi-2"}


@pytest.mark.unit
def test_records_for_other_products_are_filtered() -> None:
    records = [
        order_item(),
        order_item(Id="oi-2", ProductId="prod-breakfast"),
        order_item(Id="oi-3", Type="SpaceOrder"),
    ]

    snapshot = normalize_records(records, "acc-1", {TREE}, "mews")

    assert list(snapshot) == ["oi-1"]


@pytest.mark.unit
def test_nested_product_id_matches() -> None:
    record = OrderItemRecord(
        payload={"Id": "oi-9", "Type": "ProductOrder", "Data": {"Product": {"ProductId": TREE}}}
    )

    assert matches_targets(record, {TREE})


@pytest.mark.unit
def test_record_without_id_is_dropped() -> None:
    assert normalize_record(order_item(Id=None), "acc-1", "mews") is None


@pytest.mark.unit
def test_posted_item_variant() -> None:
    record = PostedItemRecord(
        payload={
            "Id": "item-1",
            "ProductId": TREE,
            "Name": "2 × Click A Tree",
            "UnitAmount": {"Value": 5.9, "Currency": "EUR"},
            "ConsumptionUtc": "2024-06-12T08:00:00Z",
        }
    )

    line = normalize_record(record, "acc-1", "mews")

    assert line.quantity == 2
    assert line.amount == Decimal("11.80")
    assert line.booked_at == datetime(2024, 6, 12, 8, 0, tzinfo=timezone.utc)


@pytest.mark.unit
def test_product_assignment_variant() -> None:
    record = ProductAssignmentRecord(
        payload={
            "Id": "pa-1",
            "ProductId": TREE,
            "Count": 3,
            "Price": {"GrossValue": 2, "Currency": "EUR"},
            "StartUtc": "2024-07-01T14:00:00Z",
        }
    )

    line = normalize_record(record, "acc-1", "mews")

    assert line.amount == Decimal("6.00")
    assert line.booked_at == line.check_in_at


@pytest.mark.unit
def test_later_duplicate_wins() -> None:
    records = [order_item(UnitCount=1), order_item(UnitCount=2)]

    snapshot = normalize_records(records, "acc-1", {TREE}, "mews")

    assert snapshot["oi-1"].quantity == 2
