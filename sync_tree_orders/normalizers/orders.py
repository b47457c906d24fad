"""
Maps tagged raw PMS records onto canonical order lines.

Each raw variant has its own normalizer, selected by the record's ``kind``.
Shared rules:

- Quantity: explicit count field, else a leading ``"4 × "`` in the name, else 1.
- Amount: always the line total. A unit price is multiplied by the quantity.
- Currency: from whichever money object is present, else the configured default.
- Booking timestamp: consumption time, else creation time, else now.
- Order items carrying ``CanceledUtc`` are dropped.
"""

from __future__ import annotations

import json
import re
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Callable, Iterable, Optional

import structlog
from pydantic import ValidationError

from sync_tree_orders.config import DEBUG, DEFAULT_CURRENCY
from sync_tree_orders.schemas.orders import (
    OrderItemRecord,
    OrderLine,
    PostedItemRecord,
    ProductAssignmentRecord,
    RawRecord,
)
from sync_tree_orders.utils.datetime import parse_datetime, utc_now

logger = structlog.get_logger(__name__)

QUANTITY_IN_NAME = re.compile(r"^\s*(\d+)\s*[×xX]\s*")
CENTS = Decimal("0.01")
PRODUCT_ORDER_TYPE = "ProductOrder"


def _money(value: Any) -> tuple[Optional[Decimal], Optional[str]]:
    """
    Read a PMS money value.

    Accepts a bare number or an object with ``GrossValue``/``Value``/``NetValue``
    and ``Currency``.

    Returns:
        Tuple of (amount or None, currency or None)
    """
    if value is None:
        return None, None
    if isinstance(value, (int, float, str, Decimal)) and not isinstance(value, bool):
        try:
            return Decimal(str(value)), None
        except InvalidOperation:
            return None, None
    if isinstance(value, dict):
        currency = value.get("Currency")
        for key in ("GrossValue", "Value", "NetValue"):
            if value.get(key) is not None:
                try:
                    return Decimal(str(value[key])), currency
                except InvalidOperation:
                    break
        return None, currency
    return None, None


def parse_quantity(count: Any, name: Optional[str]) -> int:
    """
    Resolve the unit count of a record.

    Args:
        count: Explicit count field (may be None)
        name: Human-readable name, e.g. "4 × CLICK_A_TREE"

    Returns:
        int: The count, the number parsed from the name, or 1
    """
    if count is not None and not isinstance(count, bool):
        try:
            return max(int(Decimal(str(count))), 0)
        except (InvalidOperation, ValueError):
            pass
    if name:
        match = QUANTITY_IN_NAME.match(name)
        if match:
            return int(match.group(1))
    return 1


def _resolve_amount(
    payload: dict[str, Any],
    quantity: int,
    total_keys: Iterable[str],
    unit_keys: Iterable[str],
) -> tuple[Decimal, str]:
    currency: Optional[str] = None

    for key in total_keys:
        amount, cur = _money(payload.get(key))
        currency = currency or cur
        if amount is not None:
            total = amount.quantize(CENTS, rounding=ROUND_HALF_UP)
            return total, cur or currency or DEFAULT_CURRENCY

    for key in unit_keys:
        unit, cur = _money(payload.get(key))
        currency = currency or cur
        if unit is not None:
            total = (unit * quantity).quantize(CENTS, rounding=ROUND_HALF_UP)
            return total, cur or currency or DEFAULT_CURRENCY

    return Decimal("0.00"), currency or DEFAULT_CURRENCY


def _timestamp(payload: dict[str, Any], keys: Iterable[str]) -> datetime:
    for key in keys:
        parsed = parse_datetime(payload.get(key))
        if parsed is not None:
            return parsed
    return utc_now()


def _name(payload: dict[str, Any]) -> Optional[str]:
    name = payload.get("Name")
    if isinstance(name, dict):
        # Localized names: {"en-US": "...", "de-DE": "..."}
        name = next((v for v in name.values() if v), None)
    return name if isinstance(name, str) else None


def catalog_id(record: RawRecord) -> Optional[str]:
    """Return the catalog product id a raw record refers to."""
    payload = record.payload
    if payload.get("ProductId"):
        return str(payload["ProductId"])
    product = (payload.get("Data") or {}).get("Product") or {}
    if product.get("ProductId"):
        return str(product["ProductId"])
    return None


def matches_targets(record: RawRecord, targets: set[str]) -> bool:
    """True if the record is a product order for one of the target catalog ids."""
    record_type = record.payload.get("Type")
    if record_type is not None and record_type != PRODUCT_ORDER_TYPE:
        return False
    return catalog_id(record) in targets


def normalize_posted_item(
    record: PostedItemRecord, account_id: str, pms_type: str
) -> Optional[OrderLine]:
    payload = record.payload
    quantity = parse_quantity(payload.get("Count"), _name(payload))
    amount, currency = _resolve_amount(
        payload, quantity, total_keys=("Amount", "AmountBeforeTaxes"), unit_keys=("UnitAmount",)
    )
    return OrderLine(
        external_id=str(payload["Id"]),
        account_id=account_id,
        quantity=quantity,
        amount=amount,
        currency=currency,
        booked_at=_timestamp(payload, ("ConsumptionUtc", "ConsumedUtc", "CreatedUtc")),
        pms_type=pms_type,
    )


def normalize_order_item(
    record: OrderItemRecord, account_id: str, pms_type: str
) -> Optional[OrderLine]:
    payload = record.payload
    if payload.get("CanceledUtc"):
        return None

    count = payload.get("UnitCount", payload.get("Count"))
    quantity = parse_quantity(count, _name(payload))
    amount, currency = _resolve_amount(
        payload,
        quantity,
        total_keys=("Amount", "TotalAmount", "TotalPrice"),
        unit_keys=("UnitAmount", "UnitPrice"),
    )
    return OrderLine(
        external_id=str(payload["Id"]),
        account_id=account_id,
        quantity=quantity,
        amount=amount,
        currency=currency,
        booked_at=_timestamp(payload, ("CreatedUtc", "ConsumedUtc", "ConsumptionUtc")),
        check_in_at=parse_datetime(payload.get("StartUtc") or payload.get("ConsumedUtc")),
        pms_type=pms_type,
    )


def normalize_product_assignment(
    record: ProductAssignmentRecord, account_id: str, pms_type: str
) -> Optional[OrderLine]:
    payload = record.payload
    quantity = parse_quantity(payload.get("Count"), _name(payload))
    amount, currency = _resolve_amount(
        payload, quantity, total_keys=("Amount", "TotalPrice"), unit_keys=("Price", "UnitAmount")
    )
    return OrderLine(
        external_id=str(payload["Id"]),
        account_id=account_id,
        quantity=quantity,
        amount=amount,
        currency=currency,
        booked_at=_timestamp(payload, ("StartUtc", "CreatedUtc")),
        check_in_at=parse_datetime(payload.get("StartUtc")),
        pms_type=pms_type,
    )


NORMALIZERS: dict[str, Callable[[Any, str, str], Optional[OrderLine]]] = {
    "posted_item": normalize_posted_item,
    "order_item": normalize_order_item,
    "product_assignment": normalize_product_assignment,
}


def normalize_record(record: RawRecord, account_id: str, pms_type: str) -> Optional[OrderLine]:
    """
    Normalize one tagged record.

    Returns:
        OrderLine, or None if the record has no id or is canceled
    """
    if not record.payload.get("Id"):
        logger.warning("raw_record_missing_id", kind=record.kind)
        return None
    return NORMALIZERS[record.kind](record, account_id, pms_type)


def normalize_records(
    records: Iterable[RawRecord],
    account_id: str,
    targets: set[str],
    pms_type: str,
) -> dict[str, OrderLine]:
    """
    Filter records to the target catalog ids and normalize them.

    Args:
        records: Tagged raw records from the fetcher or a webhook
        account_id: Owning account
        targets: Catalog ids representing trees
        pms_type: Source PMS

    Returns:
        dict: Snapshot keyed by external line id (later records win)
    """
    snapshot: dict[str, OrderLine] = {}
    skipped_other = 0
    skipped_canceled = 0
    skipped_invalid = 0

    for record in records:
        if not matches_targets(record, targets):
            skipped_other += 1
            continue
        try:
            line = normalize_record(record, account_id, pms_type)
        except ValidationError as e:
            skipped_invalid += 1
            logger.warning(
                "raw_record_invalid",
                kind=record.kind,
                record_id=record.payload.get("Id"),
                error=str(e),
            )
            continue
        if line is None:
            skipped_canceled += 1
            continue
        snapshot[line.external_id] = line

    if DEBUG and snapshot:
        sample = next(iter(snapshot.values()))
        logger.debug("Sample order line:\n%s", json.dumps(sample.model_dump(mode="json"), indent=2))

    logger.info(
        "records_normalized",
        account_id=account_id,
        order_lines=len(snapshot),
        skipped_other_products=skipped_other,
        skipped_canceled=skipped_canceled,
        skipped_invalid=skipped_invalid,
    )
    return snapshot
