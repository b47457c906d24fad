"""
Reconciles a normalized PMS snapshot against locally stored order lines.

The PMS reports cancellations only by leaving a line out of later listings.
Lines missing from the snapshot are deleted when their booking time is inside
the reconciliation window. Older lines are left alone, because the API simply
stops reporting them. An empty snapshot changes nothing. Everything in the
snapshot is upserted. Only new or changed lines are written, so a repeated
run with the same snapshot is a no-op.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable, Mapping, Optional, Protocol

import structlog

from sync_tree_orders.config import SYNC_LOOKBACK_DAYS
from sync_tree_orders.schemas.orders import OrderLine
from sync_tree_orders.schemas.sync import ReconcileResult
from sync_tree_orders.utils.datetime import utc_now

logger = structlog.get_logger(__name__)

COMPARED_FIELDS = (
    "account_id",
    "quantity",
    "amount",
    "currency",
    "booked_at",
    "check_in_at",
    "pms_type",
)


class OrderLineStore(Protocol):
    """Persistence for order lines. Each call is atomic on its own."""

    def find_all(self, account_id: str) -> list[OrderLine]: ...

    def upsert(self, lines: list[OrderLine]) -> None: ...

    def delete_many(self, account_id: str, external_ids: list[str]) -> int: ...


def has_changed(stored: OrderLine, incoming: OrderLine) -> bool:
    return any(getattr(stored, f) != getattr(incoming, f) for f in COMPARED_FIELDS)


def plan_deletions(
    existing: Iterable[OrderLine],
    snapshot_ids: set[str],
    cutoff: datetime,
) -> list[str]:
    """
    Select stored lines that vanished from the source inside the window.

    Args:
        existing: Stored lines of the account
        snapshot_ids: External ids present in the current snapshot
        cutoff: Start of the reconciliation window

    Returns:
        list[str]: External ids to delete
    """
    return [
        line.external_id
        for line in existing
        if line.external_id not in snapshot_ids and line.booked_at >= cutoff
    ]


def _upsert_changed(
    store: OrderLineStore,
    existing: Mapping[str, OrderLine],
    lines: Iterable[OrderLine],
    result: ReconcileResult,
) -> None:
    pending: list[OrderLine] = []
    for line in lines:
        stored = existing.get(line.external_id)
        if stored is None:
            result.inserted += 1
            pending.append(line)
        elif has_changed(stored, line):
            result.updated += 1
            pending.append(line)
        else:
            result.unchanged += 1
    if pending:
        store.upsert(pending)


def reconcile(
    store: OrderLineStore,
    account_id: str,
    snapshot: Mapping[str, OrderLine],
    window_days: int = SYNC_LOOKBACK_DAYS,
    now: Optional[datetime] = None,
    allow_deletes: bool = True,
) -> ReconcileResult:
    """
    Bring the stored lines of one account in line with a complete snapshot.

    Args:
        store: Order line persistence
        account_id: Account being reconciled
        snapshot: Normalized lines keyed by external id
        window_days: Reconciliation window; must match the fetch lookback
        now: Reference time (default: current UTC time)
        allow_deletes: False when the snapshot is known to be incomplete

    Returns:
        ReconcileResult: Inserted, updated, unchanged and deleted counts
    """
    now = now or utc_now()
    cutoff = now - timedelta(days=window_days)
    existing = {line.external_id: line for line in store.find_all(account_id)}
    result = ReconcileResult()

    if not snapshot:
        # Never treated as a cancellation of every line in the window
        logger.warning("reconcile_empty_snapshot_skipped", account_id=account_id)
        return result

    if allow_deletes:
        to_delete = plan_deletions(existing.values(), set(snapshot.keys()), cutoff)
        if to_delete:
            result.deleted = store.delete_many(account_id, to_delete)
            logger.info(
                "order_lines_deleted",
                account_id=account_id,
                count=result.deleted,
                external_ids=to_delete,
            )
    else:
        logger.warning("reconcile_deletes_suppressed", account_id=account_id)

    _upsert_changed(store, existing, snapshot.values(), result)

    logger.info(
        "reconcile_completed",
        account_id=account_id,
        inserted=result.inserted,
        updated=result.updated,
        unchanged=result.unchanged,
        deleted=result.deleted,
    )
    return result


def apply_event_lines(
    store: OrderLineStore,
    account_id: str,
    lines: Iterable[OrderLine],
    canceled_ids: Iterable[str] = (),
) -> ReconcileResult:
    """
    Apply the lines carried by a single webhook event.

    A webhook is not a snapshot, so nothing is deleted by absence. Only the
    explicitly canceled ids that belong to the account are deleted.
    """
    existing = {line.external_id: line for line in store.find_all(account_id)}
    result = ReconcileResult()

    to_delete = [external_id for external_id in canceled_ids if external_id in existing]
    if to_delete:
        result.deleted = store.delete_many(account_id, to_delete)

    _upsert_changed(store, existing, lines, result)
    return result
