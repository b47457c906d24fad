"""
Account-level sync orchestrator.

One run pulls the observation window for a single account, keeps the lines of
the tree catalog item, and reconciles them against the stored order lines.
Runs never raise: every failure ends up in ``SyncResult.errors``.
"""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from typing import Any, Optional

import structlog
from sqlalchemy.engine import Engine

from sync_tree_orders.config import SYNC_MAX_WORKERS, TREE_CATALOG_ITEM_ID
from sync_tree_orders.db.engine import engine as default_engine
from sync_tree_orders.db.readers.accounts import get_account, list_active_account_ids
from sync_tree_orders.db.stores import SqlOrderLineStore
from sync_tree_orders.db.writers.accounts import set_external_id_if_pending, update_last_sync
from sync_tree_orders.errors import (
    AccountNotFound,
    CatalogTargetNotFound,
    CircuitOpen,
    PageLimitReached,
    ReconciliationPartial,
    SyncAlreadyRunning,
    SyncError,
    UpstreamError,
)
from sync_tree_orders.metrics import (
    order_lines_deleted,
    order_lines_upserted,
    sync_duration,
    sync_runs,
)
from sync_tree_orders.models.accounts import PENDING_EXTERNAL_ID
from sync_tree_orders.normalizers.orders import normalize_records
from sync_tree_orders.pms.base import PmsClient
from sync_tree_orders.pms.factory import create_client
from sync_tree_orders.pollers.order_items import fetch_order_items
from sync_tree_orders.resilience.context import ResilienceContext
from sync_tree_orders.schemas.sync import RunError, SyncResult
from sync_tree_orders.services.account_lock import AccountLock, get_account_lock
from sync_tree_orders.services.credentials import CredentialStore
from sync_tree_orders.services.discovery import discover_catalog_target
from sync_tree_orders.services.reconcile import OrderLineStore, reconcile

logger = structlog.get_logger(__name__)


def fixed_targets(account: dict[str, Any]) -> Optional[set[str]]:
    """Configured tree catalog ids, or None when discovery has to decide."""
    if account.get("catalog_item_id"):
        return {str(account["catalog_item_id"])}
    if TREE_CATALOG_ITEM_ID:
        return {TREE_CATALOG_ITEM_ID}
    return None


def resolve_targets(
    account: dict[str, Any], client: PmsClient, now: Optional[datetime] = None
) -> set[str]:
    """
    Determine the catalog ids that represent trees for an account.

    Order of precedence: the account's own catalog_item_id, the deployment-wide
    TREE_CATALOG_ITEM_ID, then catalog discovery.

    Raises:
        CatalogTargetNotFound: If discovery finds nothing or fails
    """
    targets = fixed_targets(account)
    if targets:
        return targets

    discovery = discover_catalog_target(client, now=now)
    if not discovery.success or discovery.product is None:
        reason = discovery.error.message if discovery.error else "no candidate"
        raise CatalogTargetNotFound(f"Catalog discovery failed: {reason}")

    logger.info(
        "catalog_target_discovered",
        account_id=account["id"],
        product_id=discovery.product.product_id,
        confidence=discovery.product.confidence,
    )
    return {discovery.product.product_id}


def _sync_account(
    engine: Engine,
    account: dict[str, Any],
    result: SyncResult,
    credential_store: CredentialStore,
    order_store: OrderLineStore,
    resilience: Optional[ResilienceContext],
    now: Optional[datetime],
) -> None:
    account_id = account["id"]
    pms_type = account["pms_type"]

    # Decrypted once and only held for this run
    credentials = credential_store.get_credentials(account_id, pms_type)
    client = create_client(pms_type, credentials, resilience)

    if not client.supports_pull:
        logger.info("sync_skipped_push_only", account_id=account_id, pms_type=pms_type)
        return

    if account.get("external_id") == PENDING_EXTERNAL_ID:
        enterprise = client.get_enterprise()
        if enterprise.get("Id"):
            with engine.begin() as conn:
                set_external_id_if_pending(conn, account_id, str(enterprise["Id"]))
            logger.info("external_id_resolved", account_id=account_id, external_id=enterprise["Id"])

    targets = resolve_targets(account, client, now=now)

    try:
        fetched = fetch_order_items(client, account_id, now=now)
    except (UpstreamError, CircuitOpen) as e:
        raise ReconciliationPartial(f"Fetch aborted ({e.code}): {e.message}", cause=e) from e

    snapshot = normalize_records(fetched.records, account_id, targets, pms_type)

    if not fetched.complete:
        result.errors.append(
            RunError.from_exception(
                PageLimitReached(
                    f"Page limit hit in {len(fetched.truncated_windows)} window(s); "
                    "deletions skipped"
                )
            )
        )

    outcome = reconcile(
        order_store, account_id, snapshot, now=now, allow_deletes=fetched.complete
    )
    result.synced_count = len(snapshot)
    result.deleted_count = outcome.deleted
    order_lines_upserted.labels(pms_type=pms_type).inc(outcome.upserted)
    order_lines_deleted.labels(pms_type=pms_type).inc(outcome.deleted)

    with engine.begin() as conn:
        update_last_sync(conn, account_id)


def run_sync(
    account_id: str,
    engine: Optional[Engine] = None,
    credential_store: Optional[CredentialStore] = None,
    order_store: Optional[OrderLineStore] = None,
    lock: Optional[AccountLock] = None,
    resilience: Optional[ResilienceContext] = None,
    now: Optional[datetime] = None,
) -> SyncResult:
    """
    Synchronize the tree order lines of one account.

    Args:
        account_id: Internal account id
        engine: Database engine (default: process engine)
        credential_store: Credential access (default: backed by ``engine``)
        order_store: Order line persistence (default: backed by ``engine``)
        lock: Per-account lock (default: selected by configuration)
        resilience: Resilience context for the PMS client (default: shared one)
        now: Reference time for the observation window

    Returns:
        SyncResult: Counts plus structured errors; never raises
    """
    engine = engine or default_engine
    credential_store = credential_store or CredentialStore(engine)
    order_store = order_store or SqlOrderLineStore(engine)
    lock = lock or get_account_lock(engine)

    result = SyncResult(account_id=account_id)
    pms_label = "unknown"
    locked = False
    started = time.monotonic()

    logger.info("sync_started", account_id=account_id)

    try:
        with engine.connect() as conn:
            account = get_account(conn, account_id)
        if account is None:
            raise AccountNotFound(f"Account {account_id} not found")
        pms_label = account["pms_type"]

        if not lock.acquire(account_id):
            raise SyncAlreadyRunning(f"A sync for account {account_id} is already running")
        locked = True

        _sync_account(engine, account, result, credential_store, order_store, resilience, now)
    except SyncError as e:
        logger.error("sync_failed", account_id=account_id, error_code=e.code, error=e.message)
        result.errors.append(RunError.from_exception(e))
    except Exception as e:
        logger.exception("sync_failed_unexpected", account_id=account_id, error=str(e))
        result.errors.append(RunError.from_exception(e))
    finally:
        if locked:
            lock.release(account_id)

    if result.ok:
        status = "success"
    elif result.synced_count:
        status = "partial"
    else:
        status = "failure"
    sync_runs.labels(pms_type=pms_label, status=status).inc()
    sync_duration.labels(pms_type=pms_label).observe(time.monotonic() - started)

    logger.info(
        "sync_completed",
        account_id=account_id,
        status=status,
        synced_count=result.synced_count,
        deleted_count=result.deleted_count,
        errors=[e.code for e in result.errors],
    )
    return result


def sync_all_accounts(
    engine: Optional[Engine] = None, max_workers: int = SYNC_MAX_WORKERS
) -> list[SyncResult]:
    """
    Run run_sync() for every active account.

    Accounts are synced concurrently; they share the process-wide rate limiter
    and circuit breaker. One account failing never affects the others.

    Returns:
        list[SyncResult]: One result per account, in completion order
    """
    engine = engine or default_engine
    logger.info("sync_all_accounts_started")

    with engine.connect() as conn:
        account_ids = list_active_account_ids(conn)

    logger.info("active_accounts_found", count=len(account_ids))

    results: list[SyncResult] = []
    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as pool:
        futures = [pool.submit(run_sync, account_id, engine) for account_id in account_ids]
        for future in as_completed(futures):
            results.append(future.result())

    failed = sum(1 for r in results if not r.ok)
    logger.info("sync_all_accounts_completed", total_accounts=len(results), failed=failed)
    return results
