from typing import Any, Union

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from sync_tree_orders.config import DEFAULT_CURRENCY
from sync_tree_orders.db.readers.accounts import list_accounts
from sync_tree_orders.db.readers.order_lines import get_order_totals, get_recent_order_lines
from sync_tree_orders.db.writers.accounts import (
    hard_delete_account,
    insert_account,
    update_account,
)
from sync_tree_orders.dependencies import get_credential_store, get_db_engine
from sync_tree_orders.errors import SyncError
from sync_tree_orders.pms.base import PmsType
from sync_tree_orders.pms.factory import create_client, parse_pms_type
from sync_tree_orders.routes._account_helpers import (
    get_account_or_404,
    should_trigger_sync_on_update,
    status_for_error,
    validate_credentials_or_400,
)
from sync_tree_orders.schemas.accounts import AccountCreatePayload, AccountUpdatePayload
from sync_tree_orders.schemas.sync import DiscoveryResult, SyncResult
from sync_tree_orders.services.credentials import CredentialStore
from sync_tree_orders.services.discovery import discover_catalog_target
from sync_tree_orders.services.sync import run_sync

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post("/accounts", status_code=status.HTTP_201_CREATED)
def create_account(
    payload: AccountCreatePayload,
    background_tasks: BackgroundTasks,
    engine: Engine = Depends(get_db_engine),
    credential_store: CredentialStore = Depends(get_credential_store),
) -> dict[str, str]:
    """
    Create an account with its encrypted credentials and start the initial sync.

    HotelSpider accounts are push-only and are keyed by their hotel code right
    away; Mews accounts learn their enterprise id during the first sync.

    Args:
        payload: Name, PMS type, credential bundle and optional catalog item id
        background_tasks: FastAPI background task runner

    Returns:
        dict: The new account id and a confirmation message
    """
    try:
        validate_credentials_or_400(payload.credentials, payload.pms_type)

        external_id = None
        if payload.pms_type == PmsType.HOTELSPIDER:
            external_id = payload.credentials["hotel_code"]

        with engine.begin() as conn:
            account_id = insert_account(
                conn,
                {
                    "name": payload.name,
                    "pms_type": payload.pms_type.value,
                    "catalog_item_id": payload.catalog_item_id,
                    "external_id": external_id,
                },
            )
            credential_store.save_credentials(
                account_id, payload.pms_type, payload.credentials, conn=conn
            )

        logger.info("account_created", account_id=account_id, pms_type=payload.pms_type.value)

        # Schedule initial sync in background
        background_tasks.add_task(run_sync, account_id, engine)

        return {
            "account_id": account_id,
            "message": "Account created. Initial sync scheduled in background.",
        }

    except HTTPException:
        raise
    except IntegrityError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An account for this property already exists",
        )
    except Exception as e:
        logger.exception("account_creation_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/accounts", status_code=status.HTTP_200_OK)
def list_accounts_endpoint(engine: Engine = Depends(get_db_engine)) -> list[dict[str, Any]]:
    """List all accounts, newest first. Credentials are never included."""
    try:
        with engine.connect() as conn:
            return list_accounts(conn)
    except Exception as e:
        logger.exception("account_list_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/accounts/{account_id}", status_code=status.HTTP_200_OK)
def get_account_endpoint(
    account_id: str,
    engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    try:
        with engine.connect() as conn:
            return get_account_or_404(conn, account_id)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("account_fetch_failed", account_id=account_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/accounts/{account_id}/stats", status_code=status.HTTP_200_OK)
def account_stats(
    account_id: str,
    limit: int = Query(20, ge=1, le=200, description="Number of recent order lines"),
    engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """
    Tree and revenue totals of an account plus its latest order lines.

    Voided lines (amount 0) are listed among the recent orders but do not
    count towards the totals.

    Args:
        account_id: Internal account id
        limit: How many recent order lines to return

    Returns:
        dict: Account summary, totals, currency and recent orders
    """
    try:
        with engine.connect() as conn:
            account = get_account_or_404(conn, account_id)
            totals = get_order_totals(conn, account_id)
            recent = get_recent_order_lines(conn, account_id, limit=limit)

        return {
            "account": {
                "id": account["id"],
                "name": account["name"],
                "pms_type": account["pms_type"],
                "external_id": account["external_id"],
            },
            "total_trees": totals["total_trees"],
            "total_revenue": str(totals["total_revenue"]),
            "currency": recent[0]["currency"] if recent else DEFAULT_CURRENCY,
            "recent_orders": recent,
        }

    except HTTPException:
        raise
    except Exception as e:
        logger.exception("account_stats_failed", account_id=account_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post(
    "/accounts/{account_id}/sync", status_code=status.HTTP_202_ACCEPTED, response_model=None
)
def trigger_sync(
    account_id: str,
    background_tasks: BackgroundTasks,
    wait: bool = Query(False, description="Run inline and return the sync result"),
    engine: Engine = Depends(get_db_engine),
) -> Union[dict[str, str], JSONResponse]:
    """
    Manually trigger a sync for an existing account.

    Args:
        account_id: Internal account id
        background_tasks: FastAPI background task runner
        wait: When true the sync runs inline and its SyncResult is returned

    Returns:
        dict: Confirmation (202), or the SyncResult (200) when ``wait`` is set
    """
    try:
        with engine.connect() as conn:
            get_account_or_404(conn, account_id)

        if wait:
            result: SyncResult = run_sync(account_id, engine)
            return JSONResponse(status_code=200, content=result.model_dump(mode="json"))

        background_tasks.add_task(run_sync, account_id, engine)
        logger.info("sync_triggered", account_id=account_id)

        return {"message": f"Sync scheduled for account {account_id}"}

    except HTTPException:
        raise
    except Exception as e:
        logger.exception("sync_trigger_failed", account_id=account_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/accounts/{account_id}/discover", status_code=status.HTTP_200_OK)
def discover_account_catalog(
    account_id: str,
    engine: Engine = Depends(get_db_engine),
    credential_store: CredentialStore = Depends(get_credential_store),
) -> dict[str, Any]:
    """
    Run catalog discovery for an account without changing anything.

    Returns 404 with the discovery stats when no tree product is found.
    """
    try:
        with engine.connect() as conn:
            account = get_account_or_404(conn, account_id)

        pms_type = parse_pms_type(account["pms_type"])
        credentials = credential_store.get_credentials(account_id, pms_type)
        client = create_client(pms_type, credentials)
        result: DiscoveryResult = discover_catalog_target(client)

        if not result.success:
            code = result.error.code if result.error else "catalog_target_not_found"
            status_code = (
                status.HTTP_404_NOT_FOUND
                if code == "catalog_target_not_found"
                else status.HTTP_502_BAD_GATEWAY
            )
            raise HTTPException(status_code=status_code, detail=result.model_dump(mode="json"))

        return result.model_dump(mode="json")

    except HTTPException:
        raise
    except SyncError as e:
        raise HTTPException(status_code=status_for_error(e), detail=e.message)
    except Exception as e:
        logger.exception("discovery_request_failed", account_id=account_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.patch("/accounts/{account_id}", status_code=status.HTTP_200_OK)
def update_account_endpoint(
    account_id: str,
    payload: AccountUpdatePayload,
    background_tasks: BackgroundTasks,
    engine: Engine = Depends(get_db_engine),
    credential_store: CredentialStore = Depends(get_credential_store),
) -> dict[str, str]:
    """
    Update an existing account. Triggers a sync if new credentials arrive for
    an account that has never synced.

    Args:
        account_id: Internal account id
        payload: Fields to update
        background_tasks: FastAPI background task runner

    Returns:
        dict: Message confirming update
    """
    try:
        # Build update dict (only non-None values)
        update_data = {k: v for k, v in payload.model_dump().items() if v is not None}

        with engine.begin() as conn:
            account_info = get_account_or_404(conn, account_id)

            if not update_data:
                return {"message": "No fields to update"}

            pms_type = parse_pms_type(account_info["pms_type"])
            credentials = update_data.pop("credentials", None)
            if credentials is not None:
                validate_credentials_or_400(credentials, pms_type)
                credential_store.save_credentials(account_id, pms_type, credentials, conn=conn)

            if update_data:
                update_account(conn, account_id, update_data)

        if should_trigger_sync_on_update(account_info, {"credentials": credentials}):
            background_tasks.add_task(run_sync, account_id, engine)
            logger.info(
                "account_updated_sync_triggered",
                account_id=account_id,
                reason="credentials_changed_never_synced",
            )
            return {
                "message": (
                    f"Account {account_id} updated. "
                    f"Sync triggered (new credentials, never synced before)."
                )
            }

        logger.info("account_updated", account_id=account_id)
        return {"message": f"Account {account_id} updated successfully"}

    except HTTPException:
        raise
    except Exception as e:
        logger.exception("account_update_failed", account_id=account_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.delete("/accounts/{account_id}", status_code=status.HTTP_200_OK)
def delete_account_endpoint(
    account_id: str,
    engine: Engine = Depends(get_db_engine),
) -> dict[str, str]:
    """
    Permanently delete an account.

    Credentials and order lines go with it; webhook events are kept for audit
    with their account reference cleared.
    """
    try:
        with engine.begin() as conn:
            get_account_or_404(conn, account_id)
            hard_delete_account(conn, account_id)

        logger.info("account_hard_deleted", account_id=account_id)
        return {"message": f"Account {account_id} permanently deleted"}

    except HTTPException:
        raise
    except Exception as e:
        logger.exception("account_deletion_failed", account_id=account_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")
