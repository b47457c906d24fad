"""
Internal helper functions for account route handlers.

Validation and error mapping shared by the handlers, kept here so the
handlers read as a straight sequence of steps.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import HTTPException, status
from sqlalchemy.engine import Connection

from sync_tree_orders.db.readers.accounts import get_account
from sync_tree_orders.errors import (
    AccountNotFound,
    CatalogTargetNotFound,
    CircuitOpen,
    CredentialsInvalidFormat,
    CredentialsMissing,
    SyncAlreadyRunning,
    SyncError,
    UnsupportedPmsType,
    UpstreamError,
)
from sync_tree_orders.pms.base import PmsType
from sync_tree_orders.services.credentials import REQUIRED_FIELDS, validate_credentials_format

ERROR_STATUS: dict[type, int] = {
    AccountNotFound: status.HTTP_404_NOT_FOUND,
    CatalogTargetNotFound: status.HTTP_404_NOT_FOUND,
    CredentialsMissing: status.HTTP_400_BAD_REQUEST,
    CredentialsInvalidFormat: status.HTTP_400_BAD_REQUEST,
    UnsupportedPmsType: status.HTTP_400_BAD_REQUEST,
    SyncAlreadyRunning: status.HTTP_409_CONFLICT,
    CircuitOpen: status.HTTP_503_SERVICE_UNAVAILABLE,
    UpstreamError: status.HTTP_502_BAD_GATEWAY,
}


def status_for_error(error: SyncError) -> int:
    """Map a domain error onto an HTTP status (500 for anything unmapped)."""
    for error_type, code in ERROR_STATUS.items():
        if isinstance(error, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def get_account_or_404(conn: Connection, account_id: str) -> dict[str, Any]:
    """
    Fetch an account, raise 404 if it does not exist.

    Args:
        conn: Database connection
        account_id: Account ID to fetch

    Raises:
        HTTPException: 404 if account doesn't exist
    """
    account = get_account(conn, account_id)
    if account is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Account {account_id} not found",
        )
    return account


def validate_credentials_or_400(credentials: Optional[dict[str, str]], pms_type: PmsType) -> None:
    """
    Validate the structure of a credential bundle, raise 400 if incomplete.

    Raises:
        HTTPException: 400 naming the required fields
    """
    if not validate_credentials_format(credentials, pms_type):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{pms_type.value} credentials require: {', '.join(REQUIRED_FIELDS[pms_type])}",
        )


def should_trigger_sync_on_update(
    account_info: dict[str, Any],
    update_data: dict[str, Any],
) -> bool:
    """
    Decide whether an update should start a sync.

    Sync is triggered when new credentials arrive for an account that has
    never synced, i.e. the onboarding sync most likely failed on bad
    credentials.
    """
    return bool(update_data.get("credentials")) and account_info.get("last_sync_at") is None
