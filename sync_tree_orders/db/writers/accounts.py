import uuid
from typing import Any

import structlog
from sqlalchemy import delete, insert, update
from sqlalchemy.engine import Connection

from sync_tree_orders.models.accounts import PENDING_EXTERNAL_ID, Account
from sync_tree_orders.utils.datetime import utc_now

logger = structlog.get_logger(__name__)


def insert_account(conn: Connection, data: dict[str, Any]) -> str:
    """
    Create an account. external_id starts as "pending" unless given.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        data (dict): name, pms_type and optional catalog_item_id / external_id.

    Returns:
        str: The new account id
    """
    now = utc_now()
    account_id = data.get("id") or str(uuid.uuid4())

    conn.execute(
        insert(Account).values(
            id=account_id,
            name=data["name"],
            pms_type=data["pms_type"],
            external_id=data.get("external_id") or PENDING_EXTERNAL_ID,
            catalog_item_id=data.get("catalog_item_id"),
            is_active=data.get("is_active", True),
            created_at=now,
            updated_at=now,
        )
    )
    logger.info("account_inserted", account_id=account_id, pms_type=data["pms_type"])
    return account_id


def update_account(conn: Connection, account_id: str, data: dict[str, Any]) -> None:
    """
    Update account fields for an existing account.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        account_id (str): Internal account id.
        data (dict): Fields to update (only non-None values)
    """
    values = {**data, "updated_at": utc_now()}
    conn.execute(update(Account).where(Account.id == account_id).values(**values))


def set_external_id_if_pending(conn: Connection, account_id: str, external_id: str) -> bool:
    """
    Resolve a pending external id. A resolved id is never overwritten.

    Returns:
        bool: True if the id was set by this call
    """
    result = conn.execute(
        update(Account)
        .where(Account.id == account_id)
        .where(Account.external_id == PENDING_EXTERNAL_ID)
        .values(external_id=external_id, updated_at=utc_now())
    )
    return bool(result.rowcount)


def hard_delete_account(conn: Connection, account_id: str) -> None:
    """
    Permanently delete an account. Credentials, order lines and leases cascade.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        account_id (str): Internal account id.
    """
    conn.execute(delete(Account).where(Account.id == account_id))


def update_last_sync(conn: Connection, account_id: str) -> None:
    """
    Update the last_sync_at timestamp for an account.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        account_id (str): Internal account id.
    """
    now = utc_now()
    conn.execute(
        update(Account).where(Account.id == account_id).values(last_sync_at=now, updated_at=now)
    )
