from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.engine import Connection

from sync_tree_orders.models.accounts import Account

ACCOUNT_COLUMNS = (
    Account.id,
    Account.external_id,
    Account.name,
    Account.pms_type,
    Account.catalog_item_id,
    Account.is_active,
    Account.last_sync_at,
)


def account_exists(conn: Connection, account_id: str) -> bool:
    """
    Check if an account exists.

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        account_id (str): Internal account id.

    Returns:
        bool: True if the account exists, False otherwise.
    """
    result = conn.execute(select(Account.id).where(Account.id == account_id))
    return result.fetchone() is not None


def get_account(conn: Connection, account_id: str) -> Optional[dict[str, Any]]:
    """
    Fetch an account row.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        account_id (str): Internal account id.

    Returns:
        Optional[dict]: Account fields, or None if not found
    """
    stmt = select(*ACCOUNT_COLUMNS).where(Account.id == account_id)
    row = conn.execute(stmt).mappings().fetchone()
    return dict(row) if row else None


def find_account_by_external_id(
    conn: Connection, pms_type: str, external_id: str
) -> Optional[dict[str, Any]]:
    """
    Look up an active account by its PMS-side identifier.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        pms_type (str): PMS type of the account.
        external_id (str): Enterprise id or hotel code.

    Returns:
        Optional[dict]: Account fields, or None if no active account matches
    """
    row = (
        conn.execute(
            select(*ACCOUNT_COLUMNS)
            .where(Account.pms_type == pms_type)
            .where(Account.external_id == external_id)
            .where(Account.is_active == True)  # noqa: E712
        )
        .mappings()
        .fetchone()
    )
    return dict(row) if row else None


def list_active_account_ids(conn: Connection) -> list[str]:
    """Return ids of all active accounts, oldest first."""
    result = conn.execute(
        select(Account.id)
        .where(Account.is_active == True)  # noqa: E712
        .order_by(Account.created_at)
    )
    return list(result.scalars().all())


def list_accounts(conn: Connection) -> list[dict[str, Any]]:
    """
    Return every account, newest first.

    Args:
        conn (Connection): SQLAlchemy DB connection.

    Returns:
        list[dict]: Account fields plus created_at
    """
    result = conn.execute(
        select(*ACCOUNT_COLUMNS, Account.created_at).order_by(Account.created_at.desc())
    )
    return [dict(row) for row in result.mappings().all()]
