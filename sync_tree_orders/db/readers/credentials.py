from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.engine import Connection

from sync_tree_orders.models.credentials import AccountCredentials


def get_credentials_row(conn: Connection, account_id: str) -> Optional[dict[str, Any]]:
    """
    Fetch the stored (still encrypted) credential columns of an account.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        account_id (str): Internal account id.

    Returns:
        Optional[dict]: Encrypted columns plus plaintext hotel_code, or None
    """
    row = (
        conn.execute(
            select(
                AccountCredentials.client_token,
                AccountCredentials.access_token,
                AccountCredentials.username,
                AccountCredentials.password,
                AccountCredentials.hotel_code,
            ).where(AccountCredentials.account_id == account_id)
        )
        .mappings()
        .fetchone()
    )
    return dict(row) if row else None
