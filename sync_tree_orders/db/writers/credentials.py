from typing import Any

from sqlalchemy.engine import Connection

from sync_tree_orders.db.writers._upsert import upsert_with_distinct_check
from sync_tree_orders.models.credentials import AccountCredentials
from sync_tree_orders.utils.datetime import utc_now

CREDENTIAL_COLUMNS = ["client_token", "access_token", "username", "password", "hotel_code"]


def upsert_credentials(conn: Connection, account_id: str, columns: dict[str, Any]) -> None:
    """
    Store the credential bundle of an account.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        account_id (str): Internal account id.
        columns (dict): Already-encrypted secret columns plus plaintext hotel_code
    """
    now = utc_now()
    row = {col: columns.get(col) for col in CREDENTIAL_COLUMNS}
    row.update({"account_id": account_id, "created_at": now, "updated_at": now})

    upsert_with_distinct_check(
        conn=conn,
        table=AccountCredentials,
        rows=[row],
        conflict_column="account_id",
        distinct_columns=CREDENTIAL_COLUMNS,
    )
