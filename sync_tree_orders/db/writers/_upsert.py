"""
Generic upsert helper with IS DISTINCT FROM optimization.

Used by the order line and credential writers. Rows whose compared columns are
unchanged are not rewritten, so updated_at only moves on real changes.
"""

from typing import Any, Optional, Sequence

from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.engine import Connection
from sqlalchemy.sql.elements import ColumnElement


def upsert_with_distinct_check(
    conn: Connection,
    table: type,
    rows: list[dict[str, Any]],
    conflict_column: str,
    distinct_columns: Sequence[str],
    update_columns: Optional[Sequence[str]] = None,
) -> None:
    """
    Perform upsert, updating only rows where a compared column changed.

    Args:
        conn: Active database connection (within transaction)
        table: SQLAlchemy ORM table class (e.g., OrderLineRow)
        rows: List of row dicts to upsert
        conflict_column: Column name for ON CONFLICT (usually the primary key)
        distinct_columns: Columns whose change triggers an update
        update_columns: Columns to update on conflict (default: distinct_columns + updated_at)

    Example:
        >>> with engine.begin() as conn:
        ...     upsert_with_distinct_check(
        ...         conn=conn,
        ...         table=OrderLineRow,
        ...         rows=[{"external_id": "oi-1", "quantity": 4, ...}],
        ...         conflict_column="external_id",
        ...         distinct_columns=["quantity", "amount"],
        ...     )
    """
    if not rows:
        return

    if not distinct_columns:
        raise ValueError("distinct_columns must not be empty")

    if update_columns is None:
        update_columns = [*distinct_columns, "updated_at"]

    stmt = insert(table).values(rows)

    set_dict = {col: getattr(stmt.excluded, col) for col in update_columns}

    # NULL-safe change detection across all compared columns
    changed: Optional[ColumnElement[bool]] = None
    for col in distinct_columns:
        check = getattr(table, col).is_distinct_from(getattr(stmt.excluded, col))
        changed = check if changed is None else changed | check

    stmt = stmt.on_conflict_do_update(
        index_elements=[conflict_column],
        set_=set_dict,
        where=changed,
    )

    conn.execute(stmt)
