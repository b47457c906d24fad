"""
Shared fixtures for integration tests against a real PostgreSQL.

The schema must exist (``alembic upgrade head``) before these run.
"""

from __future__ import annotations

import uuid
from typing import Any, Generator

import pytest
from sqlalchemy import text

from sync_tree_orders.db.engine import engine


@pytest.fixture
def test_account(request: Any) -> Generator[str, None, None]:
    """
    Create a Mews test account and return its id.

    Deleting the account cascades to its credentials and order lines.
    """
    account_id = getattr(request, "param", None) or str(uuid.uuid4())

    with engine.begin() as conn:
        conn.execute(
            text(
                """
                INSERT INTO tree_orders.accounts (id, external_id, name, pms_type)
                VALUES (:id, :external_id, 'Integration Hotel', 'mews')
                ON CONFLICT (id) DO NOTHING
                """
            ),
            {"id": account_id, "external_id": f"ent-{account_id}"},
        )

    yield account_id

    with engine.begin() as conn:
        conn.execute(
            text("DELETE FROM tree_orders.webhook_events WHERE account_id = :id"),
            {"id": account_id},
        )
        conn.execute(text("DELETE FROM tree_orders.accounts WHERE id = :id"), {"id": account_id})
