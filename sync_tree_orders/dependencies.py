"""
FastAPI dependency providers.

Routes receive the engine and the stores through ``Depends`` so tests can
swap them via ``app.dependency_overrides`` without touching a database.
"""

from __future__ import annotations

from typing import Generator

from fastapi import Depends
from sqlalchemy.engine import Engine

from sync_tree_orders.db.engine import engine
from sync_tree_orders.db.stores import SqlOrderLineStore
from sync_tree_orders.services.credentials import CredentialStore
from sync_tree_orders.services.reconcile import OrderLineStore


def get_db_engine() -> Generator[Engine, None, None]:
    """
    Provide the database engine.

    Testing Example:
        >>> from unittest.mock import MagicMock
        >>> app.dependency_overrides[get_db_engine] = lambda: MagicMock(spec=Engine)
    """
    yield engine


def get_credential_store(db_engine: Engine = Depends(get_db_engine)) -> CredentialStore:
    return CredentialStore(db_engine)


def get_order_line_store(db_engine: Engine = Depends(get_db_engine)) -> OrderLineStore:
    return SqlOrderLineStore(db_engine)
