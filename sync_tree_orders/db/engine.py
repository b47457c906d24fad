"""
SQLAlchemy engine singleton with connection pooling.

Several account syncs run concurrently on a thread pool while the API serves
webhooks, so the pool is sized for both.
"""

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

from sync_tree_orders.config import DATABASE_URL, SYNC_MAX_WORKERS

if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL is not set.")

engine: Engine = create_engine(
    DATABASE_URL,
    future=True,
    pool_size=max(10, SYNC_MAX_WORKERS * 2),
    max_overflow=20,
    pool_pre_ping=True,  # Detect connections dropped by the server
    pool_recycle=3600,
    echo=False,
)


def check_engine_health() -> bool:
    """
    Check that the database answers a trivial query.

    Used by the /ready endpoint.

    Returns:
        bool: True if database is reachable, False otherwise
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False
