"""
Per-account advisory lock for sync runs.

Two syncs of the same account can overlap (cron plus a manual trigger). The
reconciler tolerates that, so the default lock grants every request.
``LeaseAccountLock`` is available for deployments that want mutual exclusion;
it stores a lease row with an expiry so a crashed holder cannot block forever.
"""

from __future__ import annotations

import os
import socket
import threading
from datetime import timedelta
from typing import Optional, Protocol

import structlog
from sqlalchemy import delete
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.engine import Engine

from sync_tree_orders.config import ACCOUNT_LOCK_ENABLED, ACCOUNT_LOCK_TTL_SECONDS
from sync_tree_orders.models.account_leases import AccountLease
from sync_tree_orders.utils.datetime import utc_now

logger = structlog.get_logger(__name__)


class AccountLock(Protocol):
    def acquire(self, account_id: str) -> bool: ...

    def release(self, account_id: str) -> None: ...


class NullAccountLock:
    """Grants every request."""

    def acquire(self, account_id: str) -> bool:
        return True

    def release(self, account_id: str) -> None:
        return None


class LeaseAccountLock:
    def __init__(
        self,
        engine: Engine,
        ttl_seconds: int = ACCOUNT_LOCK_TTL_SECONDS,
        holder: Optional[str] = None,
    ):
        self.engine = engine
        self.ttl_seconds = ttl_seconds
        self.holder = holder or f"{socket.gethostname()}:{os.getpid()}:{threading.get_ident()}"

    def acquire(self, account_id: str) -> bool:
        """
        Take the lease if it is free or expired.

        The insert and the takeover of an expired row happen in one statement,
        so two contenders can never both succeed.
        """
        now = utc_now()
        stmt = insert(AccountLease).values(
            account_id=account_id,
            holder=self.holder,
            expires_at=now + timedelta(seconds=self.ttl_seconds),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["account_id"],
            set_={"holder": stmt.excluded.holder, "expires_at": stmt.excluded.expires_at},
            where=AccountLease.expires_at < now,
        ).returning(AccountLease.account_id)

        with self.engine.begin() as conn:
            acquired = conn.execute(stmt).fetchone() is not None

        if not acquired:
            logger.info("account_lock_busy", account_id=account_id)
        return acquired

    def release(self, account_id: str) -> None:
        with self.engine.begin() as conn:
            conn.execute(
                delete(AccountLease)
                .where(AccountLease.account_id == account_id)
                .where(AccountLease.holder == self.holder)
            )


def get_account_lock(engine: Engine) -> AccountLock:
    """Return the lock selected by ACCOUNT_LOCK_ENABLED."""
    if ACCOUNT_LOCK_ENABLED:
        return LeaseAccountLock(engine)
    return NullAccountLock()
