"""SQLAlchemy model for per-account advisory sync leases."""

from sqlalchemy import Column, DateTime, ForeignKey, String

from sync_tree_orders.config import SCHEMA
from sync_tree_orders.models.base import Base


class AccountLease(Base):
    """A sync lease; a row whose expires_at has passed can be taken over."""

    __tablename__ = "account_leases"
    __table_args__ = {"schema": SCHEMA}

    account_id = Column(
        String(36),
        ForeignKey(f"{SCHEMA}.accounts.id", ondelete="CASCADE"),
        primary_key=True,
    )
    holder = Column(String, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
