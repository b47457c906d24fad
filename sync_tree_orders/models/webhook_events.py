# models/webhook_events.py

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, text
from sqlalchemy.sql import func

from sync_tree_orders.config import SCHEMA
from sync_tree_orders.models.base import Base


class WebhookEvent(Base):
    """
    Audit and retry state for one webhook delivery.

    Rows are never deleted. account_id is NULL for deliveries that could not be
    routed, and is nulled when the account is deleted. retry_count only grows;
    processed flips to true once and stays there.
    """

    __tablename__ = "webhook_events"
    __table_args__ = {"schema": SCHEMA}

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(String, nullable=True, index=True)
    account_id = Column(
        String(36),
        ForeignKey(f"{SCHEMA}.accounts.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    source = Column(String(32), nullable=False)
    event_type = Column(String, nullable=False)
    payload = Column(Text, nullable=False)
    processed = Column(Boolean, nullable=False, server_default=text("FALSE"), index=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    retry_count = Column(Integer, nullable=False, server_default=text("0"))
    last_error = Column(Text, nullable=True)
    received_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
