# models/order_lines.py

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.sql import func

from sync_tree_orders.config import SCHEMA
from sync_tree_orders.models.base import Base


class OrderLineRow(Base):
    """
    ORM model for reconciled tree order lines.

    external_id is the PMS line id and the upsert key. amount is the line total;
    an amount of 0 marks a void line that is still reported by the PMS.
    """

    __tablename__ = "order_lines"
    __table_args__ = {"schema": SCHEMA}

    external_id = Column(String, primary_key=True)
    account_id = Column(
        String(36),
        ForeignKey(f"{SCHEMA}.accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    quantity = Column(Integer, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    booked_at = Column(DateTime(timezone=True), nullable=False, index=True)
    check_in_at = Column(DateTime(timezone=True), nullable=True)
    pms_type = Column(String(32), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
