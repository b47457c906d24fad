"""SQLAlchemy model for PMS-connected properties."""

import uuid

from sqlalchemy import TIMESTAMP, Boolean, Column, Index, String, text

from sync_tree_orders.config import SCHEMA
from sync_tree_orders.models.base import Base

PENDING_EXTERNAL_ID = "pending"


class Account(Base):
    """
    ORM model for connected properties.

    external_id is the PMS enterprise id (Mews) or hotel code (HotelSpider). It is
    "pending" until the first successful sync resolves it, and is unique per PMS
    type once resolved.
    """

    __tablename__ = "accounts"
    __table_args__ = (
        Index(
            "uq_accounts_pms_type_external_id",
            "pms_type",
            "external_id",
            unique=True,
            postgresql_where=text(f"external_id <> '{PENDING_EXTERNAL_ID}'"),
        ),
        {"schema": SCHEMA},
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    external_id = Column(String, nullable=False, server_default=text(f"'{PENDING_EXTERNAL_ID}'"))
    name = Column(String, nullable=False)
    pms_type = Column(String(32), nullable=False, index=True)
    catalog_item_id = Column(String, nullable=True)  # Fixed tree product; discovered if NULL
    is_active = Column(Boolean, nullable=False, server_default=text("TRUE"))
    last_sync_at = Column(TIMESTAMP(timezone=True), nullable=True)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()"))
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()"))
