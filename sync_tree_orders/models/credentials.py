"""SQLAlchemy model for encrypted account credentials."""

from sqlalchemy import TIMESTAMP, Column, ForeignKey, String, Text, text

from sync_tree_orders.config import SCHEMA
from sync_tree_orders.models.base import Base


class AccountCredentials(Base):
    """
    One credential bundle per account, deleted with the account.

    Secret columns hold ``iv:tag:ciphertext`` produced by security.encryption.
    Which columns are set depends on the PMS type. hotel_code is an identifier,
    not a secret, and is stored in plaintext for webhook routing.
    """

    __tablename__ = "account_credentials"
    __table_args__ = {"schema": SCHEMA}

    account_id = Column(
        String(36),
        ForeignKey(f"{SCHEMA}.accounts.id", ondelete="CASCADE"),
        primary_key=True,
    )
    client_token = Column(Text, nullable=True)
    access_token = Column(Text, nullable=True)
    username = Column(Text, nullable=True)
    password = Column(Text, nullable=True)
    hotel_code = Column(String, nullable=True, index=True)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()"))
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()"))
