"""Create tree_orders schema

Revision ID: 3f1c9a2b7d40
Revises:
Create Date: 2026-10-18 09:12:31.204117

"""

import sqlalchemy as sa

from alembic import op  # type: ignore[attr-defined]

# revision identifiers, used by Alembic.
revision = "3f1c9a2b7d40"
down_revision = None
branch_labels = None
depends_on = None

SCHEMA = "tree_orders"


def upgrade() -> None:
    """Upgrade schema."""
    op.execute(f"CREATE SCHEMA IF NOT EXISTS {SCHEMA}")

    op.create_table(
        "accounts",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "external_id", sa.String(), nullable=False, server_default=sa.text("'pending'")
        ),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("pms_type", sa.String(length=32), nullable=False),
        sa.Column("catalog_item_id", sa.String(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("TRUE")),
        sa.Column("last_sync_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        schema=SCHEMA,
    )
    op.create_index("ix_tree_orders_accounts_pms_type", "accounts", ["pms_type"], schema=SCHEMA)
    op.create_index(
        "uq_accounts_pms_type_external_id",
        "accounts",
        ["pms_type", "external_id"],
        unique=True,
        schema=SCHEMA,
        postgresql_where=sa.text("external_id <> 'pending'"),
    )

    op.create_table(
        "account_credentials",
        sa.Column(
            "account_id",
            sa.String(length=36),
            sa.ForeignKey(f"{SCHEMA}.accounts.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("client_token", sa.Text(), nullable=True),
        sa.Column("access_token", sa.Text(), nullable=True),
        sa.Column("username", sa.Text(), nullable=True),
        sa.Column("password", sa.Text(), nullable=True),
        sa.Column("hotel_code", sa.String(), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        schema=SCHEMA,
    )
    op.create_index(
        "ix_tree_orders_account_credentials_hotel_code",
        "account_credentials",
        ["hotel_code"],
        schema=SCHEMA,
    )

    op.create_table(
        "order_lines",
        sa.Column("external_id", sa.String(), primary_key=True),
        sa.Column(
            "account_id",
            sa.String(length=36),
            sa.ForeignKey(f"{SCHEMA}.accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("booked_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("check_in_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("pms_type", sa.String(length=32), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        schema=SCHEMA,
    )
    op.create_index(
        "ix_tree_orders_order_lines_account_id", "order_lines", ["account_id"], schema=SCHEMA
    )
    op.create_index(
        "ix_tree_orders_order_lines_booked_at", "order_lines", ["booked_at"], schema=SCHEMA
    )

    op.create_table(
        "webhook_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.String(), nullable=True),
        sa.Column(
            "account_id",
            sa.String(length=36),
            sa.ForeignKey(f"{SCHEMA}.accounts.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("source", sa.String(length=32), nullable=False),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("payload", sa.Text(), nullable=False),
        sa.Column("processed", sa.Boolean(), nullable=False, server_default=sa.text("FALSE")),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column(
            "received_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        schema=SCHEMA,
    )
    for column in ("event_id", "account_id", "processed"):
        op.create_index(
            f"ix_tree_orders_webhook_events_{column}", "webhook_events", [column], schema=SCHEMA
        )

    op.create_table(
        "account_leases",
        sa.Column(
            "account_id",
            sa.String(length=36),
            sa.ForeignKey(f"{SCHEMA}.accounts.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("holder", sa.String(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        schema=SCHEMA,
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("account_leases", schema=SCHEMA)
    op.drop_table("webhook_events", schema=SCHEMA)
    op.drop_table("order_lines", schema=SCHEMA)
    op.drop_table("account_credentials", schema=SCHEMA)
    op.drop_table("accounts", schema=SCHEMA)
