from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """
    Declarative base for every table in the tree_orders schema.

    alembic/env.py imports all models through this base so autogenerate sees
    accounts, credentials, order lines, webhook events and leases together.
    """

    pass
