"""
Order line schemas: the canonical reconciled record and the tagged raw records.

Raw PMS records come in three layouts depending on API generation. Each is
wrapped in its own model with a ``kind`` discriminator so the normalizer can
dispatch on the tag instead of probing fields.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field


class OrderLine(BaseModel):
    """Canonical tree order line, keyed by the PMS line identifier."""

    external_id: str = Field(..., description="PMS line identifier (upsert key)")
    account_id: str = Field(..., description="Owning account id")
    quantity: int = Field(..., ge=0, description="Units sold")
    amount: Decimal = Field(..., description="Total price (never unit price)")
    currency: str = Field(..., min_length=3, max_length=3)
    booked_at: datetime
    check_in_at: Optional[datetime] = None
    pms_type: str


class PostedItemRecord(BaseModel):
    """Legacy accounting item (``Items``)."""

    kind: Literal["posted_item"] = "posted_item"
    payload: dict[str, Any]


class OrderItemRecord(BaseModel):
    """Order item (``orderitems/getAll`` and legacy ``OrderItems``)."""

    kind: Literal["order_item"] = "order_item"
    payload: dict[str, Any]


class ProductAssignmentRecord(BaseModel):
    """Legacy product assignment (``ProductAssignments``)."""

    kind: Literal["product_assignment"] = "product_assignment"
    payload: dict[str, Any]


RawRecord = Annotated[
    Union[PostedItemRecord, OrderItemRecord, ProductAssignmentRecord],
    Field(discriminator="kind"),
]
