from typing import Optional

from pydantic import BaseModel, Field

from sync_tree_orders.pms.base import PmsType


class AccountCreatePayload(BaseModel):
    """
    Schema for onboarding a property. Credentials are encrypted before storage.

    Mews expects ``client_token`` and ``access_token``; HotelSpider expects
    ``username``, ``password`` and ``hotel_code``.
    """

    name: str = Field(..., min_length=1, description="Display name of the property")
    pms_type: PmsType = Field(..., description="PMS the property is connected to")
    credentials: dict[str, str] = Field(..., description="PMS-specific credential bundle")
    catalog_item_id: Optional[str] = Field(
        None, description="Fixed tree product id; discovered automatically when omitted"
    )


class AccountUpdatePayload(BaseModel):
    """
    Schema for updating an existing account. All fields are optional.
    Note: external_id and last_sync_at are managed by the sync engine.
    """

    name: Optional[str] = Field(None, description="Display name")
    catalog_item_id: Optional[str] = Field(None, description="Fixed tree product id")
    credentials: Optional[dict[str, str]] = Field(None, description="Replacement credentials")
    is_active: Optional[bool] = Field(None, description="Account active status")
