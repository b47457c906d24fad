"""Builds the right PMS client or webhook parser for a PMS type."""

from __future__ import annotations

from typing import Optional, Union

from sync_tree_orders.errors import UnsupportedPmsType
from sync_tree_orders.pms.base import PmsClient, PmsType, WebhookParser
from sync_tree_orders.pms.hotelspider.client import HotelSpiderClient
from sync_tree_orders.pms.hotelspider.webhook import HotelSpiderWebhookParser
from sync_tree_orders.pms.mews.client import MewsClient
from sync_tree_orders.pms.mews.webhook import MewsWebhookParser
from sync_tree_orders.resilience.context import ResilienceContext, get_shared_context


def parse_pms_type(value: Union[str, PmsType]) -> PmsType:
    """
    Coerce a stored or user-supplied value into a PmsType.

    Raises:
        UnsupportedPmsType: If the value is not a supported PMS
    """
    try:
        return PmsType(value)
    except ValueError as e:
        raise UnsupportedPmsType(f"Unsupported PMS type: {value}") from e


def create_client(
    pms_type: Union[str, PmsType],
    credentials: dict[str, str],
    resilience: Optional[ResilienceContext] = None,
) -> PmsClient:
    """
    Create a client for one account.

    Args:
        pms_type: PMS of the account
        credentials: Decrypted credential bundle
        resilience: Resilience context (default: the process-wide one for the PMS)

    Returns:
        PmsClient: Client bound to the credentials
    """
    kind = parse_pms_type(pms_type)

    if kind == PmsType.MEWS:
        return MewsClient(
            client_token=credentials["client_token"],
            access_token=credentials["access_token"],
            resilience=resilience or get_shared_context(kind.value),
        )
    if kind == PmsType.HOTELSPIDER:
        return HotelSpiderClient(
            username=credentials["username"],
            password=credentials["password"],
            hotel_code=credentials["hotel_code"],
        )
    raise UnsupportedPmsType(f"Unsupported PMS type: {pms_type}")


def create_webhook_parser(pms_type: Union[str, PmsType]) -> WebhookParser:
    kind = parse_pms_type(pms_type)
    if kind == PmsType.MEWS:
        return MewsWebhookParser()
    return HotelSpiderWebhookParser()
