"""
HotelSpider client.

HotelSpider pushes reservations to us (OTA_HotelResNotifRQ), there is no pull
API to poll. The client only validates credential structure and reports the
hotel code as the external property id.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

import structlog

from sync_tree_orders.pms.base import Page, PmsClient, PmsType

logger = structlog.get_logger(__name__)


class HotelSpiderClient(PmsClient):
    pms_type = PmsType.HOTELSPIDER
    supports_pull = False

    def __init__(self, username: str, password: str, hotel_code: str) -> None:
        self.username = username
        self._password = password
        self.hotel_code = hotel_code

    def test_connection(self) -> bool:
        ok = all([self.username, self._password, self.hotel_code])
        if not ok:
            logger.warning("hotelspider_credentials_incomplete", hotel_code=self.hotel_code)
        return ok

    def get_enterprise(self) -> dict[str, Any]:
        return {"Id": self.hotel_code, "Name": f"HotelSpider {self.hotel_code}"}

    def list_order_items(
        self, start: datetime, end: datetime, cursor: Optional[str] = None
    ) -> Page:
        return Page(records=[])

    def list_products(self, service_ids: list[str], cursor: Optional[str] = None) -> Page:
        return Page(records=[])

    def list_services(self) -> list[dict[str, Any]]:
        return []
