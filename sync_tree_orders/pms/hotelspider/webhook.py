"""
HotelSpider OTA_HotelResNotifRQ parsing.

Tree services are recognised by keyword in their code or name and become line
drafts keyed ``{reservation_id}-{ServiceRPH|Code|tree}``. Services are read from
each RoomStay and from the reservation's top-level Services element. Element
lookups ignore the OTA namespace.
"""

from __future__ import annotations

import base64
import binascii
from decimal import Decimal, InvalidOperation
from typing import Optional
from xml.etree import ElementTree as ET

import structlog

from sync_tree_orders.config import DEFAULT_CURRENCY
from sync_tree_orders.errors import WebhookPayloadInvalid
from sync_tree_orders.pms.base import LineDraft, ParsedWebhook, PmsType, WebhookParser
from sync_tree_orders.utils.datetime import parse_datetime, utc_now

logger = structlog.get_logger(__name__)

ROOT_TAG = "OTA_HotelResNotifRQ"
TREE_KEYWORDS = ("tree", "baum", "bäume", "plant", "pflanzen", "forest", "wald")


def decode_basic_auth(auth_header: Optional[str]) -> Optional[tuple[str, str]]:
    """
    Split an HTTP Basic Authorization header into (username, password).

    Returns:
        Tuple of username and password, or None if the header is missing or malformed
    """
    if not auth_header or not auth_header.startswith("Basic "):
        return None
    try:
        decoded = base64.b64decode(auth_header[len("Basic ") :], validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None
    if ":" not in decoded:
        return None
    username, password = decoded.split(":", 1)
    return username, password


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _field(element: ET.Element, name: str) -> Optional[str]:
    """Read ``name`` as an attribute, falling back to a direct child's text."""
    value = element.get(name)
    if value:
        return value.strip()
    child = element.find(f"{{*}}{name}")
    if child is not None and child.text and child.text.strip():
        return child.text.strip()
    return None


def is_tree_service(service: ET.Element) -> bool:
    code = (_field(service, "ServiceRPH") or _field(service, "Code") or "").lower()
    name = (_field(service, "ServiceName") or _field(service, "Description") or "").lower()
    return any(keyword in code or keyword in name for keyword in TREE_KEYWORDS)


def _parse_quantity(raw: Optional[str]) -> int:
    try:
        return max(int(raw or "1"), 0)
    except ValueError:
        return 1


def _parse_amount(raw: Optional[str]) -> Decimal:
    try:
        return Decimal(raw or "0").quantize(Decimal("0.01"))
    except InvalidOperation:
        return Decimal("0.00")


def _service_line(
    service: ET.Element, reservation_id: str, booked_at_raw: Optional[str]
) -> LineDraft:
    price = service.find("{*}Price")
    amount_raw = price.get("Amount") if price is not None else None
    currency = price.get("CurrencyCode") if price is not None else None
    suffix = _field(service, "ServiceRPH") or _field(service, "Code") or "tree"

    return LineDraft(
        external_id=f"{reservation_id}-{suffix}",
        quantity=_parse_quantity(_field(service, "Quantity")),
        amount=_parse_amount(amount_raw or _field(service, "TotalAmount")),
        currency=(currency or _field(service, "CurrencyCode") or DEFAULT_CURRENCY).upper(),
        booked_at=parse_datetime(booked_at_raw) or utc_now(),
    )


class HotelSpiderWebhookParser(WebhookParser):
    source = PmsType.HOTELSPIDER

    def parse(self, raw_body: str) -> ParsedWebhook:
        try:
            root = ET.fromstring(raw_body)
        except ET.ParseError as e:
            raise WebhookPayloadInvalid(f"Invalid XML: {e}") from e

        if _local(root.tag) != ROOT_TAG:
            raise WebhookPayloadInvalid(f"Invalid XML: {ROOT_TAG} root not found")

        hotel_code_el = root.find(".//{*}BasicPropertyInfo")
        hotel_code = hotel_code_el.get("HotelCode") if hotel_code_el is not None else None

        lines: list[LineDraft] = []
        reservations = root.findall("./{*}HotelReservations/{*}HotelReservation")
        for reservation in reservations:
            unique_id = reservation.find("{*}UniqueID")
            res_id_el = reservation.find(
                "{*}ResGlobalInfo/{*}HotelReservationIDs/{*}HotelReservationID"
            )
            reservation_id = (
                (unique_id.get("ID") if unique_id is not None else None)
                or (res_id_el.get("ResID_Value") if res_id_el is not None else None)
                or "unknown"
            )
            booked_at_raw = reservation.get("CreateDateTime") or reservation.get("TimeStamp")

            services = reservation.findall("{*}RoomStays/{*}RoomStay/{*}Services/{*}Service")
            services += reservation.findall("{*}Services/{*}Service")
            for service in services:
                if is_tree_service(service):
                    lines.append(_service_line(service, reservation_id, booked_at_raw))

        logger.debug(
            "hotelspider_webhook_parsed",
            hotel_code=hotel_code,
            reservations=len(reservations),
            tree_lines=len(lines),
        )
        return ParsedWebhook(
            source=self.source,
            event_type=ROOT_TAG,
            account_key=hotel_code,
            event_id=root.get("EchoToken"),
            lines=lines,
        )
