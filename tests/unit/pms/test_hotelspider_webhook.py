"""
Unit tests for HotelSpider OTA parsing.
"""

from __future__ import annotations

import base64
from decimal import Decimal

import pytest

from sync_tree_orders.errors import WebhookPayloadInvalid
from sync_tree_orders.pms.hotelspider.webhook import HotelSpiderWebhookParser, decode_basic_auth

OTA_BODY = """<?xml version="1.0" encoding="UTF-8"?>
<OTA_HotelResNotifRQ xmlns="http://www.opentravel.org/OTA/2003/05" EchoToken="echo-42">
  <HotelReservations>
    <HotelReservation CreateDateTime="2024-06-10T09:30:00Z">
      <UniqueID ID="RES-1"/>
      <RoomStays>
        <RoomStay>
          <BasicPropertyInfo HotelCode="HS-100"/>
          <Services>
            <Service ServiceRPH="TREE" Quantity="3">
              <ServiceName>Plant a tree</ServiceName>
              <Price Amount="17.70" CurrencyCode="chf"/>
            </Service>
            <Service ServiceRPH="BRK" Quantity="2">
              <ServiceName>Breakfast</ServiceName>
              <Price Amount="40.00" CurrencyCode="CHF"/>
            </Service>
          </Services>
        </RoomStay>
      </RoomStays>
      <Services>
        <Service Code="BAUM1">
          <Price Amount="5.90"/>
        </Service>
      </Services>
    </HotelReservation>
  </HotelReservations>
</OTA_HotelResNotifRQ>
"""


@pytest.mark.unit
def test_tree_services_become_lines() -> None:
    parsed = HotelSpiderWebhookParser().parse(OTA_BODY)

    assert parsed.account_key == "HS-100"
    assert parsed.event_id == "echo-42"
    assert [line.external_id for line in parsed.lines] == ["RES-1-TREE", "RES-1-BAUM1"]

    tree = parsed.lines[0]
    assert tree.quantity == 3
    assert tree.amount == Decimal("17.70")
    assert tree.currency == "CHF"
    assert tree.booked_at.isoformat() == "2024-06-10T09:30:00+00:00"

    reservation_level = parsed.lines[1]
    assert reservation_level.quantity == 1
    assert reservation_level.currency == "EUR"


@pytest.mark.unit
def test_no_tree_services_yields_no_lines() -> None:
    body = (
        OTA_BODY.replace("Plant a tree", "Parking")
        .replace('ServiceRPH="TREE"', 'ServiceRPH="PRK"')
        .replace('Code="BAUM1"', 'Code="PARK"')
    )

    assert HotelSpiderWebhookParser().parse(body).lines == []


@pytest.mark.unit
@pytest.mark.parametrize("body", ["<not-xml", "<OTA_ReadRQ/>"])
def test_invalid_documents(body: str) -> None:
    with pytest.raises(WebhookPayloadInvalid):
        HotelSpiderWebhookParser().parse(body)


@pytest.mark.unit
def test_decode_basic_auth() -> None:
    header = "Basic " + base64.b64encode(b"HS-100:pa:ss").decode()

    assert decode_basic_auth(header) == ("HS-100", "pa:ss")
    assert decode_basic_auth(None) is None
    assert decode_basic_auth("Bearer abc") is None
    assert decode_basic_auth("Basic !!!") is None
