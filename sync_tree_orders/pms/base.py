"""
Common abstraction over the supported property-management systems.

The set of PMS types is closed. Each type provides a ``PmsClient`` for pulling
data and a webhook parser for push deliveries.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from sync_tree_orders.schemas.orders import RawRecord


class PmsType(str, Enum):
    MEWS = "mews"
    HOTELSPIDER = "hotelspider"


@dataclass
class Page:
    """One page of a cursor-paginated listing."""

    records: list[dict[str, Any]]
    cursor: Optional[str] = None


@dataclass
class LineDraft:
    """An already-filtered tree order line that has not been bound to an account yet."""

    external_id: str
    quantity: int
    amount: Decimal
    currency: str
    booked_at: datetime
    check_in_at: Optional[datetime] = None


@dataclass
class ParsedWebhook:
    """
    Result of parsing one webhook delivery.

    ``records`` still need target filtering and normalization; ``lines`` have
    been filtered by the parser itself.
    """

    source: PmsType
    event_type: str
    account_key: Optional[str] = None
    event_id: Optional[str] = None
    records: list[RawRecord] = field(default_factory=list)
    lines: list[LineDraft] = field(default_factory=list)
    canceled_ids: list[str] = field(default_factory=list)


class PmsClient(ABC):
    """Pull-side client for one account on one PMS."""

    pms_type: PmsType
    supports_pull: bool = True

    @abstractmethod
    def test_connection(self) -> bool:
        """Return True if the credentials work against the PMS."""

    @abstractmethod
    def get_enterprise(self) -> dict[str, Any]:
        """Return the external property (``Id`` and ``Name``)."""

    @abstractmethod
    def list_order_items(
        self, start: datetime, end: datetime, cursor: Optional[str] = None
    ) -> Page:
        """List order items updated within ``[start, end)``."""

    @abstractmethod
    def list_products(self, service_ids: list[str], cursor: Optional[str] = None) -> Page:
        """List catalog items for the given service groups."""

    @abstractmethod
    def list_services(self) -> list[dict[str, Any]]:
        """List the service groups of the property."""


class WebhookParser(ABC):
    """Parses raw webhook bodies for one PMS."""

    source: PmsType

    @abstractmethod
    def parse(self, raw_body: str) -> ParsedWebhook:
        """
        Parse a raw delivery body.

        Raises:
            WebhookPayloadInvalid: If the body cannot be understood
        """
