"""
Mews webhook envelope parsing and signature verification.

Envelope layout::

    {
        "EnterpriseId": "...",
        "Events": [{"Discriminator": "OrderItemUpdated", "Value": {"Id": "..."}}],
        "Entities": {"OrderItems": [...], "Items": [...], "ProductAssignments": [...]}
    }

Entity lists map onto the three raw record variants. Events whose
discriminator marks a cancellation, and entities carrying ``CanceledUtc``, are
reported as ids to delete rather than records to upsert.
"""

from __future__ import annotations

import hashlib
import hmac
import json
from typing import Any, Optional

import structlog

from sync_tree_orders.errors import WebhookPayloadInvalid
from sync_tree_orders.pms.base import ParsedWebhook, PmsType, WebhookParser
from sync_tree_orders.schemas.orders import (
    OrderItemRecord,
    PostedItemRecord,
    ProductAssignmentRecord,
    RawRecord,
)

logger = structlog.get_logger(__name__)

SIGNATURE_HEADER = "x-mews-signature"

ENTITY_VARIANTS: dict[str, type] = {
    "Items": PostedItemRecord,
    "OrderItems": OrderItemRecord,
    "ProductAssignments": ProductAssignmentRecord,
}


def verify_signature(raw_body: bytes, signature: Optional[str], secret: str) -> bool:
    """
    Check the HMAC-SHA256 hex digest of the raw body.

    Args:
        raw_body: Exact request body bytes
        signature: Value of the signature header
        secret: Shared webhook secret

    Returns:
        bool: True if the signature matches
    """
    if not signature:
        return False
    expected = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(signature.strip().lower(), expected)


def is_cancellation(discriminator: str) -> bool:
    lowered = discriminator.lower()
    return lowered.endswith("canceled") or lowered.endswith("cancelled")


class MewsWebhookParser(WebhookParser):
    source = PmsType.MEWS

    def parse(self, raw_body: str) -> ParsedWebhook:
        try:
            envelope = json.loads(raw_body)
        except ValueError as e:
            raise WebhookPayloadInvalid("Body is not valid JSON") from e

        if not isinstance(envelope, dict) or not isinstance(envelope.get("Events"), list):
            raise WebhookPayloadInvalid("Envelope has no Events list")

        events: list[dict[str, Any]] = [e for e in envelope["Events"] if isinstance(e, dict)]
        discriminators = [str(e.get("Discriminator") or "Unknown") for e in events]

        canceled_ids: list[str] = []
        for event in events:
            value = event.get("Value") or {}
            if is_cancellation(str(event.get("Discriminator") or "")) and value.get("Id"):
                canceled_ids.append(str(value["Id"]))

        records: list[RawRecord] = []
        entities = envelope.get("Entities") or {}
        for key, variant in ENTITY_VARIANTS.items():
            for entity in entities.get(key) or []:
                if not isinstance(entity, dict) or not entity.get("Id"):
                    continue
                if entity.get("CanceledUtc") or str(entity["Id"]) in canceled_ids:
                    if str(entity["Id"]) not in canceled_ids:
                        canceled_ids.append(str(entity["Id"]))
                    continue
                records.append(variant(payload=entity))

        parsed = ParsedWebhook(
            source=self.source,
            event_type=",".join(sorted(set(discriminators))) or "Empty",
            account_key=envelope.get("EnterpriseId"),
            event_id=None,
            records=records,
            canceled_ids=canceled_ids,
        )
        logger.debug(
            "mews_webhook_parsed",
            enterprise_id=parsed.account_key,
            events=len(events),
            records=len(records),
            canceled=len(canceled_ids),
        )
        return parsed
