"""
Webhook receipt and processing.

Every delivery is recorded before it is processed, so a failed delivery can be
retried later from the stored payload. Processing reuses the sync path: raw
records are normalized against the account's tree targets, then applied to the
order line store without deleting anything by absence.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

import structlog
from sqlalchemy.engine import Engine

from sync_tree_orders.db.readers.webhook_events import processed_event_exists
from sync_tree_orders.db.writers.webhook_events import insert_webhook_event, update_webhook_event
from sync_tree_orders.metrics import webhooks_processed, webhooks_received
from sync_tree_orders.normalizers.orders import normalize_records
from sync_tree_orders.pms.base import ParsedWebhook, PmsType
from sync_tree_orders.pms.factory import create_client, create_webhook_parser, parse_pms_type
from sync_tree_orders.resilience.context import ResilienceContext
from sync_tree_orders.schemas.orders import OrderLine
from sync_tree_orders.schemas.sync import ReconcileResult
from sync_tree_orders.services.credentials import CredentialStore
from sync_tree_orders.services.reconcile import OrderLineStore, apply_event_lines
from sync_tree_orders.services.sync import fixed_targets, resolve_targets
from sync_tree_orders.utils.datetime import utc_now

logger = structlog.get_logger(__name__)


@dataclass
class WebhookOutcome:
    """What happened to one delivery; rendered by the webhook routes."""

    event_pk: Optional[int] = None
    processed: bool = False
    duplicate: bool = False
    lines: int = 0
    deleted: int = 0
    error: Optional[str] = None


def apply_parsed_webhook(
    account: dict[str, Any],
    parsed: ParsedWebhook,
    order_store: OrderLineStore,
    credential_store: CredentialStore,
    resilience: Optional[ResilienceContext] = None,
) -> ReconcileResult:
    """
    Apply a parsed delivery to the order lines of its account.

    Raw records are filtered by the account's tree targets. Line drafts were
    already filtered by the parser and are bound to the account as they are.
    """
    account_id = account["id"]
    pms_type = account["pms_type"]
    lines: dict[str, OrderLine] = {}

    if parsed.records:
        targets = fixed_targets(account)
        if targets is None:
            credentials = credential_store.get_credentials(account_id, pms_type)
            client = create_client(pms_type, credentials, resilience)
            targets = resolve_targets(account, client)
        lines.update(normalize_records(parsed.records, account_id, targets, pms_type))

    for draft in parsed.lines:
        lines[draft.external_id] = OrderLine(
            external_id=draft.external_id,
            account_id=account_id,
            quantity=draft.quantity,
            amount=draft.amount,
            currency=draft.currency,
            booked_at=draft.booked_at,
            check_in_at=draft.check_in_at,
            pms_type=pms_type,
        )

    result = apply_event_lines(order_store, account_id, lines.values(), parsed.canceled_ids)
    logger.info(
        "webhook_applied",
        account_id=account_id,
        source=parsed.source.value,
        inserted=result.inserted,
        updated=result.updated,
        deleted=result.deleted,
    )
    return result


def process_stored_payload(
    account: dict[str, Any],
    source: str,
    raw_body: str,
    order_store: OrderLineStore,
    credential_store: CredentialStore,
    resilience: Optional[ResilienceContext] = None,
) -> ReconcileResult:
    """
    Parse and apply a stored payload. Used by the retry scheduler.

    Raises:
        WebhookPayloadInvalid: If the payload can no longer be parsed
    """
    parsed = create_webhook_parser(source).parse(raw_body)
    return apply_parsed_webhook(account, parsed, order_store, credential_store, resilience)


def handle_incoming(
    engine: Engine,
    source: PmsType,
    raw_body: str,
    parsed: ParsedWebhook,
    account: Optional[dict[str, Any]],
    order_store: OrderLineStore,
    credential_store: CredentialStore,
    resilience: Optional[ResilienceContext] = None,
) -> WebhookOutcome:
    """
    Record a delivery and process it inline.

    Processing errors are stored on the event record for the retry scheduler
    instead of being raised; the sender always gets an acknowledgement.

    Args:
        engine: Database engine for the event record
        source: Sending PMS
        raw_body: Body exactly as received
        parsed: Parsed delivery
        account: Routed account, or None if no account matches
        order_store: Order line persistence
        credential_store: Credential access for catalog discovery

    Returns:
        WebhookOutcome: Event record id plus processing summary
    """
    source = parse_pms_type(source)
    webhooks_received.labels(source=source.value).inc()
    account_id = account["id"] if account else None

    if parsed.event_id:
        with engine.connect() as conn:
            seen = processed_event_exists(conn, source.value, parsed.event_id)
        if seen:
            logger.info("webhook_duplicate", source=source.value, event_id=parsed.event_id)
            webhooks_processed.labels(source=source.value, outcome="duplicate").inc()
            return WebhookOutcome(processed=True, duplicate=True)

    with engine.begin() as conn:
        event_pk = insert_webhook_event(
            conn,
            source=source.value,
            event_type=parsed.event_type,
            payload=raw_body,
            account_id=account_id,
            event_id=parsed.event_id,
        )

    outcome = WebhookOutcome(event_pk=event_pk)

    if account is None:
        outcome.error = f"No active account for {source.value} key {parsed.account_key!r}"
        logger.warning("webhook_unrouted", source=source.value, account_key=parsed.account_key)
        with engine.begin() as conn:
            update_webhook_event(conn, event_pk, {"last_error": outcome.error})
        webhooks_processed.labels(source=source.value, outcome="failure").inc()
        return outcome

    try:
        result = apply_parsed_webhook(account, parsed, order_store, credential_store, resilience)
    except Exception as e:
        logger.exception("webhook_processing_failed", event_pk=event_pk, account_id=account_id)
        outcome.error = str(e) or e.__class__.__name__
        with engine.begin() as conn:
            update_webhook_event(conn, event_pk, {"last_error": outcome.error})
        webhooks_processed.labels(source=source.value, outcome="failure").inc()
        return outcome

    with engine.begin() as conn:
        update_webhook_event(
            conn, event_pk, {"processed": True, "processed_at": utc_now(), "last_error": None}
        )
    webhooks_processed.labels(source=source.value, outcome="success").inc()

    outcome.processed = True
    outcome.lines = result.upserted + result.unchanged
    outcome.deleted = result.deleted
    return outcome
