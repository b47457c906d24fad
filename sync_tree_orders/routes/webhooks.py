"""Webhook receivers for Mews (JSON, HMAC signed) and HotelSpider (OTA XML, Basic auth)."""

from typing import Any, Optional

import structlog
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine
from starlette.concurrency import run_in_threadpool

from sync_tree_orders.config import WEBHOOK_SECRET
from sync_tree_orders.db.readers.accounts import find_account_by_external_id
from sync_tree_orders.dependencies import (
    get_credential_store,
    get_db_engine,
    get_order_line_store,
)
from sync_tree_orders.errors import SyncError, WebhookPayloadInvalid
from sync_tree_orders.pms.base import PmsType
from sync_tree_orders.pms.hotelspider.webhook import HotelSpiderWebhookParser, decode_basic_auth
from sync_tree_orders.pms.mews.webhook import (
    SIGNATURE_HEADER,
    MewsWebhookParser,
    verify_signature,
)
from sync_tree_orders.security.encryption import constant_time_compare
from sync_tree_orders.services.credentials import CredentialStore
from sync_tree_orders.services.reconcile import OrderLineStore
from sync_tree_orders.services.webhooks import handle_incoming

router = APIRouter()
logger = structlog.get_logger(__name__)


def _find_account(
    engine: Engine, pms_type: PmsType, key: Optional[str]
) -> Optional[dict[str, Any]]:
    if not key:
        return None
    with engine.connect() as conn:
        return find_account_by_external_id(conn, pms_type.value, key)


def authenticate_hotelspider(
    engine: Engine, credential_store: CredentialStore, auth_header: Optional[str]
) -> Optional[dict[str, Any]]:
    """
    Resolve the account behind a HotelSpider Basic auth header.

    The username is the hotel code; the password must match the stored one.

    Returns:
        The account row, or None if authentication fails
    """
    decoded = decode_basic_auth(auth_header)
    if decoded is None:
        return None
    hotel_code, password = decoded

    account = _find_account(engine, PmsType.HOTELSPIDER, hotel_code)
    if account is None:
        logger.warning("hotelspider_hotel_not_found", hotel_code=hotel_code)
        return None

    try:
        stored = credential_store.get_credentials(account["id"], PmsType.HOTELSPIDER)
    except SyncError as e:
        logger.error(
            "hotelspider_credentials_unusable", account_id=account["id"], error_code=e.code
        )
        return None

    if not constant_time_compare(password, stored["password"]):
        logger.warning("hotelspider_auth_failed", account_id=account["id"])
        return None
    return account


@router.post("/webhooks/mews")
async def receive_mews_webhook(
    request: Request,
    engine: Engine = Depends(get_db_engine),
    order_store: OrderLineStore = Depends(get_order_line_store),
    credential_store: CredentialStore = Depends(get_credential_store),
) -> JSONResponse:
    """
    Handle a Mews webhook envelope.

    Authentication: HMAC-SHA256 of the raw body in ``x-mews-signature`` when
    WEBHOOK_SECRET is configured.

    Always answers 200 once the delivery is recorded; processing failures are
    left to the retry scheduler.
    """
    raw_body = await request.body()

    if WEBHOOK_SECRET and not verify_signature(
        raw_body, request.headers.get(SIGNATURE_HEADER), WEBHOOK_SECRET
    ):
        logger.warning("mews_signature_invalid")
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED, content={"error": "Invalid signature"}
        )

    text = raw_body.decode("utf-8", errors="replace")
    try:
        parsed = MewsWebhookParser().parse(text)
    except WebhookPayloadInvalid as e:
        logger.warning("mews_payload_invalid", error=e.message)
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": e.message})

    account = await run_in_threadpool(_find_account, engine, PmsType.MEWS, parsed.account_key)
    outcome = await run_in_threadpool(
        handle_incoming,
        engine,
        PmsType.MEWS,
        text,
        parsed,
        account,
        order_store,
        credential_store,
    )

    logger.info(
        "mews_webhook_received",
        event_pk=outcome.event_pk,
        event_type=parsed.event_type,
        processed=outcome.processed,
    )
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={
            "status": "accepted",
            "event_id": outcome.event_pk,
            "processed": outcome.processed,
        },
    )


@router.post("/webhooks/hotelspider")
async def receive_hotelspider_webhook(
    request: Request,
    engine: Engine = Depends(get_db_engine),
    order_store: OrderLineStore = Depends(get_order_line_store),
    credential_store: CredentialStore = Depends(get_credential_store),
) -> JSONResponse:
    """
    Handle an OTA_HotelResNotifRQ delivery from HotelSpider.

    Authentication: HTTP Basic auth with the hotel code as username and the
    stored HotelSpider password.
    """
    account = await run_in_threadpool(
        authenticate_hotelspider,
        engine,
        credential_store,
        request.headers.get("authorization"),
    )
    if account is None:
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"error": "Missing or invalid credentials"},
        )

    text = (await request.body()).decode("utf-8", errors="replace")
    try:
        parsed = HotelSpiderWebhookParser().parse(text)
    except WebhookPayloadInvalid as e:
        logger.warning("hotelspider_payload_invalid", account_id=account["id"], error=e.message)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "errors": [e.message]},
        )

    outcome = await run_in_threadpool(
        handle_incoming,
        engine,
        PmsType.HOTELSPIDER,
        text,
        parsed,
        account,
        order_store,
        credential_store,
    )

    logger.info(
        "hotelspider_webhook_received",
        account_id=account["id"],
        event_id=parsed.event_id,
        orders=len(parsed.lines),
        duplicate=outcome.duplicate,
    )
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={
            "success": True,
            "orders_processed": outcome.lines,
            "duplicate": outcome.duplicate,
        },
    )
