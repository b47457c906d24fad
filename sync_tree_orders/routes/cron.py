"""Endpoints triggered by an external scheduler."""

from typing import Any, Optional

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.engine import Engine
from starlette.concurrency import run_in_threadpool

from sync_tree_orders.config import CRON_SECRET
from sync_tree_orders.dependencies import get_db_engine
from sync_tree_orders.security.encryption import constant_time_compare
from sync_tree_orders.services.webhook_retry import get_retry_stats, run_webhook_retries

logger = structlog.get_logger(__name__)
router = APIRouter()


def verify_cron_auth(authorization: Optional[str]) -> None:
    """
    Require ``Authorization: Bearer <CRON_SECRET>``.

    Raises:
        HTTPException: 503 if no secret is configured, 401 on mismatch
    """
    if not CRON_SECRET:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="CRON_SECRET is not configured",
        )
    if not authorization or not constant_time_compare(authorization, f"Bearer {CRON_SECRET}"):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


@router.post("/cron/retry-webhooks", status_code=status.HTTP_200_OK)
async def retry_webhooks(
    authorization: Optional[str] = Header(None),
    engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """
    Run one webhook retry pass.

    Returns:
        dict: RetryStats, including whether the failure alert fired
    """
    verify_cron_auth(authorization)
    try:
        stats = await run_in_threadpool(run_webhook_retries, engine)
    except Exception as e:
        logger.exception("webhook_retry_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")
    return {"success": True, **stats.model_dump()}


@router.get("/cron/webhook-stats", status_code=status.HTTP_200_OK)
async def webhook_stats(
    authorization: Optional[str] = Header(None),
    engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """Report the retry queue: pending, exhausted and 24h delivery totals."""
    verify_cron_auth(authorization)
    try:
        stats = await run_in_threadpool(get_retry_stats, engine)
    except Exception as e:
        logger.exception("webhook_stats_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")
    return stats.model_dump()
