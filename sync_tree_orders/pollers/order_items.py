"""
Paginated, time-windowed order item fetcher.

The PMS only accepts bounded time ranges per request, so the observation window
``[now - lookback, now + lookahead]`` is walked in chronological sub-windows of
at most ``window_hours``. Each sub-window is drained page by page via the
opaque cursor. A page ceiling bounds a misbehaving API; hitting it is logged as
a warning and marks the result incomplete.

Errors (open breaker, timeouts after retries, client errors) propagate: a run
must never continue with a silently skipped window.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

import structlog

from sync_tree_orders.config import (
    DEBUG,
    SYNC_LOOKAHEAD_HOURS,
    SYNC_LOOKBACK_DAYS,
    SYNC_MAX_PAGES,
    SYNC_WINDOW_HOURS,
)
from sync_tree_orders.pms.base import PmsClient
from sync_tree_orders.schemas.orders import OrderItemRecord
from sync_tree_orders.utils.datetime import utc_now

logger = structlog.get_logger(__name__)


@dataclass
class FetchResult:
    records: list[OrderItemRecord] = field(default_factory=list)
    windows: int = 0
    pages: int = 0
    # False when a sub-window hit the page ceiling before its cursor ran out
    complete: bool = True
    truncated_windows: list[tuple[datetime, datetime]] = field(default_factory=list)


def observation_window(
    now: datetime,
    lookback_days: int = SYNC_LOOKBACK_DAYS,
    lookahead_hours: int = SYNC_LOOKAHEAD_HOURS,
) -> tuple[datetime, datetime]:
    """Return ``(now - lookback_days, now + lookahead_hours)``."""
    return now - timedelta(days=lookback_days), now + timedelta(hours=lookahead_hours)


def sub_windows(
    start: datetime, end: datetime, window_hours: int = SYNC_WINDOW_HOURS
) -> list[tuple[datetime, datetime]]:
    """
    Split ``[start, end)`` into chronological chunks no longer than ``window_hours``.

    Example:
        >>> len(sub_windows(t0, t0 + timedelta(hours=200), 96))
        3
    """
    if window_hours <= 0:
        raise ValueError("window_hours must be positive")
    step = timedelta(hours=window_hours)
    windows = []
    cursor = start
    while cursor < end:
        window_end = min(cursor + step, end)
        windows.append((cursor, window_end))
        cursor = window_end
    return windows


def fetch_order_items(
    client: PmsClient,
    account_id: str,
    now: Optional[datetime] = None,
    lookback_days: int = SYNC_LOOKBACK_DAYS,
    lookahead_hours: int = SYNC_LOOKAHEAD_HOURS,
    window_hours: int = SYNC_WINDOW_HOURS,
    max_pages: int = SYNC_MAX_PAGES,
) -> FetchResult:
    """
    Fetch every order item in the observation window.

    Args:
        client: PMS client (its resilience context gates every call)
        account_id: Account being synced, for logging
        now: Reference time (default: current UTC time)
        lookback_days: Days before ``now`` to include
        lookahead_hours: Hours after ``now`` to include (guards against clock skew)
        window_hours: Maximum span of one API request
        max_pages: Page ceiling per sub-window

    Returns:
        FetchResult: Tagged order item records plus completeness info
    """
    now = now or utc_now()
    start, end = observation_window(now, lookback_days, lookahead_hours)
    result = FetchResult()

    logger.info(
        "fetch_started",
        account_id=account_id,
        start=start.isoformat(),
        end=end.isoformat(),
        window_hours=window_hours,
    )

    for window_start, window_end in sub_windows(start, end, window_hours):
        result.windows += 1
        cursor: Optional[str] = None
        window_pages = 0

        while True:
            page = client.list_order_items(window_start, window_end, cursor)
            window_pages += 1
            result.pages += 1
            result.records.extend(OrderItemRecord(payload=item) for item in page.records)

            cursor = (page.cursor or "").strip() or None
            if cursor is None:
                break
            if window_pages >= max_pages:
                logger.warning(
                    "page_limit_reached",
                    account_id=account_id,
                    window_start=window_start.isoformat(),
                    window_end=window_end.isoformat(),
                    max_pages=max_pages,
                )
                result.complete = False
                result.truncated_windows.append((window_start, window_end))
                break

        logger.debug(
            "window_fetched",
            account_id=account_id,
            window_start=window_start.isoformat(),
            pages=window_pages,
        )

    if DEBUG and result.records:
        logger.debug("Sample order item:\n%s", json.dumps(result.records[0].payload, indent=2))

    logger.info(
        "fetch_completed",
        account_id=account_id,
        windows=result.windows,
        pages=result.pages,
        records=len(result.records),
        complete=result.complete,
    )
    return result
