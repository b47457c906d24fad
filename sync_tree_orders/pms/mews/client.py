"""
Mews Connector API client.

Every request is a JSON POST carrying the client and access tokens in the body.
Calls go through the shared resilience context (breaker first, then a rate
limiter permit) and are retried with exponential backoff when the failure is
retryable. Client errors and an open breaker are raised immediately.
"""

from __future__ import annotations

import time
from datetime import datetime
from typing import Any, Callable, Optional, cast

import requests
import structlog

from sync_tree_orders.config import (
    HTTP_MAX_RETRIES,
    HTTP_RETRY_BASE_SECONDS,
    HTTP_TIMEOUT_SECONDS,
    MEWS_API_URL,
    MEWS_CLIENT_NAME,
)
from sync_tree_orders.errors import (
    CircuitOpen,
    UpstreamClientError,
    UpstreamError,
    UpstreamRateLimited,
    UpstreamServerError,
    UpstreamTimeout,
)
from sync_tree_orders.metrics import api_latency, api_requests
from sync_tree_orders.pms.base import Page, PmsClient, PmsType
from sync_tree_orders.resilience.context import ResilienceContext
from sync_tree_orders.utils.datetime import to_api_timestamp

logger = structlog.get_logger(__name__)

PAGE_SIZE = 1000


def classify_response(res: requests.Response, operation: str) -> None:
    """
    Raise the matching upstream error for a non-2xx response.

    Args:
        res: HTTP response
        operation: API operation, used in the error message

    Raises:
        UpstreamRateLimited: On 429
        UpstreamServerError: On 5xx
        UpstreamClientError: On any other 4xx
    """
    status_code = res.status_code
    if status_code < 400:
        return

    detail = res.text[:500] if res.text else ""
    message = f"{operation} returned HTTP {status_code}: {detail}"
    if status_code == 429:
        raise UpstreamRateLimited(message, status_code=status_code)
    if status_code >= 500:
        raise UpstreamServerError(message, status_code=status_code)
    raise UpstreamClientError(message, status_code=status_code)


class MewsClient(PmsClient):
    pms_type = PmsType.MEWS
    supports_pull = True

    def __init__(
        self,
        client_token: str,
        access_token: str,
        resilience: ResilienceContext,
        base_url: str = MEWS_API_URL,
        client_name: str = MEWS_CLIENT_NAME,
        timeout: float = HTTP_TIMEOUT_SECONDS,
        max_retries: int = HTTP_MAX_RETRIES,
        retry_base_seconds: float = HTTP_RETRY_BASE_SECONDS,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client_token = client_token
        self._access_token = access_token
        self.resilience = resilience
        self.base_url = base_url.rstrip("/")
        self.client_name = client_name
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_base_seconds = retry_base_seconds
        self.session = session or requests.Session()
        self._sleep = sleep

    def _send(self, operation: str, body: dict[str, Any]) -> dict[str, Any]:
        url = f"{self.base_url}/{operation}"
        start_time = time.time()
        try:
            res = self.session.post(url, json=body, timeout=self.timeout)
        except requests.Timeout as e:
            api_requests.labels(endpoint=operation, status_code="timeout").inc()
            raise UpstreamTimeout(f"{operation} timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            api_requests.labels(endpoint=operation, status_code="connection_error").inc()
            raise UpstreamServerError(f"{operation} failed: {e}") from e
        finally:
            api_latency.labels(endpoint=operation).observe(time.time() - start_time)

        api_requests.labels(endpoint=operation, status_code=str(res.status_code)).inc()
        classify_response(res, operation)

        try:
            return cast(dict[str, Any], res.json())
        except ValueError as e:
            raise UpstreamServerError(f"{operation} returned invalid JSON") from e

    def call(self, operation: str, payload: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        """
        Call a connector API operation with retries.

        Args:
            operation: Operation path, e.g. ``orderitems/getAll``
            payload: Operation-specific body fields

        Returns:
            dict: Decoded JSON response

        Raises:
            CircuitOpen: Immediately, without retrying
            UpstreamError: When the call fails permanently or retries are exhausted
        """
        body = {
            "ClientToken": self._client_token,
            "AccessToken": self._access_token,
            "Client": self.client_name,
            **(payload or {}),
        }

        attempt = 0
        while True:
            try:
                return self.resilience.call(lambda: self._send(operation, body))
            except CircuitOpen:
                logger.warning("mews_call_rejected_circuit_open", operation=operation)
                raise
            except UpstreamError as e:
                if not e.retryable or attempt >= self.max_retries:
                    logger.error(
                        "mews_call_failed",
                        operation=operation,
                        attempts=attempt + 1,
                        error_code=e.code,
                        error=e.message,
                    )
                    raise
                delay = self.retry_base_seconds * (2**attempt)
                attempt += 1
                logger.warning(
                    "mews_call_retrying",
                    operation=operation,
                    attempt=attempt,
                    max_retries=self.max_retries,
                    delay_seconds=delay,
                    error_code=e.code,
                )
                self._sleep(delay)

    def test_connection(self) -> bool:
        try:
            self.get_enterprise()
            return True
        except (UpstreamError, CircuitOpen) as e:
            logger.warning("mews_connection_test_failed", error_code=e.code)
            return False

    def get_enterprise(self) -> dict[str, Any]:
        data = self.call("configuration/get")
        return cast(dict[str, Any], data.get("Enterprise") or {})

    def list_order_items(
        self, start: datetime, end: datetime, cursor: Optional[str] = None
    ) -> Page:
        # UpdatedUtc must accompany every page request, not only the first
        limitation: dict[str, Any] = {"Count": PAGE_SIZE}
        if cursor:
            limitation["Cursor"] = cursor
        data = self.call(
            "orderitems/getAll",
            {
                "UpdatedUtc": {
                    "StartUtc": to_api_timestamp(start),
                    "EndUtc": to_api_timestamp(end),
                },
                "Limitation": limitation,
            },
        )
        return Page(records=list(data.get("OrderItems") or []), cursor=data.get("Cursor") or None)

    def list_products(self, service_ids: list[str], cursor: Optional[str] = None) -> Page:
        limitation: dict[str, Any] = {"Count": PAGE_SIZE}
        if cursor:
            limitation["Cursor"] = cursor
        data = self.call(
            "products/getAll",
            {
                "ServiceIds": service_ids,
                # Without IncludeDefault the default products are left out
                "IncludeDefault": True,
                "Limitation": limitation,
            },
        )
        return Page(records=list(data.get("Products") or []), cursor=data.get("Cursor") or None)

    def list_services(self) -> list[dict[str, Any]]:
        data = self.call("services/getAll", {"Limitation": {"Count": PAGE_SIZE}})
        return list(data.get("Services") or [])
