"""
Domain error taxonomy for sync, discovery and webhook processing.

Every error carries a stable ``code`` so service boundaries can report failures
as structured results (see ``schemas.sync.RunError``) instead of raising.
"""

from __future__ import annotations

from typing import Optional


class SyncError(Exception):
    """Base class for all domain errors."""

    code = "sync_error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.code)
        self.message = message or self.code


class CredentialsMissing(SyncError):
    code = "credentials_missing"


class CredentialsInvalidFormat(SyncError):
    code = "credentials_invalid_format"


class CatalogTargetNotFound(SyncError):
    code = "catalog_target_not_found"


class UpstreamError(SyncError):
    """Failure talking to the PMS API."""

    code = "upstream_error"
    retryable = False

    def __init__(self, message: str = "", status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class UpstreamRateLimited(UpstreamError):
    code = "upstream_rate_limited"
    retryable = True


class UpstreamServerError(UpstreamError):
    code = "upstream_server_error"
    retryable = True


class UpstreamClientError(UpstreamError):
    code = "upstream_client_error"
    retryable = False


class UpstreamTimeout(UpstreamError):
    code = "upstream_timeout"
    retryable = True


class CircuitOpen(SyncError):
    """Raised without contacting the network while the breaker is open."""

    code = "circuit_open"

    def __init__(self, message: str = "", retry_after: float = 0.0) -> None:
        super().__init__(message or "Circuit breaker is open")
        self.retry_after = retry_after


class ReconciliationPartial(SyncError):
    """The snapshot is known to be incomplete; no deletes were performed."""

    code = "reconciliation_partial"

    def __init__(self, message: str = "", cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.cause = cause


class DecryptionFailed(SyncError):
    code = "decryption_failed"


class AccountNotFound(SyncError):
    code = "account_not_found"


class SyncAlreadyRunning(SyncError):
    code = "sync_already_running"


class UnsupportedPmsType(SyncError):
    code = "unsupported_pms_type"


class PageLimitReached(SyncError):
    code = "page_limit_reached"


class WebhookPayloadInvalid(SyncError):
    code = "webhook_payload_invalid"
