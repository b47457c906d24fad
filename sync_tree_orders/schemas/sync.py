"""Structured results returned by service entry points."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field

from sync_tree_orders.errors import SyncError


class RunError(BaseModel):
    code: str
    message: str

    @classmethod
    def from_exception(cls, exc: BaseException) -> "RunError":
        if isinstance(exc, SyncError):
            return cls(code=exc.code, message=exc.message)
        return cls(code="internal_error", message=str(exc) or exc.__class__.__name__)


class SyncResult(BaseModel):
    """Outcome of one account synchronization run."""

    account_id: str
    synced_count: int = 0
    deleted_count: int = 0
    errors: list[RunError] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


class ReconcileResult(BaseModel):
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    deleted: int = 0

    @property
    def upserted(self) -> int:
        return self.inserted + self.updated


class DiscoveredProduct(BaseModel):
    product_id: str
    name: str
    service_id: Optional[str] = None
    matched_term: str
    confidence: Literal["exact", "partial"]


class DiscoveryStats(BaseModel):
    order_items_scanned: int = 0
    services_checked: int = 0
    products_found: int = 0
    time_ms: int = 0


class DiscoveryResult(BaseModel):
    """Best catalog candidate plus every candidate seen, for diagnostics."""

    success: bool
    product: Optional[DiscoveredProduct] = None
    all_candidates: list[DiscoveredProduct] = Field(default_factory=list)
    stats: DiscoveryStats = Field(default_factory=DiscoveryStats)
    error: Optional[RunError] = None


class RetryStats(BaseModel):
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    exhausted_recent: int = 0
    alert_triggered: bool = False


class WebhookQueueStats(BaseModel):
    """Snapshot of the webhook retry queue."""

    pending_retry: int = 0
    exhausted: int = 0
    received_24h: int = 0
    processed_24h: int = 0
