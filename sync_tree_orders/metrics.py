"""
Prometheus metrics for sync runs, PMS API calls, resilience state and webhooks.

Metrics are exposed via the /metrics endpoint for scraping by Prometheus. They
stand in for a per-call API log table: every outbound call is counted and timed
here instead of being written to the database.

Example:
    >>> from sync_tree_orders.metrics import sync_duration, order_lines_upserted
    >>> with sync_duration.labels(pms_type="mews").time():
    ...     result = run_sync(account_id)
    ...     order_lines_upserted.labels(pms_type="mews").inc(result.synced_count)
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# =============================================================================
# Sync Metrics
# =============================================================================

sync_runs = Counter(
    "tree_orders_sync_runs_total",
    "Total number of synchronization runs",
    ["pms_type", "status"],
)
"""
Counter for synchronization runs.

Labels:
    pms_type: mews or hotelspider
    status: success, partial or failure
"""

sync_duration = Histogram(
    "tree_orders_sync_duration_seconds",
    "Duration of synchronization runs in seconds",
    ["pms_type"],
    buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, float("inf")),
)
"""Histogram for end-to-end synchronization run duration."""

order_lines_upserted = Counter(
    "tree_orders_order_lines_upserted_total",
    "Order lines inserted or updated by the reconciler",
    ["pms_type"],
)

order_lines_deleted = Counter(
    "tree_orders_order_lines_deleted_total",
    "Order lines deleted because they disappeared from the source",
    ["pms_type"],
)

discovery_runs = Counter(
    "tree_orders_discovery_runs_total",
    "Catalog discovery runs",
    ["outcome"],
)
"""
Counter for catalog discovery.

Labels:
    outcome: found or not_found
"""

# =============================================================================
# API Metrics
# =============================================================================

api_requests = Counter(
    "tree_orders_api_requests_total",
    "Total PMS API requests made",
    ["endpoint", "status_code"],
)
"""
Counter for API requests to the PMS.

Labels:
    endpoint: API operation (e.g., "orderitems/getAll")
    status_code: HTTP status code, or "timeout" / "connection_error"
"""

api_latency = Histogram(
    "tree_orders_api_latency_seconds",
    "PMS API request latency in seconds",
    ["endpoint"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, float("inf")),
)

# =============================================================================
# Resilience Metrics
# =============================================================================

circuit_state = Gauge(
    "tree_orders_circuit_state",
    "Circuit breaker state (0=closed, 1=half_open, 2=open)",
    ["name"],
)

circuit_transitions = Counter(
    "tree_orders_circuit_transitions_total",
    "Circuit breaker state transitions",
    ["name", "to_state"],
)

rate_limit_wait = Histogram(
    "tree_orders_rate_limit_wait_seconds",
    "Time spent waiting for a rate limiter permit",
    ["name"],
    buckets=(0.0, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, float("inf")),
)

# =============================================================================
# Webhook Metrics
# =============================================================================

webhooks_received = Counter(
    "tree_orders_webhooks_received_total",
    "Webhook deliveries received",
    ["source"],
)

webhooks_processed = Counter(
    "tree_orders_webhooks_processed_total",
    "Webhook processing attempts by outcome",
    ["source", "outcome"],
)
"""
Counter for webhook processing (initial receipt and retries).

Labels:
    source: mews or hotelspider
    outcome: success, failure, permanent_failure or duplicate
"""

webhook_alerts = Counter(
    "tree_orders_webhook_alerts_total",
    "Times the exhausted-retry alert threshold was exceeded",
)
"""Counter incremented whenever the retry scheduler raises a high-severity alert."""
