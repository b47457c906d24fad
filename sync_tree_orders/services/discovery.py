"""
Catalog discovery: find the product that represents tree planting.

The catalog is operator-edited free text in several locales, so this is a
heuristic. Service groups are taken from recent order history instead of
querying every service, then each product's localized names are tested
against the search terms.
"""

from __future__ import annotations

import time
from datetime import datetime
from typing import Any, Iterable, Optional

import structlog

from sync_tree_orders.config import (
    DISCOVERY_LOOKBACK_DAYS,
    DISCOVERY_MAX_PAGES,
    DISCOVERY_SEARCH_TERMS,
)
from sync_tree_orders.errors import CatalogTargetNotFound, CircuitOpen, UpstreamError
from sync_tree_orders.metrics import discovery_runs
from sync_tree_orders.pms.base import PmsClient
from sync_tree_orders.pollers.order_items import fetch_order_items
from sync_tree_orders.schemas.sync import (
    DiscoveredProduct,
    DiscoveryResult,
    DiscoveryStats,
    RunError,
)

logger = structlog.get_logger(__name__)

PRODUCT_ORDER_TYPE = "ProductOrder"


def localized_names(product: dict[str, Any]) -> dict[str, str]:
    """Return ``{locale: name}`` for a product, tolerating a plain ``Name``."""
    names = product.get("Names")
    if isinstance(names, dict) and names:
        return {str(k): str(v) for k, v in names.items() if v}
    if product.get("Name"):
        return {"default": str(product["Name"])}
    return {}


def match_confidence(names: Iterable[str], term: str) -> Optional[str]:
    """
    Classify how a search term matches a product's names.

    ``exact``: a name equals the term, or contains it as ``(term)`` or ``[term]``.
    ``partial``: the term appears anywhere else in a name.

    Returns:
        "exact", "partial", or None
    """
    lowered_term = term.lower()
    for name in names:
        lowered = name.lower()
        if (
            lowered == lowered_term
            or f"({lowered_term})" in lowered
            or f"[{lowered_term}]" in lowered
        ):
            return "exact"
        if lowered_term in lowered:
            return "partial"
    return None


def rank_candidates(candidates: list[DiscoveredProduct]) -> list[DiscoveredProduct]:
    """
    Order candidates with every exact match before every partial match.

    Ties keep discovery order (firstSeenWins): there is no secondary
    tie-break, so the earliest discovered candidate of the best confidence
    wins. ``sorted`` is stable, which is what preserves that order.
    """
    return sorted(candidates, key=lambda c: 0 if c.confidence == "exact" else 1)


def _fallback_service_ids(client: PmsClient) -> list[str]:
    # No product orders in the history window: fall back to every service
    try:
        service_ids = [str(s["Id"]) for s in client.list_services() if s.get("Id")]
    except UpstreamError as e:
        logger.warning("discovery_services_fallback_failed", error_code=e.code)
        return []
    logger.info("discovery_services_fallback", services=len(service_ids))
    return service_ids


def _collect_products(
    client: PmsClient, service_ids: list[str]
) -> list[tuple[dict[str, Any], str]]:
    products: list[tuple[dict[str, Any], str]] = []
    for service_id in service_ids:
        try:
            cursor: Optional[str] = None
            while True:
                page = client.list_products([service_id], cursor)
                products.extend((p, service_id) for p in page.records)
                cursor = page.cursor
                if not cursor:
                    break
        except UpstreamError as e:
            # A service without products is not an error for discovery
            logger.debug("discovery_service_skipped", service_id=service_id, error_code=e.code)
    return products


def discover_catalog_target(
    client: PmsClient,
    search_terms: Optional[list[str]] = None,
    lookback_days: int = DISCOVERY_LOOKBACK_DAYS,
    now: Optional[datetime] = None,
) -> DiscoveryResult:
    """
    Find the tree product for an account.

    Args:
        client: PMS client for the account
        search_terms: Terms to look for (default: configured list)
        lookback_days: Order history to scan for service ids
        now: Reference time for the history window

    Returns:
        DiscoveryResult: Best candidate plus all candidates and stats. On
        failure ``success`` is False and ``error`` carries the reason.
    """
    started = time.monotonic()
    terms = search_terms or DISCOVERY_SEARCH_TERMS
    stats = DiscoveryStats()

    def elapsed_ms() -> int:
        return int((time.monotonic() - started) * 1000)

    try:
        history = fetch_order_items(
            client,
            account_id="discovery",
            now=now,
            lookback_days=lookback_days,
            lookahead_hours=0,
            max_pages=DISCOVERY_MAX_PAGES,
        )
    except (UpstreamError, CircuitOpen) as e:
        stats.time_ms = elapsed_ms()
        discovery_runs.labels(outcome="error").inc()
        logger.error("discovery_failed", error_code=e.code, error=e.message)
        return DiscoveryResult(success=False, stats=stats, error=RunError.from_exception(e))

    stats.order_items_scanned = len(history.records)

    service_ids: list[str] = []
    for record in history.records:
        payload = record.payload
        if payload.get("Type") != PRODUCT_ORDER_TYPE or not payload.get("ServiceId"):
            continue
        service_id = str(payload["ServiceId"])
        if service_id not in service_ids:
            service_ids.append(service_id)

    try:
        if not service_ids:
            service_ids = _fallback_service_ids(client)
        stats.services_checked = len(service_ids)
        products = _collect_products(client, service_ids)
    except CircuitOpen as e:
        stats.time_ms = elapsed_ms()
        discovery_runs.labels(outcome="error").inc()
        logger.error("discovery_failed", error_code=e.code, error=e.message)
        return DiscoveryResult(success=False, stats=stats, error=RunError.from_exception(e))
    stats.products_found = len(products)

    candidates: list[DiscoveredProduct] = []
    for product, service_id in products:
        names = localized_names(product)
        for term in terms:
            confidence = match_confidence(names.values(), term)
            if confidence:
                candidates.append(
                    DiscoveredProduct(
                        product_id=str(product.get("Id")),
                        name=next(iter(names.values()), "Unknown"),
                        service_id=service_id,
                        matched_term=term,
                        confidence=confidence,
                    )
                )
                # One candidate per product is enough
                break

    stats.time_ms = elapsed_ms()

    if not candidates:
        discovery_runs.labels(outcome="not_found").inc()
        logger.warning("discovery_no_candidate", **stats.model_dump())
        error = CatalogTargetNotFound(
            "No tree product found; create a product named e.g. 'Click A Tree'"
        )
        return DiscoveryResult(success=False, stats=stats, error=RunError.from_exception(error))

    ranked = rank_candidates(candidates)
    discovery_runs.labels(outcome="found").inc()
    logger.info(
        "discovery_completed",
        product_id=ranked[0].product_id,
        confidence=ranked[0].confidence,
        candidates=len(ranked),
        **stats.model_dump(),
    )
    return DiscoveryResult(success=True, product=ranked[0], all_candidates=ranked, stats=stats)
