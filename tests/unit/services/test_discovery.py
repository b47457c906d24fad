"""
Unit tests for catalog discovery.
"""

from __future__ import annotations

import pytest

from fakes import NOW, FakePmsClient
from sync_tree_orders.errors import CircuitOpen, UpstreamServerError
from sync_tree_orders.pms.base import Page
from sync_tree_orders.schemas.sync import DiscoveredProduct
from sync_tree_orders.services.discovery import (
    discover_catalog_target,
    localized_names,
    match_confidence,
    rank_candidates,
)


def history(*service_ids: str) -> list[Page]:
    return [
        Page(
            records=[
                {"Id": f"oi-{i}", "Type": "ProductOrder", "ServiceId": sid}
                for i, sid in enumerate(service_ids)
            ]
        )
    ]


def candidate(product_id: str, confidence: str) -> DiscoveredProduct:
    return DiscoveredProduct(
        product_id=product_id, name=product_id, matched_term="click a tree", confidence=confidence
    )


@pytest.mark.unit
@pytest.mark.parametrize(
    "name,expected",
    [
        ("Click A Tree", "exact"),
        ("Nachhaltigkeit (click a tree)", "exact"),
        ("Extras [Click A Tree]", "exact"),
        ("Click A Tree Donation", "partial"),
        ("Breakfast", None),
    ],
)
def test_match_confidence(name: str, expected) -> None:
    assert match_confidence([name], "click a tree") == expected


@pytest.mark.unit
def test_localized_names() -> None:
    assert localized_names({"Names": {"en-US": "Tree", "de-DE": ""}}) == {"en-US": "Tree"}
    assert localized_names({"Name": "Tree"}) == {"default": "Tree"}
    assert localized_names({}) == {}


@pytest.mark.unit
def test_exact_beats_partial_and_ties_keep_discovery_order() -> None:
    ranked = rank_candidates(
        [
            candidate("p1", "partial"),
            candidate("p2", "exact"),
            candidate("p3", "exact"),
        ]
    )

    assert [c.product_id for c in ranked] == ["p2", "p3", "p1"]


@pytest.mark.unit
def test_discovers_product_from_order_history() -> None:
    client = FakePmsClient(
        order_pages=history("svc-1", "svc-1"),
        products={
            "svc-1": [
                {"Id": "p-breakfast", "Names": {"en-US": "Breakfast"}},
                {"Id": "p-donation", "Names": {"en-US": "Click A Tree Donation"}},
                {"Id": "p-tree", "Names": {"en-US": "Click A Tree"}},
            ]
        },
    )

    result = discover_catalog_target(client, search_terms=["click a tree"], now=NOW)

    assert result.success is True
    assert result.product.product_id == "p-tree"
    assert result.product.confidence == "exact"
    assert [c.product_id for c in result.all_candidates] == ["p-tree", "p-donation"]
    assert result.stats.services_checked == 1
    assert result.stats.products_found == 3
    assert client.product_calls == [["svc-1"]]


@pytest.mark.unit
def test_falls_back_to_all_services_without_history() -> None:
    client = FakePmsClient(
        services=[{"Id": "svc-a"}, {"Id": "svc-b"}],
        products={"svc-b": [{"Id": "p-tree", "Name": "Baum pflanzen"}]},
    )

    result = discover_catalog_target(client, search_terms=["baum pflanzen"], now=NOW)

    assert result.success is True
    assert result.product.service_id == "svc-b"
    assert result.stats.services_checked == 2


@pytest.mark.unit
def test_no_candidate_returns_not_found() -> None:
    client = FakePmsClient(
        order_pages=history("svc-1"), products={"svc-1": [{"Id": "p", "Name": "Spa"}]}
    )

    result = discover_catalog_target(client, search_terms=["click a tree"], now=NOW)

    assert result.success is False
    assert result.error.code == "catalog_target_not_found"
    assert result.all_candidates == []


@pytest.mark.unit
def test_history_failure_is_reported_not_raised() -> None:
    client = FakePmsClient(order_error=UpstreamServerError("down", status_code=503))

    result = discover_catalog_target(client, now=NOW)

    assert result.success is False
    assert result.error.code == "upstream_server_error"


@pytest.mark.unit
def test_open_circuit_during_product_scan_aborts() -> None:
    client = FakePmsClient(order_pages=history("broken"))

    result = discover_catalog_target(client, now=NOW)

    assert result.success is False
    assert result.error.code == CircuitOpen.code
