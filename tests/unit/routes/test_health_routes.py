"""
Unit tests for liveness and readiness probes.
"""

from __future__ import annotations

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from sync_tree_orders.main import app


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


@pytest.mark.unit
def test_health(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.unit
@patch("sync_tree_orders.routes.health.check_engine_health", return_value=True)
def test_ready(mock_check, client: TestClient) -> None:
    response = client.get("/ready")

    assert response.status_code == 200
    assert response.json()["checks"]["database"] == "ok"


@pytest.mark.unit
@patch("sync_tree_orders.routes.health.check_engine_health", return_value=False)
def test_not_ready(mock_check, client: TestClient) -> None:
    response = client.get("/ready")

    assert response.status_code == 503
    assert response.json()["status"] == "not ready"
