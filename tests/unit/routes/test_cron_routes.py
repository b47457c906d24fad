"""
Unit tests for the scheduler-triggered endpoints.
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from sync_tree_orders.dependencies import get_db_engine
from sync_tree_orders.main import app
from sync_tree_orders.schemas.sync import RetryStats, WebhookQueueStats

MODULE = "sync_tree_orders.routes.cron"


@pytest.fixture
def client():
    app.dependency_overrides[get_db_engine] = lambda: MagicMock()
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.mark.unit
@patch(f"{MODULE}.CRON_SECRET", None)
def test_unconfigured_secret_is_503(client: TestClient) -> None:
    response = client.post("/cron/retry-webhooks", headers={"Authorization": "Bearer x"})

    assert response.status_code == 503


@pytest.mark.unit
@patch(f"{MODULE}.CRON_SECRET", "s3cret")
@pytest.mark.parametrize("header", [None, "Bearer wrong", "s3cret"])
def test_wrong_secret_is_401(client: TestClient, header) -> None:
    headers = {"Authorization": header} if header else {}

    response = client.post("/cron/retry-webhooks", headers=headers)

    assert response.status_code == 401


@pytest.mark.unit
@patch(f"{MODULE}.CRON_SECRET", "s3cret")
@patch(f"{MODULE}.run_webhook_retries")
def test_runs_retry_pass(mock_retries: MagicMock, client: TestClient) -> None:
    mock_retries.return_value = RetryStats(processed=3, succeeded=2, failed=1, skipped=4)

    response = client.post("/cron/retry-webhooks", headers={"Authorization": "Bearer s3cret"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["succeeded"] == 2
    assert body["alert_triggered"] is False
    mock_retries.assert_called_once()


@pytest.mark.unit
@patch(f"{MODULE}.CRON_SECRET", "s3cret")
@patch(f"{MODULE}.get_retry_stats")
def test_webhook_stats(mock_stats: MagicMock, client: TestClient) -> None:
    mock_stats.return_value = WebhookQueueStats(
        pending_retry=2, exhausted=1, received_24h=40, processed_24h=37
    )

    response = client.get("/cron/webhook-stats", headers={"Authorization": "Bearer s3cret"})

    assert response.status_code == 200
    assert response.json() == {
        "pending_retry": 2,
        "exhausted": 1,
        "received_24h": 40,
        "processed_24h": 37,
    }


@pytest.mark.unit
@patch(f"{MODULE}.CRON_SECRET", "s3cret")
@patch(f"{MODULE}.get_retry_stats")
def test_webhook_stats_requires_secret(mock_stats: MagicMock, client: TestClient) -> None:
    response = client.get("/cron/webhook-stats")

    assert response.status_code == 401
    mock_stats.assert_not_called()
