"""
Prometheus metrics endpoint.

Example:
    GET /metrics

    Response:
        # HELP tree_orders_sync_runs_total Total number of synchronization runs
        # TYPE tree_orders_sync_runs_total counter
        tree_orders_sync_runs_total{pms_type="mews",status="success"} 42.0
        ...
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter()


@router.get("/metrics", response_class=Response)
async def metrics() -> Any:
    """Expose all registered metrics in the Prometheus text format."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
