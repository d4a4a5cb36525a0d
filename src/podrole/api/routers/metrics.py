"""Metrics endpoint for Prometheus scraping.

Exposes /metrics in Prometheus exposition format. No authentication and no
caching; every scrape reads the live gauge.
"""

from __future__ import annotations

from fastapi import APIRouter, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST

router = APIRouter(tags=["observability"])


@router.get(
    "/metrics",
    response_class=Response,
    summary="Prometheus metrics",
    description="Prometheus metrics in exposition format",
    responses={
        200: {
            "description": "Prometheus metrics",
            "content": {"text/plain": {}},
        }
    },
)
async def get_prometheus_metrics(request: Request) -> Response:
    """Return Prometheus metrics in exposition format."""
    metrics = request.app.state.runtime.metrics
    return Response(content=metrics.generate_latest(), media_type=CONTENT_TYPE_LATEST)
