"""Prometheus metrics endpoint.

Scraped by Prometheus; returns the text exposition format, not JSON.
Ingestion and materialization counters (see app/core/metrics.py) are
exposed alongside the HTTP metrics:

  xapi_statements_ingested_total{outcome="accepted"} 1432.0
  progress_materializations_total{outcome="written"} 611.0

Restrict access at the network layer in production; metric names and
rates reveal internal structure.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter(tags=["observability"])


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    """Expose all Prometheus metrics in text exposition format."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
