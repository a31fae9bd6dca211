"""Health and readiness endpoints.

  /health (liveness): "is the process alive?"  Always 200; the body says
    whether dependencies are degraded and summarizes ingestion and
    materialization counters from this process.

  /ready (readiness): "should the load balancer send traffic here?"
    503 when the configured database is unreachable, since no statement
    can be stored without it.  Redis is not critical for readiness: the
    queue, cache and stats each fail individually and ingestion keeps
    storing statements.
"""

from __future__ import annotations

from fastapi import APIRouter, Response
from prometheus_client import REGISTRY

from app.db.engine import async_session_factory, check_database
from app.db.redis import check_redis, redis_pool

router = APIRouter(tags=["health"])


def _sum_counter(metric_name: str, label_filter: dict | None = None) -> float:
    """Sum a counter's samples across all label combinations matching the filter.

    Example: _sum_counter("xapi_statements_ingested_total", {"outcome": "accepted"})
    """
    total = 0.0
    for metric in REGISTRY.collect():
        for sample in metric.samples:
            if sample.name != metric_name:
                continue
            if label_filter and not all(
                sample.labels.get(k) == v for k, v in label_filter.items()
            ):
                continue
            total += sample.value
    return total


def _outcomes(metric_name: str, outcomes: tuple[str, ...]) -> dict[str, int]:
    return {o: int(_sum_counter(metric_name, {"outcome": o})) for o in outcomes}


@router.get("/health")
async def health() -> dict:
    """Liveness check plus dependency status and pipeline counters.

    Returns 200 even when degraded; a 503 here would make the orchestrator
    restart the container for what may be a transient dependency outage.
    """
    checks: dict[str, str] = {}
    overall = "ok"

    if redis_pool is not None:
        checks["redis"] = "ok" if await check_redis() else "degraded"
    else:
        checks["redis"] = "not_configured"

    if async_session_factory is not None:
        checks["database"] = "ok" if await check_database() else "degraded"
    else:
        checks["database"] = "not_configured"

    if "degraded" in checks.values():
        overall = "degraded"

    return {
        "status": overall,
        "checks": checks,
        "ingestion": _outcomes(
            "xapi_statements_ingested_total",
            ("accepted", "duplicate", "rejected", "conflict"),
        ),
        "unresolved": {
            r: int(_sum_counter("xapi_unresolved_statements_total", {"reason": r}))
            for r in ("no_match", "ambiguous")
        },
        "materialization": _outcomes(
            "progress_materializations_total",
            ("written", "empty", "unknown_course", "failed", "throttled"),
        ),
    }


@router.get("/ready")
async def ready() -> Response:
    """Readiness check: 503 when a configured database cannot be reached."""
    if async_session_factory is not None and not await check_database():
        return Response(status_code=503)
    return Response(status_code=200)
