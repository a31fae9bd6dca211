from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.documents import router as documents_router
from app.api.health import router as health_router
from app.api.kc_attempts import admin_router as kc_attempts_admin_router
from app.api.kc_attempts import router as kc_attempts_router
from app.api.metrics_endpoint import router as metrics_router
from app.api.module_rules import router as module_rules_router
from app.api.progress import router as progress_router
from app.api.statements import router as statements_router
from app.api.verbs import router as verbs_router
from app.core.config import SETTINGS
from app.core.logging import setup_logging
from app.db.engine import lifespan_db
from app.db.redis import lifespan_redis, redis_pool
from app.middleware.metrics import MetricsMiddleware
from app.middleware.request_context import RequestContextMiddleware

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    # Nested so teardown runs in reverse order (Redis, then DB)
    async with lifespan_db():
        async with lifespan_redis():
            yield


app = FastAPI(
    title="learning-record-service",
    lifespan=lifespan,
    docs_url="/docs" if SETTINGS.is_dev else None,
    redoc_url="/redoc" if SETTINGS.is_dev else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Middleware execution order: last-added runs first (outermost layer).
# RequestContext (outermost) → Metrics → CORS → route handler
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)

app.include_router(metrics_router)
app.include_router(health_router)
app.include_router(statements_router)
app.include_router(documents_router)
app.include_router(progress_router)
app.include_router(kc_attempts_router)
app.include_router(kc_attempts_admin_router)
app.include_router(verbs_router)
app.include_router(module_rules_router)

logger.info(
    "learning-record-service started  env=%s log_level=%s port=%d materialization=%s docs=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    "queue" if redis_pool is not None else "in-process",
    "on" if SETTINGS.is_dev else "off",
)
