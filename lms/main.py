"""ASGI entry point: ``uvicorn lms.main:app``."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from lms.api import courses, health, metrics_endpoint, progress, purchases
from lms.api.dependencies import payment_gateway
from lms.api.ratelimit import rate_limiter
from lms.core.config import SETTINGS
from lms.core.errors import register_exception_handlers
from lms.core.logging import setup_logging
from lms.db.engine import lifespan_db
from lms.db.redis import lifespan_redis
from lms.middleware.metrics import MetricsMiddleware
from lms.middleware.request_context import RequestContextMiddleware, install_log_filter

setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
install_log_filter()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    async with lifespan_db(), lifespan_redis():
        yield


app = FastAPI(
    title="lms-backend",
    lifespan=lifespan,
    docs_url="/docs" if SETTINGS.is_dev else None,
    redoc_url=None,
)

# The web client sends cookies and bearer tokens from CLIENT_URL only
app.add_middleware(
    CORSMiddleware,
    allow_origins=[SETTINGS.client_url],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=["*"],
)
# Outermost last: RequestContext -> Metrics -> CORS -> route
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)

register_exception_handlers(app)

for router in (
    health.router,
    metrics_endpoint.router,
    progress.router,
    purchases.router,
    courses.router,
):
    app.include_router(router)

logger.info(
    "lms-backend started  env=%s port=%d gateway=%s rate_limiter=%s",
    SETTINGS.app_env,
    SETTINGS.port,
    type(payment_gateway).__name__,
    type(rate_limiter).__name__,
)
