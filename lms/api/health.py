"""Liveness and readiness checks.

/health always answers 200 while the process is up and reports each
backing service.  /ready is 503 when the database is configured but
unreachable; Redis only backs the rate limiter, so it never blocks
readiness.
"""

from __future__ import annotations

from fastapi import APIRouter, Response, status

from lms.db.engine import ping_database
from lms.db.redis import ping_redis

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict:
    checks = {"database": await ping_database(), "redis": await ping_redis()}
    overall = "degraded" if "degraded" in checks.values() else "ok"
    return {"status": overall, "checks": checks}


@router.get("/ready")
async def ready() -> Response:
    if await ping_database() == "degraded":
        return Response(status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return Response(status_code=status.HTTP_200_OK)
