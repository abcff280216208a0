"""Optional Redis client.

Only the rate limiter's token buckets live in Redis, so losing it costs
abuse protection, never course or purchase data.  Without REDIS_URL
``redis_pool`` is None and buckets are kept in process memory.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from lms.core.config import SETTINGS

logger = logging.getLogger(__name__)

redis_pool: aioredis.Redis | None = (
    aioredis.from_url(SETTINGS.redis_url, decode_responses=True, max_connections=20)
    if SETTINGS.redis_url
    else None
)


async def ping_redis() -> str:
    if redis_pool is None:
        return "not_configured"
    try:
        await redis_pool.ping()  # type: ignore[misc]
    except RedisError:
        logger.warning("Redis health check failed", exc_info=True)
        return "degraded"
    return "ok"


@asynccontextmanager
async def lifespan_redis():
    if redis_pool is None:
        logger.info("REDIS_URL not set, rate limit buckets are per process")
        yield
        return

    # Start even when Redis is down; /health reports it as degraded
    if await ping_redis() == "ok":
        logger.info("Redis connected for rate limiting")
    try:
        yield
    finally:
        await redis_pool.aclose()
        logger.info("Redis connection pool closed")
