"""Token bucket rate limiting for the API routers.

Each client key owns a bucket of ``capacity`` tokens that refills
continuously so a full bucket is restored over ``window_seconds``.
Every request costs one token; an empty bucket means 429 until the
next token drips in.

With the defaults (100 per 15 minutes) a client can burst 100 calls,
then sustains one call every 9 seconds.

Two backends behind the RateLimiter Protocol:

  InMemoryRateLimiter  per-process dict; dev, tests, single instance
  RedisRateLimiter     Lua script on a shared Redis; multi-instance
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True, slots=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    limit: int
    retry_after: float  # seconds until a token is available, 0 if allowed


@dataclass(frozen=True, slots=True)
class RateLimitConfig:
    capacity: int = 100
    window_seconds: int = 900

    @property
    def refill_rate(self) -> float:
        """Tokens per second."""
        return self.capacity / self.window_seconds

    @property
    def idle_ttl(self) -> int:
        # A bucket untouched for a full window is indistinguishable from a new one
        return self.window_seconds + 60


def _take_token(
    tokens: float, elapsed: float, config: RateLimitConfig
) -> tuple[bool, float, float]:
    """Refill for ``elapsed`` seconds, then try to spend one token.

    Returns (allowed, tokens_left, retry_after).
    """
    tokens = min(config.capacity, tokens + elapsed * config.refill_rate)
    if tokens >= 1:
        return True, tokens - 1, 0.0
    return False, tokens, (1 - tokens) / config.refill_rate


@runtime_checkable
class RateLimiter(Protocol):
    async def check(self, key: str, config: RateLimitConfig) -> RateLimitResult: ...
    async def reset(self, key: str) -> None: ...


class InMemoryRateLimiter:
    """Buckets live in this process only; N instances allow N times the rate."""

    def __init__(self) -> None:
        # key -> (tokens, last_seen monotonic)
        self._buckets: dict[str, tuple[float, float]] = {}

    async def check(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        now = time.monotonic()
        tokens, last_seen = self._buckets.get(key, (float(config.capacity), now))
        allowed, tokens, retry_after = _take_token(tokens, now - last_seen, config)
        self._buckets[key] = (tokens, now)
        return RateLimitResult(
            allowed=allowed,
            remaining=int(tokens) if allowed else 0,
            limit=config.capacity,
            retry_after=retry_after,
        )

    async def reset(self, key: str) -> None:
        self._buckets.pop(key, None)

    def clear(self) -> None:
        self._buckets.clear()


class RedisRateLimiter:
    """Shared buckets in Redis.

    The refill/consume step is a read-modify-write, so it runs as one Lua
    script; Redis executes scripts atomically and concurrent requests on
    different instances cannot both spend the same token.
    """

    # KEYS[1] bucket key
    # ARGV capacity, refill_rate, now (seconds, float), ttl
    # -> {allowed 0/1, remaining, retry_after_ms}
    _LUA_SCRIPT = """
    local capacity = tonumber(ARGV[1])
    local rate = tonumber(ARGV[2])
    local now = tonumber(ARGV[3])
    local ttl = tonumber(ARGV[4])

    local state = redis.call('HMGET', KEYS[1], 'tokens', 'ts')
    local tokens = tonumber(state[1]) or capacity
    local ts = tonumber(state[2]) or now

    tokens = math.min(capacity, tokens + math.max(0, now - ts) * rate)
    local allowed = 0
    local retry_ms = 0
    if tokens >= 1 then
        tokens = tokens - 1
        allowed = 1
    else
        retry_ms = math.ceil((1 - tokens) / rate * 1000)
    end

    redis.call('HSET', KEYS[1], 'tokens', tokens, 'ts', now)
    redis.call('EXPIRE', KEYS[1], ttl)
    if allowed == 1 then
        return {1, math.floor(tokens), 0}
    end
    return {0, 0, retry_ms}
    """

    def __init__(self, redis_client, *, prefix: str = "lms:ratelimit:") -> None:
        self._redis = redis_client
        self._prefix = prefix
        self._script = redis_client.register_script(self._LUA_SCRIPT)

    async def check(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        allowed, remaining, retry_ms = await self._script(
            keys=[self._prefix + key],
            args=[config.capacity, config.refill_rate, time.time(), config.idle_ttl],
        )
        return RateLimitResult(
            allowed=bool(allowed),
            remaining=int(remaining),
            limit=config.capacity,
            retry_after=int(retry_ms) / 1000,
        )

    async def reset(self, key: str) -> None:
        await self._redis.delete(self._prefix + key)


def retry_after_header(result: RateLimitResult) -> str:
    """Whole seconds, rounded up, never below 1."""
    return str(max(1, math.ceil(result.retry_after)))
