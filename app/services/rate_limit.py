from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Protocol

import structlog
from redis.asyncio import Redis

from app.core.config import get_settings

logger = structlog.get_logger(__name__)

REDIS_KEY_PREFIX = "campaign-redemption:rate-limit:"
MEMORY_PRUNE_THRESHOLD = 10_000


@dataclass(frozen=True, slots=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    reset_at: datetime


class RateLimitStore(Protocol):
    async def hit(
        self,
        key: str,
        *,
        limit: int,
        window_seconds: int,
        now: datetime | None = None,
    ) -> RateLimitDecision: ...

    async def reset(self, key: str) -> None: ...


class InMemoryRateLimitStore:
    """Fixed-window counters held by one process."""

    def __init__(self) -> None:
        self._windows: dict[str, tuple[int, datetime]] = {}

    def _prune(self, now: datetime) -> None:
        expired = [key for key, (_, reset_at) in self._windows.items() if reset_at <= now]
        for key in expired:
            del self._windows[key]

    async def hit(
        self,
        key: str,
        *,
        limit: int,
        window_seconds: int,
        now: datetime | None = None,
    ) -> RateLimitDecision:
        now = now or datetime.now(timezone.utc)
        if len(self._windows) >= MEMORY_PRUNE_THRESHOLD:
            self._prune(now)

        count, reset_at = self._windows.get(key, (0, now))
        if reset_at <= now:
            count, reset_at = 0, now + timedelta(seconds=window_seconds)
        count += 1
        self._windows[key] = (count, reset_at)
        return RateLimitDecision(
            allowed=count <= limit,
            remaining=max(limit - count, 0),
            reset_at=reset_at,
        )

    async def reset(self, key: str) -> None:
        self._windows.pop(key, None)


class RedisRateLimitStore:
    """Fixed-window counters shared by every instance through redis INCR/EXPIRE."""

    def __init__(self, redis_client: Redis, *, key_prefix: str = REDIS_KEY_PREFIX) -> None:
        self._redis = redis_client
        self._key_prefix = key_prefix

    async def hit(
        self,
        key: str,
        *,
        limit: int,
        window_seconds: int,
        now: datetime | None = None,
    ) -> RateLimitDecision:
        now = now or datetime.now(timezone.utc)
        redis_key = f"{self._key_prefix}{key}"
        count = int(await self._redis.incr(redis_key))
        if count == 1:
            await self._redis.expire(redis_key, window_seconds)
            ttl = window_seconds
        else:
            ttl = int(await self._redis.ttl(redis_key))
            if ttl < 0:
                # counter lost its expiry, restart the window
                await self._redis.expire(redis_key, window_seconds)
                ttl = window_seconds
        return RateLimitDecision(
            allowed=count <= limit,
            remaining=max(limit - count, 0),
            reset_at=now + timedelta(seconds=ttl),
        )

    async def reset(self, key: str) -> None:
        await self._redis.delete(f"{self._key_prefix}{key}")


@lru_cache(maxsize=1)
def get_rate_limit_store() -> RateLimitStore:
    settings = get_settings()
    backend = settings.rate_limit_backend.strip().lower()
    if backend == "redis":
        logger.info("rate_limit_store_selected", backend="redis")
        return RedisRateLimitStore(Redis.from_url(settings.redis_url))
    if backend != "memory":
        logger.warning("rate_limit_backend_unknown", backend=backend)
    return InMemoryRateLimitStore()
