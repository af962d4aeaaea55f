"""Per-client request quotas backed by Redis with an in-process fallback."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, Tuple

from fastapi import HTTPException, Request
import redis.asyncio as redis
from redis.exceptions import RedisError

from config import settings

logger = logging.getLogger(__name__)

KEY_PREFIX = "ct:rate"

_local_counters: Dict[str, Tuple[int, float]] = {}
_local_lock = asyncio.Lock()


def _client_identifier(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


async def _consume_redis_quota(key: str, window_seconds: int) -> int:
    client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    try:
        current = await client.incr(key)
        if current == 1:
            await client.expire(key, window_seconds)
        return int(current)
    finally:
        await client.aclose()


async def _consume_local_quota(key: str, window_seconds: int) -> int:
    now = time.time()
    async with _local_lock:
        count, reset_at = _local_counters.get(key, (0, now + window_seconds))
        if now >= reset_at:
            count, reset_at = 0, now + window_seconds
        count += 1
        _local_counters[key] = (count, reset_at)
        return count


def rate_limit(scope: str, limit: int, window_seconds: int) -> Callable[[Request], Awaitable[None]]:
    """Dependency factory: at most ``limit`` calls per client per window for ``scope``."""

    async def _dependency(request: Request) -> None:
        if getattr(request.app.state, "disable_rate_limits", False):
            return

        key = f"{KEY_PREFIX}:{scope}:{_client_identifier(request)}"
        try:
            current = await _consume_redis_quota(key, window_seconds)
        except (RedisError, OSError) as exc:
            logger.debug("rate_limit redis unavailable scope=%s error=%s", scope, exc)
            current = await _consume_local_quota(key, window_seconds)

        if current > limit:
            raise HTTPException(
                status_code=429,
                detail=f"Rate limit exceeded for {scope}. Try again later.",
            )

    return _dependency
