"""Redis connection: shared pool for rate limiting.

Initialized in the app lifespan. Redis is optional: when it is down or
was never initialized, get_redis() raises and callers skip their work.
"""

from typing import Optional

import redis.asyncio as aioredis

from tcp_platform.config import settings

_redis: Optional[aioredis.Redis] = None


async def init_redis() -> aioredis.Redis:
    """Open the pool and check it answers."""
    global _redis
    _redis = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    await _redis.ping()
    return _redis


async def close_redis() -> None:
    global _redis
    if _redis:
        await _redis.aclose()
        _redis = None


def get_redis() -> aioredis.Redis:
    if _redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis
