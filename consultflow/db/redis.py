"""Redis client for consultation progress events.

Progress is best-effort, so the rest of the app runs without Redis: callers
ask ``get_redis`` and fall back to a no-op publisher on RuntimeError.
"""

import redis.asyncio as redis
from redis.exceptions import RedisError

from consultflow.core.config import get_settings

_redis: redis.Redis | None = None


async def init_redis(url: str | None = None) -> None:
    """Connect and ping. Pub/sub payloads are JSON text, so responses are decoded."""
    global _redis

    if _redis is not None:
        return

    settings = get_settings()
    client = redis.from_url(
        url or settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        health_check_interval=settings.redis_health_check_interval,
    )
    await client.ping()
    _redis = client


async def close_redis() -> None:
    global _redis

    if _redis is not None:
        await _redis.aclose()
        _redis = None


def get_redis() -> redis.Redis:
    """Raises RuntimeError if init_redis() has not been called."""
    if _redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis


async def redis_reachable() -> tuple[bool, str | None]:
    try:
        await get_redis().ping()
    except (RuntimeError, RedisError, OSError) as exc:
        return False, str(exc)
    return True, None
