"""Redis client backing the billing locks.

Values are decoded to ``str`` so a lock's stored owner compares equal to the
owner token that acquired it.
"""

import redis.asyncio as redis
import structlog

from coursehub.core.config import get_settings

logger = structlog.get_logger(__name__)

_redis: redis.Redis | None = None


async def init_redis(url: str | None = None) -> None:
    """Connect the lock store and fail startup if it is unreachable."""
    global _redis

    if _redis is not None:
        return

    settings = get_settings()
    client = redis.from_url(
        url or settings.redis_url,
        decode_responses=True,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_socket_timeout,
    )
    await client.ping()
    _redis = client
    logger.info("lock_store_connected")


async def close_redis() -> None:
    global _redis

    if _redis is not None:
        await _redis.aclose()
        _redis = None


def get_redis() -> redis.Redis:
    if _redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis
