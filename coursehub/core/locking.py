"""Distributed billing locks using Redis.

Serializes subscription mutations per user across API instances and keeps
the reconciliation job single-flight. Locks expire on their own so a crashed
holder never blocks a user for longer than the TTL.
"""

import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import redis.asyncio as redis

from coursehub.core.config import get_settings
from coursehub.db.redis import get_redis


class BillingLock:
    """Manages short-lived billing locks in Redis."""

    LOCK_PREFIX = "billing:lock:"

    def __init__(self, redis_client: redis.Redis | None = None, ttl: int | None = None):
        self._redis = redis_client
        self.ttl = ttl or get_settings().billing_lock_ttl

    def _get_redis(self) -> redis.Redis:
        if self._redis is None:
            self._redis = get_redis()
        return self._redis

    def _lock_key(self, name: str) -> str:
        return f"{self.LOCK_PREFIX}{name}"

    async def acquire(self, name: str, owner: str) -> bool:
        """Attempt to acquire ``name`` for ``owner``.

        Returns:
            True if acquired, False if held by someone else
        """
        r = self._get_redis()
        return bool(await r.set(self._lock_key(name), owner, nx=True, ex=self.ttl))

    async def release(self, name: str, owner: str) -> bool:
        """Release ``name`` if ``owner`` still holds it."""
        r = self._get_redis()
        key = self._lock_key(name)

        current = await r.get(key)
        if current == owner:
            await r.delete(key)
            return True

        return False

    @asynccontextmanager
    async def hold(self, name: str) -> AsyncGenerator[bool, None]:
        """Context manager that tries once to acquire ``name``.

        Yields:
            True if the lock was acquired

        Example:
            async with billing_lock.hold("user:42") as acquired:
                if not acquired:
                    raise ConflictError(...)
        """
        owner = str(uuid.uuid4())
        acquired = False
        try:
            acquired = await self.acquire(name, owner)
            yield acquired
        finally:
            if acquired:
                await self.release(name, owner)


def user_lock_name(user_id: str) -> str:
    return f"user:{user_id}"


RECONCILE_LOCK_NAME = "reconcile"
