"""Tests for the Redis-backed billing lock."""

import pytest

from coursehub.core.locking import BillingLock, user_lock_name

pytestmark = pytest.mark.unit

KEY = "billing:lock:user:1"


async def test_acquire_is_exclusive(billing_lock):
    assert await billing_lock.acquire("user:1", "owner-a") is True
    assert await billing_lock.acquire("user:1", "owner-b") is False


async def test_lock_has_ttl(billing_lock, redis):
    await billing_lock.acquire("user:1", "owner-a")

    ttl = await redis.ttl(KEY)
    assert 0 < ttl <= 30


async def test_release_requires_ownership(billing_lock, redis):
    await billing_lock.acquire("user:1", "owner-a")

    assert await billing_lock.release("user:1", "owner-b") is False
    assert await redis.get(KEY) == "owner-a"
    assert await billing_lock.release("user:1", "owner-a") is True
    assert await redis.exists(KEY) == 0


async def test_hold_releases_on_exit(billing_lock, redis):
    async with billing_lock.hold("user:1") as acquired:
        assert acquired is True
        assert await redis.exists(KEY) == 1

    assert await redis.exists(KEY) == 0


async def test_hold_does_not_release_foreign_lock(billing_lock, redis):
    await billing_lock.acquire("user:1", "owner-a")

    async with billing_lock.hold("user:1") as acquired:
        assert acquired is False

    assert await redis.get(KEY) == "owner-a"


async def test_hold_releases_when_body_raises(redis):
    lock = BillingLock(redis, ttl=30)

    with pytest.raises(RuntimeError):
        async with lock.hold(user_lock_name("42")):
            raise RuntimeError("boom")

    assert await redis.exists("billing:lock:user:42") == 0
