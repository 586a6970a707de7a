"""Unit tests for the Redis payout lock."""

from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from blockmarket.storage.redis_locks import RedisLockHelper, payout_lock_key


@pytest.fixture
def helper():
    helper = RedisLockHelper("redis://localhost:6379/0", ttl_seconds=30)
    helper._client = AsyncMock()
    return helper


@pytest.mark.asyncio
async def test_acquire_and_release(helper):
    purchase_id = uuid4()
    helper._client.set.return_value = True

    async with helper.acquire_payout_lock(purchase_id) as acquired:
        assert acquired is True

    key = payout_lock_key(purchase_id)
    helper._client.set.assert_awaited_once_with(key, "1", ex=30, nx=True)
    helper._client.delete.assert_awaited_once_with(key)


@pytest.mark.asyncio
async def test_busy_lock_is_not_released(helper):
    """A caller that did not get the lock must not delete someone else's."""
    helper._client.set.return_value = None

    async with helper.acquire_payout_lock(uuid4()) as acquired:
        assert acquired is False

    helper._client.delete.assert_not_awaited()


@pytest.mark.asyncio
async def test_released_when_body_raises(helper):
    helper._client.set.return_value = True

    with pytest.raises(RuntimeError):
        async with helper.acquire_lock("k"):
            raise RuntimeError("boom")

    helper._client.delete.assert_awaited_once_with("k")


@pytest.mark.asyncio
async def test_requires_connection():
    helper = RedisLockHelper("redis://localhost:6379/0")

    assert not helper.is_connected
    assert await helper.ping() is False
    with pytest.raises(RuntimeError):
        async with helper.acquire_lock("k"):
            pass


def test_payout_lock_key():
    purchase_id = uuid4()
    assert payout_lock_key(purchase_id) == f"blockmarket:lock:payout:{purchase_id}"


@pytest.mark.asyncio
async def test_is_locked(helper):
    helper._client.exists.return_value = 1

    assert await helper.is_locked("k") is True
    helper._client.exists.assert_awaited_once_with("k")
