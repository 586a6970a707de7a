"""Redis-based distributed locks for payout runs."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator
from uuid import UUID

import redis.asyncio as redis

LOCK_PREFIX = "blockmarket:lock"


def payout_lock_key(purchase_id: UUID) -> str:
    return f"{LOCK_PREFIX}:payout:{purchase_id}"


class RedisLockHelper:
    """Helper for Redis-based distributed locking."""

    def __init__(self, redis_url: str, ttl_seconds: int = 30):
        """Initialize Redis lock helper."""
        self.redis_url = redis_url
        self.ttl_seconds = ttl_seconds
        self._client: redis.Redis | None = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    async def connect(self) -> None:
        """Establish Redis connection."""
        self._client = redis.from_url(self.redis_url, encoding="utf-8")

    async def disconnect(self) -> None:
        """Close Redis connection."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def ping(self) -> bool:
        if not self._client:
            return False
        return bool(await self._client.ping())

    @asynccontextmanager
    async def acquire_lock(self, key: str) -> AsyncGenerator[bool, None]:
        """
        Try to take an exclusive lock without waiting.

        Yields True when this caller holds the lock. The lock expires after
        ``ttl_seconds`` even if the holder dies.
        """
        if not self._client:
            raise RuntimeError("Redis client not connected")

        acquired = False

        try:
            acquired = await self._client.set(key, "1", ex=self.ttl_seconds, nx=True)
            yield bool(acquired)
        finally:
            if acquired:
                await self._client.delete(key)

    @asynccontextmanager
    async def acquire_payout_lock(self, purchase_id: UUID) -> AsyncGenerator[bool, None]:
        """Acquire exclusive lock on the payout run of a purchase."""
        async with self.acquire_lock(payout_lock_key(purchase_id)) as acquired:
            yield acquired

    async def is_locked(self, key: str) -> bool:
        """Check if a key is currently locked."""
        if not self._client:
            raise RuntimeError("Redis client not connected")

        return bool(await self._client.exists(key))
