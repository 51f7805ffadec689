from typing import Optional, Protocol

from redis.asyncio import Redis


class KeyValueStore(Protocol):
    """Async key-value store with per-entry expiry. No transactions, no atomic increment."""

    async def get(self, key: str) -> Optional[str]:
        ...

    async def put(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...


class RedisStore:
    """
    KeyValueStore over a redis.asyncio client (decode_responses=True).

    put() is SET with EX, which replaces the previous expiry: re-writing a key
    restarts its TTL.
    """

    def __init__(self, redis: Redis):
        self.redis = redis

    async def get(self, key: str) -> Optional[str]:
        return await self.redis.get(key)

    async def put(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        await self.redis.set(key, value, ex=ttl_seconds)

    async def delete(self, key: str) -> None:
        await self.redis.delete(key)
