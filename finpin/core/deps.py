from collections.abc import AsyncGenerator

from fastapi import Depends
from redis import asyncio as aioredis
from redis.asyncio import ConnectionPool, Redis

from finpin.core.config import Settings, get_settings
from finpin.core.security import DeviceTokenIssuer
from finpin.services.devices import DeviceRegistry
from finpin.services.parser import ExpenseParser
from finpin.services.rate_limit import RateLimiter, RedisSortedSetStrategy, SlidingLogStrategy
from finpin.services.signatures import SignatureVerifier
from finpin.services.store import RedisStore

_redis_pool: ConnectionPool | None = None


async def get_settings_dep() -> Settings:
    return get_settings()


def _ensure_redis_pool(settings: Settings) -> ConnectionPool:
    global _redis_pool
    if not settings.redis_url.startswith("rediss://") and settings.environment != "development":
        raise RuntimeError("Redis URL must use TLS (rediss://) outside development")
    if _redis_pool is None:
        _redis_pool = ConnectionPool.from_url(
            settings.redis_url,
            max_connections=64,
            decode_responses=True,
            socket_timeout=1.0,
            socket_connect_timeout=1.0,
            health_check_interval=30,
        )
    return _redis_pool


async def get_redis(settings: Settings = Depends(get_settings_dep)) -> AsyncGenerator[Redis, None]:
    client: Redis = aioredis.Redis(connection_pool=_ensure_redis_pool(settings))
    try:
        yield client
    finally:
        # the pool stays open; only this client is released
        await client.aclose()


async def get_registry(
    redis: Redis = Depends(get_redis),
    settings: Settings = Depends(get_settings_dep),
) -> DeviceRegistry:
    return DeviceRegistry(RedisStore(redis), settings.master_key_seed)


async def get_signature_verifier(
    registry: DeviceRegistry = Depends(get_registry),
    settings: Settings = Depends(get_settings_dep),
) -> SignatureVerifier:
    return SignatureVerifier(registry, settings.signature_validity_minutes)


async def get_rate_limiter(
    redis: Redis = Depends(get_redis),
    settings: Settings = Depends(get_settings_dep),
) -> RateLimiter:
    if settings.rate_limit_strategy == "sorted_set":
        strategy = RedisSortedSetStrategy(redis)
    else:
        strategy = SlidingLogStrategy(RedisStore(redis))
    return RateLimiter(strategy, settings.rate_limit_per_minute)


async def get_token_issuer(settings: Settings = Depends(get_settings_dep)) -> DeviceTokenIssuer:
    return DeviceTokenIssuer(settings.device_token_secret)


async def get_parser(settings: Settings = Depends(get_settings_dep)) -> ExpenseParser:
    return ExpenseParser(settings)
