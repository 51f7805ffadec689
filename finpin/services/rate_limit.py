import json
import logging
import uuid
from typing import Protocol

from redis.asyncio import Redis

from finpin.core.errors import RateLimitExceeded
from finpin.core.security import Clock, now_ms
from finpin.services.store import KeyValueStore

logger = logging.getLogger(__name__)

WINDOW_MS = 60 * 1000
WINDOW_TTL_SECONDS = 3600


def _rate_key(device_id: str) -> str:
    return f"rate_limit:{device_id}"


class RateLimitStrategy(Protocol):
    async def hit(self, device_id: str, now: int, limit: int) -> bool:
        """Record one request at `now` unless `limit` is already reached; True if admitted."""
        ...


class SlidingLogStrategy:
    """
    JSON array of request timestamps per device, filtered on read.

    Read-filter-append-write is not atomic: concurrent requests from the same
    device can observe the same count and all pass, overshooting the limit by up
    to the degree of concurrency. Best-effort only.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def hit(self, device_id: str, now: int, limit: int) -> bool:
        key = _rate_key(device_id)
        data = await self.store.get(key)
        try:
            history = json.loads(data) if data else []
        except ValueError:
            logger.warning("Resetting unreadable rate window for %s", device_id)
            history = []
        window_start = now - WINDOW_MS
        recent = [ts for ts in history if isinstance(ts, int) and ts > window_start]
        if len(recent) >= limit:
            return False
        recent.append(now)
        await self.store.put(key, json.dumps(recent), WINDOW_TTL_SECONDS)
        return True


class RedisSortedSetStrategy:
    """
    Sorted set of request timestamps, updated in a single MULTI/EXEC.

    Every concurrent request is counted before the decision, so the limit is never
    exceeded; under contention some requests may be rejected that a serial
    ordering would have admitted.
    """

    def __init__(self, redis: Redis):
        self.redis = redis

    async def hit(self, device_id: str, now: int, limit: int) -> bool:
        key = _rate_key(device_id)
        member = f"{now}:{uuid.uuid4().hex}"
        pipe = self.redis.pipeline(transaction=True)
        pipe.zremrangebyscore(key, "-inf", now - WINDOW_MS)
        pipe.zadd(key, {member: now})
        pipe.zcard(key)
        pipe.expire(key, WINDOW_TTL_SECONDS)
        _, _, count, _ = await pipe.execute()
        if count > limit:
            await self.redis.zrem(key, member)
            return False
        return True


class RateLimiter:
    def __init__(self, strategy: RateLimitStrategy, limit_per_minute: int, clock: Clock = now_ms):
        self.strategy = strategy
        self.limit = limit_per_minute
        self._clock = clock

    async def check_and_record(self, device_id: str) -> None:
        if not await self.strategy.hit(device_id, self._clock(), self.limit):
            logger.info("Rate limit exceeded for device %s (%s/min)", device_id, self.limit)
            raise RateLimitExceeded(self.limit)
