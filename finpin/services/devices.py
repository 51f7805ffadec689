import datetime as dt
import logging

from pydantic import ValidationError

from finpin.core.security import Clock, derive_key_seed, now_ms
from finpin.schemas.device import DeviceInfo, DeviceRecord
from finpin.services.store import KeyValueStore

logger = logging.getLogger(__name__)

DEVICE_TTL_SECONDS = 86400 * 30


def _device_key(device_id: str) -> str:
    return f"device:{device_id}"


def _to_datetime(ms: int) -> dt.datetime:
    return dt.datetime.fromtimestamp(ms / 1000, tz=dt.timezone.utc)


class DeviceRegistry:
    """
    Device records kept in the key-value store under a 30 day TTL.

    The store is a cache with eviction, not a durable identity: an expired record
    is indistinguishable from a device that never registered.
    """

    def __init__(self, store: KeyValueStore, master_secret: str, clock: Clock = now_ms):
        self.store = store
        self._master_secret = master_secret
        self._clock = clock

    async def register(self, device_id: str, device_info: DeviceInfo) -> DeviceRecord:
        """
        Create (or overwrite) a device record with a freshly derived key_seed.

        The returned record carries the secret; this is the only time it leaves
        the registry.
        """
        issued_at = self._clock()
        now = _to_datetime(issued_at)
        record = DeviceRecord(
            device_id=device_id,
            key_seed=derive_key_seed(self._master_secret, device_id, issued_at),
            registered_at=now,
            last_seen=now,
            request_count=0,
            device_info=device_info,
        )
        await self._save(record)
        logger.info("Registered device %s (%s)", device_id, device_info.platform)
        return record

    async def get(self, device_id: str) -> DeviceRecord | None:
        data = await self.store.get(_device_key(device_id))
        if data is None:
            return None
        try:
            return DeviceRecord.model_validate_json(data)
        except ValidationError:
            logger.warning("Discarding unreadable record for device %s", device_id)
            return None

    async def touch(self, device_id: str) -> DeviceRecord | None:
        # Full re-write; RedisStore's SET EX restarts the 30 day TTL.
        record = await self.get(device_id)
        if record is None:
            return None
        record.last_seen = _to_datetime(self._clock())
        record.request_count += 1
        await self._save(record)
        return record

    async def _save(self, record: DeviceRecord) -> None:
        await self.store.put(_device_key(record.device_id), record.model_dump_json(), DEVICE_TTL_SECONDS)
