import pytest

from finpin.schemas.device import DeviceInfo
from finpin.services.devices import DEVICE_TTL_SECONDS


@pytest.mark.asyncio
async def test_register_then_get(registry, device_info):
    created = await registry.register("dev-1", device_info)
    fetched = await registry.get("dev-1")
    assert fetched == created
    assert fetched.device_info == device_info
    assert fetched.key_seed
    assert fetched.request_count == 0
    assert fetched.registered_at == fetched.last_seen


@pytest.mark.asyncio
async def test_record_stored_with_thirty_day_ttl(registry, redis, device_info):
    await registry.register("dev-1", device_info)
    ttl = await redis.ttl("device:dev-1")
    assert 0 < ttl <= DEVICE_TTL_SECONDS


@pytest.mark.asyncio
async def test_reregistration_overwrites_secret(registry, clock, device_info):
    first = await registry.register("dev-1", device_info)
    clock.advance(1)
    updated_info = DeviceInfo(model="Pixel 8", os_version="14", app_version="1.3.0", platform="android")
    second = await registry.register("dev-1", updated_info)
    assert second.device_id == first.device_id == "dev-1"
    assert second.key_seed != first.key_seed
    assert (await registry.get("dev-1")).device_info == updated_info


@pytest.mark.asyncio
async def test_get_unknown_device_is_none(registry):
    assert await registry.get("ghost") is None


@pytest.mark.asyncio
async def test_get_unreadable_record_is_none(registry, redis):
    await redis.set("device:dev-1", "{not json")
    assert await registry.get("dev-1") is None


@pytest.mark.asyncio
async def test_touch_increments_count_and_advances_last_seen(registry, clock, device_info):
    created = await registry.register("dev-1", device_info)
    clock.advance(5_000)
    touched = await registry.touch("dev-1")
    assert touched.request_count == created.request_count + 1
    assert touched.last_seen > created.last_seen
    stored = await registry.get("dev-1")
    assert stored.request_count == 1
    assert stored.key_seed == created.key_seed
    assert stored.registered_at == created.registered_at


@pytest.mark.asyncio
async def test_touch_restarts_ttl(registry, redis, device_info):
    await registry.register("dev-1", device_info)
    await redis.expire("device:dev-1", 10)
    await registry.touch("dev-1")
    assert await redis.ttl("device:dev-1") > 10


@pytest.mark.asyncio
async def test_touch_unknown_device_is_noop(registry, redis):
    assert await registry.touch("ghost") is None
    assert await redis.exists("device:ghost") == 0


@pytest.mark.asyncio
async def test_deleted_record_reads_as_unregistered(registry, store, device_info):
    await registry.register("dev-1", device_info)
    await store.delete("device:dev-1")
    assert await registry.get("dev-1") is None
    assert await registry.touch("dev-1") is None
