import os

import pytest
from fakeredis import aioredis as fakeredis

os.environ.setdefault("MASTER_KEY_SEED", "test-master-seed")
os.environ.setdefault("DEVICE_TOKEN_SECRET", "test-token-secret")

from finpin.core.config import Settings  # noqa: E402
from finpin.schemas.device import DeviceInfo  # noqa: E402
from finpin.services.devices import DeviceRegistry  # noqa: E402
from finpin.services.store import RedisStore  # noqa: E402

START_MS = 1_700_000_000_000


class FakeClock:
    def __init__(self, now: int = START_MS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture(scope="session")
def settings() -> Settings:
    return Settings(
        master_key_seed="test-master-seed",
        device_token_secret="test-token-secret",
        signature_validity_minutes=5,
        rate_limit_per_minute=3,
        openai_api_key="sk-test",
        openai_base_url="https://ai.test/v1",
        openai_model="gpt-test",
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
async def redis():
    client = fakeredis.FakeRedis(decode_responses=True)
    try:
        yield client
    finally:
        await client.flushall()
        await client.aclose()


@pytest.fixture()
def store(redis) -> RedisStore:
    return RedisStore(redis)


@pytest.fixture()
def registry(store, settings, clock) -> DeviceRegistry:
    return DeviceRegistry(store, settings.master_key_seed, clock=clock)


@pytest.fixture()
def device_info() -> DeviceInfo:
    return DeviceInfo(model="iPhone15,2", os_version="17.4", app_version="1.2.0", platform="ios")
