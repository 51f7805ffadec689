import json

import httpx
import pytest

from finpin.core.deps import get_parser, get_redis, get_settings_dep
from finpin.core.security import DeviceTokenIssuer, now_ms, sign_request
from finpin.main import app
from finpin.schemas.expense import ExpenseParseResult

REGISTRATION = {
    "device_id": "dev-1",
    "device_info": {"model": "iPhone15,2", "os_version": "17.4", "app_version": "1.2.0", "platform": "ios"},
}


class StubParser:
    def __init__(self):
        self.calls = []

    async def parse(self, text, context=None):
        self.calls.append(text)
        return ExpenseParseResult(amount="9.65", currency="GBP", merchant="Costa Coffee", confidence=0.9)

    async def health_check(self):
        return True


@pytest.fixture()
def parser() -> StubParser:
    return StubParser()


@pytest.fixture()
async def client(settings, redis, parser):
    app.dependency_overrides[get_settings_dep] = lambda: settings
    app.dependency_overrides[get_redis] = lambda: redis
    app.dependency_overrides[get_parser] = lambda: parser
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def _register(client) -> dict:
    resp = await client.post("/api/v1/device/register", json=REGISTRATION)
    assert resp.status_code == 200
    return resp.json()["data"]


def _signed_headers(key_seed: str, body: bytes, device_id: str = "dev-1", ts: int | None = None) -> dict:
    timestamp = str(ts if ts is not None else now_ms())
    return {
        "Content-Type": "application/json",
        "X-Device-Id": device_id,
        "X-Timestamp": timestamp,
        "X-Signature": sign_request(key_seed, timestamp, device_id, body),
    }


@pytest.mark.asyncio
async def test_register_returns_secret_and_valid_token(client, settings):
    data = await _register(client)
    assert data["key_seed"]
    payload = DeviceTokenIssuer(settings.device_token_secret).verify(data["device_token"])
    assert payload.device_id == "dev-1"


@pytest.mark.asyncio
async def test_register_rejects_invalid_payload(client):
    resp = await client.post("/api/v1/device/register", json={"device_id": "", "device_info": {"platform": "web"}})
    assert resp.status_code == 400
    assert resp.json()["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_device_view_hides_key_seed(client):
    await _register(client)
    resp = await client.get("/api/v1/device/dev-1")
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["device_id"] == "dev-1"
    assert "key_seed" not in data

    missing = await client.get("/api/v1/device/ghost")
    assert missing.status_code == 404
    assert missing.json() == {"success": False, "error": "Device not found"}


@pytest.mark.asyncio
async def test_signed_parse_flow(client, parser):
    key_seed = (await _register(client))["key_seed"]
    body = json.dumps({"text": "Costa Coffee £9.65"}).encode()
    resp = await client.post("/api/v1/parse/expense", content=body, headers=_signed_headers(key_seed, body))
    assert resp.status_code == 200
    assert resp.json()["data"]["merchant"] == "Costa Coffee"
    assert parser.calls == ["Costa Coffee £9.65"]
    device = (await client.get("/api/v1/device/dev-1")).json()["data"]
    assert device["request_count"] == 1


@pytest.mark.asyncio
async def test_missing_headers_is_validation_error(client):
    resp = await client.post("/api/v1/parse/expense", content=b"{}", headers={"X-Device-Id": "dev-1"})
    assert resp.status_code == 400
    assert resp.json()["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_bad_signature_is_authentication_error(client, parser):
    key_seed = (await _register(client))["key_seed"]
    body = b'{"text": "lunch"}'
    headers = _signed_headers(key_seed, body)
    resp = await client.post("/api/v1/parse/expense", content=b'{"text": "lunch!"}', headers=headers)
    assert resp.status_code == 401
    assert resp.json()["code"] == "AUTHENTICATION_ERROR"
    assert parser.calls == []


@pytest.mark.asyncio
async def test_unregistered_device_is_authentication_error(client):
    body = b'{"text": "lunch"}'
    resp = await client.post("/api/v1/parse/expense", content=body, headers=_signed_headers("c2VlZA==", body))
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_invalid_body_after_authentication(client):
    key_seed = (await _register(client))["key_seed"]
    body = b'{"text": ""}'
    resp = await client.post("/api/v1/parse/expense", content=body, headers=_signed_headers(key_seed, body))
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_rate_limit_applies_before_signature(client, settings):
    key_seed = (await _register(client))["key_seed"]
    body = b'{"text": "coffee"}'
    for _ in range(settings.rate_limit_per_minute):
        resp = await client.post("/api/v1/parse/expense", content=body, headers=_signed_headers(key_seed, body))
        assert resp.status_code == 200
    resp = await client.post("/api/v1/parse/expense", content=body, headers=_signed_headers(key_seed, body))
    assert resp.status_code == 429
    assert resp.headers["retry-after"] == "60"
    assert resp.json()["code"] == "RATE_LIMIT_EXCEEDED"


@pytest.mark.asyncio
async def test_device_token_enforced_when_required(client, settings):
    app.dependency_overrides[get_settings_dep] = lambda: settings.model_copy(update={"require_device_token": True})
    data = await _register(client)
    body = b'{"text": "coffee"}'

    resp = await client.post("/api/v1/parse/expense", content=body, headers=_signed_headers(data["key_seed"], body))
    assert resp.status_code == 401

    headers = _signed_headers(data["key_seed"], body)
    headers["X-Device-Token"] = data["device_token"]
    resp = await client.post("/api/v1/parse/expense", content=body, headers=headers)
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_health_and_index(client):
    health = await client.get("/api/v1/health")
    assert health.json()["data"]["services"]["ai_api"] == "healthy"
    index = await client.get("/")
    assert index.json()["endpoints"]["register"] == "/api/v1/device/register"
    assert index.headers["x-content-type-options"] == "nosniff"
