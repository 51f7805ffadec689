import base64
import binascii
import datetime as dt
import hashlib
import hmac
import json
import logging
from typing import Callable

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

Clock = Callable[[], int]

DEVICE_TOKEN_TTL_MS = 30 * 24 * 60 * 60 * 1000
TOKEN_SEPARATOR = "."


def now_ms() -> int:
    return int(dt.datetime.now(dt.timezone.utc).timestamp() * 1000)


def _hmac_b64(key: bytes, message: bytes) -> str:
    return base64.b64encode(hmac.new(key, message, hashlib.sha256).digest()).decode("ascii")


def derive_key_seed(master_secret: str, device_id: str, issued_at_ms: int) -> str:
    """
    Derive a per-device signing secret from the process master secret.

    The issuance time is part of the signed material, so two derivations for the
    same device at different instants produce different secrets. Derive once at
    registration and persist the result; never re-derive to compare.
    """
    if not master_secret:
        raise RuntimeError("MASTER_KEY_SEED missing")
    material = f"{master_secret}:{device_id}:{issued_at_ms}"
    return _hmac_b64(master_secret.encode("utf-8"), material.encode("utf-8"))


def sign_request(key_seed: str, timestamp: str, device_id: str, raw_body: bytes) -> str:
    """
    Client-side request signature.

    message = timestamp + device_id + lowercase hex sha256(raw_body), keyed by the
    UTF-8 bytes of the base64 key_seed text (not its decoded bytes).
    """
    body_digest = hashlib.sha256(raw_body).hexdigest()
    message = f"{timestamp}{device_id}{body_digest}"
    return _hmac_b64(key_seed.encode("utf-8"), message.encode("utf-8"))


class DeviceTokenPayload(BaseModel):
    device_id: str
    issued_at: int
    expires_at: int


class DeviceTokenIssuer:
    """Stateless device tokens: base64(json payload) "." base64(hmac of the encoded payload)."""

    def __init__(self, secret: str, clock: Clock = now_ms, ttl_ms: int = DEVICE_TOKEN_TTL_MS):
        if not secret:
            raise RuntimeError("DEVICE_TOKEN_SECRET missing")
        self._key = secret.encode("utf-8")
        self._clock = clock
        self._ttl_ms = ttl_ms

    def issue(self, device_id: str) -> str:
        now = self._clock()
        payload = DeviceTokenPayload(device_id=device_id, issued_at=now, expires_at=now + self._ttl_ms)
        encoded = base64.b64encode(payload.model_dump_json().encode("utf-8")).decode("ascii")
        return f"{encoded}{TOKEN_SEPARATOR}{_hmac_b64(self._key, encoded.encode('ascii'))}"

    def verify(self, token: str) -> DeviceTokenPayload | None:
        parts = token.split(TOKEN_SEPARATOR)
        if len(parts) != 2 or not all(parts):
            return None
        encoded, signature = parts
        try:
            expected = _hmac_b64(self._key, encoded.encode("ascii"))
            if not hmac.compare_digest(signature.encode("ascii"), expected.encode("ascii")):
                return None
            payload = DeviceTokenPayload(**json.loads(base64.b64decode(encoded, validate=True)))
        except (UnicodeError, binascii.Error, ValueError, TypeError, ValidationError):
            logger.warning("Malformed device token")
            return None
        if self._clock() > payload.expires_at:
            return None
        return payload
