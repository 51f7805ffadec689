import logging
from dataclasses import dataclass

from fastapi import Depends, Header, Request

from finpin.core.config import Settings
from finpin.core.deps import (
    get_rate_limiter,
    get_registry,
    get_settings_dep,
    get_signature_verifier,
    get_token_issuer,
)
from finpin.core.errors import AuthenticationError, ValidationError
from finpin.core.security import DeviceTokenIssuer
from finpin.schemas.device import DeviceRecord
from finpin.services.devices import DeviceRegistry
from finpin.services.rate_limit import RateLimiter
from finpin.services.signatures import SignatureVerifier

logger = logging.getLogger(__name__)


@dataclass
class SignedRequest:
    device: DeviceRecord
    body: bytes


async def get_signed_request(
    request: Request,
    x_device_id: str | None = Header(default=None, alias="x-device-id"),
    x_timestamp: str | None = Header(default=None, alias="x-timestamp"),
    x_signature: str | None = Header(default=None, alias="x-signature"),
    x_device_token: str | None = Header(default=None, alias="x-device-token"),
    settings: Settings = Depends(get_settings_dep),
    limiter: RateLimiter = Depends(get_rate_limiter),
    verifier: SignatureVerifier = Depends(get_signature_verifier),
    registry: DeviceRegistry = Depends(get_registry),
    issuer: DeviceTokenIssuer = Depends(get_token_issuer),
) -> SignedRequest:
    """
    Authenticate a signed device call: rate limit, then signature, then touch.

    The signature covers the exact bytes received, so the body is read raw and
    only parsed by the endpoint afterwards.
    """
    if not (x_device_id and x_timestamp and x_signature):
        raise ValidationError("Missing required headers")
    raw_body = await request.body()

    await limiter.check_and_record(x_device_id)

    if not await verifier.verify(x_device_id, x_timestamp, x_signature, raw_body):
        raise AuthenticationError("Invalid request signature")

    if settings.require_device_token:
        payload = issuer.verify(x_device_token) if x_device_token else None
        if payload is None or payload.device_id != x_device_id:
            logger.warning("Device token rejected for %s", x_device_id)
            raise AuthenticationError("Invalid device token")

    device = await registry.touch(x_device_id)
    if device is None:
        # evicted between verification and touch
        raise AuthenticationError("Device not registered")
    return SignedRequest(device=device, body=raw_body)
