import hmac
import logging

from finpin.core.security import Clock, now_ms, sign_request
from finpin.services.devices import DeviceRegistry

logger = logging.getLogger(__name__)


class SignatureVerifier:
    def __init__(self, registry: DeviceRegistry, validity_minutes: int, clock: Clock = now_ms):
        self.registry = registry
        self.validity_ms = validity_minutes * 60 * 1000
        self._clock = clock

    async def verify(self, device_id: str, timestamp: str, signature: str, raw_body: bytes) -> bool:
        """
        Check that raw_body was signed by the holder of device_id's key_seed
        within the validity window.

        Every failure, including store or decoding errors, comes back as False so
        callers cannot tell an unknown device from a bad signature.
        """
        try:
            record = await self.registry.get(device_id)
            if record is None:
                logger.warning("Signature rejected: device %s not registered", device_id)
                return False

            if not (timestamp.isascii() and timestamp.isdigit()):
                logger.warning("Signature rejected: malformed timestamp for %s", device_id)
                return False
            skew = abs(self._clock() - int(timestamp))
            if skew > self.validity_ms:
                logger.warning("Signature rejected: timestamp outside window for %s (skew=%sms)", device_id, skew)
                return False

            expected = sign_request(record.key_seed, timestamp, device_id, raw_body)
            if not hmac.compare_digest(signature.encode("utf-8"), expected.encode("utf-8")):
                logger.warning("Signature rejected: mismatch for %s", device_id)
                return False
            return True
        except Exception:
            logger.exception("Signature verification failed for %s", device_id)
            return False
