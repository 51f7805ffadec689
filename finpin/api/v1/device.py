import datetime as dt

from fastapi import APIRouter, Depends, HTTPException, status

from finpin.core.deps import get_registry, get_token_issuer
from finpin.core.security import DeviceTokenIssuer
from finpin.schemas.device import (
    DevicePublic,
    DevicePublicOut,
    DeviceRegistrationData,
    DeviceRegistrationIn,
    DeviceRegistrationOut,
)
from finpin.services.devices import DEVICE_TTL_SECONDS, DeviceRegistry

router = APIRouter()


@router.post("/register", response_model=DeviceRegistrationOut)
async def register_device(
    payload: DeviceRegistrationIn,
    registry: DeviceRegistry = Depends(get_registry),
    issuer: DeviceTokenIssuer = Depends(get_token_issuer),
):
    record = await registry.register(payload.device_id, payload.device_info)
    return DeviceRegistrationOut(
        data=DeviceRegistrationData(
            key_seed=record.key_seed,
            expires_at=record.registered_at + dt.timedelta(seconds=DEVICE_TTL_SECONDS),
            device_token=issuer.issue(payload.device_id),
        )
    )


@router.get("/{device_id}", response_model=DevicePublicOut)
async def get_device(device_id: str, registry: DeviceRegistry = Depends(get_registry)):
    record = await registry.get(device_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Device not found")
    # key_seed stays server-side after registration
    return DevicePublicOut(data=DevicePublic(**record.model_dump(exclude={"key_seed"})))
