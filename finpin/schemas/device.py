import datetime as dt
from typing import Literal

from pydantic import BaseModel, Field


class DeviceInfo(BaseModel):
    model: str = Field(..., min_length=1, max_length=50)
    os_version: str = Field(..., min_length=1, max_length=20)
    app_version: str = Field(..., min_length=1, max_length=20)
    platform: Literal["ios", "android"]


class DeviceRecord(BaseModel):
    device_id: str
    key_seed: str
    registered_at: dt.datetime
    last_seen: dt.datetime
    request_count: int = 0
    device_info: DeviceInfo


class DevicePublic(BaseModel):
    device_id: str
    registered_at: dt.datetime
    last_seen: dt.datetime
    request_count: int
    device_info: DeviceInfo


class DeviceRegistrationIn(BaseModel):
    device_id: str = Field(..., min_length=1, max_length=100)
    device_info: DeviceInfo


class DeviceRegistrationData(BaseModel):
    key_seed: str
    expires_at: dt.datetime
    device_token: str


class DeviceRegistrationOut(BaseModel):
    success: bool = True
    data: DeviceRegistrationData


class DevicePublicOut(BaseModel):
    success: bool = True
    data: DevicePublic
