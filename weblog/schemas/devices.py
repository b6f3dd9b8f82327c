from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime
from typing import List

from weblog.db.models import DeviceStatus

class DeviceBase(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    serial_no: str = Field(min_length=1, max_length=64)
    status: DeviceStatus = DeviceStatus.OFFLINE

# 생성 요청 (POST)
class DeviceCreate(DeviceBase):
    model_config = ConfigDict(
        json_schema_extra={"examples": [{"name": "거실 조명", "serial_no": "SN-0001", "status": "ONLINE"}]}
    )

# 사용량 누적 요청 (PATCH)
class UsageRecord(BaseModel):
    kwh: float

# 응답 (GET)
class DeviceResponse(DeviceBase):
    id: int
    usage_kwh: float
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

class DeviceListResponse(BaseModel):
    items: List[DeviceResponse]

class UtilizationResponse(BaseModel):
    device_id: int
    hours: int
    usage_kwh: float
    average_kw: float
