from datetime import datetime, timezone
from typing import List, Optional

from sqlmodel import Session, select

from weblog.db.models import Device, DeviceStatus
from weblog.schemas.devices import DeviceCreate


def get_device(db: Session, device_id: int) -> Optional[Device]:
    return db.get(Device, device_id)


def list_devices(db: Session, status: Optional[DeviceStatus] = None) -> List[Device]:
    stmt = select(Device)
    if status is not None:
        stmt = stmt.where(Device.status == status)
    return list(db.exec(stmt.order_by(Device.id)).all())


def create_device(db: Session, data: DeviceCreate) -> Device:
    """serial_no 중복이면 ValueError."""
    exists = db.exec(select(Device).where(Device.serial_no == data.serial_no)).first()
    if exists:
        raise ValueError(f"serial_no already registered: {data.serial_no}")

    device = Device(**data.model_dump())
    db.add(device)
    db.commit()
    db.refresh(device)
    return device


def add_usage(db: Session, device: Device, kwh: float) -> Device:
    device.usage_kwh += kwh
    device.updated_at = datetime.now(timezone.utc)
    db.add(device)
    db.commit()
    db.refresh(device)
    return device


def average_power_kw(device: Device, hours: int) -> float:
    # hours == 0 이면 ZeroDivisionError 그대로 전파
    return device.usage_kwh / hours
