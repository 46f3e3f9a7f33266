from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

from app.champion.api import BadRequest, NotFound, text_field
from app.champion.constants import HEALTH_DATA_TYPES, WEARABLE_DEVICE_TYPES
from app.champion.modules.wearables.models import HealthData, WearableDevice
from app.champion.utils import parse_datetime, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from app.champion.models import User

MAX_ENTRIES_PER_SYNC = 1000


def connect_device(s: "Session", user: "User", payload: dict) -> tuple[WearableDevice, bool]:
    """Connect a device, or reconnect one seen before. Returns (device, created)."""
    device_type = text_field(payload, "deviceType").upper()
    if device_type not in WEARABLE_DEVICE_TYPES:
        raise BadRequest(f"Invalid deviceType. Must be one of: {', '.join(WEARABLE_DEVICE_TYPES)}")
    external_id = str(payload.get("deviceId")).strip()[:255]
    name = text_field(payload, "deviceName") or None

    device = (
        s.query(WearableDevice)
        .filter(
            WearableDevice.user_id == user.id,
            WearableDevice.device_type == device_type,
            WearableDevice.device_id == external_id,
        )
        .one_or_none()
    )
    now = utcnow()
    if device is not None:
        device.is_connected = True
        device.connected_at = now
        device.disconnected_at = None
        if name:
            device.device_name = name
        return device, False

    device = WearableDevice(
        user_id=user.id,
        device_type=device_type,
        device_id=external_id,
        device_name=name,
        is_connected=True,
        connected_at=now,
    )
    s.add(device)
    return device, True


def disconnect_device(device: WearableDevice) -> WearableDevice:
    device.is_connected = False
    device.disconnected_at = utcnow()
    return device


def record_health_data(s: "Session", user: "User", device_pk: int, entries: list) -> list[HealthData]:
    device = s.get(WearableDevice, device_pk)
    if device is None or device.user_id != user.id:
        raise NotFound("Device not found")
    if not device.is_connected:
        raise BadRequest("Device is disconnected")
    if len(entries) > MAX_ENTRIES_PER_SYNC:
        raise BadRequest(f"Too many entries (max {MAX_ENTRIES_PER_SYNC})")

    rows = []
    for i, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise BadRequest(f"Entry {i} must be an object")
        data_type = str(entry.get("type") or "").strip().upper()
        if data_type not in HEALTH_DATA_TYPES:
            raise BadRequest(f"Entry {i}: invalid type. Must be one of: {', '.join(HEALTH_DATA_TYPES)}")
        try:
            value = float(entry.get("value"))
        except (TypeError, ValueError):
            raise BadRequest(f"Entry {i}: value must be a number")
        try:
            recorded_at = parse_datetime(entry.get("recordedAt")) or utcnow()
        except ValueError:
            raise BadRequest(f"Entry {i}: invalid recordedAt")
        row = HealthData(
            user_id=user.id,
            device_id=device.id,
            data_type=data_type,
            value=value,
            unit=text_field(entry, "unit")[:32] or None,
            extra=entry.get("metadata") if isinstance(entry.get("metadata"), dict) else None,
            recorded_at=recorded_at,
        )
        s.add(row)
        rows.append(row)
    device.last_sync_at = utcnow()
    return rows


def health_data_query(s: "Session", user: "User", data_type: str | None, days: int):
    q = s.query(HealthData).filter(
        HealthData.user_id == user.id,
        HealthData.recorded_at >= utcnow() - timedelta(days=days),
    )
    if data_type:
        data_type = data_type.strip().upper()
        if data_type not in HEALTH_DATA_TYPES:
            raise BadRequest(f"Invalid type. Must be one of: {', '.join(HEALTH_DATA_TYPES)}")
        q = q.filter(HealthData.data_type == data_type)
    return q.order_by(HealthData.recorded_at.desc(), HealthData.id.desc())
