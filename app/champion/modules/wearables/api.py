from __future__ import annotations

from flask import Blueprint, g, request

from app.champion.api import BadRequest, api_endpoint, query_limit, read_json, require_fields
from app.champion.db import db_session
from app.champion.modules.wearables.models import WearableDevice
from app.champion.modules.wearables.service import (
    connect_device,
    disconnect_device,
    health_data_query,
    record_health_data,
)
from app.champion.rbac import get_owned_or_404, login_required
from app.champion.utils import clamp, parse_int

bp = Blueprint("wearables_api", __name__)


@bp.get("/wearables/devices")
@login_required
@api_endpoint("Failed to fetch devices")
def devices_list():
    s = db_session()
    devices = (
        s.query(WearableDevice)
        .filter(WearableDevice.user_id == g.current_user.id)
        .order_by(WearableDevice.connected_at.desc(), WearableDevice.id.desc())
        .all()
    )
    return {"devices": [d.to_dict() for d in devices]}


@bp.post("/wearables/devices")
@login_required
@api_endpoint("Failed to connect device")
def devices_connect():
    payload = read_json()
    require_fields(
        payload,
        "deviceType",
        "deviceId",
        messages={"deviceType": "Device type is required", "deviceId": "Device ID is required"},
    )
    s = db_session()
    device, created = connect_device(s, g.current_user, payload)
    s.commit()
    return {"device": device.to_dict(), "created": created}, 201 if created else 200


@bp.delete("/wearables/devices/<int:device_id>")
@login_required
@api_endpoint("Failed to disconnect device")
def devices_disconnect(device_id: int):
    s = db_session()
    device = get_owned_or_404(s, WearableDevice, device_id, g.current_user, message="Device not found")
    disconnect_device(device)
    s.commit()
    return {"success": True, "device": device.to_dict()}


@bp.post("/wearables/health-data")
@login_required
@api_endpoint("Failed to save health data")
def health_data_create():
    payload = read_json()
    require_fields(payload, "deviceId", messages={"deviceId": "Device ID is required"})
    entries = payload.get("entries")
    if not isinstance(entries, list) or not entries:
        raise BadRequest("Entries are required")
    device_pk = parse_int(payload.get("deviceId"))
    if device_pk is None:
        raise BadRequest("Invalid deviceId")
    s = db_session()
    rows = record_health_data(s, g.current_user, device_pk, entries)
    s.commit()
    return {"success": True, "saved": len(rows)}, 201


@bp.get("/wearables/health-data")
@login_required
@api_endpoint("Failed to fetch health data")
def health_data_list():
    s = db_session()
    days = int(clamp(parse_int(request.args.get("days"), 7) or 7, 1, 365))
    q = health_data_query(s, g.current_user, request.args.get("type"), days)
    rows = q.limit(query_limit(500, 5000)).all()
    return {"data": [r.to_dict() for r in rows], "days": days}
