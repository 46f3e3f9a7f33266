from datetime import datetime, timedelta

import pytest
from werkzeug.security import generate_password_hash

from app.champion import create_app
from app.champion.db import session_scope
from app.champion.models import Base, User
from app.champion.modules.wearables.models import HealthData


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("STORAGE_LOCAL_ROOT", str(tmp_path / "storage"))
    monkeypatch.delenv("SMTP_SERVER", raising=False)

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        s.add_all(
            [
                User(email="player@example.com", password_hash=generate_password_hash("password1")),
                User(email="other@example.com", password_hash=generate_password_hash("password1")),
            ]
        )
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _login(client, email="player@example.com"):
    r = client.post("/api/auth/login", json={"email": email, "password": "password1"})
    assert r.status_code == 200


def _connect(client, device_id="watch-123", device_type="apple_watch"):
    return client.post(
        "/api/wearables/devices",
        json={"deviceType": device_type, "deviceId": device_id, "deviceName": "My Watch"},
    )


def test_connect_and_reconnect_device(client):
    _login(client)
    r = _connect(client)
    assert r.status_code == 201
    device = r.json["device"]
    assert device["deviceType"] == "APPLE_WATCH"
    assert device["isConnected"] is True
    assert r.json["created"] is True

    r = client.delete(f"/api/wearables/devices/{device['id']}", json={})
    assert r.status_code == 200
    assert r.json["device"]["isConnected"] is False
    assert r.json["device"]["disconnectedAt"] is not None

    r = _connect(client)
    assert r.status_code == 200
    assert r.json["created"] is False
    assert r.json["device"]["id"] == device["id"]
    assert r.json["device"]["isConnected"] is True

    r = client.get("/api/wearables/devices")
    assert [d["id"] for d in r.json["devices"]] == [device["id"]]


def test_connect_validation(client):
    _login(client)
    r = client.post("/api/wearables/devices", json={"deviceId": "x"})
    assert r.status_code == 400
    assert r.json == {"error": "Device type is required"}
    r = client.post("/api/wearables/devices", json={"deviceType": "FITBIT"})
    assert r.json == {"error": "Device ID is required"}
    r = _connect(client, device_type="pager")
    assert r.status_code == 400
    assert r.json["error"].startswith("Invalid deviceType")


def test_health_data_sync_and_query(app, client):
    _login(client)
    device_pk = _connect(client).json["device"]["id"]
    old = (datetime.utcnow() - timedelta(days=10)).isoformat()
    r = client.post(
        "/api/wearables/health-data",
        json={
            "deviceId": device_pk,
            "entries": [
                {"type": "heart_rate", "value": 142, "unit": "bpm"},
                {"type": "STEPS", "value": "8500"},
                {"type": "STEPS", "value": 9000, "recordedAt": old},
            ],
        },
    )
    assert r.status_code == 201
    assert r.json == {"success": True, "saved": 3}

    r = client.get("/api/wearables/health-data")
    assert r.json["days"] == 7
    assert sorted(d["type"] for d in r.json["data"]) == ["HEART_RATE", "STEPS"]

    r = client.get("/api/wearables/health-data?type=steps&days=30")
    assert [d["value"] for d in r.json["data"]] == [8500.0, 9000.0]

    r = client.get("/api/wearables/health-data?type=blood_sugar")
    assert r.status_code == 400

    r = client.get("/api/wearables/devices")
    assert r.json["devices"][0]["lastSyncAt"] is not None


def test_health_data_validation(app, client):
    _login(client)
    device_pk = _connect(client).json["device"]["id"]

    r = client.post("/api/wearables/health-data", json={"deviceId": device_pk, "entries": []})
    assert r.status_code == 400
    assert r.json == {"error": "Entries are required"}

    r = client.post("/api/wearables/health-data", json={"entries": [{"type": "STEPS", "value": 1}]})
    assert r.json == {"error": "Device ID is required"}

    r = client.post(
        "/api/wearables/health-data",
        json={"deviceId": device_pk, "entries": [{"type": "STEPS", "value": 1}, {"type": "STEPS", "value": "lots"}]},
    )
    assert r.status_code == 400
    assert r.json == {"error": "Entry 1: value must be a number"}
    with session_scope(app) as s:
        assert s.query(HealthData).count() == 0

    client.delete(f"/api/wearables/devices/{device_pk}", json={})
    r = client.post("/api/wearables/health-data", json={"deviceId": device_pk, "entries": [{"type": "STEPS", "value": 1}]})
    assert r.status_code == 400
    assert r.json == {"error": "Device is disconnected"}


def test_devices_are_owner_scoped(client):
    _login(client, "other@example.com")
    other_pk = _connect(client, device_id="other-watch").json["device"]["id"]
    client.post("/api/auth/logout", json={})

    _login(client)
    assert client.get("/api/wearables/devices").json["devices"] == []
    r = client.delete(f"/api/wearables/devices/{other_pk}", json={})
    assert r.status_code == 404
    assert r.json == {"error": "Device not found"}
    r = client.post("/api/wearables/health-data", json={"deviceId": other_pk, "entries": [{"type": "STEPS", "value": 1}]})
    assert r.status_code == 404
