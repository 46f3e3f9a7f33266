"""Drill completions drive medals, badges, points and stats."""
import pytest
from werkzeug.security import generate_password_hash

from app.champion import create_app
from app.champion.db import session_scope
from app.champion.models import Base, User
from app.champion.modules.achievements.definitions import ACHIEVEMENT_DEFINITIONS
from app.champion.modules.achievements.models import Achievement, UserAchievement
from app.champion.modules.achievements.service import calculate_rank, sync_achievement_definitions
from app.champion.modules.rewards.models import TierUnlock
from app.champion.modules.rewards.service import seed_reward_tiers


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
                User(email="player@example.com", name="Pat Player", password_hash=generate_password_hash("password1")),
                User(email="admin@example.com", password_hash=generate_password_hash("password1"), role="ADMIN"),
            ]
        )
        seed_reward_tiers(s)
        sync_achievement_definitions(s)
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _login(client, email="player@example.com"):
    r = client.post("/api/auth/login", json={"email": email, "password": "password1"})
    assert r.status_code == 200


def _drill(client, drill_id, category="serving"):
    r = client.post("/api/training/drills/complete", json={"drillId": drill_id, "category": category})
    assert r.status_code == 200, r.json
    return r.json


def test_catalogue_shape():
    keys = [d["key"] for d in ACHIEVEMENT_DEFINITIONS]
    assert len(keys) == len(set(keys))
    # 9 sections x (3 medals + badge) + 4 level badges + 4 combos + crown
    assert len(keys) == 45
    assert "serving_bronze" in keys
    assert "mindful_champion_crown" in keys


def test_sync_is_idempotent(app):
    with session_scope(app) as s:
        result = sync_achievement_definitions(s)
        assert result == {"created": 0, "updated": 0, "total": 45}


def test_calculate_rank():
    assert calculate_rank(0) == "Beginner"
    assert calculate_rank(100) == "Beginner+"
    assert calculate_rank(999) == "Advanced"
    assert calculate_rank(2000) == "Master Player"
    assert calculate_rank(5000) == "Legendary Champion"


def test_first_drill_unlocks_bronze(client):
    _login(client)
    body = _drill(client, "serve-1")
    assert body["achievements"]["unlocked"] is True
    assert [a["id"] for a in body["achievements"]["achievements"]] == ["serving_bronze"]
    assert body["achievements"]["totalPointsEarned"] == 10
    assert body["rewardPoints"] == 10

    # Already held: the next drill unlocks nothing new.
    body = _drill(client, "serve-2")
    assert body["achievements"]["unlocked"] is False
    assert body["rewardPoints"] == 10


def test_ten_distinct_drills_unlock_section_badge(app, client):
    _login(client)
    for i in range(1, 11):
        body = _drill(client, f"serve-{i}")
    unlocked = [a["id"] for a in body["achievements"]["achievements"]]
    assert unlocked == ["serving_gold", "serving_master"]
    assert body["rewardPoints"] == 10 + 25 + 50 + 100

    r = client.get("/api/achievements")
    stats = r.json["stats"]
    assert stats["totalAchievements"] == 4
    assert stats["bronzeMedals"] == 1
    assert stats["silverMedals"] == 1
    assert stats["goldMedals"] == 1
    assert stats["badges"] == 1
    assert stats["totalPoints"] == 185
    assert stats["rank"] == "Beginner+"
    assert {a["id"] for a in r.json["unlocked"]} == {"serving_bronze", "serving_silver", "serving_gold", "serving_master"}
    progress_ids = {p["id"] for p in r.json["progress"]}
    assert "serving_master" not in progress_ids
    assert "return_bronze" in progress_ids

    # 185 points passes the bronze reward tier.
    with session_scope(app) as s:
        assert [u.tier.name for u in s.query(TierUnlock).all()] == ["bronze"]


def test_repeated_drill_counts_once_for_section_badge(app, client):
    _login(client)
    for _ in range(10):
        body = _drill(client, "serve-1")
    assert [a["id"] for a in body["achievements"]["achievements"]] == ["serving_gold"]
    with session_scope(app) as s:
        held = {
            ua.achievement.key
            for ua in s.query(UserAchievement).join(Achievement, UserAchievement.achievement_id == Achievement.id)
        }
        assert "serving_master" not in held


def test_drill_validation(client):
    _login(client)
    r = client.post("/api/training/drills/complete", json={"category": "serving"})
    assert r.status_code == 400
    assert r.json == {"error": "Drill ID is required"}

    r = client.post("/api/training/drills/complete", json={"drillId": "x", "category": "juggling"})
    assert r.status_code == 400
    assert r.json["error"].startswith("Invalid category")


def test_drill_completions_listing(client):
    _login(client)
    _drill(client, "serve-1")
    _drill(client, "dink-1", category="dinking")
    r = client.get("/api/training/drills/completions?category=dinking")
    assert [c["drillId"] for c in r.json["completions"]] == ["dink-1"]


def test_mark_notified(client):
    _login(client)
    _drill(client, "serve-1")
    r = client.post("/api/achievements/notified", json={"achievementId": "serving_bronze"})
    assert r.json == {"success": True}

    r = client.post("/api/achievements/notified", json={"achievementId": "return_bronze"})
    assert r.status_code == 404

    r = client.post("/api/achievements/notified", json={})
    assert r.status_code == 400
    assert r.json == {"error": "Achievement ID required"}


def test_leaderboard(client):
    _login(client)
    _drill(client, "serve-1")
    r = client.get("/api/achievements/leaderboard")
    board = r.json["leaderboard"]
    assert board[0]["position"] == 1
    assert board[0]["name"] == "Pat Player"
    assert board[0]["totalPoints"] == 10
    assert r.json["period"] == "all"

    r = client.get("/api/achievements/leaderboard?period=decade")
    assert r.json["period"] == "all"


def test_admin_sync(client):
    _login(client, "admin@example.com")
    r = client.post("/api/admin/achievements/sync", json={})
    assert r.json["success"] is True
    assert r.json["total"] == 45
