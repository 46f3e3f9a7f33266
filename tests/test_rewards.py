"""Reward tiers, celebrations, promo codes and the email log."""
import pytest
from werkzeug.security import generate_password_hash

from app.champion import create_app
from app.champion.db import session_scope
from app.champion.models import Base, SecurityLog, User
from app.champion.modules.notifications.models import EmailNotification
from app.champion.modules.rewards.models import RewardTier, TierUnlock
from app.champion.modules.rewards.service import award_points, seed_reward_tiers


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
                User(email="admin@example.com", password_hash=generate_password_hash("password1"), role="ADMIN"),
            ]
        )
        seed_reward_tiers(s)
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _login(client, email="player@example.com"):
    r = client.post("/api/auth/login", json={"email": email, "password": "password1"})
    assert r.status_code == 200


def _award(app, email, points):
    with app.test_request_context():
        with session_scope(app) as s:
            user = s.query(User).filter(User.email == email).one()
            award_points(s, user, points, "test")


def test_summary_without_points(client):
    _login(client)
    r = client.get("/api/rewards")
    assert r.json["points"] == 0
    assert r.json["currentTier"] is None
    assert r.json["nextTier"]["name"] == "bronze"
    assert r.json["pointsToNextTier"] == 100
    assert [t["name"] for t in r.json["tiers"]] == ["bronze", "silver", "gold", "platinum", "diamond"]


def test_award_points_unlocks_every_tier_reached_once(app, client):
    _award(app, "player@example.com", 600)
    _award(app, "player@example.com", 10)

    with session_scope(app) as s:
        names = sorted(u.tier.name for u in s.query(TierUnlock).all())
        assert names == ["bronze", "silver"]
        emails = s.query(EmailNotification).filter(EmailNotification.email_type == "TIER_UNLOCK").all()
        assert len(emails) == 2
        # SMTP is not configured in tests, so the unlock is recorded but not emailed.
        assert all(e.status == "FAILED" for e in emails)

    _login(client)
    r = client.get("/api/rewards")
    assert r.json["points"] == 610
    assert r.json["currentTier"]["name"] == "silver"
    assert r.json["nextTier"]["name"] == "gold"
    assert r.json["pointsToNextTier"] == 390


def test_award_zero_points_is_noop(app):
    with app.test_request_context():
        with session_scope(app) as s:
            user = s.query(User).filter(User.email == "player@example.com").one()
            assert award_points(s, user, 0, "nothing") == []
            assert user.reward_points == 0


def test_celebrations_flow(app, client):
    _award(app, "player@example.com", 150)
    _login(client)

    r = client.get("/api/rewards/pending-celebrations")
    celebrations = r.json["celebrations"]
    assert len(celebrations) == 1
    unlock_id = celebrations[0]["id"]

    r = client.post("/api/rewards/celebration-shown", json={"unlockId": unlock_id})
    assert r.json["success"] is True
    assert r.json["unlock"]["celebrationShown"] is True

    r = client.get("/api/rewards/pending-celebrations")
    assert r.json["celebrations"] == []


def test_celebration_of_another_user_is_not_found(app, client):
    _award(app, "other@example.com", 150)
    with session_scope(app) as s:
        unlock_id = s.query(TierUnlock.id).scalar()

    _login(client)
    r = client.post("/api/rewards/celebration-shown", json={"unlockId": unlock_id})
    assert r.status_code == 404
    assert r.json == {"error": "Unlock not found"}
    with session_scope(app) as s:
        assert s.get(TierUnlock, unlock_id).celebration_shown is False


def test_inactive_tiers_are_ignored(app):
    with session_scope(app) as s:
        s.query(RewardTier).filter(RewardTier.name == "bronze").one().is_active = False
    _award(app, "player@example.com", 120)
    with session_scope(app) as s:
        assert s.query(TierUnlock).count() == 0


def test_promo_codes(app, client):
    _login(client, "admin@example.com")
    r = client.post("/api/admin/promo-codes", json={"code": "spring", "durationDays": 14, "maxRedemptions": 1})
    assert r.status_code == 201
    assert r.json["promoCode"]["code"] == "SPRING"

    r = client.post("/api/admin/promo-codes", json={"code": "SPRING"})
    assert r.status_code == 400
    assert r.json == {"error": "Promo code already exists"}

    r = client.get("/api/admin/promo-codes")
    assert len(r.json["promoCodes"]) == 1
    client.post("/api/auth/logout", json={})

    _login(client)
    r = client.post("/api/promo/redeem", json={"code": "spring"})
    assert r.status_code == 200
    assert r.json["user"]["subscriptionTier"] == "PRO"
    assert r.json["durationDays"] == 14

    # Single-use code is now exhausted.
    r = client.post("/api/promo/redeem", json={"code": "SPRING"})
    assert r.status_code == 400
    assert r.json == {"error": "Invalid or expired promo code"}


def test_admin_manage_subscription(app, client):
    with session_scope(app) as s:
        player_id = s.query(User.id).filter(User.email == "player@example.com").scalar()

    _login(client, "admin@example.com")
    r = client.post("/api/admin/subscriptions/manage", json={"userId": player_id, "action": "upgrade", "tier": "PREMIUM"})
    assert r.json["success"] is True
    assert r.json["user"]["subscriptionTier"] == "PREMIUM"

    r = client.post("/api/admin/subscriptions/manage", json={"userId": player_id, "action": "extend_trial", "days": 10})
    assert r.json["message"] == "Trial extended by 10 days"
    assert r.json["user"]["isTrialActive"] is True

    r = client.post("/api/admin/subscriptions/manage", json={"userId": player_id, "action": "teleport"})
    assert r.status_code == 400
    assert r.json == {"error": "Invalid action"}

    r = client.post("/api/admin/subscriptions/manage", json={"userId": 9999, "action": "cancel"})
    assert r.status_code == 404

    with session_scope(app) as s:
        assert s.query(SecurityLog).filter(SecurityLog.event_type == "ADMIN_USER_UPDATED").count() == 2


def test_email_log_listing_and_resend(app, client, monkeypatch):
    _award(app, "player@example.com", 100)
    _login(client, "admin@example.com")

    r = client.get("/api/admin/email-notifications?status=FAILED&type=TIER_UNLOCK")
    assert r.json["total"] == 1
    notification_id = r.json["notifications"][0]["id"]

    r = client.get(f"/api/admin/email-notifications/{notification_id}")
    assert "Bronze" in r.json["notification"]["htmlContent"]

    sent = []

    def fake_deliver(config, *, to, subject, html, text=None):
        sent.append(to)
        return True, None

    monkeypatch.setattr("app.champion.modules.notifications.service.deliver", fake_deliver)
    r = client.post("/api/admin/email-notifications/resend", json={"emailNotificationId": notification_id})
    assert r.json["success"] is True
    assert r.json["notification"]["status"] == "SENT"
    assert r.json["notification"]["retryCount"] == 1
    assert sent == ["player@example.com"]
