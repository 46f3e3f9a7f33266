"""Signup, login, lockout and password reset."""
import pytest
from werkzeug.security import check_password_hash, generate_password_hash

import app.champion.auth as auth_module
from app.champion import create_app
from app.champion.db import session_scope
from app.champion.models import Base, BlockedIP, PasswordResetToken, SecurityLog, User
from app.champion.modules.notifications.models import EmailNotification
from app.champion.modules.subscriptions.models import PromoCode


class FakeSMTP:
    sent: list = []

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        pass

    def login(self, username, password):
        pass

    def send_message(self, msg):
        FakeSMTP.sent.append(msg)


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("STORAGE_LOCAL_ROOT", str(tmp_path / "storage"))
    monkeypatch.setenv("SMTP_SERVER", "smtp.test")
    monkeypatch.setenv("EMAIL_FROM", "noreply@mindfulchampion.test")
    monkeypatch.setenv("APP_BASE_URL", "https://champion.test")
    monkeypatch.setattr("app.champion.modules.notifications.mailer.smtplib.SMTP", FakeSMTP)
    FakeSMTP.sent = []
    auth_module._reset_requests.clear()

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        s.add(User(email="player@example.com", password_hash=generate_password_hash("password1"), first_name="Pat"))
        s.add(PromoCode(code="LAUNCH30", duration_days=30, max_redemptions=1, status="ACTIVE"))
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _signup(client, **overrides):
    body = {"email": "new@example.com", "password": "longpassword", "firstName": "Nia", "lastName": "Lee"}
    body.update(overrides)
    return client.post("/api/signup", json=body)


def test_signup_starts_trial_and_sends_welcome(app, client):
    r = _signup(client)
    assert r.status_code == 201
    user = r.json["user"]
    assert user["email"] == "new@example.com"
    assert user["subscriptionTier"] == "TRIAL"
    assert user["isTrialActive"] is True
    assert r.json["promo"] is None

    with session_scope(app) as s:
        n = s.query(EmailNotification).filter(EmailNotification.email_type == "WELCOME").one()
        assert n.status == "SENT"
        assert n.recipient_email == "new@example.com"
    assert FakeSMTP.sent[0]["To"] == "new@example.com"


def test_signup_with_promo_upgrades_to_pro(app, client):
    r = _signup(client, promoCode="launch30")
    assert r.status_code == 201
    assert r.json["user"]["subscriptionTier"] == "PRO"
    assert r.json["promo"]["durationDays"] == 30
    with session_scope(app) as s:
        promo = s.query(PromoCode).filter(PromoCode.code == "LAUNCH30").one()
        assert promo.times_redeemed == 1
        assert promo.status == "REDEEMED"


def test_signup_validation(client):
    r = _signup(client, lastName="")
    assert r.status_code == 400
    assert r.json == {"error": "Missing required fields"}

    r = _signup(client, password="short")
    assert r.status_code == 400
    assert "at least 8" in r.json["error"]

    r = _signup(client, email="PLAYER@example.com")
    assert r.status_code == 400
    assert r.json == {"error": "User already exists"}


def test_signup_succeeds_when_email_fails(app, client, monkeypatch):
    monkeypatch.setenv("SMTP_SERVER", "")
    app.config["SMTP_SERVER"] = ""
    r = _signup(client)
    assert r.status_code == 201
    with session_scope(app) as s:
        n = s.query(EmailNotification).one()
        assert n.status == "FAILED"
        assert "SMTP server not configured" in n.error


def test_api_login_session_and_logout(app, client):
    r = client.get("/api/auth/session")
    assert r.json["user"] is None
    assert r.json["csrfToken"]

    r = client.post("/api/auth/login", json={"email": "Player@Example.com", "password": "password1"})
    assert r.status_code == 200
    assert r.json["user"]["email"] == "player@example.com"

    r = client.get("/api/auth/session")
    assert r.json["user"]["email"] == "player@example.com"

    client.post("/api/auth/logout", json={})
    r = client.get("/api/auth/session")
    assert r.json["user"] is None

    with session_scope(app) as s:
        u = s.query(User).filter(User.email == "player@example.com").one()
        assert u.login_count == 1
        assert u.last_active_date is not None
        assert s.query(SecurityLog).filter(SecurityLog.event_type == "SUCCESSFUL_LOGIN").count() == 1


def test_login_requires_fields(client):
    r = client.post("/api/auth/login", json={"email": "player@example.com"})
    assert r.status_code == 400
    assert r.json == {"error": "Email and password are required"}

    r = client.post("/api/auth/login", json={"email": "player@example.com", "password": 12345678})
    assert r.status_code == 400
    assert r.json == {"error": "password must be a string"}

    r = client.post("/api/auth/login", json={"email": ["player@example.com"], "password": "password1"})
    assert r.status_code == 400
    assert r.json == {"error": "Email and password are required"}


def test_failed_logins_lock_account_and_block_ip(app, client):
    for _ in range(5):
        r = client.post("/api/auth/login", json={"email": "player@example.com", "password": "wrong"})
        assert r.status_code == 401
        assert r.json == {"error": "Invalid credentials"}

    # Same IP is now blocked, even with the right password.
    r = client.post("/api/auth/login", json={"email": "player@example.com", "password": "password1"})
    assert r.status_code == 403
    assert r.json == {"error": "Access temporarily blocked"}

    # From another address the account itself is locked.
    r = client.post(
        "/api/auth/login",
        json={"email": "player@example.com", "password": "password1"},
        headers={"X-Forwarded-For": "10.0.0.9"},
    )
    assert r.status_code == 423
    assert "Account is locked" in r.json["error"]

    with session_scope(app) as s:
        u = s.query(User).filter(User.email == "player@example.com").one()
        assert u.failed_login_attempts == 5
        assert u.account_locked_until is not None
        assert s.query(BlockedIP).filter(BlockedIP.ip_address == "127.0.0.1").count() == 1
        types = {e.event_type for e in s.query(SecurityLog).all()}
        assert {"FAILED_LOGIN", "IP_BLOCKED", "ACCOUNT_LOCKED"} <= types


def test_unknown_email_is_logged_without_lockout(app, client):
    r = client.post("/api/auth/login", json={"email": "ghost@example.com", "password": "whatever"})
    assert r.status_code == 401
    with session_scope(app) as s:
        log = s.query(SecurityLog).one()
        assert log.event_type == "FAILED_LOGIN"
        assert log.severity == "LOW"
        assert log.user_id is None


def test_forgot_and_reset_password(app, client):
    r = client.post("/api/auth/forgot-password", json={"email": "player@example.com"})
    assert r.status_code == 200
    assert r.json["success"] is True

    with session_scope(app) as s:
        token = s.query(PasswordResetToken).one().token
        n = s.query(EmailNotification).filter(EmailNotification.email_type == "PASSWORD_RESET").one()
        assert f"https://champion.test/auth/reset-password?token={token}" in n.html_content

    r = client.post("/api/auth/reset-password", json={"token": token, "password": "brandnewpass"})
    assert r.status_code == 200
    assert r.json["success"] is True

    # Tokens are single use.
    r = client.post("/api/auth/reset-password", json={"token": token, "password": "anotherpass"})
    assert r.status_code == 400
    assert r.json == {"error": "Invalid or expired reset token"}

    with session_scope(app) as s:
        u = s.query(User).filter(User.email == "player@example.com").one()
        assert check_password_hash(u.password_hash, "brandnewpass")
        assert s.query(SecurityLog).filter(SecurityLog.event_type == "PASSWORD_RESET_COMPLETE").count() == 1

    r = client.post("/api/auth/login", json={"email": "player@example.com", "password": "brandnewpass"})
    assert r.status_code == 200


def test_forgot_password_unknown_email_still_succeeds(app, client):
    r = client.post("/api/auth/forgot-password", json={"email": "ghost@example.com"})
    assert r.status_code == 200
    assert r.json["success"] is True
    with session_scope(app) as s:
        assert s.query(PasswordResetToken).count() == 0
        assert s.query(EmailNotification).count() == 0


def test_forgot_password_rate_limited(client):
    for _ in range(3):
        r = client.post("/api/auth/forgot-password", json={"email": "player@example.com"})
        assert r.status_code == 200
    r = client.post("/api/auth/forgot-password", json={"email": "player@example.com"})
    assert r.status_code == 429


def test_reset_password_form(app, client):
    client.post("/api/auth/forgot-password", json={"email": "player@example.com"})
    with session_scope(app) as s:
        token = s.query(PasswordResetToken).one().token

    r = client.get(f"/auth/reset-password?token={token}")
    assert r.status_code == 200
    assert token.encode() in r.data

    r = client.post("/auth/reset-password", data={"token": token, "password": "formpassword"}, follow_redirects=False)
    assert r.status_code == 302
    assert "/auth/login" in r.headers["Location"]

    r = client.post("/auth/login", data={"email": "player@example.com", "password": "formpassword"})
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/dashboard")
