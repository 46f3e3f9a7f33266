"""Sponsor applications, offers and marketplace redemptions."""
import re
from datetime import timedelta

import pytest
from werkzeug.security import generate_password_hash

from app.champion import create_app
from app.champion.db import session_scope
from app.champion.models import Base, PasswordResetToken, SecurityLog, User
from app.champion.modules.notifications.models import EmailNotification
from app.champion.modules.sponsors.models import OfferRedemption, SponsorApplication, SponsorOffer, SponsorProfile
from app.champion.modules.sponsors.service import generate_confirmation_code
from app.champion.utils import utcnow


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("STORAGE_LOCAL_ROOT", str(tmp_path / "storage"))
    monkeypatch.setenv("ADMIN_ALERT_EMAIL", "partners@mindfulchampion.test")
    monkeypatch.delenv("SMTP_SERVER", raising=False)

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        s.add_all(
            [
                User(email="admin@example.com", password_hash=generate_password_hash("password1"), role="ADMIN"),
                User(email="player@example.com", password_hash=generate_password_hash("password1"), reward_points=100),
                User(email="poor@example.com", password_hash=generate_password_hash("password1"), reward_points=30),
            ]
        )
        sponsor = User(email="brand@example.com", password_hash=generate_password_hash("password1"), role="SPONSOR")
        s.add(sponsor)
        s.flush()
        profile = SponsorProfile(user_id=sponsor.id, company_name="Paddle Co", contact_email="brand@example.com", tier="gold")
        s.add(profile)
        s.flush()
        now = utcnow()
        s.add(
            SponsorOffer(
                sponsor_id=profile.id,
                title="Pro paddle",
                category="equipment",
                points_cost=50,
                retail_value=120.0,
                achievement_bonus_points=5,
                unlimited_stock=True,
                max_redemptions_per_user=1,
                start_date=now - timedelta(days=1),
                end_date=now + timedelta(days=30),
                status="ACTIVE",
                is_approved=True,
            )
        )
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _login(client, email):
    r = client.post("/api/auth/login", json={"email": email, "password": "password1"})
    assert r.status_code == 200, r.json


def _offer_id(app, title="Pro paddle"):
    with session_scope(app) as s:
        return s.query(SponsorOffer.id).filter(SponsorOffer.title == title).scalar()


def _add_offer(app, **fields):
    with session_scope(app) as s:
        profile = s.query(SponsorProfile).one()
        now = utcnow()
        values = dict(
            sponsor_id=profile.id,
            title="Extra offer",
            points_cost=10,
            unlimited_stock=True,
            start_date=now - timedelta(days=1),
            end_date=now + timedelta(days=30),
            status="ACTIVE",
            is_approved=True,
        )
        values.update(fields)
        offer = SponsorOffer(**values)
        s.add(offer)
        s.flush()
        return offer.id


def test_confirmation_code_format():
    assert re.fullmatch(r"MC-\d+-[A-Z0-9]{5}", generate_confirmation_code())


def test_apply_validation(client):
    r = client.post("/api/sponsors/apply", json={"email": "x@brand.test", "contactPerson": "Sam"})
    assert r.status_code == 400
    assert r.json == {"error": "Company name is required"}

    r = client.post("/api/sponsors/apply", json={"companyName": "Brand", "email": "nope", "contactPerson": "Sam"})
    assert r.status_code == 400
    assert r.json == {"error": "Please enter a valid email address"}

    r = client.post(
        "/api/sponsors/apply",
        json={"companyName": "Brand", "email": "x@brand.test", "contactPerson": "Sam", "interestedTier": "titanium"},
    )
    assert r.status_code == 400

    r = client.post(
        "/api/sponsors/apply",
        json={"companyName": "Brand", "email": ["x@brand.test"], "contactPerson": "Sam"},
    )
    assert r.status_code == 400
    assert r.json == {"error": "Please enter a valid email address"}

    r = client.post("/api/sponsors/apply", json={"companyName": 42, "email": "x@brand.test", "contactPerson": "Sam"})
    assert r.status_code == 400
    assert r.json == {"error": "companyName must be a string"}


def test_application_approval_provisions_sponsor_account(app, client):
    r = client.post(
        "/api/sponsors/apply",
        json={
            "companyName": "Kitchen Gear",
            "email": "Sam@KitchenGear.test",
            "contactPerson": "Sam Rivera",
            "interestedTier": "Silver",
        },
    )
    assert r.status_code == 200
    application_id = r.json["applicationId"]

    r = client.post(
        "/api/sponsors/apply",
        json={"companyName": "Kitchen Gear", "email": "sam@kitchengear.test", "contactPerson": "Sam Rivera"},
    )
    assert r.status_code == 400
    assert r.json == {"error": "An application with this email is already being processed"}

    with session_scope(app) as s:
        types = sorted(n.email_type for n in s.query(EmailNotification).all())
        assert types == ["SPONSOR_ADMIN_ALERT", "SPONSOR_APPLICATION"]

    _login(client, "admin@example.com")
    r = client.patch(f"/api/admin/sponsors/applications/{application_id}", json={"status": "REJECTED"})
    assert r.status_code == 400
    assert r.json == {"error": "Rejection reason is required"}

    r = client.patch(
        f"/api/admin/sponsors/applications/{application_id}",
        json={"status": "UNDER_REVIEW", "adminNotes": "Call Tuesday"},
    )
    assert r.json["application"]["status"] == "UNDER_REVIEW"
    assert r.json["application"]["adminNotes"] == "Call Tuesday"

    r = client.get("/api/admin/sponsors/applications?status=UNDER_REVIEW")
    assert [a["id"] for a in r.json["applications"]] == [application_id]

    r = client.post(f"/api/admin/sponsors/applications/{application_id}/approve", json={})
    assert r.status_code == 200
    assert r.json["tier"] == "silver"
    sponsor_user_id = r.json["sponsorUserId"]
    assert r.json["sponsorProfile"]["companyName"] == "Kitchen Gear"

    r = client.post(f"/api/admin/sponsors/applications/{application_id}/approve", json={})
    assert r.status_code == 400
    assert r.json == {"error": "Application already approved"}
    client.post("/api/auth/logout", json={})

    with session_scope(app) as s:
        user = s.get(User, sponsor_user_id)
        assert user.role == "SPONSOR"
        assert user.email == "sam@kitchengear.test"
        assert user.password_hash is None
        token = s.query(PasswordResetToken).filter(PasswordResetToken.user_id == sponsor_user_id).one()
        assert token.expires_at > utcnow() + timedelta(days=6)
        approval = s.query(EmailNotification).filter(EmailNotification.email_type == "SPONSOR_APPROVAL").one()
        assert token.token in approval.html_content
        assert s.query(SecurityLog).filter(SecurityLog.event_type == "SPONSOR_APPROVED").count() == 1
        setup_token = token.token

    # The setup link lets the sponsor choose a password and reach the portal.
    r = client.post("/api/auth/reset-password", json={"token": setup_token, "password": "sponsorpass"})
    assert r.status_code == 200
    r = client.post("/api/auth/login", json={"email": "sam@kitchengear.test", "password": "sponsorpass"})
    assert r.status_code == 200
    r = client.get("/api/sponsors/portal/offers")
    assert r.status_code == 200
    assert r.json["sponsor"]["companyName"] == "Kitchen Gear"
    assert r.json["offers"] == []


def test_sponsor_creates_offer_admin_approves(app, client):
    _login(client, "brand@example.com")
    r = client.post("/api/sponsors/portal/offers", json={"title": "Court shoes"})
    assert r.status_code == 400
    assert r.json == {"error": "Points cost is required"}

    r = client.post(
        "/api/sponsors/portal/offers",
        json={"title": "Court shoes", "pointsCost": 40, "startDate": "2030-02-01", "endDate": "2030-01-01"},
    )
    assert r.status_code == 400
    assert r.json == {"error": "endDate must be after startDate"}

    r = client.post("/api/sponsors/portal/offers", json={"title": "Court shoes", "pointsCost": 40, "retailValue": "lots"})
    assert r.status_code == 400
    assert r.json == {"error": "retailValue must be a number"}

    r = client.post("/api/sponsors/portal/offers", json={"title": "Court shoes", "pointsCost": 40, "category": "apparel"})
    assert r.status_code == 201
    offer = r.json["offer"]
    assert offer["status"] == "DRAFT"
    assert offer["isApproved"] is False
    client.post("/api/auth/logout", json={})

    _login(client, "player@example.com")
    r = client.get("/api/sponsors/offers?category=apparel")
    assert r.json["offers"] == []
    # Players cannot use the sponsor portal.
    r = client.get("/api/sponsors/portal/offers")
    assert r.status_code == 403
    client.post("/api/auth/logout", json={})

    _login(client, "admin@example.com")
    r = client.post(f"/api/admin/sponsors/offers/{offer['id']}/approve", json={})
    assert r.json["offer"]["status"] == "ACTIVE"
    client.post("/api/auth/logout", json={})

    _login(client, "player@example.com")
    r = client.get("/api/sponsors/offers?category=apparel")
    assert [o["title"] for o in r.json["offers"]] == ["Court shoes"]
    assert r.json["userPoints"] == 100


def test_redeem_offer(app, client):
    offer_id = _offer_id(app)
    _login(client, "player@example.com")

    r = client.post("/api/sponsors/redeem", json={})
    assert r.status_code == 400
    assert r.json == {"error": "Offer ID is required"}

    r = client.post("/api/sponsors/redeem", json={"offerId": offer_id, "shippingAddress": {"city": "Austin"}})
    assert r.status_code == 200
    assert r.json["pointsRemaining"] == 100 - 50 + 5
    assert r.json["bonusPointsEarned"] == 5
    assert re.fullmatch(r"MC-\d+-[A-Z0-9]{5}", r.json["confirmationCode"])
    assert r.json["redemption"]["status"] == "PENDING"

    # Per-user limit is one.
    r = client.post("/api/sponsors/redeem", json={"offerId": offer_id})
    assert r.status_code == 400
    assert r.json["error"].startswith("You have reached the redemption limit")

    r = client.get("/api/sponsors/redeem")
    assert len(r.json["redemptions"]) == 1

    with session_scope(app) as s:
        offer = s.get(SponsorOffer, offer_id)
        assert offer.current_redemptions == 1
        assert offer.sponsor.total_redemptions == 1
        assert offer.sponsor.total_revenue == 120.0
        n = s.query(EmailNotification).filter(EmailNotification.email_type == "REDEMPTION_CONFIRMATION").one()
        assert n.recipient_email == "player@example.com"


def test_redeem_insufficient_points(app, client):
    offer_id = _offer_id(app)
    _login(client, "poor@example.com")
    r = client.post("/api/sponsors/redeem", json={"offerId": offer_id})
    assert r.status_code == 400
    assert r.json == {"error": "Insufficient points", "required": 50, "current": 30, "needed": 20}
    with session_scope(app) as s:
        assert s.query(OfferRedemption).count() == 0
        assert s.query(User).filter(User.email == "poor@example.com").one().reward_points == 30


def test_redeem_rules(app, client):
    draft_id = _add_offer(app, title="Draft", status="DRAFT", is_approved=False)
    expired_id = _add_offer(app, title="Expired", end_date=utcnow() - timedelta(hours=1))
    sold_out_id = _add_offer(app, title="Sold out", unlimited_stock=False, stock_quantity=1, current_redemptions=1)
    skill_id = _add_offer(app, title="Advanced clinic", required_skill_level="ADVANCED")
    tier_id = _add_offer(app, title="Premium kit", exclusive_to_tier="PREMIUM")

    _login(client, "player@example.com")
    r = client.post("/api/sponsors/redeem", json={"offerId": 999999})
    assert r.status_code == 404
    r = client.post("/api/sponsors/redeem", json={"offerId": draft_id})
    assert r.json == {"error": "Offer is not available"}
    r = client.post("/api/sponsors/redeem", json={"offerId": expired_id})
    assert r.json == {"error": "Offer is not currently active"}
    r = client.post("/api/sponsors/redeem", json={"offerId": sold_out_id})
    assert r.json == {"error": "Offer is out of stock"}
    r = client.post("/api/sponsors/redeem", json={"offerId": skill_id})
    assert r.status_code == 403
    r = client.post("/api/sponsors/redeem", json={"offerId": tier_id})
    assert r.status_code == 403
    assert r.json == {"error": "This offer is exclusive to PREMIUM members"}


def test_cancelled_redemption_frees_per_user_limit(app, client):
    offer_id = _offer_id(app)
    _login(client, "player@example.com")
    redemption_id = client.post("/api/sponsors/redeem", json={"offerId": offer_id}).json["redemption"]["id"]
    client.post("/api/auth/logout", json={})

    _login(client, "brand@example.com")
    r = client.patch(f"/api/sponsors/portal/redemptions/{redemption_id}", json={"status": "CANCELLED"})
    assert r.json["redemption"]["status"] == "CANCELLED"
    client.post("/api/auth/logout", json={})

    _login(client, "player@example.com")
    r = client.post("/api/sponsors/redeem", json={"offerId": offer_id})
    assert r.status_code == 200


def test_sponsor_fulfils_redemption(app, client):
    offer_id = _offer_id(app)
    _login(client, "player@example.com")
    redemption_id = client.post("/api/sponsors/redeem", json={"offerId": offer_id}).json["redemption"]["id"]
    client.post("/api/auth/logout", json={})

    _login(client, "brand@example.com")
    r = client.get("/api/sponsors/portal/redemptions")
    assert [x["id"] for x in r.json["redemptions"]] == [redemption_id]

    r = client.patch(
        f"/api/sponsors/portal/redemptions/{redemption_id}",
        json={"status": "shipped", "trackingNumber": "1Z999"},
    )
    assert r.json["redemption"]["status"] == "SHIPPED"
    assert r.json["redemption"]["trackingNumber"] == "1Z999"
    assert r.json["redemption"]["fulfilledAt"] is not None

    r = client.patch(f"/api/sponsors/portal/redemptions/{redemption_id}", json={"status": "LOST"})
    assert r.status_code == 400

    r = client.get("/sponsors/portal")
    assert r.status_code == 200
    assert b"Paddle Co" in r.data
