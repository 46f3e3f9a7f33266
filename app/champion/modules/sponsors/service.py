from __future__ import annotations

import logging
import secrets
import string
import time
from datetime import timedelta
from typing import TYPE_CHECKING

from app.champion.api import ApiError, BadRequest, Forbidden, NotFound, number_field, text_field
from app.champion.audit import SEVERITY_MEDIUM, record_event
from app.champion.constants import (
    OFFER_STATUSES,
    REDEMPTION_INACTIVE_STATUSES,
    REDEMPTION_STATUSES,
    ROLE_ADMIN,
    ROLE_SPONSOR,
    SKILL_LEVELS,
    SPONSOR_ACTIVE_APPLICATION_STATUSES,
    SPONSOR_TIERS,
    SUBSCRIPTION_TIERS,
)
from app.champion.models import User
from app.champion.modules.notifications.service import (
    send_redemption_confirmation_email,
    send_sponsor_application_emails,
    send_sponsor_approval_email,
)
from app.champion.modules.sponsors.models import OfferRedemption, SponsorApplication, SponsorOffer, SponsorProfile
from app.champion.security import SPONSOR_APPROVED, create_password_reset_token
from app.champion.utils import is_valid_email, normalize_email, parse_datetime, parse_int, rank_of, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

# Sponsor accounts set their own password through a reset link.
SPONSOR_SETUP_TOKEN_MINUTES = 7 * 24 * 60
DEFAULT_OFFER_DAYS = 90
_CODE_ALPHABET = string.ascii_uppercase + string.digits


def _text(payload: dict, key: str) -> str | None:
    return text_field(payload, key) or None


# ---------- Applications ----------
def submit_application(s: "Session", payload: dict) -> SponsorApplication:
    email = normalize_email(payload.get("email"))
    if not is_valid_email(email):
        raise BadRequest("Please enter a valid email address")

    existing = (
        s.query(SponsorApplication)
        .filter(
            SponsorApplication.email == email,
            SponsorApplication.status.in_(SPONSOR_ACTIVE_APPLICATION_STATUSES),
        )
        .first()
    )
    if existing is not None:
        raise BadRequest("An application with this email is already being processed")

    tier = text_field(payload, "interestedTier", "bronze").lower()
    if tier not in SPONSOR_TIERS:
        raise BadRequest(f"Invalid interestedTier. Must be one of: {', '.join(SPONSOR_TIERS)}")

    application = SponsorApplication(
        company_name=_text(payload, "companyName"),
        contact_person=_text(payload, "contactPerson"),
        email=email,
        phone=_text(payload, "phone"),
        website=_text(payload, "website"),
        industry=_text(payload, "industry"),
        interested_tier=tier,
        proposed_products=_text(payload, "proposedProducts"),
        marketing_goals=_text(payload, "marketingGoals"),
        message=_text(payload, "message"),
        status="PENDING",
    )
    s.add(application)
    s.flush()
    send_sponsor_application_emails(s, application)
    logger.info("Sponsor application %s submitted by %s", application.id, email)
    return application


def review_application(application: SponsorApplication, payload: dict, reviewer: User) -> SponsorApplication:
    """Move an application to UNDER_REVIEW or REJECTED; approval has its own path."""
    status = text_field(payload, "status").upper()
    if status:
        if status not in ("UNDER_REVIEW", "REJECTED"):
            raise BadRequest("Invalid status. Must be one of: UNDER_REVIEW, REJECTED")
        if application.status == "APPROVED":
            raise BadRequest("Application already approved")
        if status == "REJECTED":
            reason = _text(payload, "rejectionReason")
            if not reason:
                raise BadRequest("Rejection reason is required")
            application.rejection_reason = reason
        application.status = status
        application.reviewed_at = utcnow()
        application.reviewed_by_user_id = reviewer.id
    if "adminNotes" in payload:
        application.admin_notes = _text(payload, "adminNotes")
    return application


def approve_application(s: "Session", application: SponsorApplication, admin: User) -> tuple[User, SponsorProfile]:
    """
    Approve, provision a SPONSOR account with its profile, and email the
    applicant a password-setup link. An existing user with the same email is
    promoted rather than duplicated.
    """
    if application.status == "APPROVED":
        raise BadRequest("Application already approved")

    now = utcnow()
    application.status = "APPROVED"
    application.reviewed_at = now
    application.reviewed_by_user_id = admin.id

    user = s.query(User).filter(User.email == application.email).one_or_none()
    if user is None:
        first, _, last = application.contact_person.partition(" ")
        user = User(
            email=application.email,
            password_hash=None,
            first_name=first or None,
            last_name=last or None,
            name=application.contact_person,
            role=ROLE_SPONSOR,
            is_active=True,
        )
        s.add(user)
        s.flush()
    elif user.role != ROLE_ADMIN:
        user.role = ROLE_SPONSOR

    profile = s.query(SponsorProfile).filter(SponsorProfile.user_id == user.id).one_or_none()
    if profile is None:
        profile = SponsorProfile(
            user_id=user.id,
            application_id=application.id,
            company_name=application.company_name,
            contact_email=application.email,
            website=application.website,
            tier=application.interested_tier,
            is_active=True,
        )
        s.add(profile)
        s.flush()

    reset = create_password_reset_token(s, user, None, ttl_minutes=SPONSOR_SETUP_TOKEN_MINUTES)
    send_sponsor_approval_email(s, application, user, reset.token)
    record_event(
        s,
        user_id=user.id,
        actor=admin,
        event_type=SPONSOR_APPROVED,
        severity=SEVERITY_MEDIUM,
        description=f"Sponsor application approved: {application.company_name}",
        metadata={"applicationId": application.id, "sponsorProfileId": profile.id, "tier": application.interested_tier},
    )
    logger.info("Sponsor application %s approved by %s", application.id, admin.email)
    return user, profile


# ---------- Offers ----------
def sponsor_profile_for(s: "Session", user: User) -> SponsorProfile:
    profile = s.query(SponsorProfile).filter(SponsorProfile.user_id == user.id).one_or_none()
    if profile is None:
        raise NotFound("Sponsor profile not found")
    return profile


def _parse_when(payload: dict, key: str):
    try:
        return parse_datetime(payload.get(key))
    except ValueError:
        raise BadRequest(f"Invalid {key}")


def create_offer(s: "Session", profile: SponsorProfile, payload: dict) -> SponsorOffer:
    """New offers start as DRAFT and wait for admin approval."""
    points_cost = parse_int(payload.get("pointsCost"))
    if points_cost is None or points_cost <= 0:
        raise BadRequest("pointsCost must be a positive number")

    start = _parse_when(payload, "startDate") or utcnow()
    end = _parse_when(payload, "endDate") or start + timedelta(days=DEFAULT_OFFER_DAYS)
    if end <= start:
        raise BadRequest("endDate must be after startDate")

    skill = _text(payload, "requiredSkillLevel")
    if skill and skill.upper() not in SKILL_LEVELS:
        raise BadRequest(f"Invalid requiredSkillLevel. Must be one of: {', '.join(SKILL_LEVELS)}")
    tier = _text(payload, "exclusiveToTier")
    if tier and tier.upper() not in SUBSCRIPTION_TIERS:
        raise BadRequest(f"Invalid exclusiveToTier. Must be one of: {', '.join(SUBSCRIPTION_TIERS)}")

    stock = parse_int(payload.get("stockQuantity"))
    offer = SponsorOffer(
        sponsor_id=profile.id,
        sponsor=profile,
        title=_text(payload, "title"),
        description=_text(payload, "description"),
        category=_text(payload, "category"),
        image_url=_text(payload, "imageUrl"),
        points_cost=points_cost,
        retail_value=number_field(payload, "retailValue", 0.0),
        achievement_bonus_points=parse_int(payload.get("achievementBonusPoints")),
        unlimited_stock=stock is None and bool(payload.get("unlimitedStock", True)),
        stock_quantity=stock,
        max_total_redemptions=parse_int(payload.get("maxTotalRedemptions")),
        max_redemptions_per_user=parse_int(payload.get("maxRedemptionsPerUser"), 1) or 1,
        required_skill_level=skill.upper() if skill else None,
        exclusive_to_tier=tier.upper() if tier else None,
        terms=payload.get("terms") if isinstance(payload.get("terms"), list) else None,
        start_date=start,
        end_date=end,
        status="DRAFT",
        is_approved=False,
    )
    s.add(offer)
    return offer


def approve_offer(offer: SponsorOffer, admin: User) -> SponsorOffer:
    if offer.is_approved and offer.status == "ACTIVE":
        raise BadRequest("Offer already approved")
    offer.is_approved = True
    offer.status = "ACTIVE"
    offer.approved_at = utcnow()
    offer.approved_by_user_id = admin.id
    return offer


def marketplace_offers(s: "Session", category: str | None = None) -> list[SponsorOffer]:
    now = utcnow()
    q = s.query(SponsorOffer).filter(
        SponsorOffer.status == "ACTIVE",
        SponsorOffer.is_approved.is_(True),
        SponsorOffer.start_date <= now,
        SponsorOffer.end_date >= now,
    )
    if category:
        q = q.filter(SponsorOffer.category == category)
    return q.order_by(SponsorOffer.points_cost.asc(), SponsorOffer.id.asc()).all()


# ---------- Redemptions ----------
def generate_confirmation_code() -> str:
    suffix = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(5))
    return f"MC-{int(time.time() * 1000)}-{suffix}"


def redeem_offer(s: "Session", user: User, offer_id: int, shipping_address: dict | None = None) -> dict:
    """
    Validate every redemption rule, then spend points and record the
    redemption. All writes land in the caller's single commit.
    """
    offer = s.get(SponsorOffer, offer_id)
    if offer is None:
        raise NotFound("Offer not found")
    if offer.status != "ACTIVE" or not offer.is_approved:
        raise BadRequest("Offer is not available")

    now = utcnow()
    if now < offer.start_date or now > offer.end_date:
        raise BadRequest("Offer is not currently active")
    if not offer.unlimited_stock and offer.stock_quantity is not None and offer.current_redemptions >= offer.stock_quantity:
        raise BadRequest("Offer is out of stock")
    if offer.max_total_redemptions and offer.current_redemptions >= offer.max_total_redemptions:
        raise BadRequest("Offer redemption limit reached")

    if user.reward_points < offer.points_cost:
        raise ApiError(
            "Insufficient points",
            400,
            required=offer.points_cost,
            current=user.reward_points,
            needed=offer.points_cost - user.reward_points,
        )
    if offer.required_skill_level and rank_of(user.skill_level, SKILL_LEVELS) < rank_of(offer.required_skill_level, SKILL_LEVELS):
        raise Forbidden(f"This offer requires {offer.required_skill_level} skill level or higher")
    if offer.exclusive_to_tier and rank_of(user.subscription_tier, SUBSCRIPTION_TIERS) < rank_of(offer.exclusive_to_tier, SUBSCRIPTION_TIERS):
        raise Forbidden(f"This offer is exclusive to {offer.exclusive_to_tier} members")

    used = (
        s.query(OfferRedemption)
        .filter(
            OfferRedemption.user_id == user.id,
            OfferRedemption.offer_id == offer.id,
            OfferRedemption.status.notin_(REDEMPTION_INACTIVE_STATUSES),
        )
        .count()
    )
    if used >= offer.max_redemptions_per_user:
        raise BadRequest(f"You have reached the redemption limit for this offer ({offer.max_redemptions_per_user})")

    bonus = offer.achievement_bonus_points or 0
    user.reward_points = user.reward_points - offer.points_cost + bonus

    redemption = OfferRedemption(
        user_id=user.id,
        offer_id=offer.id,
        offer=offer,
        sponsor_id=offer.sponsor_id,
        points_spent=offer.points_cost,
        bonus_points_earned=bonus or None,
        retail_value=offer.retail_value,
        confirmation_code=generate_confirmation_code(),
        shipping_address=shipping_address if isinstance(shipping_address, dict) else None,
        status="PENDING",
    )
    s.add(redemption)

    offer.current_redemptions += 1
    offer.redemption_count += 1
    sponsor = offer.sponsor
    sponsor.total_redemptions += 1
    sponsor.total_revenue = (sponsor.total_revenue or 0.0) + (offer.retail_value or 0.0)
    s.flush()

    send_redemption_confirmation_email(s, user, redemption, offer)
    logger.info("User %s redeemed offer %s (%s)", user.id, offer.id, redemption.confirmation_code)
    return {"redemption": redemption, "bonusPointsEarned": bonus}


def update_redemption(redemption: OfferRedemption, payload: dict) -> OfferRedemption:
    """Sponsor-side fulfilment update."""
    if "status" in payload:
        status = text_field(payload, "status").upper()
        if status not in REDEMPTION_STATUSES:
            raise BadRequest(f"Invalid status. Must be one of: {', '.join(REDEMPTION_STATUSES)}")
        redemption.status = status
        if status in ("FULFILLED", "SHIPPED"):
            redemption.fulfilled_at = redemption.fulfilled_at or utcnow()
    if "trackingNumber" in payload:
        redemption.tracking_number = _text(payload, "trackingNumber")
    if "sponsorNotes" in payload:
        redemption.sponsor_notes = _text(payload, "sponsorNotes")
    return redemption


def validate_offer_status(status: str) -> str:
    status = (status or "").strip().upper()
    if status not in OFFER_STATUSES:
        raise BadRequest(f"Invalid status. Must be one of: {', '.join(OFFER_STATUSES)}")
    return status
