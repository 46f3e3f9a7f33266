from __future__ import annotations

from flask import Blueprint, g, request

from app.champion.api import BadRequest, NotFound, api_endpoint, query_limit, read_json, require_fields
from app.champion.constants import REDEMPTION_STATUSES, ROLE_SPONSOR, SPONSOR_APPLICATION_STATUSES
from app.champion.db import db_session
from app.champion.modules.sponsors.models import OfferRedemption, SponsorApplication, SponsorOffer
from app.champion.modules.sponsors.service import (
    approve_application,
    approve_offer,
    create_offer,
    marketplace_offers,
    redeem_offer,
    review_application,
    sponsor_profile_for,
    submit_application,
    update_redemption,
    validate_offer_status,
)
from app.champion.rbac import admin_required, login_required, role_required
from app.champion.utils import parse_int

bp = Blueprint("sponsors_api", __name__)

sponsor_required = role_required(ROLE_SPONSOR)


def _redemption_status_filter() -> str | None:
    status = (request.args.get("status") or "").strip().upper()
    if not status:
        return None
    if status not in REDEMPTION_STATUSES:
        raise BadRequest(f"Invalid status. Must be one of: {', '.join(REDEMPTION_STATUSES)}")
    return status


# ---------- Public ----------
@bp.post("/sponsors/apply")
@api_endpoint("Failed to submit application. Please try again or contact support.")
def apply():
    payload = read_json()
    require_fields(
        payload,
        "companyName",
        "email",
        "contactPerson",
        messages={
            "companyName": "Company name is required",
            "email": "Email address is required",
            "contactPerson": "Contact person name is required",
        },
    )
    s = db_session()
    application = submit_application(s, payload)
    s.commit()
    return {
        "success": True,
        "message": "Application submitted successfully! We will review it within 2-3 business days.",
        "applicationId": application.id,
    }


# ---------- Marketplace ----------
@bp.get("/sponsors/offers")
@login_required
@api_endpoint("Failed to fetch offers")
def offers_list():
    s = db_session()
    category = (request.args.get("category") or "").strip() or None
    offers = marketplace_offers(s, category)
    return {"offers": [o.to_dict() for o in offers], "userPoints": g.current_user.reward_points}


@bp.post("/sponsors/redeem")
@login_required
@api_endpoint("Failed to redeem offer")
def redeem():
    payload = read_json()
    require_fields(payload, "offerId", messages={"offerId": "Offer ID is required"})
    offer_id = parse_int(payload.get("offerId"))
    if offer_id is None:
        raise NotFound("Offer not found")
    s = db_session()
    user = g.current_user
    result = redeem_offer(s, user, offer_id, payload.get("shippingAddress"))
    s.commit()
    redemption = result["redemption"]
    return {
        "success": True,
        "redemption": redemption.to_dict(),
        "confirmationCode": redemption.confirmation_code,
        "pointsRemaining": user.reward_points,
        "bonusPointsEarned": result["bonusPointsEarned"],
        "message": "Offer redeemed successfully! Check your email for confirmation details.",
    }


@bp.get("/sponsors/redeem")
@login_required
@api_endpoint("Failed to fetch redemptions")
def redemptions_list():
    s = db_session()
    q = s.query(OfferRedemption).filter(OfferRedemption.user_id == g.current_user.id)
    status = _redemption_status_filter()
    if status:
        q = q.filter(OfferRedemption.status == status)
    redemptions = q.order_by(OfferRedemption.created_at.desc(), OfferRedemption.id.desc()).all()
    return {"redemptions": [r.to_dict() for r in redemptions]}


# ---------- Sponsor portal ----------
@bp.get("/sponsors/portal/offers")
@sponsor_required
@api_endpoint("Failed to fetch offers")
def portal_offers_list():
    s = db_session()
    profile = sponsor_profile_for(s, g.current_user)
    q = s.query(SponsorOffer).filter(SponsorOffer.sponsor_id == profile.id)
    if request.args.get("status"):
        q = q.filter(SponsorOffer.status == validate_offer_status(request.args["status"]))
    offers = q.order_by(SponsorOffer.created_at.desc(), SponsorOffer.id.desc()).all()
    return {"sponsor": profile.to_dict(), "offers": [o.to_dict() for o in offers]}


@bp.post("/sponsors/portal/offers")
@sponsor_required
@api_endpoint("Failed to create offer")
def portal_offers_create():
    payload = read_json()
    require_fields(
        payload,
        "title",
        "pointsCost",
        messages={"title": "Title is required", "pointsCost": "Points cost is required"},
    )
    s = db_session()
    profile = sponsor_profile_for(s, g.current_user)
    offer = create_offer(s, profile, payload)
    s.commit()
    return {"offer": offer.to_dict()}, 201


@bp.get("/sponsors/portal/redemptions")
@sponsor_required
@api_endpoint("Failed to fetch redemptions")
def portal_redemptions_list():
    s = db_session()
    profile = sponsor_profile_for(s, g.current_user)
    q = s.query(OfferRedemption).filter(OfferRedemption.sponsor_id == profile.id)
    status = _redemption_status_filter()
    if status:
        q = q.filter(OfferRedemption.status == status)
    redemptions = q.order_by(OfferRedemption.created_at.desc(), OfferRedemption.id.desc()).limit(query_limit(100, 500)).all()
    return {"redemptions": [r.to_dict() for r in redemptions]}


@bp.patch("/sponsors/portal/redemptions/<int:redemption_id>")
@sponsor_required
@api_endpoint("Failed to update redemption")
def portal_redemptions_update(redemption_id: int):
    payload = read_json()
    s = db_session()
    profile = sponsor_profile_for(s, g.current_user)
    redemption = s.get(OfferRedemption, redemption_id)
    if redemption is None or redemption.sponsor_id != profile.id:
        raise NotFound("Redemption not found")
    update_redemption(redemption, payload)
    s.commit()
    return {"redemption": redemption.to_dict()}


# ---------- Admin ----------
@bp.get("/admin/sponsors/applications")
@admin_required
@api_endpoint("Failed to fetch applications")
def admin_applications_list():
    s = db_session()
    q = s.query(SponsorApplication)
    status = (request.args.get("status") or "").strip().upper()
    if status:
        if status not in SPONSOR_APPLICATION_STATUSES:
            raise BadRequest(f"Invalid status. Must be one of: {', '.join(SPONSOR_APPLICATION_STATUSES)}")
        q = q.filter(SponsorApplication.status == status)
    applications = q.order_by(SponsorApplication.created_at.desc(), SponsorApplication.id.desc()).all()
    return {"applications": [a.to_dict() for a in applications]}


def _application_or_404(s, application_id: int) -> SponsorApplication:
    application = s.get(SponsorApplication, application_id)
    if application is None:
        raise NotFound("Application not found")
    return application


@bp.get("/admin/sponsors/applications/<int:application_id>")
@admin_required
@api_endpoint("Failed to fetch application")
def admin_applications_detail(application_id: int):
    s = db_session()
    return {"application": _application_or_404(s, application_id).to_dict()}


@bp.patch("/admin/sponsors/applications/<int:application_id>")
@admin_required
@api_endpoint("Failed to update application")
def admin_applications_update(application_id: int):
    payload = read_json()
    s = db_session()
    application = _application_or_404(s, application_id)
    review_application(application, payload, g.current_user)
    s.commit()
    return {"application": application.to_dict()}


@bp.post("/admin/sponsors/applications/<int:application_id>/approve")
@admin_required
@api_endpoint("Failed to approve application")
def admin_applications_approve(application_id: int):
    s = db_session()
    application = _application_or_404(s, application_id)
    user, profile = approve_application(s, application, g.current_user)
    s.commit()
    return {
        "success": True,
        "applicationId": application.id,
        "tier": application.interested_tier,
        "sponsorUserId": user.id,
        "sponsorProfile": profile.to_dict(),
    }


@bp.post("/admin/sponsors/offers/<int:offer_id>/approve")
@admin_required
@api_endpoint("Failed to approve offer")
def admin_offers_approve(offer_id: int):
    s = db_session()
    offer = s.get(SponsorOffer, offer_id)
    if offer is None:
        raise NotFound("Offer not found")
    approve_offer(offer, g.current_user)
    s.commit()
    return {"success": True, "offer": offer.to_dict()}
