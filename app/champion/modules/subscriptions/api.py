from __future__ import annotations

from flask import Blueprint, g

from app.champion.api import BadRequest, NotFound, api_endpoint, read_json, require_fields, text_field
from app.champion.db import db_session
from app.champion.models import User
from app.champion.modules.subscriptions.models import PromoCode
from app.champion.modules.subscriptions.service import (
    MANAGE_ACTIONS,
    create_promo_code,
    manage_subscription,
    redeem_promo_code,
)
from app.champion.rbac import admin_required, login_required
from app.champion.utils import parse_int

bp = Blueprint("subscriptions_api", __name__)


@bp.post("/admin/subscriptions/manage")
@admin_required
@api_endpoint("Failed to manage subscription")
def subscriptions_manage():
    payload = read_json()
    require_fields(payload, "userId", "action", messages={"userId": "Invalid request", "action": "Invalid request"})
    action = text_field(payload, "action")
    if action not in MANAGE_ACTIONS:
        raise BadRequest("Invalid action")

    s = db_session()
    user = s.get(User, parse_int(payload.get("userId"), 0))
    if not user:
        raise NotFound("User not found")

    message = manage_subscription(s, user, action, g.current_user, payload)
    s.commit()
    return {"success": True, "message": message, "user": user.to_dict()}


@bp.get("/admin/promo-codes")
@admin_required
@api_endpoint("Failed to fetch promo codes")
def promo_codes_list():
    s = db_session()
    codes = s.query(PromoCode).order_by(PromoCode.created_at.desc(), PromoCode.id.desc()).all()
    return {"promoCodes": [c.to_dict() for c in codes]}


@bp.post("/admin/promo-codes")
@admin_required
@api_endpoint("Failed to create promo code")
def promo_codes_create():
    payload = read_json()
    s = db_session()
    promo = create_promo_code(s, payload, g.current_user)
    s.commit()
    return {"promoCode": promo.to_dict()}, 201


@bp.post("/promo/redeem")
@login_required
@api_endpoint("Failed to redeem promo code")
def promo_redeem():
    payload = read_json()
    require_fields(payload, "code", messages={"code": "Promo code is required"})
    s = db_session()
    result = redeem_promo_code(s, g.current_user, text_field(payload, "code"))
    s.commit()
    return {**result, "user": g.current_user.to_dict()}
