from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

from app.champion.api import BadRequest, text_field
from app.champion.audit import SEVERITY_MEDIUM, record_event
from app.champion.constants import TRIAL_DAYS
from app.champion.modules.subscriptions.models import PromoCode
from app.champion.security import ADMIN_USER_UPDATED
from app.champion.utils import parse_datetime, parse_int, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from app.champion.models import User

MANAGE_ACTIONS = ("upgrade", "downgrade", "extend_trial", "cancel")
PAID_TIERS = ("PRO", "PREMIUM")


def start_trial(user: "User", days: int = TRIAL_DAYS) -> None:
    now = utcnow()
    user.subscription_tier = "TRIAL"
    user.subscription_status = "TRIALING"
    user.is_trial_active = True
    user.trial_start_date = now
    user.trial_end_date = now + timedelta(days=days)


def find_redeemable_promo(s: "Session", code: str | None) -> PromoCode | None:
    """Active, under its redemption cap and not expired; otherwise None."""
    code = (code or "").strip().upper()
    if not code:
        return None
    promo = s.query(PromoCode).filter(PromoCode.code == code).one_or_none()
    if not promo or promo.status != "ACTIVE":
        return None
    if promo.max_redemptions is not None and promo.times_redeemed >= promo.max_redemptions:
        return None
    if promo.expires_at is not None and promo.expires_at <= utcnow():
        return None
    return promo


def apply_promo_code(user: "User", promo: PromoCode) -> dict:
    """Upgrade to PRO for the code's duration and consume one redemption."""
    now = utcnow()
    user.subscription_tier = "PRO"
    user.subscription_status = "TRIALING"
    user.is_trial_active = True
    user.trial_start_date = now
    user.trial_end_date = now + timedelta(days=promo.duration_days)

    promo.times_redeemed = (promo.times_redeemed or 0) + 1
    if promo.max_redemptions is not None and promo.times_redeemed >= promo.max_redemptions:
        promo.status = "REDEEMED"
    promo.redeemed_by = user.email
    promo.redeemed_at = now
    return {
        "success": True,
        "code": promo.code,
        "description": promo.description,
        "durationDays": promo.duration_days,
    }


def redeem_promo_code(s: "Session", user: "User", code: str) -> dict:
    promo = find_redeemable_promo(s, code)
    if promo is None:
        raise BadRequest("Invalid or expired promo code")
    return apply_promo_code(user, promo)


def create_promo_code(s: "Session", payload: dict, actor: "User") -> PromoCode:
    code = text_field(payload, "code").upper()
    if not code:
        raise BadRequest("Promo code is required")
    if s.query(PromoCode.id).filter(PromoCode.code == code).first():
        raise BadRequest("Promo code already exists")
    duration_days = parse_int(payload.get("durationDays"), 30)
    if duration_days is None or duration_days <= 0:
        raise BadRequest("durationDays must be a positive number")
    max_redemptions = parse_int(payload.get("maxRedemptions"))
    if max_redemptions is not None and max_redemptions <= 0:
        raise BadRequest("maxRedemptions must be a positive number")
    try:
        expires_at = parse_datetime(payload.get("expiresAt"))
    except ValueError:
        raise BadRequest("Invalid expiresAt")

    promo = PromoCode(
        code=code,
        description=text_field(payload, "description") or None,
        duration_days=duration_days,
        max_redemptions=max_redemptions,
        expires_at=expires_at,
        status="ACTIVE",
        created_by_user_id=actor.id,
    )
    s.add(promo)
    return promo


def manage_subscription(s: "Session", user: "User", action: str, actor: "User", payload: dict) -> str:
    """Admin subscription override. Returns a human-readable result message."""
    now = utcnow()
    reason = text_field(payload, "reason") or None

    if action == "upgrade":
        tier = text_field(payload, "tier", "PRO").upper()
        if tier not in PAID_TIERS:
            raise BadRequest(f"Invalid tier. Must be one of: {', '.join(PAID_TIERS)}")
        user.subscription_tier = tier
        user.subscription_status = "ACTIVE"
        user.is_trial_active = False
        message = f"Upgraded to {tier}"
    elif action == "downgrade":
        user.subscription_tier = "FREE"
        user.subscription_status = None
        user.is_trial_active = False
        message = "Downgraded to FREE"
    elif action == "extend_trial":
        days = parse_int(payload.get("days"), TRIAL_DAYS)
        if days is None or days <= 0:
            raise BadRequest("days must be a positive number")
        base = user.trial_end_date if user.trial_end_date and user.trial_end_date > now else now
        user.trial_end_date = base + timedelta(days=days)
        if user.trial_start_date is None:
            user.trial_start_date = now
        if user.subscription_tier == "FREE":
            user.subscription_tier = "TRIAL"
        user.subscription_status = "TRIALING"
        user.is_trial_active = True
        message = f"Trial extended by {days} days"
    elif action == "cancel":
        user.subscription_tier = "FREE"
        user.subscription_status = "CANCELED"
        user.is_trial_active = False
        message = "Subscription canceled"
    else:
        raise BadRequest("Invalid action")

    record_event(
        s,
        user_id=user.id,
        actor=actor,
        event_type=ADMIN_USER_UPDATED,
        severity=SEVERITY_MEDIUM,
        description=f"Subscription {action} by admin: {reason or 'No reason provided'}",
        metadata={"action": action, "tier": user.subscription_tier, "reason": reason},
    )
    return message
