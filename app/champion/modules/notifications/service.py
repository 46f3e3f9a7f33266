from __future__ import annotations

import json
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from flask import current_app, render_template

from app.champion.modules.notifications.mailer import deliver
from app.champion.modules.notifications.models import EmailNotification
from app.champion.utils import utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from app.champion.models import User
    from app.champion.modules.rewards.models import RewardTier
    from app.champion.modules.sponsors.models import OfferRedemption, SponsorApplication, SponsorOffer


# Email types
WELCOME = "WELCOME"
PASSWORD_RESET = "PASSWORD_RESET"
SPONSOR_APPLICATION = "SPONSOR_APPLICATION"
SPONSOR_ADMIN_ALERT = "SPONSOR_ADMIN_ALERT"
SPONSOR_APPROVAL = "SPONSOR_APPROVAL"
TIER_UNLOCK = "TIER_UNLOCK"
REDEMPTION_CONFIRMATION = "REDEMPTION_CONFIRMATION"
TEST = "TEST"


def _config(config: Mapping | None) -> Mapping:
    return config if config is not None else current_app.config


def _base_url(config: Mapping | None = None) -> str:
    return str(_config(config).get("APP_BASE_URL") or "").rstrip("/")


def send_email(
    s: "Session",
    *,
    to: str,
    subject: str,
    html: str,
    email_type: str,
    text: str | None = None,
    user_id: int | None = None,
    recipient_name: str | None = None,
    metadata: dict[str, Any] | None = None,
    config: Mapping | None = None,
) -> EmailNotification:
    """Send and log. The EmailNotification row is added to the session; caller commits."""
    ok, error = deliver(_config(config), to=to, subject=subject, html=html, text=text)
    now = utcnow()
    notification = EmailNotification(
        user_id=user_id,
        email_type=email_type,
        recipient_email=to,
        recipient_name=recipient_name,
        subject=subject,
        html_content=html,
        text_content=text,
        status="SENT" if ok else "FAILED",
        error=error,
        sent_at=now if ok else None,
        failed_at=None if ok else now,
        retry_count=0,
        metadata_json=json.dumps(metadata, sort_keys=True, default=str) if metadata else None,
    )
    s.add(notification)
    return notification


def resend_notification(s: "Session", notification: EmailNotification, config: Mapping | None = None) -> EmailNotification:
    """Re-send the stored content of a logged email and bump its retry counter."""
    ok, error = deliver(
        _config(config),
        to=notification.recipient_email,
        subject=notification.subject,
        html=notification.html_content,
        text=notification.text_content,
    )
    now = utcnow()
    notification.retry_count = (notification.retry_count or 0) + 1
    if ok:
        notification.status = "SENT"
        notification.sent_at = now
        notification.error = None
    else:
        notification.status = "FAILED"
        notification.failed_at = now
        notification.error = error
    return notification


# ---------- Domain emails ----------
def send_welcome_email(s: "Session", user: "User") -> EmailNotification:
    html = render_template("email/welcome.html", user=user, base_url=_base_url())
    text = (
        f"Hi {user.first_name or user.display_name},\n\n"
        "Welcome to Mindful Champion! Your 7-day free trial has started.\n"
        f"Get started: {_base_url()}/dashboard\n"
    )
    notification = send_email(
        s,
        to=user.email,
        subject="Welcome to Mindful Champion!",
        html=html,
        text=text,
        email_type=WELCOME,
        user_id=user.id,
        recipient_name=user.display_name,
    )
    if notification.status == "SENT":
        user.welcome_email_sent = True
    return notification


def send_password_reset_email(s: "Session", user: "User", token: str, *, ttl_label: str = "1 hour") -> EmailNotification:
    reset_url = f"{_base_url()}/auth/reset-password?token={token}"
    html = render_template("email/password_reset.html", user=user, reset_url=reset_url, ttl_label=ttl_label)
    text = (
        f"Hi {user.first_name or user.display_name},\n\n"
        f"Reset your password: {reset_url}\n"
        f"This link expires in {ttl_label}. If you did not request it, ignore this email.\n"
    )
    return send_email(
        s,
        to=user.email,
        subject="Reset your Mindful Champion password",
        html=html,
        text=text,
        email_type=PASSWORD_RESET,
        user_id=user.id,
        recipient_name=user.display_name,
    )


def send_sponsor_application_emails(s: "Session", application: "SponsorApplication") -> list[EmailNotification]:
    """Acknowledge the applicant and alert the admin mailbox (when configured)."""
    sent = [
        send_email(
            s,
            to=application.email,
            subject="We received your Mindful Champion sponsor application",
            html=render_template("email/sponsor_application.html", application=application),
            text=(
                f"Hi {application.contact_person},\n\n"
                f"Thanks for applying to sponsor Mindful Champion on behalf of {application.company_name}. "
                "Our partnerships team will review your application within 2-3 business days.\n"
            ),
            email_type=SPONSOR_APPLICATION,
            recipient_name=application.contact_person,
            metadata={"sponsorApplicationId": application.id},
        )
    ]
    admin_email = (current_app.config.get("ADMIN_ALERT_EMAIL") or "").strip()
    if admin_email:
        sent.append(
            send_email(
                s,
                to=admin_email,
                subject=f"New sponsor application: {application.company_name}",
                html=render_template(
                    "email/sponsor_admin_alert.html",
                    application=application,
                    review_url=f"{_base_url()}/admin",
                ),
                email_type=SPONSOR_ADMIN_ALERT,
                metadata={"sponsorApplicationId": application.id},
            )
        )
    return sent


def send_sponsor_approval_email(s: "Session", application: "SponsorApplication", user: "User", token: str) -> EmailNotification:
    setup_url = f"{_base_url()}/auth/reset-password?token={token}"
    return send_email(
        s,
        to=application.email,
        subject="Your Mindful Champion sponsor application is approved",
        html=render_template(
            "email/sponsor_approval.html",
            application=application,
            setup_url=setup_url,
            portal_url=f"{_base_url()}/sponsors/portal",
        ),
        text=(
            f"Hi {application.contact_person},\n\n"
            f"{application.company_name} is approved as a Mindful Champion sponsor.\n"
            f"Set your password: {setup_url}\n"
        ),
        email_type=SPONSOR_APPROVAL,
        user_id=user.id,
        recipient_name=application.contact_person,
        metadata={"sponsorApplicationId": application.id},
    )


def send_tier_unlock_email(s: "Session", user: "User", tier: "RewardTier") -> EmailNotification:
    return send_email(
        s,
        to=user.email,
        subject=f"You unlocked the {tier.display_name} tier!",
        html=render_template("email/tier_unlock.html", user=user, tier=tier, rewards_url=f"{_base_url()}/rewards"),
        text=(
            f"Congratulations {user.first_name or user.display_name}!\n\n"
            f"You reached {tier.min_points} points and unlocked the {tier.display_name} tier.\n"
        ),
        email_type=TIER_UNLOCK,
        user_id=user.id,
        recipient_name=user.display_name,
        metadata={"tierId": tier.id, "tierName": tier.name},
    )


def send_redemption_confirmation_email(
    s: "Session",
    user: "User",
    redemption: "OfferRedemption",
    offer: "SponsorOffer",
) -> EmailNotification:
    return send_email(
        s,
        to=user.email,
        subject=f"Redemption confirmed: {offer.title}",
        html=render_template("email/redemption_confirmation.html", user=user, redemption=redemption, offer=offer),
        text=(
            f"Your redemption of {offer.title} is confirmed.\n"
            f"Confirmation code: {redemption.confirmation_code}\n"
            f"Points spent: {redemption.points_spent}\n"
        ),
        email_type=REDEMPTION_CONFIRMATION,
        user_id=user.id,
        recipient_name=user.display_name,
        metadata={"redemptionId": redemption.id, "offerId": offer.id},
    )
