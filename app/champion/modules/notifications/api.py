from __future__ import annotations

from flask import Blueprint, request

from app.champion.api import NotFound, api_endpoint, query_limit, read_json, require_fields
from app.champion.db import db_session
from app.champion.modules.notifications.models import EmailNotification
from app.champion.modules.notifications.service import resend_notification
from app.champion.rbac import admin_required
from app.champion.utils import parse_int

bp = Blueprint("notifications_api", __name__)


@bp.get("/admin/email-notifications")
@admin_required
@api_endpoint("Failed to fetch email notifications")
def email_notifications_list():
    s = db_session()
    q = s.query(EmailNotification)

    status = (request.args.get("status") or "").strip().upper()
    if status:
        q = q.filter(EmailNotification.status == status)
    email_type = (request.args.get("type") or "").strip().upper()
    if email_type:
        q = q.filter(EmailNotification.email_type == email_type)
    search = (request.args.get("q") or "").strip()
    if search:
        like = f"%{search}%"
        q = q.filter(EmailNotification.recipient_email.ilike(like) | EmailNotification.subject.ilike(like))

    total = q.count()
    rows = q.order_by(EmailNotification.created_at.desc(), EmailNotification.id.desc()).limit(query_limit(50, 200)).all()
    return {"notifications": [n.to_dict() for n in rows], "total": total}


@bp.get("/admin/email-notifications/<int:notification_id>")
@admin_required
@api_endpoint("Failed to fetch email notification")
def email_notification_detail(notification_id: int):
    s = db_session()
    notification = s.get(EmailNotification, notification_id)
    if not notification:
        raise NotFound("Email notification not found")
    return {"notification": notification.to_dict(include_content=True)}


@bp.post("/admin/email-notifications/resend")
@admin_required
@api_endpoint("Failed to resend email")
def email_notification_resend():
    payload = read_json()
    require_fields(payload, "emailNotificationId", messages={"emailNotificationId": "Email notification ID required"})

    s = db_session()
    notification = s.get(EmailNotification, parse_int(payload.get("emailNotificationId"), 0))
    if not notification:
        raise NotFound("Email notification not found")

    resend_notification(s, notification)
    s.commit()
    return {
        "success": notification.status == "SENT",
        "notification": notification.to_dict(),
    }
