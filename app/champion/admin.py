from __future__ import annotations

from datetime import timedelta

from flask import Blueprint, g, request
from sqlalchemy import func, or_

from app.champion.api import BadRequest, NotFound, api_endpoint, query_limit, read_json, require_fields, text_field
from app.champion.audit import SEVERITY_HIGH, SEVERITY_MEDIUM, record_event
from app.champion.constants import ROLES, SUBSCRIPTION_STATUSES, SUBSCRIPTION_TIERS
from app.champion.db import db_session
from app.champion.models import BlockedIP, PasswordResetToken, SecurityLog, User
from app.champion.modules.achievements.models import (
    AchievementProgress,
    DrillCompletion,
    UserAchievement,
    UserAchievementStats,
)
from app.champion.modules.rewards.models import TierUnlock
from app.champion.modules.sponsors.models import OfferRedemption, SponsorApplication, SponsorProfile
from app.champion.modules.support.models import SupportTicket
from app.champion.modules.training.models import Goal, UserProgram
from app.champion.modules.videos.models import VideoAnalysis
from app.champion.modules.wearables.models import HealthData, WearableDevice
from app.champion.rbac import admin_required
from app.champion.security import (
    ADMIN_USER_DELETED,
    ADMIN_USER_UPDATED,
    block_ip,
    create_password_reset_token,
    lock_user_account,
    unblock_ip,
    unlock_user_account,
)
from app.champion.utils import iso, normalize_email, parse_bool, parse_datetime, parse_int, utcnow

bp = Blueprint("admin_api", __name__)

ADMIN_USER_TAKE = 100
ADMIN_RESET_TOKEN_MINUTES = 24 * 60

# Rows removed with a user, children before parents.
_USER_OWNED_MODELS = (
    HealthData,
    WearableDevice,
    OfferRedemption,
    SupportTicket,
    VideoAnalysis,
    UserProgram,
    Goal,
    TierUnlock,
    DrillCompletion,
    AchievementProgress,
    UserAchievement,
    UserAchievementStats,
    PasswordResetToken,
)


def _user_or_404(s, user_id) -> User:
    uid = parse_int(user_id)
    user = s.get(User, uid) if uid is not None else None
    if user is None:
        raise NotFound("User not found")
    return user


# ---------- Users ----------
@bp.get("/admin/users")
@admin_required
@api_endpoint("Failed to fetch users")
def users_list():
    s = db_session()
    q = s.query(User)
    search = (request.args.get("search") or request.args.get("q") or "").strip()
    if search:
        like = f"%{search.lower()}%"
        q = q.filter(
            or_(
                func.lower(User.email).like(like),
                func.lower(User.name).like(like),
                func.lower(User.first_name).like(like),
                func.lower(User.last_name).like(like),
            )
        )
    role = (request.args.get("role") or "").strip().upper()
    if role:
        if role not in ROLES:
            raise BadRequest(f"Invalid role. Must be one of: {', '.join(ROLES)}")
        q = q.filter(User.role == role)
    tier = (request.args.get("tier") or "").strip().upper()
    if tier:
        q = q.filter(User.subscription_tier == tier)
    total = q.count()
    users = q.order_by(User.created_at.desc(), User.id.desc()).limit(ADMIN_USER_TAKE).all()
    return {"users": [u.to_dict() for u in users], "total": total}


def _timeline(logs, completions, goals, redemptions) -> list[dict]:
    items = []
    for log in logs:
        items.append({"type": "security", "title": log.event_type, "description": log.description, "at": log.created_at})
    for c in completions:
        items.append({"type": "drill", "title": c.drill_name or c.drill_id, "description": c.drill_category, "at": c.completed_at})
    for goal in goals:
        items.append({"type": "goal", "title": goal.goal_text, "description": goal.status, "at": goal.created_at})
    for r in redemptions:
        items.append({"type": "redemption", "title": r.confirmation_code, "description": f"{r.points_spent} points", "at": r.created_at})
    items.sort(key=lambda i: i["at"], reverse=True)
    return [{**i, "at": iso(i["at"])} for i in items[:50]]


@bp.get("/admin/users/<int:user_id>")
@admin_required
@api_endpoint("Failed to fetch user details")
def users_detail(user_id: int):
    s = db_session()
    user = _user_or_404(s, user_id)

    logs = (
        s.query(SecurityLog)
        .filter(SecurityLog.user_id == user.id)
        .order_by(SecurityLog.created_at.desc(), SecurityLog.id.desc())
        .limit(20)
        .all()
    )
    goals = s.query(Goal).filter(Goal.user_id == user.id).order_by(Goal.created_at.desc()).all()
    achievements = (
        s.query(UserAchievement)
        .filter(UserAchievement.user_id == user.id)
        .order_by(UserAchievement.unlocked_at.desc())
        .all()
    )
    redemptions = (
        s.query(OfferRedemption)
        .filter(OfferRedemption.user_id == user.id)
        .order_by(OfferRedemption.created_at.desc())
        .all()
    )
    tickets = s.query(SupportTicket).filter(SupportTicket.user_id == user.id).order_by(SupportTicket.created_at.desc()).all()
    completions = (
        s.query(DrillCompletion)
        .filter(DrillCompletion.user_id == user.id)
        .order_by(DrillCompletion.completed_at.desc())
        .limit(50)
        .all()
    )
    programs = s.query(UserProgram).filter(UserProgram.user_id == user.id).all()

    stats = {
        "drillsCompleted": sum(1 for c in completions if c.status == "COMPLETED"),
        "goalsActive": sum(1 for goal in goals if goal.status == "ACTIVE"),
        "goalsCompleted": sum(1 for goal in goals if goal.status == "COMPLETED"),
        "programsCompleted": sum(1 for p in programs if p.status == "COMPLETED"),
        "programsInProgress": sum(1 for p in programs if p.status == "IN_PROGRESS"),
        "achievementsUnlocked": len(achievements),
        "videosUploaded": s.query(VideoAnalysis).filter(VideoAnalysis.user_id == user.id).count(),
        "pointsSpent": sum(r.points_spent for r in redemptions),
        "openTickets": sum(1 for t in tickets if t.status in ("OPEN", "IN_PROGRESS")),
    }
    return {
        "user": {**user.to_dict(), "loginCount": user.login_count, "failedLoginAttempts": user.failed_login_attempts,
                 "accountLockedReason": user.account_locked_reason},
        "stats": stats,
        "securityLogs": [log.to_dict() for log in logs],
        "goals": [goal.to_dict() for goal in goals],
        "achievements": [ua.to_dict() for ua in achievements],
        "redemptions": [r.to_dict() for r in redemptions],
        "supportTickets": [t.to_dict() for t in tickets],
        "timeline": _timeline(logs, completions, goals, redemptions),
    }


def _update_status(s, user: User, data: dict, admin: User) -> dict:
    locked = parse_bool(data.get("locked"))
    if locked is None:
        raise BadRequest("locked must be true or false")
    if locked:
        if user.id == admin.id:
            raise BadRequest("Cannot lock your own account")
        try:
            until = parse_datetime(data.get("lockedUntil"))
        except ValueError:
            raise BadRequest("Invalid lockedUntil")
        lock_user_account(s, user, text_field(data, "reason"), admin, until=until)
    else:
        unlock_user_account(s, user, admin)
    return user.to_dict()


def _update_subscription(s, user: User, data: dict, admin: User) -> dict:
    tier = text_field(data, "tier").upper()
    if tier not in SUBSCRIPTION_TIERS:
        raise BadRequest(f"Invalid tier. Must be one of: {', '.join(SUBSCRIPTION_TIERS)}")
    status = text_field(data, "status").upper() or None
    if status and status not in SUBSCRIPTION_STATUSES:
        raise BadRequest(f"Invalid status. Must be one of: {', '.join(SUBSCRIPTION_STATUSES)}")
    before = {"tier": user.subscription_tier, "status": user.subscription_status}
    user.subscription_tier = tier
    user.subscription_status = status
    if tier != "TRIAL":
        user.is_trial_active = False
    record_event(
        s,
        user_id=user.id,
        actor=admin,
        event_type=ADMIN_USER_UPDATED,
        severity=SEVERITY_MEDIUM,
        description=f"Subscription changed to {tier}/{status or '-'} by admin",
        metadata={"before": before, "after": {"tier": tier, "status": status}},
    )
    return user.to_dict()


def _update_role(s, user: User, data: dict, admin: User) -> dict:
    role = text_field(data, "role").upper()
    if role not in ROLES:
        raise BadRequest(f"Invalid role. Must be one of: {', '.join(ROLES)}")
    if user.id == admin.id and role != user.role:
        raise BadRequest("Cannot change your own role")
    before = user.role
    user.role = role
    record_event(
        s,
        user_id=user.id,
        actor=admin,
        event_type=ADMIN_USER_UPDATED,
        severity=SEVERITY_HIGH,
        description=f"Role changed from {before} to {role} by admin",
        metadata={"before": before, "after": role},
    )
    return user.to_dict()


def _reset_password(s, user: User, data: dict, admin: User) -> dict:
    reset = create_password_reset_token(s, user, "admin", ttl_minutes=ADMIN_RESET_TOKEN_MINUTES)
    record_event(
        s,
        user_id=user.id,
        actor=admin,
        event_type=ADMIN_USER_UPDATED,
        severity=SEVERITY_MEDIUM,
        description="Password reset token issued by admin",
    )
    return {"token": reset.token, "expiresAt": iso(reset.expires_at)}


_USER_ACTIONS = {
    "updateStatus": _update_status,
    "updateSubscription": _update_subscription,
    "updateRole": _update_role,
    "resetPassword": _reset_password,
}


@bp.patch("/admin/users/<int:user_id>")
@admin_required
@api_endpoint("Failed to update user")
def users_update(user_id: int):
    payload = read_json()
    handler = _USER_ACTIONS.get(text_field(payload, "action"))
    if handler is None:
        raise BadRequest("Invalid action")
    data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
    s = db_session()
    user = _user_or_404(s, user_id)
    result = handler(s, user, data, g.current_user)
    s.commit()
    return {"success": True, "data": result}


@bp.delete("/admin/users/<int:user_id>")
@admin_required
@api_endpoint("Failed to delete user")
def users_delete(user_id: int):
    payload = read_json()
    s = db_session()
    admin = g.current_user
    user = _user_or_404(s, user_id)
    if user.id == admin.id:
        raise BadRequest("Cannot delete your own account")
    confirm = payload.get("confirmEmail")
    if confirm is not None and normalize_email(confirm) != user.email:
        raise BadRequest("Email confirmation does not match", requiredEmail=user.email)

    reason = text_field(payload, "reason", "No reason provided")
    record_event(
        s,
        user_id=None,
        actor=admin,
        event_type=ADMIN_USER_DELETED,
        severity=SEVERITY_HIGH,
        description=f"User account {user.email} (ID: {user.id}) deleted by admin {admin.email}. Reason: {reason}",
        metadata={"deletedUserId": user.id, "deletedUserEmail": user.email, "reason": reason},
    )

    s.query(SecurityLog).filter(SecurityLog.user_id == user.id).update({"user_id": None}, synchronize_session=False)
    profile = s.query(SponsorProfile).filter(SponsorProfile.user_id == user.id).one_or_none()
    if profile is not None:
        s.delete(profile)
    for model in _USER_OWNED_MODELS:
        for row in s.query(model).filter(model.user_id == user.id).all():
            s.delete(row)
    s.flush()
    s.delete(user)
    s.commit()
    return {"success": True, "message": "User deleted successfully"}


# ---------- Security ----------
@bp.post("/admin/security/lock")
@admin_required
@api_endpoint("Failed to lock account")
def security_lock():
    payload = read_json()
    require_fields(
        payload,
        "userId",
        "reason",
        messages={"userId": "User ID is required", "reason": "Lock reason is required"},
    )
    s = db_session()
    admin = g.current_user
    user = _user_or_404(s, payload.get("userId"))
    if user.id == admin.id:
        raise BadRequest("Cannot lock your own account")
    minutes = parse_int(payload.get("durationMinutes"))
    until = utcnow() + timedelta(minutes=minutes) if minutes and minutes > 0 else None
    lock_user_account(s, user, text_field(payload, "reason"), admin, until=until)
    s.commit()
    return {"success": True, "user": user.to_dict()}


@bp.post("/admin/security/unlock")
@admin_required
@api_endpoint("Failed to unlock account")
def security_unlock():
    payload = read_json()
    require_fields(payload, "userId", messages={"userId": "User ID is required"})
    s = db_session()
    user = _user_or_404(s, payload.get("userId"))
    unlock_user_account(s, user, g.current_user)
    s.commit()
    return {"success": True, "user": user.to_dict()}


@bp.post("/admin/security/block-ip")
@admin_required
@api_endpoint("Failed to block IP")
def security_block_ip():
    payload = read_json()
    require_fields(payload, "ipAddress", messages={"ipAddress": "IP address is required"})
    ip = text_field(payload, "ipAddress")[:64]
    reason = text_field(payload, "reason", "Blocked by admin")
    duration = None if parse_bool(payload.get("permanent")) else parse_int(payload.get("durationMinutes"))
    s = db_session()
    blocked = block_ip(s, ip, reason, duration_minutes=duration if duration and duration > 0 else None, blocked_by=g.current_user)
    s.commit()
    return {"success": True, "blockedIp": blocked.to_dict()}


@bp.post("/admin/security/unblock-ip")
@admin_required
@api_endpoint("Failed to unblock IP")
def security_unblock_ip():
    payload = read_json()
    require_fields(payload, "ipAddress", messages={"ipAddress": "IP address is required"})
    s = db_session()
    if not unblock_ip(s, text_field(payload, "ipAddress"), g.current_user):
        raise NotFound("No active block for this IP")
    s.commit()
    return {"success": True}


@bp.get("/admin/security/logs")
@admin_required
@api_endpoint("Failed to fetch security logs")
def security_logs():
    s = db_session()
    q = s.query(SecurityLog)
    event_type = (request.args.get("eventType") or "").strip().upper()
    if event_type:
        q = q.filter(SecurityLog.event_type == event_type)
    severity = (request.args.get("severity") or "").strip().upper()
    if severity:
        q = q.filter(SecurityLog.severity == severity)
    user_id = parse_int(request.args.get("userId"))
    if user_id is not None:
        q = q.filter(SecurityLog.user_id == user_id)
    logs = q.order_by(SecurityLog.created_at.desc(), SecurityLog.id.desc()).limit(query_limit(100, 500)).all()
    return {"logs": [log.to_dict() for log in logs]}


@bp.get("/admin/security/blocked-ips")
@admin_required
@api_endpoint("Failed to fetch blocked IPs")
def security_blocked_ips():
    s = db_session()
    q = s.query(BlockedIP)
    if not parse_bool(request.args.get("all")):
        now = utcnow()
        q = q.filter(BlockedIP.unblocked.is_(False)).filter(or_(BlockedIP.expires_at.is_(None), BlockedIP.expires_at > now))
    rows = q.order_by(BlockedIP.blocked_at.desc(), BlockedIP.id.desc()).limit(query_limit(100, 500)).all()
    return {"blockedIps": [b.to_dict() for b in rows]}


# ---------- Analytics ----------
@bp.get("/admin/analytics/overview")
@admin_required
@api_endpoint("Failed to fetch analytics")
def analytics_overview():
    s = db_session()
    now = utcnow()
    by_tier = dict(s.query(User.subscription_tier, func.count(User.id)).group_by(User.subscription_tier).all())
    return {
        "users": {
            "total": s.query(User).count(),
            "byTier": {tier: by_tier.get(tier, 0) for tier in SUBSCRIPTION_TIERS},
            "newLast7Days": s.query(User).filter(User.created_at >= now - timedelta(days=7)).count(),
            "newLast30Days": s.query(User).filter(User.created_at >= now - timedelta(days=30)).count(),
            "locked": s.query(User).filter(User.account_locked.is_(True)).count(),
        },
        "videos": {
            "total": s.query(VideoAnalysis).count(),
            "pendingReview": s.query(VideoAnalysis).filter(VideoAnalysis.review_status == "PENDING").count(),
            "flagged": s.query(VideoAnalysis).filter(VideoAnalysis.flagged_for_review.is_(True)).count(),
        },
        "redemptions": {
            "total": s.query(OfferRedemption).count(),
            "pending": s.query(OfferRedemption).filter(OfferRedemption.status == "PENDING").count(),
        },
        "supportTickets": {
            "open": s.query(SupportTicket).filter(SupportTicket.status.in_(("OPEN", "IN_PROGRESS"))).count(),
        },
        "sponsorApplications": {
            "pending": s.query(SponsorApplication).filter(SponsorApplication.status.in_(("PENDING", "UNDER_REVIEW"))).count(),
        },
        "generatedAt": iso(now),
    }
