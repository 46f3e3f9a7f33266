"""
CSRF protection plus account-level security: failed-login tracking,
temporary lockouts, IP blocks and password reset tokens.

All helpers take the SQLAlchemy session and leave the commit to the caller.
"""
from __future__ import annotations

import secrets
from datetime import timedelta

from flask import Request, session
from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.champion.audit import SEVERITY_HIGH, SEVERITY_LOW, SEVERITY_MEDIUM, record_event
from app.champion.models import BlockedIP, PasswordResetToken, User
from app.champion.utils import normalize_email, utcnow

MAX_FAILED_ATTEMPTS = 5
LOCKOUT_DURATION_MINUTES = 15
IP_BLOCK_DURATION_MINUTES = 60
RESET_TOKEN_TTL_MINUTES = 60

# Security event types
IP_BLOCKED = "IP_BLOCKED"
IP_UNBLOCKED = "IP_UNBLOCKED"
FAILED_LOGIN = "FAILED_LOGIN"
ACCOUNT_LOCKED = "ACCOUNT_LOCKED"
ACCOUNT_UNLOCKED = "ACCOUNT_UNLOCKED"
SUCCESSFUL_LOGIN = "SUCCESSFUL_LOGIN"
PASSWORD_RESET_REQUEST = "PASSWORD_RESET_REQUEST"
PASSWORD_RESET_COMPLETE = "PASSWORD_RESET_COMPLETE"
SUSPICIOUS_ACTIVITY = "SUSPICIOUS_ACTIVITY"
ADMIN_USER_UPDATED = "ADMIN_USER_UPDATED"
ADMIN_USER_DELETED = "ADMIN_USER_DELETED"
ADMIN_VIDEO_FLAGGED = "ADMIN_VIDEO_FLAGGED"
ADMIN_VIDEO_REVIEWED = "ADMIN_VIDEO_REVIEWED"
ADMIN_VIDEO_NOTES_UPDATED = "ADMIN_VIDEO_NOTES_UPDATED"
ADMIN_VIDEO_DELETED = "ADMIN_VIDEO_DELETED"
SPONSOR_APPROVED = "SPONSOR_APPROVED"

LOCKED_ACCOUNT_MESSAGE = (
    "Account is locked. Please contact support at security@mindfulchampion.com "
    "or info@mindfulchampion.com"
)


# ---------- CSRF ----------
def ensure_csrf_token() -> str:
    """Ensure a CSRF token exists in the session and return it."""
    token = session.get("csrf_token")
    if not token:
        token = secrets.token_urlsafe(32)
        session["csrf_token"] = token
    return token


def validate_csrf(req: Request) -> bool:
    """Validate CSRF token from header or form."""
    token = req.headers.get("X-CSRF-Token") or req.form.get("csrf_token")
    return bool(token and token == session.get("csrf_token"))


def csrf_exempt(req: Request) -> bool:
    """
    JSON bodies cannot be posted cross-site without a CORS preflight, so JSON
    API calls skip the token check. Forms and multipart uploads do not.
    """
    return req.is_json


# ---------- Request metadata ----------
def client_ip(req: Request) -> str:
    forwarded_for = req.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    real_ip = req.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()
    return req.remote_addr or "unknown"


def user_agent(req: Request) -> str:
    return req.headers.get("User-Agent") or "Unknown"


# ---------- IP blocks ----------
def _active_block(s: Session, ip_address: str) -> BlockedIP | None:
    return (
        s.query(BlockedIP)
        .filter(BlockedIP.ip_address == ip_address, BlockedIP.unblocked.is_(False))
        .order_by(BlockedIP.blocked_at.desc())
        .first()
    )


def is_ip_blocked(s: Session, ip_address: str) -> bool:
    now = utcnow()
    blocked = (
        s.query(BlockedIP.id)
        .filter(BlockedIP.ip_address == ip_address, BlockedIP.unblocked.is_(False))
        .filter(or_(BlockedIP.expires_at.is_(None), BlockedIP.expires_at > now))
        .first()
    )
    return blocked is not None


def block_ip(
    s: Session,
    ip_address: str,
    reason: str,
    failed_attempts: int = 0,
    duration_minutes: int | None = IP_BLOCK_DURATION_MINUTES,
    blocked_by: User | None = None,
) -> BlockedIP:
    """Block an IP; refreshes an existing active block instead of stacking rows."""
    now = utcnow()
    expires_at = now + timedelta(minutes=duration_minutes) if duration_minutes else None

    blocked = _active_block(s, ip_address)
    if blocked:
        blocked.failed_attempts = failed_attempts
        blocked.expires_at = expires_at
        blocked.reason = reason
        blocked.blocked_at = now
    else:
        blocked = BlockedIP(
            ip_address=ip_address,
            reason=reason,
            failed_attempts=failed_attempts,
            expires_at=expires_at,
            blocked_at=now,
            blocked_by_user_id=blocked_by.id if blocked_by else None,
        )
        s.add(blocked)

    record_event(
        s,
        actor=blocked_by,
        event_type=IP_BLOCKED,
        severity=SEVERITY_HIGH,
        description=f"IP {ip_address} blocked: {reason}",
        ip_address=ip_address,
        metadata={"failedAttempts": failed_attempts, "durationMinutes": duration_minutes},
    )
    return blocked


def unblock_ip(s: Session, ip_address: str, unblocked_by: User) -> bool:
    blocked = _active_block(s, ip_address)
    if not blocked:
        return False
    blocked.unblocked = True
    blocked.unblocked_at = utcnow()
    blocked.unblocked_by_user_id = unblocked_by.id
    record_event(
        s,
        actor=unblocked_by,
        event_type=IP_UNBLOCKED,
        severity=SEVERITY_MEDIUM,
        description=f"IP {ip_address} unblocked by admin",
        ip_address=ip_address,
        metadata={"unblockedBy": unblocked_by.email},
    )
    return True


# ---------- Failed logins / lockout ----------
def track_failed_login(s: Session, email: str, ip_address: str, agent: str) -> dict:
    """
    Count a failed login. At MAX_FAILED_ATTEMPTS the IP is blocked and the
    account is locked for LOCKOUT_DURATION_MINUTES.
    """
    email = normalize_email(email)
    user = s.query(User).filter(User.email == email).one_or_none()
    if not user:
        record_event(
            s,
            event_type=FAILED_LOGIN,
            severity=SEVERITY_LOW,
            description=f"Failed login attempt for non-existent user: {email}",
            ip_address=ip_address,
            user_agent=agent,
        )
        return {"shouldBlock": False, "attemptsRemaining": MAX_FAILED_ATTEMPTS}

    attempts = (user.failed_login_attempts or 0) + 1
    user.failed_login_attempts = attempts
    should_block = attempts >= MAX_FAILED_ATTEMPTS

    record_event(
        s,
        user_id=user.id,
        event_type=FAILED_LOGIN,
        severity=SEVERITY_HIGH if should_block else SEVERITY_MEDIUM,
        description=f"Failed login attempt #{attempts} for {email}",
        ip_address=ip_address,
        user_agent=agent,
    )

    if should_block:
        block_ip(s, ip_address, f"Too many failed login attempts ({attempts})", attempts)
        lock_until = utcnow() + timedelta(minutes=LOCKOUT_DURATION_MINUTES)
        user.account_locked_until = lock_until
        record_event(
            s,
            user_id=user.id,
            event_type=ACCOUNT_LOCKED,
            severity=SEVERITY_HIGH,
            description=f"Account locked due to {attempts} failed login attempts",
            ip_address=ip_address,
            user_agent=agent,
            metadata={"lockUntil": lock_until.isoformat()},
        )

    return {"shouldBlock": should_block, "attemptsRemaining": max(0, MAX_FAILED_ATTEMPTS - attempts)}


def reset_failed_attempts(user: User) -> None:
    user.failed_login_attempts = 0
    user.account_locked_until = None
    user.login_count = (user.login_count or 0) + 1


def is_account_locked(user: User) -> bool:
    """Permanent admin lock, or a temporary lock still in the future. Expired locks are cleared."""
    if user.account_locked:
        return True
    if user.account_locked_until is None:
        return False
    if user.account_locked_until > utcnow():
        return True
    user.account_locked_until = None
    return False


def lock_user_account(s: Session, user: User, reason: str, locked_by: User, until=None) -> None:
    user.account_locked = until is None
    user.account_locked_reason = reason or None
    user.account_locked_until = until
    record_event(
        s,
        user_id=user.id,
        actor=locked_by,
        event_type=ACCOUNT_LOCKED,
        severity=SEVERITY_HIGH,
        description=f"Account locked by admin: {reason or 'No reason provided'}",
        metadata={"lockedBy": locked_by.email, "reason": reason, "until": until.isoformat() if until else None},
    )


def unlock_user_account(s: Session, user: User, unlocked_by: User) -> None:
    user.account_locked = False
    user.account_locked_reason = None
    user.account_locked_until = None
    user.failed_login_attempts = 0
    record_event(
        s,
        user_id=user.id,
        actor=unlocked_by,
        event_type=ACCOUNT_UNLOCKED,
        severity=SEVERITY_MEDIUM,
        description="Account unlocked by admin",
        metadata={"unlockedBy": unlocked_by.email},
    )


# ---------- Password reset ----------
def create_password_reset_token(
    s: Session,
    user: User,
    ip_address: str | None,
    ttl_minutes: int = RESET_TOKEN_TTL_MINUTES,
) -> PasswordResetToken:
    reset = PasswordResetToken(
        user_id=user.id,
        token=secrets.token_urlsafe(32),
        ip_address=ip_address,
        expires_at=utcnow() + timedelta(minutes=ttl_minutes),
    )
    s.add(reset)
    record_event(
        s,
        user_id=user.id,
        event_type=PASSWORD_RESET_REQUEST,
        severity=SEVERITY_MEDIUM,
        description="Password reset requested",
        ip_address=ip_address,
    )
    return reset


def verify_password_reset_token(s: Session, token: str) -> PasswordResetToken | None:
    if not token:
        return None
    return (
        s.query(PasswordResetToken)
        .filter(PasswordResetToken.token == token)
        .filter(PasswordResetToken.used.is_(False))
        .filter(PasswordResetToken.expires_at > utcnow())
        .one_or_none()
    )


def complete_password_reset(s: Session, token: str, new_password_hash: str) -> User | None:
    reset = verify_password_reset_token(s, token)
    if not reset:
        return None
    user = s.get(User, reset.user_id)
    if not user:
        return None

    now = utcnow()
    user.password_hash = new_password_hash
    user.password_changed_at = now
    user.failed_login_attempts = 0
    user.account_locked_until = None
    reset.used = True
    reset.completed_at = now

    record_event(
        s,
        user_id=user.id,
        event_type=PASSWORD_RESET_COMPLETE,
        severity=SEVERITY_MEDIUM,
        description="Password reset completed successfully",
    )
    return user
