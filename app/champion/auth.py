from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from flask import Blueprint, current_app, flash, g, redirect, render_template, request, session, url_for
from werkzeug.security import check_password_hash, generate_password_hash

from app.champion.api import ApiError, BadRequest, api_endpoint, json_error, read_json, text_field
from app.champion.audit import SEVERITY_HIGH, SEVERITY_LOW, record_event
from app.champion.constants import SKILL_LEVELS
from app.champion.db import db_session
from app.champion.models import User
from app.champion.modules.notifications.service import send_password_reset_email, send_welcome_email
from app.champion.modules.subscriptions.service import apply_promo_code, find_redeemable_promo, start_trial
from app.champion.security import (
    FAILED_LOGIN,
    LOCKED_ACCOUNT_MESSAGE,
    SUCCESSFUL_LOGIN,
    client_ip,
    complete_password_reset,
    create_password_reset_token,
    ensure_csrf_token,
    is_account_locked,
    is_ip_blocked,
    reset_failed_attempts,
    track_failed_login,
    user_agent,
)
from app.champion.utils import is_valid_email, normalize_email, utcnow

bp = Blueprint("auth", __name__)
api_bp = Blueprint("auth_api", __name__)

MIN_PASSWORD_LENGTH = 8

_reset_requests: dict[str, list[datetime]] = defaultdict(list)
_RESET_RATE_LIMIT = 3
_RESET_RATE_WINDOW = 900  # seconds


def _check_reset_rate_limit(email: str) -> bool:
    now = datetime.utcnow()
    cutoff = now - timedelta(seconds=_RESET_RATE_WINDOW)
    _reset_requests[email] = [t for t in _reset_requests[email] if t > cutoff]
    return len(_reset_requests[email]) >= _RESET_RATE_LIMIT


def _record_reset_request(email: str) -> None:
    _reset_requests[email].append(datetime.utcnow())


def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    if request.path.startswith(("/static/", "/health", "/healthz")):
        g.current_user = None
        return

    user_id = session.get("user_id")
    if not user_id:
        g.current_user = None
        return

    try:
        s = db_session()
        user = s.get(User, int(user_id))
        if not user or not user.is_active:
            session.pop("user_id", None)
            g.current_user = None
            return
        g.current_user = user
    except Exception as e:
        current_app.logger.error("load_current_user DB error (clearing session): %s", e)
        session.pop("user_id", None)
        g.current_user = None


def authenticate(s, email: str, password: str) -> User:
    """
    Shared login check for the form and JSON entry points. Raises ApiError
    (403 blocked IP, 423 locked, 401 bad credentials); the caller commits so
    failed attempts are persisted either way.
    """
    ip = client_ip(request)
    agent = user_agent(request)
    if is_ip_blocked(s, ip):
        raise ApiError("Access temporarily blocked", 403)

    user = s.query(User).filter(User.email == email).one_or_none()
    if user is not None and is_account_locked(user):
        record_event(
            s,
            user_id=user.id,
            event_type=FAILED_LOGIN,
            severity=SEVERITY_HIGH,
            description=f"Login attempt on locked account: {email}",
            ip_address=ip,
            user_agent=agent,
        )
        raise ApiError(LOCKED_ACCOUNT_MESSAGE, 423)

    if (
        user is None
        or not user.is_active
        or not user.password_hash
        or not check_password_hash(user.password_hash, password)
    ):
        track_failed_login(s, email, ip, agent)
        raise ApiError("Invalid credentials", 401)

    reset_failed_attempts(user)
    user.last_active_date = utcnow()
    record_event(
        s,
        user_id=user.id,
        event_type=SUCCESSFUL_LOGIN,
        severity=SEVERITY_LOW,
        description=f"Successful login for {email}",
        ip_address=ip,
        user_agent=agent,
    )
    return user


def _password(payload: dict) -> str:
    password = payload.get("password") or ""
    if not isinstance(password, str):
        raise BadRequest("password must be a string")
    return password


def _start_session(user: User) -> None:
    session.clear()
    session["user_id"] = user.id
    ensure_csrf_token()


# ---------- Pages ----------
@bp.get("/login")
def login_get():
    nxt = (request.args.get("next") or "").strip()
    return render_template("auth/login.html", next=nxt)


@bp.post("/login")
def login_post():
    email = normalize_email(request.form.get("email"))
    password = request.form.get("password") or ""
    nxt = (request.form.get("next") or "").strip()

    s = db_session()
    try:
        user = authenticate(s, email, password)
    except ApiError as e:
        s.commit()
        flash(e.message, "danger")
        return redirect(url_for("auth.login_get", next=nxt or None))
    except Exception:
        current_app.logger.exception("Login POST crashed (email=%s request_id=%s)", email, getattr(g, "request_id", None))
        raise

    s.commit()
    _start_session(user)
    # Optional "next" redirect (only allow local paths to avoid open redirects).
    if nxt.startswith("/") and not nxt.startswith("//"):
        return redirect(nxt)
    if user.is_admin:
        return redirect(url_for("pages.admin_index"))
    return redirect(url_for("pages.dashboard"))


@bp.get("/logout")
def logout():
    session.clear()
    return redirect(url_for("routes.index"))


@bp.get("/reset-password")
def reset_password_get():
    token = (request.args.get("token") or "").strip()
    return render_template("auth/reset_password.html", token=token)


@bp.post("/reset-password")
def reset_password_post():
    token = (request.form.get("token") or "").strip()
    password = request.form.get("password") or ""
    if len(password) < MIN_PASSWORD_LENGTH:
        flash(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.", "danger")
        return redirect(url_for("auth.reset_password_get", token=token))
    s = db_session()
    user = complete_password_reset(s, token, generate_password_hash(password))
    if user is None:
        flash("This reset link is invalid or has expired.", "danger")
        return redirect(url_for("auth.reset_password_get", token=token))
    user.account_locked = False
    user.account_locked_reason = None
    s.commit()
    flash("Password updated. Please sign in.", "success")
    return redirect(url_for("auth.login_get"))


# ---------- JSON API ----------
@api_bp.post("/auth/login")
@api_endpoint("Login failed")
def api_login():
    payload = read_json() if request.is_json else request.form.to_dict()
    email = normalize_email(payload.get("email"))
    password = _password(payload)
    if not email or not password:
        raise BadRequest("Email and password are required")
    s = db_session()
    try:
        user = authenticate(s, email, password)
    except ApiError:
        s.commit()
        raise
    s.commit()
    _start_session(user)
    return {"user": user.to_dict()}


@api_bp.post("/auth/logout")
def api_logout():
    session.clear()
    return {"success": True}


@api_bp.get("/auth/session")
def api_session():
    user = getattr(g, "current_user", None)
    return {"user": user.to_dict() if user else None, "csrfToken": ensure_csrf_token()}


@api_bp.post("/signup")
@api_endpoint("Failed to create account")
def api_signup():
    payload = read_json()
    email = normalize_email(payload.get("email"))
    password = _password(payload)
    first_name = text_field(payload, "firstName")
    last_name = text_field(payload, "lastName")
    if not email or not password or not first_name or not last_name:
        raise BadRequest("Missing required fields")
    if not is_valid_email(email):
        raise BadRequest("Invalid email address")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise BadRequest(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    skill_level = text_field(payload, "skillLevel", "BEGINNER").upper()
    if skill_level not in SKILL_LEVELS:
        raise BadRequest(f"Invalid skillLevel. Must be one of: {', '.join(SKILL_LEVELS)}")

    s = db_session()
    if s.query(User.id).filter(User.email == email).first() is not None:
        raise BadRequest("User already exists")

    user = User(
        email=email,
        password_hash=generate_password_hash(password),
        first_name=first_name,
        last_name=last_name,
        name=f"{first_name} {last_name}",
        skill_level=skill_level,
        player_rating=text_field(payload, "playerRating") or None,
    )
    start_trial(user)
    promo_result = None
    promo = find_redeemable_promo(s, text_field(payload, "promoCode"))
    if promo is not None:
        promo_result = apply_promo_code(user, promo)
    s.add(user)
    s.flush()

    send_welcome_email(s, user)
    s.commit()
    current_app.logger.info("New signup user_id=%s promo=%s", user.id, promo.code if promo else None)
    return {"user": user.to_dict(), "promo": promo_result}, 201


@api_bp.post("/auth/forgot-password")
@api_endpoint("Failed to process password reset request")
def api_forgot_password():
    payload = read_json()
    email = normalize_email(payload.get("email"))
    if not email:
        raise BadRequest("Email is required")
    if not is_valid_email(email):
        raise BadRequest("Invalid email address")
    if _check_reset_rate_limit(email):
        return json_error("Too many password reset requests. Please try again later.", 429)
    _record_reset_request(email)

    s = db_session()
    user = s.query(User).filter(User.email == email).one_or_none()
    if user is not None and user.is_active:
        reset = create_password_reset_token(s, user, client_ip(request))
        send_password_reset_email(s, user, reset.token)
        s.commit()
    return {
        "success": True,
        "message": "If an account exists with this email, you will receive a password reset link shortly.",
    }


@api_bp.post("/auth/reset-password")
@api_endpoint("Failed to reset password")
def api_reset_password():
    payload = read_json()
    token = text_field(payload, "token")
    password = _password(payload)
    if not token or not password:
        raise BadRequest("Token and password are required")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise BadRequest(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    s = db_session()
    user = complete_password_reset(s, token, generate_password_hash(password))
    if user is None:
        raise BadRequest("Invalid or expired reset token")
    user.account_locked = False
    user.account_locked_reason = None
    s.commit()
    return {"success": True, "message": "Password has been reset successfully"}
