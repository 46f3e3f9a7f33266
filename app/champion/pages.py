"""
Server-rendered pages. Each resolves the session (redirecting to sign-in when
absent), loads the user's data and renders a template.
"""
from flask import Blueprint, g, render_template

from app.champion.constants import ROLE_ADMIN, ROLE_SPONSOR
from app.champion.db import db_session
from app.champion.modules.achievements.service import get_user_achievement_progress
from app.champion.modules.rewards.service import rewards_summary
from app.champion.modules.sponsors.models import OfferRedemption, SponsorOffer, SponsorProfile
from app.champion.modules.training.models import Goal, UserProgram
from app.champion.rbac import page_login_required

bp = Blueprint("pages", __name__)


@bp.get("/dashboard")
@page_login_required()
def dashboard():
    s = db_session()
    user = g.current_user
    goals = (
        s.query(Goal)
        .filter(Goal.user_id == user.id, Goal.status == "ACTIVE")
        .order_by(Goal.created_at.desc())
        .limit(5)
        .all()
    )
    programs = (
        s.query(UserProgram)
        .filter(UserProgram.user_id == user.id, UserProgram.status == "IN_PROGRESS")
        .order_by(UserProgram.last_activity_at.desc())
        .all()
    )
    return render_template(
        "pages/dashboard.html",
        user=user,
        goals=goals,
        programs=programs,
        rewards=rewards_summary(s, user),
    )


@bp.get("/rewards")
@page_login_required()
def rewards():
    s = db_session()
    return render_template("pages/rewards.html", user=g.current_user, rewards=rewards_summary(s, g.current_user))


@bp.get("/progress/achievements")
@page_login_required()
def achievements():
    s = db_session()
    progress = get_user_achievement_progress(s, g.current_user)
    return render_template("pages/achievements.html", user=g.current_user, progress=progress)


@bp.get("/train/goals")
@page_login_required()
def goals():
    s = db_session()
    rows = s.query(Goal).filter(Goal.user_id == g.current_user.id).order_by(Goal.created_at.desc(), Goal.id.desc()).all()
    return render_template("pages/goals.html", user=g.current_user, goals=rows)


@bp.get("/sponsors/portal")
@page_login_required(ROLE_SPONSOR)
def sponsor_portal():
    s = db_session()
    profile = s.query(SponsorProfile).filter(SponsorProfile.user_id == g.current_user.id).one_or_none()
    offers = []
    redemptions = []
    if profile is not None:
        offers = s.query(SponsorOffer).filter(SponsorOffer.sponsor_id == profile.id).order_by(SponsorOffer.created_at.desc()).all()
        redemptions = (
            s.query(OfferRedemption)
            .filter(OfferRedemption.sponsor_id == profile.id)
            .order_by(OfferRedemption.created_at.desc())
            .limit(50)
            .all()
        )
    return render_template(
        "pages/sponsor_portal.html",
        user=g.current_user,
        profile=profile,
        offers=offers,
        redemptions=redemptions,
    )


@bp.get("/admin")
@page_login_required(ROLE_ADMIN)
def admin_index():
    return render_template("pages/admin.html", user=g.current_user)
