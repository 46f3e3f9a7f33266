from __future__ import annotations

from flask import Blueprint, g, request

from app.champion.api import NotFound, api_endpoint, query_limit, read_json, require_fields
from app.champion.db import db_session
from app.champion.modules.achievements.models import DrillCompletion
from app.champion.modules.achievements.service import (
    get_achievement_leaderboard,
    get_user_achievement_progress,
    mark_achievement_notified,
    record_drill_completion,
    sync_achievement_definitions,
)
from app.champion.rbac import admin_required, login_required

bp = Blueprint("achievements_api", __name__)


@bp.get("/achievements")
@login_required
@api_endpoint("Failed to fetch achievements")
def achievements_get():
    s = db_session()
    return get_user_achievement_progress(s, g.current_user)


@bp.post("/achievements/notified")
@login_required
@api_endpoint("Failed to mark achievement as notified")
def achievements_notified():
    payload = read_json()
    require_fields(payload, "achievementId", messages={"achievementId": "Achievement ID required"})
    s = db_session()
    if not mark_achievement_notified(s, g.current_user, str(payload["achievementId"]).strip()):
        raise NotFound("Achievement not found")
    s.commit()
    return {"success": True}


@bp.get("/achievements/leaderboard")
@login_required
@api_endpoint("Failed to fetch leaderboard")
def achievements_leaderboard():
    period = (request.args.get("period") or "all").strip().lower()
    if period not in ("all", "week", "month"):
        period = "all"
    s = db_session()
    return {"leaderboard": get_achievement_leaderboard(s, query_limit(10, 100), period), "period": period}


@bp.post("/training/drills/complete")
@login_required
@api_endpoint("Failed to record drill completion")
def drills_complete():
    payload = read_json()
    require_fields(
        payload,
        "drillId",
        "category",
        messages={"drillId": "Drill ID is required", "category": "Drill category is required"},
    )
    s = db_session()
    completion, result = record_drill_completion(s, g.current_user, payload)
    s.commit()
    return {
        "completion": completion.to_dict(),
        "achievements": result,
        "rewardPoints": g.current_user.reward_points,
    }


@bp.get("/training/drills/completions")
@login_required
@api_endpoint("Failed to fetch drill completions")
def drills_completions():
    s = db_session()
    q = s.query(DrillCompletion).filter(DrillCompletion.user_id == g.current_user.id)
    category = (request.args.get("category") or "").strip().lower()
    if category:
        q = q.filter(DrillCompletion.drill_category == category)
    rows = q.order_by(DrillCompletion.completed_at.desc(), DrillCompletion.id.desc()).limit(query_limit(50, 200)).all()
    return {"completions": [c.to_dict() for c in rows]}


@bp.post("/admin/achievements/sync")
@admin_required
@api_endpoint("Failed to sync achievements")
def achievements_sync():
    s = db_session()
    result = sync_achievement_definitions(s)
    s.commit()
    return {"success": True, **result}
