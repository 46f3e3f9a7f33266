from __future__ import annotations

from flask import Blueprint, g, request

from app.champion.api import BadRequest, NotFound, api_endpoint, read_json, require_fields, text_field
from app.champion.constants import GOAL_STATUSES, SKILL_LEVELS
from app.champion.db import db_session
from app.champion.modules.training.models import Goal, TrainingProgram, UserProgram
from app.champion.modules.training.service import (
    complete_program_day,
    create_goal,
    get_enrollment,
    get_program_or_404,
    save_onboarding,
    seed_training_programs,
    set_program_paused,
    start_program,
    update_goal,
)
from app.champion.rbac import admin_required, get_owned_or_404, login_required
from app.champion.utils import iso, parse_int

bp = Blueprint("training_api", __name__)


# ---------- Goals ----------
@bp.get("/training/goals")
@login_required
@api_endpoint("Failed to fetch goals")
def goals_list():
    s = db_session()
    q = s.query(Goal).filter(Goal.user_id == g.current_user.id)
    status = (request.args.get("status") or "").strip().upper()
    if status:
        if status not in GOAL_STATUSES:
            raise BadRequest(f"Invalid status. Must be one of: {', '.join(GOAL_STATUSES)}")
        q = q.filter(Goal.status == status)
    goals = q.order_by(Goal.created_at.desc(), Goal.id.desc()).all()
    return {"goals": [goal.to_dict() for goal in goals]}


@bp.post("/training/goals")
@login_required
@api_endpoint("Failed to create goal")
def goals_create():
    payload = read_json()
    require_fields(payload, "goalText", messages={"goalText": "Goal text is required"})
    s = db_session()
    goal = create_goal(s, g.current_user, payload)
    s.commit()
    return {"goal": goal.to_dict()}


@bp.patch("/training/goals/<int:goal_id>")
@login_required
@api_endpoint("Failed to update goal")
def goals_update(goal_id: int):
    payload = read_json()
    s = db_session()
    goal = get_owned_or_404(s, Goal, goal_id, g.current_user, message="Goal not found")
    update_goal(goal, payload)
    s.commit()
    return {"goal": goal.to_dict()}


@bp.delete("/training/goals/<int:goal_id>")
@login_required
@api_endpoint("Failed to delete goal")
def goals_delete(goal_id: int):
    s = db_session()
    goal = get_owned_or_404(s, Goal, goal_id, g.current_user, message="Goal not found")
    s.delete(goal)
    s.commit()
    return {"success": True}


# ---------- Programs ----------
@bp.get("/training/programs")
@login_required
@api_endpoint("Failed to fetch programs")
def programs_list():
    s = db_session()
    q = s.query(TrainingProgram).filter(TrainingProgram.is_active.is_(True))
    skill_level = (request.args.get("skillLevel") or "").strip().upper()
    if skill_level in SKILL_LEVELS:
        q = q.filter(TrainingProgram.skill_level == skill_level)
    programs = q.order_by(TrainingProgram.id.asc()).all()

    enrollments = {
        up.program_id: up
        for up in s.query(UserProgram).filter(UserProgram.user_id == g.current_user.id).all()
    }
    out = []
    for program in programs:
        d = program.to_dict()
        up = enrollments.get(program.id)
        d["userProgram"] = up.to_dict() if up else None
        out.append(d)
    return {"programs": out}


@bp.get("/training/program/<slug>")
@login_required
@api_endpoint("Failed to fetch program")
def program_detail(slug: str):
    s = db_session()
    program = get_program_or_404(s, slug)
    enrollment = get_enrollment(s, g.current_user, program)
    return {"program": program.to_dict(), "userProgram": enrollment.to_dict() if enrollment else None}


@bp.post("/training/program/<slug>/start")
@login_required
@api_endpoint("Failed to start program")
def program_start(slug: str):
    s = db_session()
    program = get_program_or_404(s, slug)
    enrollment, created = start_program(s, g.current_user, program)
    s.commit()
    return {"userProgram": enrollment.to_dict(), "created": created}


@bp.patch("/training/program/<slug>")
@login_required
@api_endpoint("Failed to update program")
def program_update(slug: str):
    payload = read_json()
    action = text_field(payload, "action")
    if action not in ("pause", "resume"):
        raise BadRequest("Invalid action")
    s = db_session()
    program = get_program_or_404(s, slug)
    enrollment = get_enrollment(s, g.current_user, program)
    if enrollment is None:
        raise NotFound("User not enrolled in program")
    set_program_paused(enrollment, action == "pause")
    s.commit()
    return {"userProgram": enrollment.to_dict()}


@bp.post("/training/program/<slug>/complete-day")
@login_required
@api_endpoint("Failed to complete program day")
def program_complete_day(slug: str):
    payload = read_json()
    require_fields(payload, "day", messages={"day": "Day is required"})
    day = parse_int(payload.get("day"))
    if day is None or day < 1:
        raise BadRequest("Invalid day")

    s = db_session()
    program = get_program_or_404(s, slug)
    enrollment = get_enrollment(s, g.current_user, program)
    if enrollment is None:
        raise NotFound("User not enrolled in program")
    result = complete_program_day(s, g.current_user, enrollment, day)
    s.commit()
    return {"userProgram": enrollment.to_dict(), "rewardPoints": g.current_user.reward_points, **result}


@bp.post("/admin/seed-programs")
@admin_required
@api_endpoint("Failed to seed programs")
def programs_seed():
    s = db_session()
    created = seed_training_programs(s)
    s.commit()
    total = s.query(TrainingProgram).count()
    return {"success": True, "created": created, "count": total}


# ---------- Onboarding ----------
@bp.post("/onboarding/goals")
@login_required
@api_endpoint("Failed to save your goals")
def onboarding_goals():
    payload = read_json()
    s = db_session()
    user = g.current_user
    recommended = save_onboarding(s, user, payload)
    s.commit()
    return {
        "success": True,
        "message": "Goals saved successfully!",
        "user": {
            "id": user.id,
            "onboardingCompleted": user.onboarding_completed,
            "primaryGoals": user.primary_goals,
            "biggestChallenges": user.biggest_challenges,
            "coachingStylePreference": user.coaching_style_preference,
        },
        "recommendedPrograms": [p.to_dict() for p in recommended],
        "nextStep": "START_PROGRAM" if len(user.primary_goals) == 1 else "EXPLORE_PROGRAMS",
    }


@bp.get("/onboarding")
@login_required
@api_endpoint("Failed to fetch onboarding status")
def onboarding_status():
    user = g.current_user
    return {
        "onboardingCompleted": user.onboarding_completed,
        "onboardingCompletedAt": iso(user.onboarding_completed_at),
        "skillLevel": user.skill_level,
        "primaryGoals": user.primary_goals or [],
        "biggestChallenges": user.biggest_challenges or [],
        "coachingStylePreference": user.coaching_style_preference,
    }
