from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from app.champion.api import BadRequest, NotFound, text_field
from app.champion.constants import GOAL_STATUSES, SKILL_LEVELS
from app.champion.modules.achievements.service import check_achievements
from app.champion.modules.rewards.service import award_points
from app.champion.modules.training.models import Goal, TrainingProgram, UserProgram
from app.champion.modules.training.programs import GOAL_KEYWORDS, TRAINING_PROGRAMS
from app.champion.utils import clamp, parse_date, parse_int, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from app.champion.models import User

logger = logging.getLogger(__name__)

PROGRAM_COMPLETION_POINTS = 100


# ---------- Goals ----------
def _parse_target_date(raw):
    try:
        return parse_date(raw)
    except ValueError:
        raise BadRequest("Invalid targetDate (expected YYYY-MM-DD)")


def create_goal(s: "Session", user: "User", payload: dict) -> Goal:
    goal = Goal(
        user_id=user.id,
        goal_text=text_field(payload, "goalText"),
        category=text_field(payload, "category") or None,
        target_date=_parse_target_date(payload.get("targetDate")),
        status="ACTIVE",
        progress_percentage=0,
    )
    s.add(goal)
    return goal


def update_goal(goal: Goal, payload: dict) -> Goal:
    if "goalText" in payload:
        text = text_field(payload, "goalText")
        if not text:
            raise BadRequest("Goal text is required")
        goal.goal_text = text
    if "category" in payload:
        goal.category = text_field(payload, "category") or None
    if "targetDate" in payload:
        goal.target_date = _parse_target_date(payload.get("targetDate"))
    if "progressPercentage" in payload:
        progress = parse_int(payload.get("progressPercentage"))
        if progress is None:
            raise BadRequest("progressPercentage must be a number")
        goal.progress_percentage = int(clamp(progress, 0, 100))
    if "status" in payload:
        status = text_field(payload, "status").upper()
        if status not in GOAL_STATUSES:
            raise BadRequest(f"Invalid status. Must be one of: {', '.join(GOAL_STATUSES)}")
        goal.status = status
        if status == "COMPLETED":
            goal.progress_percentage = 100
            goal.completed_at = goal.completed_at or utcnow()
        else:
            goal.completed_at = None
    goal.updated_at = utcnow()
    return goal


# ---------- Programs ----------
def seed_training_programs(s: "Session") -> int:
    existing = {slug for (slug,) in s.query(TrainingProgram.slug).all()}
    created = 0
    for spec in TRAINING_PROGRAMS:
        if spec["slug"] in existing:
            continue
        s.add(TrainingProgram(is_active=True, **spec))
        created += 1
    return created


def get_program_or_404(s: "Session", slug: str) -> TrainingProgram:
    program = (
        s.query(TrainingProgram)
        .filter(TrainingProgram.slug == slug, TrainingProgram.is_active.is_(True))
        .one_or_none()
    )
    if program is None:
        raise NotFound("Program not found")
    return program


def get_enrollment(s: "Session", user: "User", program: TrainingProgram) -> UserProgram | None:
    return (
        s.query(UserProgram)
        .filter(UserProgram.user_id == user.id, UserProgram.program_id == program.id)
        .one_or_none()
    )


def start_program(s: "Session", user: "User", program: TrainingProgram) -> tuple[UserProgram, bool]:
    """Enroll once; repeated starts return the existing enrollment. Returns (enrollment, created)."""
    enrollment = get_enrollment(s, user, program)
    if enrollment is not None:
        if enrollment.status == "PAUSED":
            enrollment.status = "IN_PROGRESS"
            enrollment.last_activity_at = utcnow()
        return enrollment, False
    now = utcnow()
    enrollment = UserProgram(
        user_id=user.id,
        program_id=program.id,
        program=program,
        status="IN_PROGRESS",
        current_day=1,
        completion_percentage=0.0,
        started_at=now,
        last_activity_at=now,
    )
    s.add(enrollment)
    return enrollment, True


def set_program_paused(enrollment: UserProgram, paused: bool) -> UserProgram:
    if enrollment.status == "COMPLETED":
        raise BadRequest("Program already completed")
    enrollment.status = "PAUSED" if paused else "IN_PROGRESS"
    enrollment.last_activity_at = utcnow()
    return enrollment


def complete_program_day(s: "Session", user: "User", enrollment: UserProgram, day: int) -> dict:
    """
    Mark the current day done. Finishing the last day completes the program,
    awards PROGRAM_COMPLETION_POINTS and runs the achievement check.
    """
    program = enrollment.program
    if enrollment.status == "COMPLETED":
        raise BadRequest("Program already completed")
    if day != enrollment.current_day:
        raise BadRequest("Invalid day")

    now = utcnow()
    enrollment.last_activity_at = now
    user.last_active_date = now
    if day >= program.duration_days:
        enrollment.current_day = program.duration_days
        enrollment.completion_percentage = 100.0
        enrollment.status = "COMPLETED"
        enrollment.completed_at = now
        award_points(s, user, PROGRAM_COMPLETION_POINTS, f"program:{program.slug}")
        achievements = check_achievements(s, user, "program_completion", {"programId": program.slug})
        logger.info("User %s completed program %s", user.id, program.slug)
        return {"completed": True, "pointsAwarded": PROGRAM_COMPLETION_POINTS, "achievements": achievements}

    enrollment.current_day = day + 1
    enrollment.completion_percentage = (day / program.duration_days) * 100
    enrollment.status = "IN_PROGRESS"
    return {"completed": False, "pointsAwarded": 0, "achievements": None}


# ---------- Onboarding ----------
def save_onboarding(s: "Session", user: "User", payload: dict) -> list[TrainingProgram]:
    goals = payload.get("goals")
    challenges = payload.get("challenges")
    preferences = payload.get("preferences") if isinstance(payload.get("preferences"), dict) else {}
    if not isinstance(goals, list) or not goals:
        raise BadRequest("Please select at least one goal")
    if not isinstance(challenges, list) or not challenges:
        raise BadRequest("Please select at least one challenge")
    coaching_style = text_field(preferences, "coachingStyle")
    if not coaching_style:
        raise BadRequest("Please select a coaching style")

    skill_level = text_field(payload, "skillLevel", user.skill_level or "BEGINNER").upper()
    if skill_level not in SKILL_LEVELS:
        raise BadRequest(f"Invalid skillLevel. Must be one of: {', '.join(SKILL_LEVELS)}")

    user.primary_goals = [str(g) for g in goals]
    user.biggest_challenges = [str(c) for c in challenges]
    user.skill_level = skill_level
    user.coaching_style_preference = coaching_style
    user.onboarding_completed = True
    user.onboarding_completed_at = utcnow()
    return recommend_programs(s, user.primary_goals, skill_level)


def recommend_programs(s: "Session", goals: list[str], skill_level: str) -> list[TrainingProgram]:
    programs = (
        s.query(TrainingProgram)
        .filter(TrainingProgram.is_active.is_(True), TrainingProgram.skill_level == skill_level)
        .order_by(TrainingProgram.id.asc())
        .all()
    )
    matches = []
    for program in programs:
        text = f"{program.name} {program.description}".lower()
        for goal in goals:
            keywords = GOAL_KEYWORDS.get(goal, (goal.lower(),))
            if any(k in text for k in keywords):
                matches.append(program)
                break
    return matches
