from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy import func

from app.champion.api import BadRequest, text_field
from app.champion.constants import CORE_DRILL_CATEGORIES, DRILL_CATEGORIES, SKILL_LEVELS
from app.champion.modules.achievements.definitions import (
    ACHIEVEMENT_DEFINITIONS,
    LEVEL_BADGE_KEYS,
    LEVEL_SECTION_DRILLS,
    LEVEL_SECTIONS_REQUIRED,
    SECTION_COMPLETION_TARGET,
)
from app.champion.modules.achievements.models import (
    Achievement,
    AchievementProgress,
    DrillCompletion,
    UserAchievement,
    UserAchievementStats,
)
from app.champion.modules.rewards.service import award_points
from app.champion.utils import parse_int, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from app.champion.models import User

logger = logging.getLogger(__name__)

EVENT_TYPES = ("drill_completion", "video_completion", "program_completion")

# (minimum points, rank), highest first
RANK_THRESHOLDS = (
    (3000, "Legendary Champion"),
    (2000, "Master Player"),
    (1000, "Expert"),
    (500, "Advanced"),
    (250, "Intermediate"),
    (100, "Beginner+"),
)


def calculate_rank(points: int) -> str:
    for minimum, rank in RANK_THRESHOLDS:
        if points >= minimum:
            return rank
    return "Beginner"


# ---------- Catalogue ----------
def sync_achievement_definitions(s: "Session") -> dict:
    """Upsert the catalogue by key. Safe to run repeatedly."""
    existing = {a.key: a for a in s.query(Achievement).all()}
    created = updated = 0
    for d in ACHIEVEMENT_DEFINITIONS:
        row = existing.get(d["key"])
        if row is None:
            s.add(Achievement(is_active=True, **d))
            created += 1
            continue
        changed = False
        for field, value in d.items():
            if getattr(row, field) != value:
                setattr(row, field, value)
                changed = True
        if changed:
            updated += 1
    logger.info("Achievement catalogue synced: created=%s updated=%s", created, updated)
    return {"created": created, "updated": updated, "total": len(ACHIEVEMENT_DEFINITIONS)}


# ---------- Drill counts ----------
def _completed_drills(s: "Session", user_id: int, category: str, skill_level: str | None = None) -> int:
    q = s.query(func.count(DrillCompletion.id)).filter(
        DrillCompletion.user_id == user_id,
        DrillCompletion.drill_category == category,
        DrillCompletion.status == "COMPLETED",
    )
    if skill_level:
        q = q.filter(DrillCompletion.skill_level == skill_level)
    return q.scalar() or 0


def _distinct_completed_drills(s: "Session", user_id: int, category: str) -> int:
    return (
        s.query(func.count(func.distinct(DrillCompletion.drill_id)))
        .filter(
            DrillCompletion.user_id == user_id,
            DrillCompletion.drill_category == category,
            DrillCompletion.status == "COMPLETED",
        )
        .scalar()
        or 0
    )


def _level_sections_completed(s: "Session", user_id: int, skill_level: str) -> int:
    return sum(
        1
        for category in CORE_DRILL_CATEGORIES
        if _completed_drills(s, user_id, category, skill_level) >= LEVEL_SECTION_DRILLS
    )


def evaluate_requirement(s: "Session", user_id: int, requirement: dict, held_keys: set[str]) -> tuple[bool, int, int]:
    """
    Returns (met, current, target) for one requirement. Unknown requirement
    types never unlock.
    """
    kind = requirement.get("type")
    criteria = requirement.get("criteria") or {}

    if kind == "drill_completion":
        target = int(criteria.get("completions") or 1)
        current = _completed_drills(s, user_id, criteria.get("category"))
    elif kind == "section_completion":
        target = SECTION_COMPLETION_TARGET
        current = _distinct_completed_drills(s, user_id, criteria.get("category"))
    elif kind == "level_completion":
        target = LEVEL_SECTIONS_REQUIRED
        current = _level_sections_completed(s, user_id, criteria.get("skillLevel"))
    elif kind == "multi_section":
        sections = criteria.get("sections") or []
        target = len(sections)
        current = sum(
            1 for section in sections if _distinct_completed_drills(s, user_id, section) >= SECTION_COMPLETION_TARGET
        )
    elif kind == "ultimate":
        target = len(LEVEL_BADGE_KEYS)
        current = sum(1 for key in LEVEL_BADGE_KEYS if key in held_keys)
    else:
        return False, 0, 0
    return target > 0 and current >= target, current, target


def _upsert_progress(s: "Session", user_id: int, achievement: Achievement, current: int, target: int) -> None:
    percentage = min((current / target) * 100 if target else 0.0, 100.0)
    row = (
        s.query(AchievementProgress)
        .filter(AchievementProgress.user_id == user_id, AchievementProgress.achievement_id == achievement.id)
        .one_or_none()
    )
    if row is None:
        s.add(
            AchievementProgress(
                user_id=user_id,
                achievement_id=achievement.id,
                current_value=current,
                target_value=target,
                percentage=percentage,
            )
        )
        return
    row.current_value = current
    row.target_value = target
    row.percentage = percentage


# ---------- Engine ----------
def check_achievements(s: "Session", user: "User", event_type: str, event_data: dict[str, Any] | None = None) -> dict:
    """
    Evaluate every active achievement the user does not hold yet.

    Unlocks create a UserAchievement and award points (plus tier unlocks) in
    the caller's unit of work; locked achievements get their progress
    refreshed. The caller commits.
    """
    if event_type not in EVENT_TYPES:
        raise ValueError(f"Unknown achievement event type: {event_type}")

    held_keys = {
        key
        for (key,) in s.query(Achievement.key)
        .join(UserAchievement, UserAchievement.achievement_id == Achievement.id)
        .filter(UserAchievement.user_id == user.id)
        .all()
    }
    achievements = (
        s.query(Achievement)
        .filter(Achievement.is_active.is_(True))
        .order_by(Achievement.sort_order.asc(), Achievement.id.asc())
        .all()
    )

    unlocked: list[dict] = []
    total_points = 0
    for achievement in achievements:
        if achievement.key in held_keys:
            continue
        met, current, target = evaluate_requirement(s, user.id, achievement.requirement or {}, held_keys)
        if not met:
            if target:
                _upsert_progress(s, user.id, achievement, current, target)
            continue

        s.add(UserAchievement(user_id=user.id, achievement_id=achievement.id, notified=False, achievement=achievement))
        held_keys.add(achievement.key)
        award_points(s, user, achievement.points, f"achievement:{achievement.key}")
        total_points += achievement.points
        unlocked.append(achievement.to_dict())
        logger.info("Achievement unlocked: %s (%s points) user=%s", achievement.key, achievement.points, user.id)

    if unlocked:
        s.flush()
        update_user_achievement_stats(s, user)

    return {"unlocked": bool(unlocked), "achievements": unlocked, "totalPointsEarned": total_points}


def update_user_achievement_stats(s: "Session", user: "User") -> UserAchievementStats:
    held = s.query(UserAchievement).filter(UserAchievement.user_id == user.id).all()
    tiers = [ua.achievement.tier for ua in held]
    total_points = sum(ua.achievement.points for ua in held)
    last_unlock = max((ua.unlocked_at for ua in held if ua.unlocked_at), default=None)

    stats = s.query(UserAchievementStats).filter(UserAchievementStats.user_id == user.id).one_or_none()
    if stats is None:
        stats = UserAchievementStats(user_id=user.id)
        s.add(stats)
    stats.total_points = total_points
    stats.total_achievements = len(held)
    stats.bronze_medals = tiers.count("BRONZE")
    stats.silver_medals = tiers.count("SILVER")
    stats.gold_medals = tiers.count("GOLD")
    stats.badges = tiers.count("BADGE")
    stats.has_crown = "CROWN" in tiers
    stats.rank = calculate_rank(total_points)
    stats.last_achievement_unlock = last_unlock
    return stats


def get_user_achievement_progress(s: "Session", user: "User") -> dict:
    unlocked = (
        s.query(UserAchievement)
        .filter(UserAchievement.user_id == user.id)
        .order_by(UserAchievement.unlocked_at.desc(), UserAchievement.id.desc())
        .all()
    )
    progress = (
        s.query(AchievementProgress)
        .join(Achievement, AchievementProgress.achievement_id == Achievement.id)
        .filter(AchievementProgress.user_id == user.id)
        .order_by(Achievement.sort_order.asc())
        .all()
    )
    held_ids = {ua.achievement_id for ua in unlocked}
    stats = s.query(UserAchievementStats).filter(UserAchievementStats.user_id == user.id).one_or_none()
    return {
        "unlocked": [ua.to_dict() for ua in unlocked],
        "progress": [p.to_dict() for p in progress if p.achievement_id not in held_ids],
        "stats": stats.to_dict()
        if stats
        else {
            "totalPoints": 0,
            "totalAchievements": 0,
            "bronzeMedals": 0,
            "silverMedals": 0,
            "goldMedals": 0,
            "badges": 0,
            "hasCrown": False,
            "rank": "Beginner",
            "lastAchievementUnlock": None,
        },
    }


def mark_achievement_notified(s: "Session", user: "User", achievement_key: str) -> bool:
    ua = (
        s.query(UserAchievement)
        .join(Achievement, UserAchievement.achievement_id == Achievement.id)
        .filter(UserAchievement.user_id == user.id, Achievement.key == achievement_key)
        .one_or_none()
    )
    if ua is None:
        return False
    ua.notified = True
    return True


def get_achievement_leaderboard(s: "Session", limit: int = 10, period: str = "all") -> list[dict]:
    from app.champion.models import User

    q = s.query(UserAchievementStats, User).join(User, UserAchievementStats.user_id == User.id)
    if period == "week":
        q = q.filter(UserAchievementStats.last_achievement_unlock >= utcnow() - timedelta(days=7))
    elif period == "month":
        q = q.filter(UserAchievementStats.last_achievement_unlock >= utcnow() - timedelta(days=30))
    rows = (
        q.order_by(UserAchievementStats.total_points.desc(), UserAchievementStats.user_id.asc())
        .limit(limit)
        .all()
    )
    return [
        {
            "position": position,
            "userId": user.id,
            "name": user.name or "Anonymous",
            "skillLevel": user.skill_level,
            "totalPoints": stats.total_points,
            "totalAchievements": stats.total_achievements,
            "rank": stats.rank,
            "hasCrown": stats.has_crown,
        }
        for position, (stats, user) in enumerate(rows, start=1)
    ]


# ---------- Drill completions ----------
def record_drill_completion(s: "Session", user: "User", payload: dict) -> tuple[DrillCompletion, dict]:
    category = text_field(payload, "category").lower()
    if category not in DRILL_CATEGORIES:
        raise BadRequest(f"Invalid category. Must be one of: {', '.join(DRILL_CATEGORIES)}")
    skill_level = text_field(payload, "skillLevel", user.skill_level or "BEGINNER").upper()
    if skill_level not in SKILL_LEVELS:
        raise BadRequest(f"Invalid skillLevel. Must be one of: {', '.join(SKILL_LEVELS)}")

    completion = DrillCompletion(
        user_id=user.id,
        drill_id=str(payload.get("drillId")).strip(),
        drill_name=text_field(payload, "drillName") or None,
        drill_category=category,
        skill_level=skill_level,
        status="COMPLETED",
        duration_minutes=parse_int(payload.get("durationMinutes")),
        notes=text_field(payload, "notes") or None,
        completed_at=utcnow(),
    )
    s.add(completion)
    s.flush()
    user.last_active_date = utcnow()

    result = check_achievements(
        s,
        user,
        "drill_completion",
        {"drillId": completion.drill_id, "category": category, "skillLevel": skill_level},
    )
    return completion, result
