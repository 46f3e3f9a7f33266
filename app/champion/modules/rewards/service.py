from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from app.champion.modules.notifications.service import send_tier_unlock_email
from app.champion.modules.rewards.models import RewardTier, TierUnlock
from app.champion.utils import iso, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from app.champion.models import User

logger = logging.getLogger(__name__)

DEFAULT_TIERS: tuple[dict, ...] = (
    {
        "name": "bronze",
        "display_name": "Bronze",
        "min_points": 100,
        "icon": "🥉",
        "color": "#CD7F32",
        "benefits": ["Bronze profile badge", "Access to bronze marketplace offers"],
    },
    {
        "name": "silver",
        "display_name": "Silver",
        "min_points": 500,
        "icon": "🥈",
        "color": "#C0C0C0",
        "benefits": ["Silver profile badge", "5% bonus on sponsor offers"],
    },
    {
        "name": "gold",
        "display_name": "Gold",
        "min_points": 1000,
        "icon": "🥇",
        "color": "#FFD700",
        "benefits": ["Gold profile badge", "Early access to new programs"],
    },
    {
        "name": "platinum",
        "display_name": "Platinum",
        "min_points": 2500,
        "icon": "💎",
        "color": "#E5E4E2",
        "benefits": ["Platinum profile badge", "Exclusive sponsor offers"],
    },
    {
        "name": "diamond",
        "display_name": "Diamond",
        "min_points": 5000,
        "icon": "👑",
        "color": "#B9F2FF",
        "benefits": ["Diamond profile badge", "VIP support", "Champion leaderboard spotlight"],
    },
)


def seed_reward_tiers(s: "Session") -> int:
    """Insert missing default tiers. Returns the number created."""
    existing = {name for (name,) in s.query(RewardTier.name).all()}
    created = 0
    for order, spec in enumerate(DEFAULT_TIERS):
        if spec["name"] in existing:
            continue
        s.add(RewardTier(sort_order=order, is_active=True, **spec))
        created += 1
    return created


def active_tiers(s: "Session") -> list[RewardTier]:
    return (
        s.query(RewardTier)
        .filter(RewardTier.is_active.is_(True))
        .order_by(RewardTier.min_points.asc(), RewardTier.id.asc())
        .all()
    )


def check_tier_unlocks_for_user(s: "Session", user: "User", *, send_emails: bool = True) -> list[TierUnlock]:
    """
    Create a TierUnlock for every tier whose threshold the user's points reach
    and that is not unlocked yet. Caller commits.
    """
    points = user.reward_points or 0
    unlocked_ids = {tid for (tid,) in s.query(TierUnlock.tier_id).filter(TierUnlock.user_id == user.id).all()}
    new_unlocks: list[TierUnlock] = []
    for tier in active_tiers(s):
        if tier.min_points > points or tier.id in unlocked_ids:
            continue
        unlock = TierUnlock(user_id=user.id, tier_id=tier.id, points_at_unlock=points, tier=tier)
        s.add(unlock)
        new_unlocks.append(unlock)
        logger.info("User %s unlocked reward tier %s at %s points", user.id, tier.name, points)
        if send_emails:
            notification = send_tier_unlock_email(s, user, tier)
            unlock.email_sent = notification.status == "SENT"
    if new_unlocks:
        # Sessions do not autoflush; later checks in the same unit of work must see these rows.
        s.flush()
    return new_unlocks


def award_points(s: "Session", user: "User", points: int, reason: str) -> list[TierUnlock]:
    """Add reward points and run the tier-unlock check in the same unit of work."""
    if points <= 0:
        return []
    user.reward_points = (user.reward_points or 0) + points
    logger.info("Awarded %s points to user %s (%s)", points, user.id, reason)
    return check_tier_unlocks_for_user(s, user)


def rewards_summary(s: "Session", user: "User") -> dict:
    points = user.reward_points or 0
    unlocked = {
        u.tier_id: u for u in s.query(TierUnlock).filter(TierUnlock.user_id == user.id).all()
    }
    tiers = []
    next_tier = None
    current_tier = None
    for tier in active_tiers(s):
        d = tier.to_dict()
        unlock = unlocked.get(tier.id)
        d["unlocked"] = unlock is not None
        d["unlockedAt"] = iso(unlock.unlocked_at) if unlock else None
        tiers.append(d)
        if tier.min_points <= points:
            current_tier = d
        elif next_tier is None:
            next_tier = d
    return {
        "points": points,
        "currentTier": current_tier,
        "nextTier": next_tier,
        "pointsToNextTier": (next_tier["minPoints"] - points) if next_tier else 0,
        "tiers": tiers,
    }


def pending_celebrations(s: "Session", user: "User") -> list[TierUnlock]:
    return (
        s.query(TierUnlock)
        .filter(TierUnlock.user_id == user.id, TierUnlock.celebration_shown.is_(False))
        .order_by(TierUnlock.unlocked_at.asc(), TierUnlock.id.asc())
        .all()
    )


def mark_celebration_shown(unlock: TierUnlock) -> TierUnlock:
    if not unlock.celebration_shown:
        unlock.celebration_shown = True
        unlock.celebration_shown_at = utcnow()
    return unlock
