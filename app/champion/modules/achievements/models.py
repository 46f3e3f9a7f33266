from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.champion.models import Base
from app.champion.utils import iso, utcnow


class Achievement(Base):
    __tablename__ = "achievements"
    __table_args__ = (
        Index("idx_achievements_category", "category"),
        Index("idx_achievements_tier", "tier"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    key: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)  # e.g. "serving_bronze"
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    tier: Mapped[str] = mapped_column(String(16), nullable=False)  # BRONZE, SILVER, GOLD, BADGE, CROWN
    category: Mapped[str] = mapped_column(String(64), nullable=False)  # SERVING, SKILL_LEVEL, MULTI_SECTION, ...
    icon: Mapped[str | None] = mapped_column(String(16), nullable=True)
    requirement: Mapped[dict] = mapped_column(JSON, nullable=False)  # {"type": ..., "criteria": {...}}
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rarity: Mapped[str] = mapped_column(String(16), nullable=False, default="common")
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.key,
            "dbId": self.id,
            "name": self.name,
            "description": self.description,
            "tier": self.tier,
            "category": self.category,
            "icon": self.icon,
            "points": self.points,
            "rarity": self.rarity,
            "order": self.sort_order,
        }


class UserAchievement(Base):
    __tablename__ = "user_achievements"
    __table_args__ = (
        UniqueConstraint("user_id", "achievement_id", name="uq_user_achievements_user_achievement"),
        Index("idx_user_achievements_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    achievement_id: Mapped[int] = mapped_column(ForeignKey("achievements.id", ondelete="CASCADE"), nullable=False)
    unlocked_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    notified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    achievement: Mapped[Achievement] = relationship("Achievement", lazy="joined")

    def to_dict(self) -> dict:
        d = self.achievement.to_dict()
        d.update({"unlockedAt": iso(self.unlocked_at), "notified": self.notified})
        return d


class AchievementProgress(Base):
    __tablename__ = "achievement_progress"
    __table_args__ = (
        UniqueConstraint("user_id", "achievement_id", name="uq_achievement_progress_user_achievement"),
        Index("idx_achievement_progress_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    achievement_id: Mapped[int] = mapped_column(ForeignKey("achievements.id", ondelete="CASCADE"), nullable=False)
    current_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    target_value: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    percentage: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow, onupdate=utcnow)

    achievement: Mapped[Achievement] = relationship("Achievement", lazy="joined")

    def to_dict(self) -> dict:
        d = self.achievement.to_dict()
        d.update(
            {
                "currentValue": self.current_value,
                "targetValue": self.target_value,
                "percentage": round(self.percentage, 1),
            }
        )
        return d


class UserAchievementStats(Base):
    __tablename__ = "user_achievement_stats"
    __table_args__ = (Index("idx_user_achievement_stats_points", "total_points"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    total_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_achievements: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    bronze_medals: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    silver_medals: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    gold_medals: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    badges: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    has_crown: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    rank: Mapped[str] = mapped_column(String(32), nullable=False, default="Beginner")
    last_achievement_unlock: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "totalPoints": self.total_points,
            "totalAchievements": self.total_achievements,
            "bronzeMedals": self.bronze_medals,
            "silverMedals": self.silver_medals,
            "goldMedals": self.gold_medals,
            "badges": self.badges,
            "hasCrown": self.has_crown,
            "rank": self.rank,
            "lastAchievementUnlock": iso(self.last_achievement_unlock),
        }


class DrillCompletion(Base):
    __tablename__ = "drill_completions"
    __table_args__ = (
        Index("idx_drill_completions_user", "user_id"),
        Index("idx_drill_completions_user_category", "user_id", "drill_category"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    drill_id: Mapped[str] = mapped_column(String(128), nullable=False)
    drill_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    drill_category: Mapped[str] = mapped_column(String(64), nullable=False)
    skill_level: Mapped[str] = mapped_column(String(32), nullable=False, default="BEGINNER")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="COMPLETED")
    duration_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "drillId": self.drill_id,
            "drillName": self.drill_name,
            "category": self.drill_category,
            "skillLevel": self.skill_level,
            "status": self.status,
            "durationMinutes": self.duration_minutes,
            "notes": self.notes,
            "completedAt": iso(self.completed_at),
        }
