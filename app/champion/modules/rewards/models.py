from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.champion.models import Base
from app.champion.utils import iso, utcnow


class RewardTier(Base):
    __tablename__ = "reward_tiers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)  # bronze, silver, ...
    display_name: Mapped[str] = mapped_column(String(64), nullable=False)
    min_points: Mapped[int] = mapped_column(Integer, nullable=False)
    icon: Mapped[str | None] = mapped_column(String(16), nullable=True)
    color: Mapped[str | None] = mapped_column(String(16), nullable=True)
    benefits: Mapped[list | None] = mapped_column(JSON, nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "displayName": self.display_name,
            "minPoints": self.min_points,
            "icon": self.icon,
            "color": self.color,
            "benefits": self.benefits or [],
            "sortOrder": self.sort_order,
        }


class TierUnlock(Base):
    __tablename__ = "tier_unlocks"
    __table_args__ = (
        UniqueConstraint("user_id", "tier_id", name="uq_tier_unlocks_user_tier"),
        Index("idx_tier_unlocks_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    tier_id: Mapped[int] = mapped_column(ForeignKey("reward_tiers.id", ondelete="CASCADE"), nullable=False)
    points_at_unlock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unlocked_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    celebration_shown: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    celebration_shown_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    email_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    tier: Mapped[RewardTier] = relationship("RewardTier", lazy="joined")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "tierId": self.tier_id,
            "tier": self.tier.to_dict() if self.tier else None,
            "pointsAtUnlock": self.points_at_unlock,
            "unlockedAt": iso(self.unlocked_at),
            "celebrationShown": self.celebration_shown,
            "celebrationShownAt": iso(self.celebration_shown_at),
        }
