from __future__ import annotations

import json
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from app.champion.constants import ROLE_ADMIN, ROLE_USER
from app.champion.utils import iso, utcnow


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        Index("idx_users_role", "role"),
        Index("idx_users_subscription_tier", "subscription_tier"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    first_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(String(32), nullable=False, default=ROLE_USER)  # USER, ADMIN, SPONSOR

    skill_level: Mapped[str] = mapped_column(String(32), nullable=False, default="BEGINNER")
    player_rating: Mapped[str | None] = mapped_column(String(16), nullable=True)

    # Subscription
    subscription_tier: Mapped[str] = mapped_column(String(32), nullable=False, default="FREE")
    subscription_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    is_trial_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    trial_start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    trial_end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    reward_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Onboarding answers
    onboarding_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    onboarding_completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    primary_goals: Mapped[list | None] = mapped_column(JSON, nullable=True)
    biggest_challenges: Mapped[list | None] = mapped_column(JSON, nullable=True)
    coaching_style_preference: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Account security
    failed_login_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    login_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    account_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    account_locked_reason: Mapped[str | None] = mapped_column(String(512), nullable=True)
    account_locked_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    password_changed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    welcome_email_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    last_active_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def display_name(self) -> str:
        if self.name:
            return self.name
        full = " ".join(p for p in (self.first_name, self.last_name) if p)
        return full or self.email

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.display_name,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "role": self.role,
            "skillLevel": self.skill_level,
            "playerRating": self.player_rating,
            "subscriptionTier": self.subscription_tier,
            "subscriptionStatus": self.subscription_status,
            "isTrialActive": self.is_trial_active,
            "trialEndDate": iso(self.trial_end_date),
            "rewardPoints": self.reward_points,
            "onboardingCompleted": self.onboarding_completed,
            "accountLocked": self.account_locked,
            "accountLockedUntil": iso(self.account_locked_until),
            "lastActiveDate": iso(self.last_active_date),
            "createdAt": iso(self.created_at),
        }


class SecurityLog(Base):
    """
    Append-only security and audit trail.
    Sensitive admin mutations and authentication events land here.
    """

    __tablename__ = "security_logs"
    __table_args__ = (
        Index("idx_security_logs_user", "user_id"),
        Index("idx_security_logs_event_type", "event_type"),
        Index("idx_security_logs_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Subject of the event (whose account/record it concerns)
    user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    # Who performed it (admin actions); None for self-service/system events
    actor_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    actor_user_email: Mapped[str | None] = mapped_column(String(320), nullable=True)

    event_type: Mapped[str] = mapped_column(String(64), nullable=False)  # e.g. "ACCOUNT_LOCKED"
    severity: Mapped[str] = mapped_column(String(16), nullable=False, default="LOW")
    description: Mapped[str] = mapped_column(String(1024), nullable=False)

    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)
    metadata_json: Mapped[str | None] = mapped_column(Text, nullable=True)  # small JSON string

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "actorUserId": self.actor_user_id,
            "actorUserEmail": self.actor_user_email,
            "eventType": self.event_type,
            "severity": self.severity,
            "description": self.description,
            "ipAddress": self.ip_address,
            "userAgent": self.user_agent,
            "metadata": json.loads(self.metadata_json) if self.metadata_json else {},
            "requestId": self.request_id,
            "createdAt": iso(self.created_at),
        }


class BlockedIP(Base):
    __tablename__ = "blocked_ips"
    __table_args__ = (Index("idx_blocked_ips_ip", "ip_address"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ip_address: Mapped[str] = mapped_column(String(64), nullable=False)
    reason: Mapped[str | None] = mapped_column(String(512), nullable=True)
    failed_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    blocked_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)  # None = permanent
    blocked_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    unblocked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    unblocked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    unblocked_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ipAddress": self.ip_address,
            "reason": self.reason,
            "failedAttempts": self.failed_attempts,
            "blockedAt": iso(self.blocked_at),
            "expiresAt": iso(self.expires_at),
            "unblocked": self.unblocked,
            "unblockedAt": iso(self.unblocked_at),
        }


class PasswordResetToken(Base):
    __tablename__ = "password_reset_tokens"
    __table_args__ = (Index("idx_password_reset_tokens_user", "user_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    token: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)


# Ensure module models are imported so Base.metadata includes their tables.
# (Kept at bottom to avoid circular imports.)
from app.champion.modules.achievements.models import (  # noqa: E402,F401
    Achievement,
    AchievementProgress,
    DrillCompletion,
    UserAchievement,
    UserAchievementStats,
)
from app.champion.modules.rewards.models import RewardTier, TierUnlock  # noqa: E402,F401
from app.champion.modules.training.models import Goal, TrainingProgram, UserProgram  # noqa: E402,F401
from app.champion.modules.sponsors.models import (  # noqa: E402,F401
    OfferRedemption,
    SponsorApplication,
    SponsorOffer,
    SponsorProfile,
)
from app.champion.modules.support.models import SupportTicket, TicketResponse  # noqa: E402,F401
from app.champion.modules.videos.models import VideoAnalysis  # noqa: E402,F401
from app.champion.modules.wearables.models import HealthData, WearableDevice  # noqa: E402,F401
from app.champion.modules.notifications.models import EmailNotification  # noqa: E402,F401
from app.champion.modules.subscriptions.models import PromoCode  # noqa: E402,F401
