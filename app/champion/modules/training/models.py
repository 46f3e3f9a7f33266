from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import JSON, Boolean, Date, DateTime, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.champion.models import Base
from app.champion.utils import iso, utcnow


class Goal(Base):
    __tablename__ = "goals"
    __table_args__ = (
        Index("idx_goals_user", "user_id"),
        Index("idx_goals_user_status", "user_id", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    goal_text: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str | None] = mapped_column(String(64), nullable=True)
    target_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="ACTIVE")  # ACTIVE, COMPLETED, ABANDONED
    progress_percentage: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "goalText": self.goal_text,
            "category": self.category,
            "targetDate": iso(self.target_date),
            "status": self.status,
            "progressPercentage": self.progress_percentage,
            "completedAt": iso(self.completed_at),
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }


class TrainingProgram(Base):
    __tablename__ = "training_programs"
    __table_args__ = (Index("idx_training_programs_skill_level", "skill_level"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    slug: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    tagline: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    duration_days: Mapped[int] = mapped_column(Integer, nullable=False)
    skill_level: Mapped[str] = mapped_column(String(32), nullable=False)
    estimated_time_per_day: Mapped[str | None] = mapped_column(String(64), nullable=True)
    key_outcomes: Mapped[list | None] = mapped_column(JSON, nullable=True)
    daily_structure: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.slug,
            "dbId": self.id,
            "name": self.name,
            "tagline": self.tagline,
            "description": self.description,
            "durationDays": self.duration_days,
            "skillLevel": self.skill_level,
            "estimatedTimePerDay": self.estimated_time_per_day,
            "keyOutcomes": self.key_outcomes or [],
            "dailyStructure": self.daily_structure or {},
        }


class UserProgram(Base):
    __tablename__ = "user_programs"
    __table_args__ = (
        UniqueConstraint("user_id", "program_id", name="uq_user_programs_user_program"),
        Index("idx_user_programs_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    program_id: Mapped[int] = mapped_column(ForeignKey("training_programs.id", ondelete="CASCADE"), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="IN_PROGRESS")  # IN_PROGRESS, PAUSED, COMPLETED
    current_day: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    completion_percentage: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    last_activity_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    program: Mapped[TrainingProgram] = relationship("TrainingProgram", lazy="joined")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "programId": self.program.slug if self.program else None,
            "status": self.status,
            "currentDay": self.current_day,
            "completionPercentage": round(self.completion_percentage, 1),
            "startedAt": iso(self.started_at),
            "completedAt": iso(self.completed_at),
            "lastActivityAt": iso(self.last_activity_at),
        }
