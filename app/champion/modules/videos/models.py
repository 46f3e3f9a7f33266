from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, BigInteger, Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.champion.models import Base, User
from app.champion.utils import iso, utcnow


class VideoAnalysis(Base):
    __tablename__ = "video_analyses"
    __table_args__ = (
        Index("idx_video_analyses_user", "user_id", "created_at"),
        Index("idx_video_analyses_review", "review_status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    storage_key: Mapped[str] = mapped_column(String(512), nullable=False, unique=True)
    content_type: Mapped[str | None] = mapped_column(String(128), nullable=True)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Results are produced by an external analysis service.
    analysis_status: Mapped[str] = mapped_column(String(16), nullable=False, default="PENDING")
    overall_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    analysis_results: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    analyzed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    admin_upload: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    admin_notes_updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    admin_notes_updated_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    admin_priority: Mapped[str | None] = mapped_column(String(16), nullable=True)

    flagged_for_review: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    flagged_reason: Mapped[str | None] = mapped_column(String(512), nullable=True)
    flagged_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    flagged_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    review_status: Mapped[str] = mapped_column(String(32), nullable=False, default="PENDING")
    review_comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    reviewed_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow, onupdate=utcnow)

    user: Mapped[User] = relationship("User", foreign_keys=[user_id], lazy="joined")

    def to_dict(self, *, admin: bool = False) -> dict:
        d = {
            "id": self.id,
            "userId": self.user_id,
            "title": self.title,
            "fileName": self.file_name,
            "contentType": self.content_type,
            "fileSize": self.file_size,
            "duration": self.duration_seconds,
            "analysisStatus": self.analysis_status,
            "overallScore": self.overall_score,
            "analysisResults": self.analysis_results,
            "analyzedAt": iso(self.analyzed_at),
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }
        if admin:
            d.update(
                {
                    "storageKey": self.storage_key,
                    "adminUpload": self.admin_upload,
                    "adminNotes": self.admin_notes,
                    "adminNotesUpdatedAt": iso(self.admin_notes_updated_at),
                    "adminPriority": self.admin_priority,
                    "flaggedForReview": self.flagged_for_review,
                    "flaggedReason": self.flagged_reason,
                    "flaggedAt": iso(self.flagged_at),
                    "reviewStatus": self.review_status,
                    "reviewComments": self.review_comments,
                    "reviewedAt": iso(self.reviewed_at),
                    "user": {
                        "id": self.user.id,
                        "email": self.user.email,
                        "name": self.user.display_name,
                        "skillLevel": self.user.skill_level,
                    }
                    if self.user
                    else None,
                }
            )
        return d
