from __future__ import annotations

import json
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.champion.models import Base
from app.champion.utils import iso, utcnow


class EmailNotification(Base):
    """One row per outbound email attempt (SENT or FAILED)."""

    __tablename__ = "email_notifications"
    __table_args__ = (
        Index("idx_email_notifications_user", "user_id"),
        Index("idx_email_notifications_type", "email_type"),
        Index("idx_email_notifications_status", "status"),
        Index("idx_email_notifications_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    email_type: Mapped[str] = mapped_column(String(64), nullable=False)  # WELCOME, PASSWORD_RESET, TIER_UNLOCK, ...
    recipient_email: Mapped[str] = mapped_column(String(320), nullable=False)
    recipient_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    subject: Mapped[str] = mapped_column(String(512), nullable=False)
    html_content: Mapped[str] = mapped_column(Text, nullable=False)
    text_content: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(String(16), nullable=False)  # SENT, FAILED
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    failed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    metadata_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self, *, include_content: bool = False) -> dict:
        d = {
            "id": self.id,
            "userId": self.user_id,
            "type": self.email_type,
            "recipientEmail": self.recipient_email,
            "recipientName": self.recipient_name,
            "subject": self.subject,
            "status": self.status,
            "error": self.error,
            "sentAt": iso(self.sent_at),
            "failedAt": iso(self.failed_at),
            "retryCount": self.retry_count,
            "metadata": json.loads(self.metadata_json) if self.metadata_json else {},
            "createdAt": iso(self.created_at),
        }
        if include_content:
            d["htmlContent"] = self.html_content
            d["textContent"] = self.text_content
        return d
