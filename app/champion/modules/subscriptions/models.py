from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.champion.models import Base
from app.champion.utils import iso, utcnow


class PromoCode(Base):
    __tablename__ = "promo_codes"
    __table_args__ = (Index("idx_promo_codes_status", "status"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)  # stored upper-case
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    duration_days: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    max_redemptions: Mapped[int | None] = mapped_column(Integer, nullable=True)  # None = unlimited
    times_redeemed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="ACTIVE")  # ACTIVE, REDEEMED, EXPIRED, DISABLED
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    redeemed_by: Mapped[str | None] = mapped_column(String(320), nullable=True)  # last redeemer
    redeemed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "description": self.description,
            "durationDays": self.duration_days,
            "maxRedemptions": self.max_redemptions,
            "timesRedeemed": self.times_redeemed,
            "status": self.status,
            "expiresAt": iso(self.expires_at),
            "redeemedBy": self.redeemed_by,
            "redeemedAt": iso(self.redeemed_at),
            "createdAt": iso(self.created_at),
        }
