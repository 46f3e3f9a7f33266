from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.champion.models import Base
from app.champion.utils import iso, utcnow


class SupportTicket(Base):
    __tablename__ = "support_tickets"
    __table_args__ = (
        Index("idx_support_tickets_user", "user_id"),
        Index("idx_support_tickets_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str | None] = mapped_column(String(64), nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="OPEN")  # OPEN, IN_PROGRESS, RESOLVED, CLOSED
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default="MEDIUM")
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow, onupdate=utcnow)

    responses: Mapped[list["TicketResponse"]] = relationship(
        "TicketResponse",
        back_populates="ticket",
        cascade="all, delete-orphan",
        order_by="TicketResponse.id",
        lazy="selectin",
    )

    def to_dict(self, *, include_responses: bool = False) -> dict:
        d = {
            "id": self.id,
            "userId": self.user_id,
            "subject": self.subject,
            "message": self.message,
            "category": self.category,
            "status": self.status,
            "priority": self.priority,
            "resolvedAt": iso(self.resolved_at),
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
            "responseCount": len(self.responses),
        }
        if include_responses:
            d["responses"] = [r.to_dict() for r in self.responses]
        return d


class TicketResponse(Base):
    __tablename__ = "ticket_responses"
    __table_args__ = (Index("idx_ticket_responses_ticket", "ticket_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ticket_id: Mapped[int] = mapped_column(ForeignKey("support_tickets.id", ondelete="CASCADE"), nullable=False)
    author_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    is_staff: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    ticket: Mapped[SupportTicket] = relationship("SupportTicket", back_populates="responses")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ticketId": self.ticket_id,
            "authorUserId": self.author_user_id,
            "message": self.message,
            "isStaff": self.is_staff,
            "createdAt": iso(self.created_at),
        }
