from __future__ import annotations

from typing import TYPE_CHECKING

from app.champion.api import BadRequest, text_field
from app.champion.constants import TICKET_PRIORITIES, TICKET_STATUSES
from app.champion.modules.support.models import SupportTicket, TicketResponse
from app.champion.utils import utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from app.champion.models import User


def create_ticket(s: "Session", user: "User", payload: dict) -> SupportTicket:
    priority = text_field(payload, "priority", "MEDIUM").upper()
    if priority not in TICKET_PRIORITIES:
        raise BadRequest(f"Invalid priority. Must be one of: {', '.join(TICKET_PRIORITIES)}")
    ticket = SupportTicket(
        user_id=user.id,
        subject=text_field(payload, "subject")[:255],
        message=text_field(payload, "message"),
        category=text_field(payload, "category") or None,
        priority=priority,
        status="OPEN",
    )
    s.add(ticket)
    return ticket


def _set_status(ticket: SupportTicket, status: str) -> None:
    ticket.status = status
    if status in ("RESOLVED", "CLOSED"):
        ticket.resolved_at = ticket.resolved_at or utcnow()
    else:
        ticket.resolved_at = None


def add_response(s: "Session", ticket: SupportTicket, author: "User", message: str, status: str | None = None) -> TicketResponse:
    """
    Append a reply. A staff reply on an OPEN ticket moves it to IN_PROGRESS; an
    explicit status wins. Both land in the caller's unit of work.
    """
    new_status = None
    if status:
        new_status = status.upper()
        if new_status not in TICKET_STATUSES:
            raise BadRequest(f"Invalid status. Must be one of: {', '.join(TICKET_STATUSES)}")

    response = TicketResponse(
        ticket=ticket,
        author_user_id=author.id,
        message=message,
        is_staff=author.is_admin,
    )
    s.add(response)

    if new_status:
        _set_status(ticket, new_status)
    elif author.is_admin and ticket.status == "OPEN":
        _set_status(ticket, "IN_PROGRESS")
    ticket.updated_at = utcnow()
    return response
