from __future__ import annotations

from flask import Blueprint, g, request

from app.champion.api import BadRequest, api_endpoint, query_limit, read_json, require_fields, text_field
from app.champion.constants import TICKET_STATUSES
from app.champion.db import db_session
from app.champion.modules.support.models import SupportTicket
from app.champion.modules.support.service import add_response, create_ticket
from app.champion.rbac import admin_required, get_owned_or_404, login_required

bp = Blueprint("support_api", __name__)


def _status_filter() -> str | None:
    status = (request.args.get("status") or "").strip().upper()
    if not status:
        return None
    if status not in TICKET_STATUSES:
        raise BadRequest(f"Invalid status. Must be one of: {', '.join(TICKET_STATUSES)}")
    return status


@bp.post("/support/tickets")
@login_required
@api_endpoint("Failed to create support ticket")
def tickets_create():
    payload = read_json()
    require_fields(
        payload,
        "subject",
        "message",
        messages={"subject": "Subject is required", "message": "Message is required"},
    )
    s = db_session()
    ticket = create_ticket(s, g.current_user, payload)
    s.commit()
    return {"ticket": ticket.to_dict()}, 201


@bp.get("/support/tickets")
@login_required
@api_endpoint("Failed to fetch support tickets")
def tickets_list():
    s = db_session()
    q = s.query(SupportTicket).filter(SupportTicket.user_id == g.current_user.id)
    status = _status_filter()
    if status:
        q = q.filter(SupportTicket.status == status)
    tickets = q.order_by(SupportTicket.created_at.desc(), SupportTicket.id.desc()).all()
    return {"tickets": [t.to_dict() for t in tickets]}


@bp.get("/support/tickets/<int:ticket_id>")
@login_required
@api_endpoint("Failed to fetch support ticket")
def tickets_detail(ticket_id: int):
    s = db_session()
    ticket = get_owned_or_404(s, SupportTicket, ticket_id, g.current_user, allow_admin=True, message="Ticket not found")
    return {"ticket": ticket.to_dict(include_responses=True)}


@bp.post("/support/tickets/<int:ticket_id>/responses")
@login_required
@api_endpoint("Failed to add ticket response")
def tickets_respond(ticket_id: int):
    payload = read_json()
    require_fields(payload, "message", messages={"message": "Message is required"})
    s = db_session()
    ticket = get_owned_or_404(s, SupportTicket, ticket_id, g.current_user, allow_admin=True, message="Ticket not found")
    message = text_field(payload, "message")
    status = text_field(payload, "status") or None
    response = add_response(s, ticket, g.current_user, message, status)
    s.commit()
    return {"response": response.to_dict(), "ticket": ticket.to_dict()}, 201


@bp.get("/admin/support/tickets")
@admin_required
@api_endpoint("Failed to fetch support tickets")
def admin_tickets_list():
    s = db_session()
    q = s.query(SupportTicket)
    status = _status_filter()
    if status:
        q = q.filter(SupportTicket.status == status)
    tickets = q.order_by(SupportTicket.created_at.desc(), SupportTicket.id.desc()).limit(query_limit(100, 200)).all()
    return {"tickets": [t.to_dict() for t in tickets]}
