import json
from typing import Any

from flask import g, has_request_context, request
from sqlalchemy.orm import Session

from app.champion.models import SecurityLog, User

SEVERITY_LOW = "LOW"
SEVERITY_MEDIUM = "MEDIUM"
SEVERITY_HIGH = "HIGH"
SEVERITY_CRITICAL = "CRITICAL"


def record_event(
    s: Session,
    *,
    event_type: str,
    description: str,
    severity: str = SEVERITY_LOW,
    user_id: int | None = None,
    actor: User | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    metadata: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> SecurityLog:
    """
    Append-only security log helper. Caller owns the commit.
    """
    rid = request_id
    if has_request_context():
        rid = rid or getattr(g, "request_id", None)
        if ip_address is None:
            from app.champion.security import client_ip

            ip_address = client_ip(request)
        if user_agent is None:
            user_agent = (request.headers.get("User-Agent") or "")[:512] or None
    ev = SecurityLog(
        request_id=rid,
        user_id=user_id,
        actor_user_id=actor.id if actor else None,
        actor_user_email=actor.email if actor else None,
        event_type=event_type,
        severity=severity,
        description=description[:1024],
        ip_address=ip_address,
        user_agent=user_agent,
        metadata_json=json.dumps(metadata, sort_keys=True, default=str) if metadata else None,
    )
    s.add(ev)
    return ev
