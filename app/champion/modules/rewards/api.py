from __future__ import annotations

from flask import Blueprint, g

from app.champion.api import api_endpoint, read_json, require_fields
from app.champion.db import db_session
from app.champion.modules.rewards.models import TierUnlock
from app.champion.modules.rewards.service import mark_celebration_shown, pending_celebrations, rewards_summary
from app.champion.rbac import get_owned_or_404, login_required
from app.champion.utils import parse_int

bp = Blueprint("rewards_api", __name__)


@bp.get("/rewards")
@login_required
@api_endpoint("Failed to fetch rewards")
def rewards_get():
    s = db_session()
    return rewards_summary(s, g.current_user)


@bp.get("/rewards/pending-celebrations")
@login_required
@api_endpoint("Failed to fetch pending celebrations")
def rewards_pending_celebrations():
    s = db_session()
    unlocks = pending_celebrations(s, g.current_user)
    return {"celebrations": [u.to_dict() for u in unlocks]}


@bp.post("/rewards/celebration-shown")
@login_required
@api_endpoint("Failed to mark celebration as shown")
def rewards_celebration_shown():
    payload = read_json()
    require_fields(payload, "unlockId", messages={"unlockId": "Unlock ID required"})

    s = db_session()
    unlock = get_owned_or_404(s, TierUnlock, parse_int(payload.get("unlockId"), 0), g.current_user, message="Unlock not found")
    mark_celebration_shown(unlock)
    s.commit()
    return {"success": True, "unlock": unlock.to_dict()}
