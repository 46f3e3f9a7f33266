from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import abort, g, redirect, request, url_for
from sqlalchemy.orm import Query, Session

from app.champion.api import NotFound, json_error
from app.champion.constants import ROLE_ADMIN
from app.champion.models import User


def current_user() -> User | None:
    user: User | None = getattr(g, "current_user", None)
    if not user or not user.is_active:
        return None
    return user


def user_has_role(user: User | None, *roles: str) -> bool:
    if not user or not user.is_active:
        return False
    return user.role in roles


def role_required(*roles: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    JSON guard. No session → 401, wrong role → 403.
    An empty roles tuple means any signed-in user.
    """

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user = current_user()
            if user is None:
                return json_error("Unauthorized", 401)
            if roles and user.role not in roles:
                g.missing_role = ",".join(roles)
                return json_error("Forbidden", 403)
            return fn(*args, **kwargs)

        return wrapped

    return decorator


login_required = role_required()
admin_required = role_required(ROLE_ADMIN)


def page_login_required(*roles: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Page guard: anonymous → sign-in redirect, wrong role → 403 page."""

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user = current_user()
            if user is None:
                nxt = request.full_path or request.path
                # Avoid trailing '?' from full_path when there is no query string.
                if nxt.endswith("?"):
                    nxt = nxt[:-1]
                return redirect(url_for("auth.login_get", next=nxt))
            if roles and user.role not in roles:
                g.missing_role = ",".join(roles)
                abort(403)
            return fn(*args, **kwargs)

        return wrapped

    return decorator


def owned_by(q: Query, model: Any, user: User, *, allow_admin: bool = False) -> Query:
    """Restrict a query to rows whose user_id is the caller's (admins optionally see all)."""
    if allow_admin and user.role == ROLE_ADMIN:
        return q
    return q.filter(model.user_id == user.id)


def get_owned_or_404(s: Session, model: Any, obj_id: int, user: User, *, allow_admin: bool = False, message: str = "Not found"):
    """
    Fetch by id and enforce ownership. Someone else's record is reported as
    missing so ids cannot be probed.
    """
    obj = s.get(model, obj_id)
    if obj is None:
        raise NotFound(message)
    if allow_admin and user.role == ROLE_ADMIN:
        return obj
    if obj.user_id != user.id:
        raise NotFound(message)
    return obj
