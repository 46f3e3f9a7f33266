"""
Shared plumbing for the JSON API.

Every handler follows the same contract: resolve the session (see rbac),
validate the body with ad-hoc field checks, run a small number of data-store
calls and map the outcome to ``{...}`` or ``{"error": "..."}``.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import Flask, current_app, g, jsonify, request
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)


class ApiError(Exception):
    status_code = 400

    def __init__(self, message: str, status_code: int | None = None, **extra: Any):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.extra = extra


class BadRequest(ApiError):
    status_code = 400


class Unauthorized(ApiError):
    status_code = 401


class Forbidden(ApiError):
    status_code = 403


class NotFound(ApiError):
    status_code = 404


def json_error(message: str, status: int = 400, **extra: Any):
    body = {"error": message}
    body.update(extra)
    return jsonify(body), status


def read_json() -> dict:
    """JSON object body, or {} when absent/invalid."""
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def text_field(payload: dict, key: str, default: str = "") -> str:
    """
    Stripped string value of a body field, or ``default`` when absent or blank.
    Any other JSON type is a 400 rather than a crash further down.
    """
    value = payload.get(key)
    if value is None:
        return default
    if not isinstance(value, str):
        raise BadRequest(f"{key} must be a string")
    return value.strip() or default


def number_field(payload: dict, key: str, default: float | None = None) -> float | None:
    value = payload.get(key)
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise BadRequest(f"{key} must be a number")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise BadRequest(f"{key} must be a number")


def require_fields(payload: dict, *fields: str, messages: dict[str, str] | None = None) -> None:
    """
    Presence check for required body fields. Empty strings count as missing.
    Raises BadRequest with the field's message (or a generic one).
    """
    messages = messages or {}
    for field in fields:
        value = payload.get(field)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise BadRequest(messages.get(field) or f"{field} is required")


def query_limit(default: int = 50, maximum: int = 100) -> int:
    raw = request.args.get("limit") or request.args.get("take")
    try:
        value = int(raw) if raw else default
    except ValueError:
        value = default
    return max(1, min(value, maximum))


def api_endpoint(failure_message: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Handler boundary: ApiErrors become their JSON response, anything else is
    logged with its stack trace, rolled back and reported as a 500.
    """

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            try:
                return fn(*args, **kwargs)
            except ApiError as e:
                _rollback()
                return json_error(e.message, e.status_code, **e.extra)
            except HTTPException:
                _rollback()
                raise
            except Exception:
                _rollback()
                current_app.logger.exception(
                    "%s (endpoint=%s request_id=%s)",
                    failure_message,
                    request.endpoint,
                    getattr(g, "request_id", None),
                )
                return json_error(failure_message, 500)

        return wrapped

    return decorator


def _rollback() -> None:
    s = getattr(g, "db_session", None)
    if s is not None:
        s.rollback()


def is_api_request() -> bool:
    return request.path.startswith("/api/")


def register_api_error_handlers(app: Flask) -> None:
    """Render ApiError and werkzeug HTTP errors on /api paths as JSON."""

    @app.errorhandler(ApiError)
    def _api_error(e: ApiError):  # type: ignore[no-redef]
        _rollback()
        return json_error(e.message, e.status_code, **e.extra)

    @app.errorhandler(HTTPException)
    def _http_error(e: HTTPException):  # type: ignore[no-redef]
        if not is_api_request():
            return e
        return json_error(e.description or e.name, e.code or 500)
