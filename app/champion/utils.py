from __future__ import annotations

import re
from datetime import date, datetime, timezone

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def utcnow() -> datetime:
    """Naive UTC timestamp (all DateTime columns are timezone-less UTC)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def iso(value: date | datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat()


def is_valid_email(value: str | None) -> bool:
    return bool(value and _EMAIL_RE.match(value.strip()))


def normalize_email(value: str | None) -> str:
    if not isinstance(value, str):
        return ""
    return value.strip().lower()


def parse_date(s: str | None) -> date | None:
    """Parse YYYY-MM-DD (or a full ISO timestamp) into a date."""
    if not s:
        return None
    s = str(s).strip()
    if not s:
        return None
    return date.fromisoformat(s[:10])


def parse_datetime(s: str | None) -> datetime | None:
    """Parse an ISO timestamp; aware values are converted to naive UTC."""
    if not s:
        return None
    s = str(s).strip()
    if not s:
        return None
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    value = datetime.fromisoformat(s)
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def parse_int(value, default: int | None = None) -> int | None:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def parse_bool(value) -> bool | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    v = str(value).strip().lower()
    if v in ("1", "true", "yes", "on"):
        return True
    if v in ("0", "false", "no", "off"):
        return False
    return None


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def rank_of(value: str | None, ordering: tuple[str, ...]) -> int:
    """Position of value in an ordered tuple; unknown values rank lowest."""
    try:
        return ordering.index((value or "").upper())
    except ValueError:
        return -1
