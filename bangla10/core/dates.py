"""Calendar helpers. Dates are ISO `YYYY-MM-DD` strings, instants are UTC ISO with `Z`."""
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone


def today_iso() -> str:
    return date.today().isoformat()


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def add_days(iso_date: str, days: int) -> str:
    return (date.fromisoformat(iso_date) + timedelta(days=days)).isoformat()


def diff_calendar_days(a: str, b: str) -> int:
    """Days from `a` to `b`."""
    return (date.fromisoformat(b) - date.fromisoformat(a)).days


def parse_instant(value: str | None) -> float | None:
    """Parse an ISO instant to epoch seconds, or None if missing/invalid."""
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()
