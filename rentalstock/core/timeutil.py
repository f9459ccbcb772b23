from __future__ import annotations

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(dt: datetime) -> str:
    """Render ``dt`` as an ISO-8601 UTC string with a trailing ``Z``."""

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


def utcnow_iso() -> str:
    return to_iso(utcnow())


def parse_iso(ts: str | None, tz: str = "UTC") -> datetime | None:
    """Parse an ISO-8601 timestamp string.
    If naive, attach the provided tz. Returns None if ts is falsy.
    """
    if not ts:
        return None
    dt = datetime.fromisoformat(ts.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=ZoneInfo(tz))
    return dt


def normalize_iso(ts: str | None, tz: str = "UTC") -> str | None:
    """Validate and canonicalise a caller supplied timestamp; raises ValueError when malformed."""

    dt = parse_iso(ts, tz)
    return to_iso(dt) if dt else None


def add_days(ts: str, days: int) -> str:
    dt = parse_iso(ts)
    if dt is None:
        raise ValueError("timestamp required")
    return to_iso(dt + timedelta(days=days))


def within_hours(ts: str | None, hours: int, *, now: datetime | None = None) -> bool:
    """True when ``ts`` falls no later than ``hours`` from now (past included)."""

    dt = parse_iso(ts)
    if dt is None:
        return False
    reference = now or utcnow()
    return dt <= reference + timedelta(hours=hours)
