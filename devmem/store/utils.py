from __future__ import annotations

import datetime as dt


def now() -> dt.datetime:
    """Current local time, timezone-aware."""

    return dt.datetime.now().astimezone()


def parse_iso8601(value: str) -> dt.datetime | None:
    raw = value.strip()
    if not raw:
        return None
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = dt.datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        # Naive timestamps were written in the machine's local time.
        try:
            parsed = parsed.astimezone()
        except (OverflowError, OSError, ValueError):
            parsed = parsed.replace(tzinfo=dt.UTC)
    return parsed


def format_timestamp(value: dt.datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat()


def days_between(earlier: dt.datetime, later: dt.datetime) -> float:
    return (later - earlier).total_seconds() / 86400.0
