# src/taskkeeper/core/clock.py

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, date, datetime

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


def ensure_utc(dt: datetime) -> datetime:
    """Naive datetimes are taken to be UTC; aware ones are converted."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def parse_ts(raw: object) -> datetime | None:
    """
    Parse a stored/wire timestamp.

    Accepts datetime, date (midnight UTC), ISO-8601 strings (with or without "Z")
    and epoch seconds. Empty values map to None.
    """
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return ensure_utc(raw)
    if isinstance(raw, date):
        return datetime(raw.year, raw.month, raw.day, tzinfo=UTC)
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return datetime.fromtimestamp(float(raw), UTC)
    if isinstance(raw, str):
        return ensure_utc(datetime.fromisoformat(raw.strip()))
    raise ValueError(f"unsupported timestamp value: {raw!r}")


def format_ts(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return ensure_utc(dt).isoformat()


def parse_day(raw: object) -> date | None:
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return ensure_utc(raw).date()
    if isinstance(raw, date):
        return raw
    if isinstance(raw, str):
        return date.fromisoformat(raw.strip()[:10])
    raise ValueError(f"unsupported date value: {raw!r}")
