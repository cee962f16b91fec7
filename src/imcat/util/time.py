from __future__ import annotations

from datetime import datetime, timedelta, timezone

ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"
LOCAL_FORMAT = "%Y-%m-%dT%H:%M:%S"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(ISO_FORMAT)


def now_iso() -> str:
    return to_iso(utcnow())


def parse_iso(value: str) -> datetime:
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def normalize_timestamp(value: str | datetime) -> str:
    """Return ``value`` in the fixed-width UTC form used for every stored instant.

    Stored instants compare lexically, so callers must never hand raw user
    strings to SQL.
    """
    if isinstance(value, datetime):
        return to_iso(value)
    return to_iso(parse_iso(value))


def days_ago(days: float, now: datetime | None = None) -> datetime:
    base = now or utcnow()
    if base.tzinfo is None:
        base = base.replace(tzinfo=timezone.utc)
    return base - timedelta(days=days)


def normalize_local(value: str | datetime) -> str:
    """Return a wall-clock time as ``YYYY-MM-DDTHH:MM:SS``; any offset is dropped, not applied."""
    if isinstance(value, datetime):
        dt = value
    else:
        text = value.strip()
        dt = datetime.fromisoformat(text[:-1] if text.endswith("Z") else text)
    return dt.replace(tzinfo=None, microsecond=0).strftime(LOCAL_FORMAT)


def exif_to_local_iso(value: str) -> str | None:
    try:
        dt = datetime.strptime(value.strip()[:19], "%Y:%m:%d %H:%M:%S")
    except ValueError:
        return None
    return dt.strftime(LOCAL_FORMAT)
