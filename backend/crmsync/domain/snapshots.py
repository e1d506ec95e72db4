from __future__ import annotations

from datetime import datetime, timezone


def ensure_aware_utc(dt: datetime) -> datetime:
    """
    SQLite hands back naive datetimes even when they were written as UTC.
    Treat naive as UTC so comparisons don't blow up.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def snapshot_id(at: datetime | None = None) -> str:
    """YYYYMMDDHHMMSS in UTC. Second resolution: same-second writes share an id."""
    dt = ensure_aware_utc(at or utcnow())
    return dt.strftime("%Y%m%d%H%M%S")
