from __future__ import annotations
"""UTC helpers.

SQLite hands back naive datetimes for timezone-aware columns; everything read from
storage goes through `as_utc` before it is compared with `utcnow()`.
"""
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_datetime(raw) -> datetime:
    """Parse an ISO 8601 date or datetime string into an aware UTC datetime.

    A bare date (YYYY-MM-DD) is read as midnight UTC. Raises ValueError when unparseable.
    """
    if not isinstance(raw, str) or not raw.strip():
        raise ValueError('datetime string required')
    dt = datetime.fromisoformat(raw.strip().replace('Z', '+00:00'))
    return as_utc(dt)


def isoformat(dt: Optional[datetime]) -> Optional[str]:
    dt = as_utc(dt)
    return dt.isoformat().replace('+00:00', 'Z') if dt else None

__all__ = ['utcnow', 'as_utc', 'parse_datetime', 'isoformat']
