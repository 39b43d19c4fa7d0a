"""
Date/time helpers shared by the validator, binding manager and admin service.

All stored timestamps are timezone-aware UTC. Naive values read back from
MongoDB (which drops tzinfo by default) are treated as UTC.
"""

from __future__ import annotations

from datetime import datetime, time, timedelta, timezone
from typing import Any, Optional

# Forward buffer added to every stored expiry before comparing with "now",
# masking client/server clock skew.
EXPIRY_GRACE = timedelta(minutes=5)


def utcnow() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_expired(expires_at: Optional[datetime], now: datetime) -> bool:
    """Return True if *expires_at* (plus EXPIRY_GRACE) lies before *now*.

    ``None`` means "never expires".
    """
    if expires_at is None:
        return False
    return ensure_utc(now) > ensure_utc(expires_at) + EXPIRY_GRACE


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse a date/time value into a timezone-aware UTC datetime.

    Accepts:
    - ``None`` → ``None``
    - ``datetime`` → normalised to UTC
    - ``int`` / ``float`` → treated as Unix epoch seconds
    - ``str`` ending in ``"Z"`` → converted to ``+00:00`` before parsing
    - Any ISO 8601 string (``datetime.fromisoformat``)

    Returns ``None`` if *value* is ``None`` or cannot be parsed.
    """
    if value is None:
        return None
    try:
        if isinstance(value, datetime):
            return ensure_utc(value)
        if isinstance(value, (int, float)):
            return datetime.fromtimestamp(int(value), tz=timezone.utc)
        raw = str(value)
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        return ensure_utc(datetime.fromisoformat(raw))
    except (ValueError, OSError, OverflowError):
        return None


def parse_expiry(value: Any) -> Optional[datetime]:
    """Parse an admin-supplied expiry.

    A bare calendar date (``"2025-12-31"``) is pushed to the end of that day
    in UTC; anything else goes through parse_datetime().
    """
    if isinstance(value, str) and len(value.strip()) == 10:
        try:
            day = datetime.strptime(value.strip(), "%Y-%m-%d").date()
        except ValueError:
            return None
        return datetime.combine(day, time(23, 59, 59, 999000), tzinfo=timezone.utc)
    return parse_datetime(value)
