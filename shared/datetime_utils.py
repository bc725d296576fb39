"""
Date/time helpers - framework-agnostic.

MongoDB returns naive datetimes unless the client is tz-aware, so every
comparison goes through ``as_utc`` first.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Return *value* as an aware UTC datetime; naive values are assumed UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_wait(milliseconds: int) -> str:
    """Human-readable wait time: seconds under a minute, otherwise minutes."""
    if milliseconds < 60_000:
        return f"{-(-milliseconds // 1000)} seconds"
    return f"{-(-milliseconds // 60_000)} minutes"
