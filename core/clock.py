"""
Time sources for time-based business logic.

Engines never call the system clock directly; they receive a ``Clock`` so that
boundary behaviour can be tested against a fixed instant.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional, Union
from zoneinfo import ZoneInfo

class Clock(ABC):
    """Source of the current time. Always returns timezone-aware datetimes."""

    @abstractmethod
    def now(self) -> datetime:
        pass

class SystemClock(Clock):
    """Wall-clock time in the configured timezone."""

    def __init__(self, tz: Union[str, tzinfo, None] = None) -> None:
        if isinstance(tz, str):
            tz = ZoneInfo(tz)
        self.tz = tz or timezone.utc

    def now(self) -> datetime:
        return datetime.now(tz=self.tz)

class FixedClock(Clock):
    """A clock that only moves when told to."""

    def __init__(self, instant: Optional[datetime] = None) -> None:
        self._instant = ensure_aware(instant or datetime.now(tz=timezone.utc))

    def now(self) -> datetime:
        return self._instant

    def set(self, instant: datetime) -> None:
        self._instant = ensure_aware(instant)

    def advance(self, delta: timedelta) -> None:
        self._instant = self._instant + delta

def ensure_aware(value: datetime) -> datetime:
    """Interpret naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value

def format_time(value: datetime) -> str:
    """Lossless ISO-8601 encoding used for storage and the checkpoint file."""
    return ensure_aware(value).astimezone(timezone.utc).isoformat()

def parse_time(raw: str) -> datetime:
    """Inverse of ``format_time``. Raises ValueError on malformed input."""
    text = raw.strip()
    # Accept the RFC 3339 'Z' suffix written by other tools
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return ensure_aware(datetime.fromisoformat(text))
