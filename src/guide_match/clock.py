"""Injectable time source for token expiry and selection timestamps."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        """Return the current time as a timezone-aware UTC datetime."""
        ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


def epoch_ms(moment: datetime) -> int:
    """Milliseconds since the Unix epoch for an aware datetime."""
    return int(moment.timestamp() * 1000)


def naive_utc(moment: datetime) -> datetime:
    """Strip tzinfo after converting to UTC, matching stored DateTime columns."""
    return moment.astimezone(timezone.utc).replace(tzinfo=None)
