from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Optional, Protocol
from zoneinfo import ZoneInfo


class Clock(Protocol):
    def today(self) -> date: ...

    def now(self) -> datetime: ...


class SystemClock:
    """Wall clock; calendar dates are taken in the configured timezone."""

    def __init__(self, tz_name: str = "UTC") -> None:
        self.tz = ZoneInfo(tz_name)

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def today(self) -> date:
        return self.now().date()


class FixedClock:
    """Deterministic clock for tests and replays."""

    def __init__(self, today: date, at: Optional[datetime] = None) -> None:
        self._today = today
        self._now = at or datetime(today.year, today.month, today.day, 12, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def today(self) -> date:
        return self._today

    def advance(self, days: int = 1) -> None:
        self._today += timedelta(days=days)
        self._now += timedelta(days=days)

    def set(self, today: date) -> None:
        delta = today - self._today
        self._today = today
        self._now += delta
