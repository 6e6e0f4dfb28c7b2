"""Local-time clock used to seed date arithmetic."""

from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo


class Clock:
    """Supplies "now" in the user's time zone."""

    def __init__(self, timezone: str = "Asia/Seoul") -> None:
        self.tz = ZoneInfo(timezone)

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def today(self) -> date:
        return self.now().date()


class FixedClock(Clock):
    """Clock frozen at a given instant (replays, tests)."""

    def __init__(self, at: datetime, timezone: Optional[str] = None) -> None:
        super().__init__(timezone or "UTC")
        if at.tzinfo is None:
            at = at.replace(tzinfo=self.tz)
        elif timezone is None:
            self.tz = at.tzinfo
        self._at = at

    def now(self) -> datetime:
        return self._at
