"""Season/week calendar for weekly bankrolls."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from wagerledger.utils import ensure_utc, utcnow


@dataclass(frozen=True)
class SeasonCalendar:
    start_month: int = 9
    weeks: int = 18

    def season_start(self, season: int) -> datetime:
        return datetime(season, self.start_month, 1, tzinfo=timezone.utc)

    def season_for(self, when: Optional[datetime] = None) -> int:
        when = ensure_utc(when) if when else utcnow()
        # Months before the season start belong to last year's season
        if when.month < self.start_month:
            return when.year - 1
        return when.year

    def week_for(self, when: Optional[datetime] = None) -> int:
        when = ensure_utc(when) if when else utcnow()
        start = self.season_start(self.season_for(when))
        week = (when - start).days // 7 + 1
        return max(1, min(week, self.weeks))

    def current(self, when: Optional[datetime] = None) -> tuple[int, int]:
        """(season, week) for a timestamp."""
        return self.season_for(when), self.week_for(when)

    def absolute_week(self, season: int, week: int) -> int:
        """Monotonic week counter across seasons, for retention windows."""
        return season * self.weeks + week
