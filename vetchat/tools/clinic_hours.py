"""
Weekly opening hours for the clinic.

Each weekday has an opening time, a closing time and optional break
windows. A requested instant is bookable only when it falls inside the
opening window and outside every break.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional


@dataclass(frozen=True)
class DayHours:
    """Opening window for a single weekday. ``open_at=None`` means closed."""

    open_at: Optional[time] = None
    close_at: Optional[time] = None
    breaks: tuple[tuple[time, time], ...] = ()

    @property
    def closed(self) -> bool:
        return self.open_at is None or self.close_at is None

    def covers(self, moment: time) -> bool:
        """True when ``moment`` is inside the opening window and not on a break."""
        if self.closed:
            return False
        if moment < self.open_at or moment >= self.close_at:
            return False
        return not any(start <= moment < end for start, end in self.breaks)


_LUNCH = ((time(12, 0), time(13, 0)),)

# Keyed by datetime.weekday(): Monday == 0
DEFAULT_WEEKLY_HOURS: dict[int, DayHours] = {
    0: DayHours(time(9, 0), time(18, 0), _LUNCH),
    1: DayHours(time(9, 0), time(18, 0), _LUNCH),
    2: DayHours(time(9, 0), time(18, 0), _LUNCH),
    3: DayHours(time(9, 0), time(18, 0), _LUNCH),
    4: DayHours(time(9, 0), time(17, 0), _LUNCH),
    5: DayHours(time(10, 0), time(14, 0)),
    6: DayHours(),
}


class ClinicCalendar:
    """Answers opening-hours questions for a weekly schedule."""

    def __init__(self, weekly_hours: Optional[dict[int, DayHours]] = None) -> None:
        self._hours = dict(DEFAULT_WEEKLY_HOURS if weekly_hours is None else weekly_hours)

    def hours_for(self, day: date) -> DayHours:
        return self._hours.get(day.weekday(), DayHours())

    def is_open(self, instant: datetime) -> bool:
        return self.hours_for(instant.date()).covers(instant.time())

    def latest_close(self) -> Optional[time]:
        """Latest closing time across the week, used to roll slot searches to the next day."""
        closes = [h.close_at for h in self._hours.values() if not h.closed]
        return max(closes) if closes else None

    def next_open_day(self, day: date) -> Optional[date]:
        """First open day strictly after ``day`` within a week."""
        for offset in range(1, 8):
            candidate = day + timedelta(days=offset)
            if not self.hours_for(candidate).closed:
                return candidate
        return None

    def describe_hours(self, instant: datetime) -> str:
        """Friendly sentence pointing the user at the relevant opening hours."""
        day = instant.date()
        hours = self.hours_for(day)
        if hours.closed:
            next_day = self.next_open_day(day)
            if next_day is None:
                return "We're not taking appointments at the moment."
            next_hours = self.hours_for(next_day)
            return (
                f"We're open {next_day:%A} from {next_hours.open_at:%H:%M} "
                f"to {next_hours.close_at:%H:%M}."
            )
        return f"Our hours are {hours.open_at:%H:%M} to {hours.close_at:%H:%M} on {day:%A}s."
