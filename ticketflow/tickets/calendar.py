"""Working-hours calendar used to measure response times in business seconds."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Mapping
from zoneinfo import ZoneInfo


@dataclass(frozen=True)
class BusinessCalendar:
    """Weekly working windows plus holidays, evaluated in a single time zone.

    ``working_hours`` maps ``date.weekday()`` (Monday is 0) to the local
    ``(start, end)`` window for that day. Weekdays missing from the mapping are
    non-working days. ``recurring_holidays`` holds ``(month, day)`` pairs that
    repeat every year.
    """

    timezone_name: str = "UTC"
    working_hours: Mapping[int, tuple[time, time]] = field(default_factory=dict)
    holidays: frozenset[date] = frozenset()
    recurring_holidays: frozenset[tuple[int, int]] = frozenset()

    @classmethod
    def standard(cls, timezone_name: str = "UTC") -> "BusinessCalendar":
        """Monday to Friday, 08:00-17:00."""

        window = (time(8, 0), time(17, 0))
        return cls(timezone_name=timezone_name, working_hours={day: window for day in range(5)})

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone_name)

    def is_working_day(self, day: date) -> bool:
        if day in self.holidays or (day.month, day.day) in self.recurring_holidays:
            return False
        return day.weekday() in self.working_hours

    def business_seconds(self, start: datetime, end: datetime) -> float:
        """Seconds of ``[start, end]`` that fall inside working windows."""

        if end <= start:
            return 0.0
        tz = self.tz
        local_start = _aware(start).astimezone(tz)
        local_end = _aware(end).astimezone(tz)

        total = 0.0
        day = local_start.date()
        while day <= local_end.date():
            if self.is_working_day(day):
                opens, closes = self.working_hours[day.weekday()]
                window_start = datetime.combine(day, opens, tzinfo=tz)
                window_end = datetime.combine(day, closes, tzinfo=tz)
                overlap_start = max(window_start, local_start)
                overlap_end = min(window_end, local_end)
                if overlap_end > overlap_start:
                    # Compare in UTC so DST shifts inside a window are counted correctly.
                    total += (
                        overlap_end.astimezone(timezone.utc) - overlap_start.astimezone(timezone.utc)
                    ).total_seconds()
            day += timedelta(days=1)
        return total


def wall_clock_seconds(start: datetime, end: datetime) -> float:
    if end <= start:
        return 0.0
    return (_aware(end) - _aware(start)).total_seconds()


def elapsed_seconds(start: datetime, end: datetime, calendar: BusinessCalendar | None) -> float:
    """Business seconds when a calendar is configured, wall clock otherwise."""

    if calendar is None:
        return wall_clock_seconds(start, end)
    return calendar.business_seconds(start, end)


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
