from datetime import date, datetime, time, timezone

import pytest

from ticketflow.tickets.calendar import BusinessCalendar, elapsed_seconds, wall_clock_seconds

HOUR = 3600


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def calendar() -> BusinessCalendar:
    return BusinessCalendar.standard()


def test_counts_only_working_window(calendar):
    # Monday 16:00 to Tuesday 09:00
    assert calendar.business_seconds(_utc(2024, 3, 4, 16), _utc(2024, 3, 5, 9)) == 2 * HOUR


def test_skips_weekend(calendar):
    # Friday 16:00 to Monday 09:00
    assert calendar.business_seconds(_utc(2024, 3, 8, 16), _utc(2024, 3, 11, 9)) == 2 * HOUR


def test_interval_outside_working_hours_is_zero(calendar):
    assert calendar.business_seconds(_utc(2024, 3, 9, 10), _utc(2024, 3, 9, 15)) == 0
    assert calendar.business_seconds(_utc(2024, 3, 4, 18), _utc(2024, 3, 5, 7)) == 0


def test_reversed_interval_is_zero(calendar):
    assert calendar.business_seconds(_utc(2024, 3, 5, 9), _utc(2024, 3, 4, 9)) == 0


def test_holidays_are_skipped():
    calendar = BusinessCalendar(
        working_hours=BusinessCalendar.standard().working_hours,
        holidays=frozenset({date(2024, 3, 5)}),
    )

    assert calendar.business_seconds(_utc(2024, 3, 4, 16), _utc(2024, 3, 6, 9)) == 2 * HOUR
    assert not calendar.is_working_day(date(2024, 3, 5))


def test_recurring_holidays_repeat_every_year():
    calendar = BusinessCalendar(
        working_hours=BusinessCalendar.standard().working_hours,
        recurring_holidays=frozenset({(12, 25)}),
    )

    assert not calendar.is_working_day(date(2024, 12, 25))
    assert not calendar.is_working_day(date(2025, 12, 25))
    assert calendar.is_working_day(date(2025, 12, 24))


def test_windows_are_local_to_the_calendar_timezone():
    calendar = BusinessCalendar.standard("Asia/Jakarta")

    # 07:00 to 09:00 in Jakarta; only the hour after opening counts.
    assert calendar.business_seconds(_utc(2024, 3, 4, 0), _utc(2024, 3, 4, 2)) == HOUR


def test_custom_window_per_day():
    calendar = BusinessCalendar(working_hours={5: (time(9, 0), time(12, 0))})

    # Saturday only, 09:00-12:00
    assert calendar.business_seconds(_utc(2024, 3, 8, 0), _utc(2024, 3, 11, 0)) == 3 * HOUR


def test_elapsed_falls_back_to_wall_clock():
    start, end = _utc(2024, 3, 9, 10), _utc(2024, 3, 9, 15)

    assert elapsed_seconds(start, end, None) == 5 * HOUR
    assert wall_clock_seconds(end, start) == 0


def test_naive_datetimes_are_treated_as_utc(calendar):
    assert calendar.business_seconds(datetime(2024, 3, 4, 9), datetime(2024, 3, 4, 10)) == HOUR
