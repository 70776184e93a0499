from datetime import date, datetime, timedelta, timezone

import pytest

from backend.scheduling.time_utils import (
    add_minutes,
    combine,
    day_of_week,
    is_valid_hhmm,
    iterate_days,
    minutes_to_time,
    time_to_minutes,
    to_local_naive,
    truncate_to_minute,
)


@pytest.mark.parametrize(
    ('value', 'expected'),
    [
        ('00:00', 0),
        ('08:30', 510),
        ('16:00', 960),
        ('23:59', 1439),
        ('', 0),
        (None, 0),
    ],
)
def test_time_to_minutes(value, expected: int) -> None:
    assert time_to_minutes(value) == expected


def test_minutes_to_time_wraps_past_midnight() -> None:
    assert minutes_to_time(510) == '08:30'
    assert minutes_to_time(24 * 60 + 15) == '00:15'


@pytest.mark.parametrize('value', ['24:00', '9:5', '12:60', 'noon', '', None])
def test_is_valid_hhmm_rejects_malformed_values(value) -> None:
    assert is_valid_hhmm(value) is False


def test_is_valid_hhmm_accepts_single_digit_hour() -> None:
    assert is_valid_hhmm('9:05') is True


def test_combine_and_add_minutes() -> None:
    start = combine(date(2026, 1, 5), '14:00')

    assert start == datetime(2026, 1, 5, 14, 0)
    assert add_minutes(start, 90) == datetime(2026, 1, 5, 15, 30)


def test_day_of_week_uses_monday_as_one() -> None:
    assert day_of_week(date(2026, 1, 5)) == 1
    assert day_of_week(date(2026, 1, 10)) == 6
    assert day_of_week(date(2026, 1, 11)) == 7


def test_iterate_days_is_inclusive() -> None:
    days = list(iterate_days(date(2026, 1, 30), date(2026, 2, 2)))

    assert days == [date(2026, 1, 30), date(2026, 1, 31), date(2026, 2, 1), date(2026, 2, 2)]


def test_iterate_days_empty_when_end_before_start() -> None:
    assert list(iterate_days(date(2026, 1, 2), date(2026, 1, 1))) == []


def test_naive_moment_is_left_alone() -> None:
    moment = datetime(2026, 3, 2, 14, 30)

    assert to_local_naive(moment) is moment


def test_aware_moment_becomes_local_wall_clock() -> None:
    moment = datetime(2026, 3, 2, 14, 30, tzinfo=timezone(timedelta(hours=1)))

    local = to_local_naive(moment)

    assert local.tzinfo is None
    assert local == moment.astimezone().replace(tzinfo=None)


def test_truncate_to_minute_drops_seconds_and_offset() -> None:
    moment = datetime(2026, 3, 2, 13, 30, 45, 120, tzinfo=timezone.utc)

    truncated = truncate_to_minute(moment)

    assert truncated.tzinfo is None
    assert truncated == datetime(2026, 3, 2, 13, 30, tzinfo=timezone.utc).astimezone().replace(tzinfo=None)
