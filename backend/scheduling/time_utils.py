"""Wall-clock date/time helpers.

Slots are stored as naive local times. Timezone-aware input is converted to
local wall-clock time before it meets stored values.
"""

import re
from datetime import date, datetime, time, timedelta
from typing import Iterator

MINUTES_PER_DAY = 24 * 60

_HHMM_PATTERN = re.compile(r'^([01]?\d|2[0-3]):([0-5]\d)$')


def is_valid_hhmm(value: str | None) -> bool:
    return bool(value) and _HHMM_PATTERN.match(value.strip()) is not None


def time_to_minutes(hhmm: str | None) -> int:
    """Minutes since midnight for an "HH:mm" string; 0 for empty input."""
    if not hhmm:
        return 0
    hours, minutes = hhmm.strip().split(':', 1)
    return int(hours) * 60 + int(minutes)


def minutes_to_time(minutes: int) -> str:
    minutes %= MINUTES_PER_DAY
    return f'{minutes // 60:02d}:{minutes % 60:02d}'


def parse_hhmm(hhmm: str) -> time:
    minutes = time_to_minutes(hhmm)
    return time(minutes // 60, minutes % 60)


def combine(day: date, hhmm: str) -> datetime:
    return datetime.combine(day, parse_hhmm(hhmm))


def add_minutes(moment: datetime, minutes: int) -> datetime:
    return moment + timedelta(minutes=minutes)


def to_local_naive(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment
    return moment.astimezone().replace(tzinfo=None)


def truncate_to_minute(moment: datetime) -> datetime:
    return to_local_naive(moment).replace(second=0, microsecond=0)


def day_of_week(day: date) -> int:
    """ISO weekday: 1=Monday .. 7=Sunday."""
    return day.isoweekday()


def iterate_days(start_date: date, end_date: date) -> Iterator[date]:
    current_day = start_date
    while current_day <= end_date:
        yield current_day
        current_day += timedelta(days=1)
