"""Overlap checks between lessons, including the pre-lesson travel buffer.

Two busy windows ``[a_start, a_end)`` and ``[b_start, b_end)`` collide iff
``a_start < b_end and a_end > b_start``; touching windows do not collide.
Dated slots use datetimes, template items use minutes since midnight.
"""

from datetime import datetime, timedelta
from typing import Iterable, Protocol

from backend.models.slot import LOCATION_COMMUTE
from backend.scheduling.time_utils import time_to_minutes, truncate_to_minute


class SlotLike(Protocol):
    id: int | None
    start_time: datetime
    end_time: datetime
    location_type: str | None
    travel_minutes: int | None


class TemplateItemLike(Protocol):
    id: int | None
    day_of_week: int
    start_time: str
    duration_minutes: int
    location_type: str | None
    travel_minutes: int | None


def travel_buffer(location_type: str | None, travel_minutes: int | None) -> int:
    if location_type == LOCATION_COMMUTE:
        return travel_minutes or 0
    return 0


def intervals_overlap(a_start, a_end, b_start, b_end) -> bool:
    return a_start < b_end and a_end > b_start


def busy_window(
    start: datetime,
    lesson_duration: int,
    location_type: str | None,
    travel_minutes: int | None,
) -> tuple[datetime, datetime]:
    start = truncate_to_minute(start)
    busy_start = start - timedelta(minutes=travel_buffer(location_type, travel_minutes))
    return busy_start, start + timedelta(minutes=lesson_duration)


def slot_busy_window(slot: SlotLike) -> tuple[datetime, datetime]:
    start = truncate_to_minute(slot.start_time)
    end = truncate_to_minute(slot.end_time)
    return start - timedelta(minutes=travel_buffer(slot.location_type, slot.travel_minutes)), end


def find_collisions(
    candidate_start: datetime,
    lesson_duration: int,
    location_type: str | None,
    travel_minutes: int | None,
    existing_slots: Iterable[SlotLike],
    exclude_id: int | None = None,
) -> list[SlotLike]:
    busy_start, busy_end = busy_window(candidate_start, lesson_duration, location_type, travel_minutes)
    collisions = []
    for slot in existing_slots:
        if exclude_id is not None and slot.id == exclude_id:
            continue
        other_start, other_end = slot_busy_window(slot)
        if intervals_overlap(busy_start, busy_end, other_start, other_end):
            collisions.append(slot)
    return collisions


def check_collision(
    candidate_start: datetime,
    lesson_duration: int,
    location_type: str | None,
    travel_minutes: int | None,
    existing_slots: Iterable[SlotLike],
    exclude_id: int | None = None,
) -> bool:
    return bool(
        find_collisions(candidate_start, lesson_duration, location_type, travel_minutes, existing_slots, exclude_id)
    )


def template_busy_window(
    start_time: str,
    duration_minutes: int,
    location_type: str | None,
    travel_minutes: int | None,
) -> tuple[int, int]:
    start = time_to_minutes(start_time)
    return start - travel_buffer(location_type, travel_minutes), start + duration_minutes


def check_template_collision(
    day_of_week: int,
    start_time: str,
    duration_minutes: int,
    location_type: str | None,
    travel_minutes: int | None,
    items: Iterable[TemplateItemLike],
    exclude_id: int | None = None,
) -> bool:
    if not start_time:
        return False

    busy_start, busy_end = template_busy_window(start_time, duration_minutes, location_type, travel_minutes)
    for item in items:
        if item.day_of_week != day_of_week:
            continue
        if exclude_id is not None and item.id == exclude_id:
            continue
        other_start, other_end = template_busy_window(
            item.start_time, item.duration_minutes, item.location_type, item.travel_minutes
        )
        if intervals_overlap(busy_start, busy_end, other_start, other_end):
            return True
    return False
