"""Materialises concrete slots from the weekly template or a daily window."""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable

from sqlalchemy.orm import Session

from backend.core import config
from backend.core.errors import ValidationError
from backend.models.slot import LOCATION_ONSITE, Slot
from backend.models.weekly_template import WeeklyTemplateItem
from backend.scheduling.calendar import MAX_TRAVEL_MINUTES
from backend.scheduling.collisions import check_collision, intervals_overlap, template_busy_window
from backend.scheduling.time_utils import (
    add_minutes,
    combine,
    day_of_week,
    is_valid_hhmm,
    iterate_days,
    time_to_minutes,
)

logger = logging.getLogger(__name__)

SUNDAY = 7
MAX_GENERATION_DAYS = 366


@dataclass
class GenerationResult:
    count: int = 0
    skipped: int = 0


def validate_date_range(start_date: date, end_date: date) -> None:
    if end_date < start_date:
        raise ValidationError('End date must not be before start date.')
    if (end_date - start_date).days >= MAX_GENERATION_DAYS:
        raise ValidationError(f'Slots can be generated for at most {MAX_GENERATION_DAYS} days at once.')


def existing_slots_by_day(db: Session, start_date: date, end_date: date) -> dict[date, list[Slot]]:
    """Slots that can reach into the range, travel buffer included, keyed by start date."""
    margin = timedelta(minutes=MAX_TRAVEL_MINUTES)
    range_start = datetime.combine(start_date, datetime.min.time()) - margin
    range_end = datetime.combine(end_date + timedelta(days=1), datetime.min.time()) + margin
    slots = db.query(Slot).filter(
        Slot.start_time < range_end,
        Slot.end_time > range_start,
    ).all()

    by_day: dict[date, list[Slot]] = defaultdict(list)
    for slot in slots:
        by_day[slot.start_time.date()].append(slot)
    return by_day


def slots_around(by_day: dict[date, list[Slot]], day: date) -> list[Slot]:
    """Slots on ``day`` and its neighbours, the only ones a lesson on ``day`` can touch."""
    return [
        slot
        for offset in (-1, 0, 1)
        for slot in by_day.get(day + timedelta(days=offset), ())
    ]


def build_slot_from_template(item: WeeklyTemplateItem, day: date, now: datetime) -> Slot:
    start_time = combine(day, item.start_time)
    is_booked = item.student_id is not None
    return Slot(
        start_time=start_time,
        end_time=add_minutes(start_time, item.duration_minutes),
        is_booked=is_booked,
        student_id=item.student_id,
        booked_at=now if is_booked else None,
        is_paid=False,
        topic=config.DEFAULT_LESSON_TOPIC if is_booked else None,
        price=item.price,
        location_type=item.location_type or LOCATION_ONSITE,
        travel_minutes=item.travel_minutes or 0,
    )


def generate_from_template(
    db: Session,
    start_date: date,
    end_date: date,
    holidays: Iterable[date] = (),
    now: datetime | None = None,
) -> GenerationResult:
    """Create one slot per matching template item for every day in the range.

    Days in ``holidays`` are skipped, as is any lesson whose busy window
    (travel included) overlaps an existing or just-created slot, so re-running
    over the same range creates nothing new. The whole run is committed once.
    """
    validate_date_range(start_date, end_date)
    now = now or datetime.now()
    holidays = set(holidays)

    template_items = db.query(WeeklyTemplateItem).order_by(
        WeeklyTemplateItem.day_of_week.asc(),
        WeeklyTemplateItem.start_time.asc(),
    ).all()
    slots_by_day = existing_slots_by_day(db, start_date, end_date)
    result = GenerationResult()

    for day in iterate_days(start_date, end_date):
        if day in holidays:
            logger.info('Skipping public holiday %s', day.isoformat())
            continue

        for item in template_items:
            if item.day_of_week != day_of_week(day):
                continue

            slot = build_slot_from_template(item, day, now)
            if check_collision(
                slot.start_time,
                item.duration_minutes,
                slot.location_type,
                slot.travel_minutes,
                slots_around(slots_by_day, day),
            ):
                result.skipped += 1
                continue

            db.add(slot)
            slots_by_day[day].append(slot)
            result.count += 1

    db.commit()
    logger.info(
        'Generated %s slots from template for %s..%s (%s skipped)',
        result.count, start_date.isoformat(), end_date.isoformat(), result.skipped,
    )
    return result


def generate_slots(
    db: Session,
    start_date: date,
    end_date: date,
    daily_start_time: str,
    daily_end_time: str,
    duration_minutes: int,
    holidays: Iterable[date] = (),
) -> GenerationResult:
    """Fill each day's ``[daily_start_time, daily_end_time]`` window with free slots.

    Sundays and holidays are skipped. A step that would run past the window's
    end finishes the day; steps overlapping that weekday's template lessons or
    any existing slot (travel buffers included) are skipped.
    """
    validate_date_range(start_date, end_date)
    if not is_valid_hhmm(daily_start_time) or not is_valid_hhmm(daily_end_time):
        raise ValidationError('Start and end times must use the HH:mm format.')
    if duration_minutes <= 0:
        raise ValidationError('Slot duration must be positive.')
    if time_to_minutes(daily_end_time) <= time_to_minutes(daily_start_time):
        raise ValidationError('Daily end time must be after the start time.')

    holidays = set(holidays)
    template_items = db.query(WeeklyTemplateItem).all()
    slots_by_day = existing_slots_by_day(db, start_date, end_date)
    result = GenerationResult()

    for day in iterate_days(start_date, end_date):
        weekday = day_of_week(day)
        if weekday == SUNDAY or day in holidays:
            continue

        fixed_lessons = [
            template_busy_window(item.start_time, item.duration_minutes, item.location_type, item.travel_minutes)
            for item in template_items
            if item.day_of_week == weekday
        ]

        nearby_slots = slots_around(slots_by_day, day)
        current_start = combine(day, daily_start_time)
        day_end = combine(day, daily_end_time)

        while current_start < day_end:
            current_end = add_minutes(current_start, duration_minutes)
            if current_end > day_end:
                break

            start_minute = current_start.hour * 60 + current_start.minute
            end_minute = start_minute + duration_minutes
            collides = any(
                intervals_overlap(start_minute, end_minute, lesson_start, lesson_end)
                for lesson_start, lesson_end in fixed_lessons
            ) or check_collision(current_start, duration_minutes, LOCATION_ONSITE, 0, nearby_slots)

            if collides:
                result.skipped += 1
            else:
                slot = Slot(
                    start_time=current_start,
                    end_time=current_end,
                    is_booked=False,
                    is_paid=False,
                    location_type=LOCATION_ONSITE,
                    travel_minutes=0,
                )
                db.add(slot)
                nearby_slots.append(slot)
                slots_by_day[day].append(slot)
                result.count += 1

            current_start = current_end

    db.commit()
    logger.info(
        'Generated %s slots for %s..%s between %s and %s (%s skipped)',
        result.count, start_date.isoformat(), end_date.isoformat(),
        daily_start_time, daily_end_time, result.skipped,
    )
    return result
