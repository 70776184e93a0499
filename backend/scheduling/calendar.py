"""Server-side collision guards for admin edits of slots and template items."""

from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from backend.core.errors import ConflictError, ValidationError
from backend.models.slot import LOCATION_TYPES, Slot
from backend.models.weekly_template import WeeklyTemplateItem
from backend.scheduling.collisions import check_template_collision, find_collisions
from backend.scheduling.time_utils import is_valid_hhmm

# Widest travel buffer considered when narrowing the candidate query.
MAX_TRAVEL_MINUTES = 240


def validate_lesson_shape(duration_minutes: int, location_type: str, travel_minutes: int) -> None:
    if duration_minutes <= 0:
        raise ValidationError('Lesson duration must be positive.')
    if location_type not in LOCATION_TYPES:
        raise ValidationError('Location type must be "onsite" or "commute".')
    if travel_minutes < 0 or travel_minutes > MAX_TRAVEL_MINUTES:
        raise ValidationError(f'Travel time must be between 0 and {MAX_TRAVEL_MINUTES} minutes.')


def slots_near(db: Session, start_time: datetime, end_time: datetime) -> list[Slot]:
    window_start = start_time - timedelta(minutes=MAX_TRAVEL_MINUTES)
    window_end = end_time + timedelta(minutes=MAX_TRAVEL_MINUTES)
    return db.query(Slot).filter(
        Slot.start_time < window_end,
        Slot.end_time > window_start,
    ).all()


def ensure_slot_fits(
    db: Session,
    start_time: datetime,
    duration_minutes: int,
    location_type: str,
    travel_minutes: int,
    exclude_id: int | None = None,
) -> None:
    validate_lesson_shape(duration_minutes, location_type, travel_minutes)
    end_time = start_time + timedelta(minutes=duration_minutes)
    collisions = find_collisions(
        start_time,
        duration_minutes,
        location_type,
        travel_minutes,
        slots_near(db, start_time, end_time),
        exclude_id=exclude_id,
    )
    if collisions:
        clash = collisions[0]
        raise ConflictError(
            f'This time overlaps the lesson at {clash.start_time:%Y-%m-%d %H:%M} (travel time included).'
        )


def ensure_template_item_fits(
    db: Session,
    day_of_week: int,
    start_time: str,
    duration_minutes: int,
    location_type: str,
    travel_minutes: int,
    exclude_id: int | None = None,
) -> None:
    if not is_valid_hhmm(start_time):
        raise ValidationError('Start time must use the HH:mm format.')
    validate_lesson_shape(duration_minutes, location_type, travel_minutes)

    same_day_items = db.query(WeeklyTemplateItem).filter(
        WeeklyTemplateItem.day_of_week == day_of_week,
    ).all()
    if check_template_collision(
        day_of_week,
        start_time,
        duration_minutes,
        location_type,
        travel_minutes,
        same_day_items,
        exclude_id=exclude_id,
    ):
        raise ConflictError('This lesson overlaps another lesson in the weekly template.')


def free_slots_in_the_way(
    db: Session,
    slot: Slot,
    duration_minutes: int,
    location_type: str,
    travel_minutes: int,
) -> list[Slot]:
    """Free slots a longer or commute booking of ``slot`` would cover.

    Booked neighbours cannot be absorbed and raise ``ConflictError``.
    """
    validate_lesson_shape(duration_minutes, location_type, travel_minutes)
    end_time = slot.start_time + timedelta(minutes=duration_minutes)
    collisions = find_collisions(
        slot.start_time,
        duration_minutes,
        location_type,
        travel_minutes,
        slots_near(db, slot.start_time, end_time),
        exclude_id=slot.id,
    )
    for other in collisions:
        if other.is_booked:
            raise ConflictError(
                f'The chosen lesson overlaps the booked lesson at {other.start_time:%Y-%m-%d %H:%M}.'
            )
    return collisions
