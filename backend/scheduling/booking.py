"""Booking, cancellation and payment transitions of a slot.

A slot is Free (``is_booked`` false, no student) or Booked. Cancelling
returns it to Free; deleting it is an admin action handled by the routes.
``is_paid`` is an independent flag on a booked slot.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.core import config
from backend.core.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from backend.models.slot import LOCATION_COMMUTE, LOCATION_ONSITE, Slot
from backend.models.user import ROLE_STUDENT, User
from backend.scheduling.calendar import free_slots_in_the_way
from backend.scheduling.collisions import busy_window, intervals_overlap
from backend.services import notifications

logger = logging.getLogger(__name__)


@dataclass
class BalanceSummary:
    student_id: int
    unpaid_count: int = 0
    amount: int = 0
    slot_ids: list[int] = field(default_factory=list)


def get_slot_or_404(db: Session, slot_id: int) -> Slot:
    slot = db.get(Slot, slot_id)
    if slot is None:
        raise NotFoundError('Slot not found.')
    return slot


def release_slot(slot: Slot) -> None:
    slot.is_booked = False
    slot.student_id = None
    slot.booked_at = None
    slot.topic = None
    slot.is_paid = False


def can_student_cancel(slot: Slot, now: datetime) -> bool:
    """True inside the standard window or the post-booking grace period.

    Both bounds are inclusive: a cancel exactly at the window edge or at the
    end of the grace period is allowed.
    """
    standard_deadline = slot.start_time - timedelta(hours=config.CANCELLATION_WINDOW_HOURS)
    if now <= standard_deadline:
        return True
    if slot.booked_at is not None:
        return now <= slot.booked_at + timedelta(minutes=config.CANCELLATION_GRACE_MINUTES)
    return False


def booking_travel_minutes(slot: Slot, location_type: str, travel_minutes: int | None) -> int:
    if location_type != LOCATION_COMMUTE:
        return 0
    if travel_minutes is not None:
        return travel_minutes
    if slot.location_type == LOCATION_COMMUTE and slot.travel_minutes:
        return slot.travel_minutes
    return config.DEFAULT_COMMUTE_TRAVEL_MINUTES


def _absorb_free_slots(db: Session, neighbours: list[Slot], busy_start: datetime, busy_end: datetime) -> None:
    """Trim or delete free slots overlapping ``[busy_start, busy_end)``.

    Each change is conditional on the neighbour still being free.
    """
    for other in neighbours:
        if other.start_time < busy_start:
            new_start, new_end = other.start_time, min(other.end_time, busy_start)
        elif other.end_time > busy_end:
            new_start, new_end = max(other.start_time, busy_end), other.end_time
        else:
            new_start = new_end = None

        keep = new_start is not None and new_end > new_start
        if keep:
            other_start, other_end = busy_window(
                new_start,
                int((new_end - new_start).total_seconds() // 60),
                other.location_type,
                other.travel_minutes,
            )
            keep = not intervals_overlap(other_start, other_end, busy_start, busy_end)

        query = db.query(Slot).filter(Slot.id == other.id, Slot.is_booked.is_(False))
        if keep:
            changed = query.update(
                {Slot.start_time: new_start, Slot.end_time: new_end},
                synchronize_session=False,
            )
        else:
            changed = query.delete(synchronize_session=False)
        if changed != 1:
            db.rollback()
            raise ConflictError('A neighbouring slot was booked in the meantime.')


def book_slot(
    db: Session,
    slot_id: int,
    actor: User,
    topic: str | None = None,
    student_id: int | None = None,
    duration_minutes: int | None = None,
    location_type: str | None = None,
    travel_minutes: int | None = None,
    now: datetime | None = None,
) -> Slot:
    """Book a free slot for ``actor``, or for ``student_id`` when an admin books.

    The lesson may be longer than the slot or become a commute lesson. The
    longer lesson must not touch other booked lessons; free slots it covers
    are trimmed or removed in the same transaction.
    """
    now = now or datetime.now()
    slot = get_slot_or_404(db, slot_id)

    if actor.is_admin:
        if student_id is None:
            raise ValidationError('Choose the student this lesson is booked for.')
        student = db.get(User, student_id)
        if student is None or student.role != ROLE_STUDENT:
            raise NotFoundError('Student not found.')
    else:
        student = actor

    if slot.is_booked:
        raise ConflictError('This slot is already booked.')
    if not actor.is_admin and slot.start_time <= now:
        raise ValidationError('Lessons in the past cannot be booked.')

    topic = (topic or '').strip() or config.DEFAULT_LESSON_TOPIC
    lesson_minutes = duration_minutes or slot.duration_minutes
    location = location_type or slot.location_type or LOCATION_ONSITE
    travel = booking_travel_minutes(slot, location, travel_minutes)
    neighbours = free_slots_in_the_way(db, slot, lesson_minutes, location, travel)
    busy_start, busy_end = busy_window(slot.start_time, lesson_minutes, location, travel)

    # Conditional update so two concurrent bookings cannot both succeed.
    updated_rows = db.query(Slot).filter(
        Slot.id == slot_id,
        Slot.is_booked.is_(False),
    ).update(
        {
            Slot.is_booked: True,
            Slot.student_id: student.id,
            Slot.topic: topic,
            Slot.booked_at: now,
            Slot.is_paid: False,
            Slot.end_time: busy_end,
            Slot.location_type: location,
            Slot.travel_minutes: travel,
        },
        synchronize_session=False,
    )
    if updated_rows != 1:
        db.rollback()
        raise ConflictError('This slot is already booked.')

    _absorb_free_slots(db, neighbours, busy_start, busy_end)

    db.commit()
    db.refresh(slot)
    logger.info(
        'Slot %s booked by user %s (%s min, %s, %s free slots absorbed)',
        slot.id, student.id, lesson_minutes, location, len(neighbours),
    )

    notifications.publish(
        notifications.SLOT_BOOKED,
        slot_id=slot.id,
        student_id=student.id,
        student_name=student.name,
        start_time=slot.start_time,
        end_time=slot.end_time,
        location_type=slot.location_type,
        leave_by=slot.leave_by,
        topic=slot.topic,
        booked_by_admin=actor.is_admin,
    )
    return slot


def cancel_slot(db: Session, slot_id: int, actor: User, now: datetime | None = None) -> Slot:
    """Return a booked slot to Free.

    Admins may always cancel. Students may cancel only their own booking and
    only while ``can_student_cancel`` holds.
    """
    now = now or datetime.now()
    slot = get_slot_or_404(db, slot_id)

    if not slot.is_booked:
        raise ConflictError('This slot is not booked.')

    if not actor.is_admin:
        if slot.student_id != actor.id:
            raise ForbiddenError('Only the student who booked this lesson can cancel it.')
        if not can_student_cancel(slot, now):
            logger.warning('Late cancellation of slot %s refused for user %s', slot.id, actor.id)
            raise ConflictError(
                f'Too late to cancel (less than {config.CANCELLATION_WINDOW_HOURS}h before the lesson).'
            )

    student_id = slot.student_id
    release_slot(slot)
    db.commit()
    db.refresh(slot)
    logger.info('Slot %s released by user %s', slot.id, actor.id)

    notifications.publish(
        notifications.SLOT_CANCELLED,
        slot_id=slot.id,
        student_id=student_id,
        cancelled_by=actor.id,
        cancelled_by_admin=actor.is_admin,
        start_time=slot.start_time,
    )
    return slot


def mark_paid(slot: Slot, paid: bool) -> None:
    if paid and not slot.is_booked:
        raise ValidationError('Only booked lessons can be marked as paid.')
    slot.is_paid = paid


def set_paid(db: Session, slot_id: int, paid: bool) -> Slot:
    slot = get_slot_or_404(db, slot_id)
    mark_paid(slot, paid)
    db.commit()
    db.refresh(slot)
    return slot


def _unpaid_past_slots(db: Session, student_id: int, now: datetime) -> list[Slot]:
    return db.query(Slot).filter(
        Slot.student_id == student_id,
        Slot.is_booked.is_(True),
        Slot.is_paid.is_(False),
        Slot.start_time < now,
    ).order_by(Slot.start_time.asc()).all()


def _lesson_price(slot: Slot, student: User) -> int:
    if slot.price is not None:
        return slot.price
    return student.default_price or 0


def student_balance(db: Session, student: User, now: datetime | None = None) -> BalanceSummary:
    """Lessons already started but not yet paid, and what they add up to."""
    now = now or datetime.now()
    summary = BalanceSummary(student_id=student.id)
    for slot in _unpaid_past_slots(db, student.id, now):
        summary.unpaid_count += 1
        summary.amount += _lesson_price(slot, student)
        summary.slot_ids.append(slot.id)
    return summary


def settle_student_debt(db: Session, student: User, now: datetime | None = None) -> BalanceSummary:
    """Mark every unpaid past lesson of ``student`` as paid, all or nothing."""
    now = now or datetime.now()
    summary = student_balance(db, student, now)
    if not summary.slot_ids:
        return summary

    try:
        db.query(Slot).filter(Slot.id.in_(summary.slot_ids)).update(
            {Slot.is_paid: True},
            synchronize_session=False,
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    db.expire_all()
    logger.info(
        'Settled %s lessons (%s) for student %s',
        summary.unpaid_count, summary.amount, student.id,
    )
    return summary
