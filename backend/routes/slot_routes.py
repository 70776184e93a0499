from datetime import date, datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import Field, field_validator, model_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import get_current_user, get_optional_user, require_admin
from backend.core.errors import DomainError, NotFoundError, ValidationError
from backend.database import get_db
from backend.models.slot import LOCATION_ONSITE, Slot
from backend.models.user import ROLE_STUDENT, User
from backend.routes.common import (
    ApiModel,
    database_error,
    domain_error,
    normalize_location_type,
    normalize_optional_text,
)
from backend.scheduling import booking, generator
from backend.scheduling.calendar import ensure_slot_fits
from backend.scheduling.time_utils import truncate_to_minute
from backend.services.holidays import HolidayCalendar, get_holiday_calendar

router = APIRouter(tags=['slots'])

MIN_LESSON_MINUTES = 15
MAX_LESSON_MINUTES = 480
MAX_TOPIC_LENGTH = 200
# Lesson lengths a student may choose when booking.
MIN_BOOKED_MINUTES = 30
MAX_BOOKED_MINUTES = 180


class SlotResponse(ApiModel):
    id: int
    start_time: datetime
    end_time: datetime
    duration_minutes: int
    is_booked: bool
    student_id: int | None = None
    student_name: str | None = None
    booked_at: datetime | None = None
    is_paid: bool
    topic: str | None = None
    location_type: str
    travel_minutes: int
    leave_by: datetime | None = None
    price: int | None = None
    notes: str | None = None
    admin_notes: str | None = None


class CreateSlotRequest(ApiModel):
    start_time: datetime
    end_time: datetime | None = None
    duration_minutes: int | None = Field(default=None, ge=MIN_LESSON_MINUTES, le=MAX_LESSON_MINUTES)
    location_type: str = LOCATION_ONSITE
    travel_minutes: int = Field(default=0, ge=0)
    price: int | None = Field(default=None, ge=0)
    student_id: int | None = None
    topic: str | None = Field(default=None, max_length=MAX_TOPIC_LENGTH)
    notes: str | None = None
    admin_notes: str | None = None

    @field_validator('location_type')
    @classmethod
    def validate_location_type(cls, value: str) -> str:
        return normalize_location_type(value)

    @field_validator('topic', 'notes', 'admin_notes')
    @classmethod
    def strip_text(cls, value: str | None) -> str | None:
        return normalize_optional_text(value)

    @model_validator(mode='after')
    def validate_interval(self):
        self.start_time = truncate_to_minute(self.start_time)
        if self.end_time is None and self.duration_minutes is None:
            raise ValueError('Either an end time or a duration is required.')
        if self.end_time is not None:
            self.end_time = truncate_to_minute(self.end_time)
            if self.end_time <= self.start_time:
                raise ValueError('End time must be after start time.')
        return self

    def lesson_minutes(self) -> int:
        if self.duration_minutes is not None:
            return self.duration_minutes
        return int((self.end_time - self.start_time).total_seconds() // 60)


class UpdateSlotRequest(ApiModel):
    start_time: datetime | None = None
    end_time: datetime | None = None
    duration_minutes: int | None = Field(default=None, ge=MIN_LESSON_MINUTES, le=MAX_LESSON_MINUTES)
    location_type: str | None = None
    travel_minutes: int | None = Field(default=None, ge=0)
    price: int | None = Field(default=None, ge=0)
    is_booked: bool | None = None
    student_id: int | None = None
    is_paid: bool | None = None
    topic: str | None = Field(default=None, max_length=MAX_TOPIC_LENGTH)
    notes: str | None = None
    admin_notes: str | None = None

    @field_validator('location_type')
    @classmethod
    def validate_location_type(cls, value: str | None) -> str | None:
        return normalize_location_type(value)

    @field_validator('topic', 'notes', 'admin_notes')
    @classmethod
    def strip_text(cls, value: str | None) -> str | None:
        return normalize_optional_text(value)


class BookSlotRequest(ApiModel):
    topic: str | None = Field(default=None, max_length=MAX_TOPIC_LENGTH)
    student_id: int | None = None
    duration_minutes: int | None = Field(default=None, ge=MIN_BOOKED_MINUTES, le=MAX_BOOKED_MINUTES)
    location_type: str | None = None
    travel_minutes: int | None = Field(default=None, ge=0)

    @field_validator('location_type')
    @classmethod
    def validate_location_type(cls, value: str | None) -> str | None:
        return normalize_location_type(value)


class GenerateFromTemplateRequest(ApiModel):
    start_date: date
    end_date: date


class GenerateSlotsRequest(ApiModel):
    start_date: date
    end_date: date
    start_time: str
    end_time: str
    duration: int = Field(ge=MIN_LESSON_MINUTES, le=MAX_LESSON_MINUTES)


class GenerationResponse(ApiModel):
    count: int
    skipped: int


def to_slot_response(slot: Slot, viewer: User | None) -> SlotResponse:
    """Serialise a slot, hiding other students' details from non-admins."""
    response = SlotResponse.model_validate(slot)
    if viewer is not None and viewer.is_admin:
        return response

    response.admin_notes = None
    if viewer is None or slot.student_id != viewer.id:
        response.student_id = None
        response.student_name = None
        response.topic = None
        response.notes = None
        response.booked_at = None
        response.is_paid = False
        response.price = None if slot.is_booked else response.price
    return response


def _get_student(db: Session, student_id: int) -> User:
    student = db.get(User, student_id)
    if student is None or student.role != ROLE_STUDENT:
        raise NotFoundError('Student not found.')
    return student


@router.get('/slots', response_model=list[SlotResponse])
def list_slots(
    start: date | None = Query(default=None),
    end: date | None = Query(default=None),
    db: Session = Depends(get_db),
    viewer: User | None = Depends(get_optional_user),
):
    if start and end and end < start:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='End date must not be before start date.',
        )

    try:
        query = db.query(Slot)
        if start:
            query = query.filter(Slot.start_time >= datetime.combine(start, datetime.min.time()))
        if end:
            query = query.filter(Slot.start_time < datetime.combine(end + timedelta(days=1), datetime.min.time()))
        slots = query.order_by(Slot.start_time.asc()).all()

        return [to_slot_response(slot, viewer) for slot in slots]
    except SQLAlchemyError as exc:
        raise database_error(db, exc) from exc


@router.post('/slots', response_model=SlotResponse, status_code=status.HTTP_201_CREATED)
def create_slot(
    data: CreateSlotRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        duration_minutes = data.lesson_minutes()
        ensure_slot_fits(db, data.start_time, duration_minutes, data.location_type, data.travel_minutes)

        student = _get_student(db, data.student_id) if data.student_id is not None else None
        slot = Slot(
            start_time=data.start_time,
            end_time=data.start_time + timedelta(minutes=duration_minutes),
            is_booked=student is not None,
            student_id=student.id if student else None,
            booked_at=datetime.now() if student else None,
            is_paid=False,
            topic=data.topic,
            location_type=data.location_type,
            travel_minutes=data.travel_minutes,
            price=data.price if data.price is not None else (student.default_price if student else None),
            notes=data.notes,
            admin_notes=data.admin_notes,
        )
        db.add(slot)
        db.commit()
        db.refresh(slot)

        return to_slot_response(slot, admin)
    except DomainError as exc:
        raise domain_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_error(db, exc) from exc


def apply_slot_update(db: Session, slot: Slot, data: UpdateSlotRequest) -> None:
    fields = data.model_fields_set

    new_start = truncate_to_minute(data.start_time) if data.start_time is not None else slot.start_time
    if data.duration_minutes is not None:
        new_duration = data.duration_minutes
    elif data.end_time is not None:
        new_duration = int((truncate_to_minute(data.end_time) - new_start).total_seconds() // 60)
    else:
        new_duration = slot.duration_minutes
    if new_duration <= 0:
        raise ValidationError('End time must be after start time.')

    new_location = data.location_type or slot.location_type
    new_travel = data.travel_minutes if data.travel_minutes is not None else slot.travel_minutes

    if fields & {'start_time', 'end_time', 'duration_minutes', 'location_type', 'travel_minutes'}:
        ensure_slot_fits(db, new_start, new_duration, new_location, new_travel, exclude_id=slot.id)
        slot.start_time = new_start
        slot.end_time = new_start + timedelta(minutes=new_duration)
        slot.location_type = new_location
        slot.travel_minutes = new_travel

    if data.is_booked is False or ('student_id' in fields and data.student_id is None):
        booking.release_slot(slot)
    elif data.student_id is not None and data.student_id != slot.student_id:
        student = _get_student(db, data.student_id)
        slot.is_booked = True
        slot.student_id = student.id
        slot.booked_at = datetime.now()
        slot.is_paid = False
    elif data.is_booked and not slot.is_booked:
        raise ValidationError('A student is required to book a slot.')

    for name in ('price', 'topic', 'notes', 'admin_notes'):
        if name in fields:
            setattr(slot, name, getattr(data, name))

    if data.is_paid is not None:
        booking.mark_paid(slot, data.is_paid)


@router.patch('/slots/{slot_id}', response_model=SlotResponse)
def update_slot(
    slot_id: int,
    data: UpdateSlotRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        slot = booking.get_slot_or_404(db, slot_id)
        apply_slot_update(db, slot, data)
        db.commit()
        db.refresh(slot)

        return to_slot_response(slot, admin)
    except DomainError as exc:
        db.rollback()
        raise domain_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_error(db, exc) from exc


@router.delete('/slots/{slot_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_slot(
    slot_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        slot = booking.get_slot_or_404(db, slot_id)
        db.delete(slot)
        db.commit()
    except DomainError as exc:
        raise domain_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_error(db, exc) from exc


@router.post('/slots/{slot_id}/book', response_model=SlotResponse)
def book_slot(
    slot_id: int,
    data: BookSlotRequest | None = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    data = data or BookSlotRequest()
    try:
        slot = booking.book_slot(
            db,
            slot_id,
            current_user,
            topic=data.topic,
            student_id=data.student_id,
            duration_minutes=data.duration_minutes,
            location_type=data.location_type,
            travel_minutes=data.travel_minutes,
        )
        return to_slot_response(slot, current_user)
    except DomainError as exc:
        raise domain_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_error(db, exc) from exc


@router.post('/slots/{slot_id}/cancel', response_model=SlotResponse)
def cancel_slot(
    slot_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        slot = booking.cancel_slot(db, slot_id, current_user)
        return to_slot_response(slot, current_user)
    except DomainError as exc:
        raise domain_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_error(db, exc) from exc


@router.post('/slots/generate-from-template', response_model=GenerationResponse, status_code=status.HTTP_201_CREATED)
def generate_from_template(
    data: GenerateFromTemplateRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    holidays: HolidayCalendar = Depends(get_holiday_calendar),
):
    try:
        result = generator.generate_from_template(
            db,
            data.start_date,
            data.end_date,
            holidays=holidays.holidays_between(data.start_date, data.end_date),
        )
        return GenerationResponse(count=result.count, skipped=result.skipped)
    except DomainError as exc:
        raise domain_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_error(db, exc) from exc


@router.post('/slots/generate', response_model=GenerationResponse, status_code=status.HTTP_201_CREATED)
def generate_slots(
    data: GenerateSlotsRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    holidays: HolidayCalendar = Depends(get_holiday_calendar),
):
    try:
        result = generator.generate_slots(
            db,
            data.start_date,
            data.end_date,
            data.start_time,
            data.end_time,
            data.duration,
            holidays=holidays.holidays_between(data.start_date, data.end_date),
        )
        return GenerationResponse(count=result.count, skipped=result.skipped)
    except DomainError as exc:
        raise domain_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_error(db, exc) from exc
