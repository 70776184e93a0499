from fastapi import APIRouter, Depends, status
from pydantic import Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import get_current_user, require_admin
from backend.core.errors import DomainError, NotFoundError
from backend.database import get_db
from backend.models.slot import LOCATION_ONSITE
from backend.models.user import ROLE_STUDENT, User
from backend.models.weekly_template import WeeklyTemplateItem
from backend.routes.common import ApiModel, database_error, domain_error, normalize_location_type
from backend.scheduling.calendar import ensure_template_item_fits
from backend.scheduling.time_utils import is_valid_hhmm, minutes_to_time, time_to_minutes

router = APIRouter(tags=['weekly-schedule'])

MIN_DAY_OF_WEEK = 1  # Monday
MAX_DAY_OF_WEEK = 6  # Saturday


def _normalize_hhmm(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip()
    if not is_valid_hhmm(normalized):
        raise ValueError('Start time must use the HH:mm format.')
    return minutes_to_time(time_to_minutes(normalized))


class TemplateItemResponse(ApiModel):
    id: int
    day_of_week: int
    start_time: str
    duration_minutes: int
    price: int
    location_type: str
    travel_minutes: int
    student_id: int | None = None
    student_name: str | None = None


class CreateTemplateItemRequest(ApiModel):
    day_of_week: int = Field(ge=MIN_DAY_OF_WEEK, le=MAX_DAY_OF_WEEK)
    start_time: str
    duration_minutes: int = Field(ge=15, le=480)
    price: int = Field(default=0, ge=0)
    location_type: str = LOCATION_ONSITE
    travel_minutes: int = Field(default=0, ge=0)
    student_id: int | None = None

    @field_validator('start_time')
    @classmethod
    def validate_start_time(cls, value: str) -> str:
        return _normalize_hhmm(value)

    @field_validator('location_type')
    @classmethod
    def validate_location_type(cls, value: str) -> str:
        return normalize_location_type(value)


class UpdateTemplateItemRequest(ApiModel):
    day_of_week: int | None = Field(default=None, ge=MIN_DAY_OF_WEEK, le=MAX_DAY_OF_WEEK)
    start_time: str | None = None
    duration_minutes: int | None = Field(default=None, ge=15, le=480)
    price: int | None = Field(default=None, ge=0)
    location_type: str | None = None
    travel_minutes: int | None = Field(default=None, ge=0)
    student_id: int | None = None

    @field_validator('start_time')
    @classmethod
    def validate_start_time(cls, value: str | None) -> str | None:
        return _normalize_hhmm(value)

    @field_validator('location_type')
    @classmethod
    def validate_location_type(cls, value: str | None) -> str | None:
        return normalize_location_type(value)


def _ensure_student_exists(db: Session, student_id: int | None) -> None:
    if student_id is None:
        return
    student = db.get(User, student_id)
    if student is None or student.role != ROLE_STUDENT:
        raise NotFoundError('Student not found.')


def _get_item_or_404(db: Session, item_id: int) -> WeeklyTemplateItem:
    item = db.get(WeeklyTemplateItem, item_id)
    if item is None:
        raise NotFoundError('Template item not found.')
    return item


@router.get('/weekly-schedule', response_model=list[TemplateItemResponse])
def list_template_items(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        items = db.query(WeeklyTemplateItem).order_by(
            WeeklyTemplateItem.day_of_week.asc(),
            WeeklyTemplateItem.start_time.asc(),
        ).all()
        responses = [TemplateItemResponse.model_validate(item) for item in items]
        if not current_user.is_admin:
            for response in responses:
                if response.student_id != current_user.id:
                    response.student_id = None
                    response.student_name = None
        return responses
    except SQLAlchemyError as exc:
        raise database_error(db, exc) from exc


@router.post('/weekly-schedule', response_model=TemplateItemResponse, status_code=status.HTTP_201_CREATED)
def create_template_item(
    data: CreateTemplateItemRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        _ensure_student_exists(db, data.student_id)
        ensure_template_item_fits(
            db,
            data.day_of_week,
            data.start_time,
            data.duration_minutes,
            data.location_type,
            data.travel_minutes,
        )

        item = WeeklyTemplateItem(**data.model_dump())
        db.add(item)
        db.commit()
        db.refresh(item)

        return item
    except DomainError as exc:
        raise domain_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_error(db, exc) from exc


@router.patch('/weekly-schedule/{item_id}', response_model=TemplateItemResponse)
def update_template_item(
    item_id: int,
    data: UpdateTemplateItemRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        item = _get_item_or_404(db, item_id)
        changes = data.model_dump(exclude_unset=True)
        if changes.get('student_id') is not None:
            _ensure_student_exists(db, changes['student_id'])

        for required in ('day_of_week', 'start_time', 'duration_minutes', 'price', 'location_type', 'travel_minutes'):
            if required in changes and changes[required] is None:
                del changes[required]

        merged = {
            'day_of_week': changes.get('day_of_week', item.day_of_week),
            'start_time': changes.get('start_time', item.start_time),
            'duration_minutes': changes.get('duration_minutes', item.duration_minutes),
            'location_type': changes.get('location_type', item.location_type),
            'travel_minutes': changes.get('travel_minutes', item.travel_minutes),
        }
        ensure_template_item_fits(db, **merged, exclude_id=item.id)

        for name, value in changes.items():
            setattr(item, name, value)
        db.commit()
        db.refresh(item)

        return item
    except DomainError as exc:
        db.rollback()
        raise domain_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_error(db, exc) from exc


@router.delete('/weekly-schedule/{item_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_template_item(
    item_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        item = _get_item_or_404(db, item_id)
        db.delete(item)
        db.commit()
    except DomainError as exc:
        raise domain_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_error(db, exc) from exc
