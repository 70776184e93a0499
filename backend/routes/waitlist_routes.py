from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import require_admin
from backend.database import get_db
from backend.models.user import User
from backend.models.waitlist import WaitlistEntry
from backend.routes.common import ApiModel, database_error, normalize_email, normalize_optional_text
from backend.services import notifications

router = APIRouter(tags=['waitlist'])

MAX_MESSAGE_LENGTH = 1000


class WaitlistEntryResponse(ApiModel):
    id: int
    name: str
    email: str | None = None
    phone: str | None = None
    message: str | None = None
    created_at: datetime


class CreateWaitlistEntryRequest(ApiModel):
    name: str = Field(min_length=1, max_length=120)
    email: str | None = None
    phone: str | None = None
    message: str | None = None

    @field_validator('name')
    @classmethod
    def normalize_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Name is required.')
        return normalized

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str | None) -> str | None:
        return normalize_email(value)

    @field_validator('phone')
    @classmethod
    def strip_phone(cls, value: str | None) -> str | None:
        return normalize_optional_text(value)

    @field_validator('message')
    @classmethod
    def validate_message(cls, value: str | None) -> str | None:
        normalized = normalize_optional_text(value)
        if normalized and len(normalized) > MAX_MESSAGE_LENGTH:
            raise ValueError(f'Message must be {MAX_MESSAGE_LENGTH} characters or fewer.')
        return normalized


@router.post('/waitlist', response_model=WaitlistEntryResponse, status_code=status.HTTP_201_CREATED)
def create_waitlist_entry(data: CreateWaitlistEntryRequest, db: Session = Depends(get_db)):
    try:
        entry = WaitlistEntry(
            name=data.name,
            email=data.email,
            phone=data.phone,
            message=data.message,
            created_at=datetime.now(),
        )
        db.add(entry)
        db.commit()
        db.refresh(entry)
    except SQLAlchemyError as exc:
        raise database_error(db, exc) from exc

    notifications.publish(
        notifications.WAITLIST_REQUEST,
        entry_id=entry.id,
        name=entry.name,
        message=entry.message,
    )
    return entry


@router.get('/waitlist', response_model=list[WaitlistEntryResponse])
def list_waitlist(db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    try:
        return db.query(WaitlistEntry).order_by(WaitlistEntry.created_at.desc()).all()
    except SQLAlchemyError as exc:
        raise database_error(db, exc) from exc


@router.delete('/waitlist/{entry_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_waitlist_entry(
    entry_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        entry = db.get(WaitlistEntry, entry_id)
        if entry is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Waitlist entry not found.')

        db.delete(entry)
        db.commit()
    except SQLAlchemyError as exc:
        raise database_error(db, exc) from exc
