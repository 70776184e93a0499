import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import get_current_user, require_admin
from backend.auth.passwords import hash_password
from backend.database import get_db
from backend.models.slot import Slot
from backend.models.user import ROLE_ADMIN, ROLE_STUDENT, User
from backend.models.weekly_template import WeeklyTemplateItem
from backend.routes.common import ApiModel, database_error, normalize_email, normalize_optional_text
from backend.scheduling import booking

router = APIRouter(tags=['users'])

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


class UserResponse(ApiModel):
    id: int
    username: str
    role: str
    name: str
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    admin_notes: str | None = None
    default_price: int | None = None


class CreateUserRequest(ApiModel):
    username: str = Field(min_length=3, max_length=64)
    password: str = Field(min_length=MIN_PASSWORD_LENGTH)
    name: str = Field(min_length=1, max_length=120)
    email: str
    phone: str | None = None
    address: str | None = None
    admin_notes: str | None = None
    default_price: int | None = Field(default=None, ge=0)

    @field_validator('username')
    @classmethod
    def normalize_username(cls, value: str) -> str:
        normalized = value.strip().lower()
        if not normalized:
            raise ValueError('Username is required.')
        return normalized

    @field_validator('name')
    @classmethod
    def normalize_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Name is required.')
        return normalized

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str) -> str:
        normalized = normalize_email(value)
        if normalized is None:
            raise ValueError('Email is required.')
        return normalized

    @field_validator('phone', 'address', 'admin_notes')
    @classmethod
    def strip_text(cls, value: str | None) -> str | None:
        return normalize_optional_text(value)


class UpdateUserRequest(ApiModel):
    username: str | None = Field(default=None, min_length=3, max_length=64)
    password: str | None = None
    name: str | None = Field(default=None, min_length=1, max_length=120)
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    admin_notes: str | None = None
    default_price: int | None = Field(default=None, ge=0)

    @field_validator('username')
    @classmethod
    def normalize_username(cls, value: str | None) -> str | None:
        return value.strip().lower() if value is not None else None

    @field_validator('password')
    @classmethod
    def validate_password(cls, value: str | None) -> str | None:
        # A blank password leaves the current one untouched.
        if value is None or not value.strip():
            return None
        if len(value) < MIN_PASSWORD_LENGTH:
            raise ValueError(f'Password must be at least {MIN_PASSWORD_LENGTH} characters.')
        return value

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str | None) -> str | None:
        return normalize_email(value)

    @field_validator('phone', 'address', 'admin_notes')
    @classmethod
    def strip_text(cls, value: str | None) -> str | None:
        return normalize_optional_text(value)


class UpdateProfileRequest(ApiModel):
    email: str
    phone: str | None = None

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str) -> str:
        normalized = normalize_email(value)
        if normalized is None:
            raise ValueError('Email is required.')
        return normalized

    @field_validator('phone')
    @classmethod
    def strip_phone(cls, value: str | None) -> str | None:
        return normalize_optional_text(value)


class BalanceResponse(ApiModel):
    student_id: int
    unpaid_count: int
    amount: int
    slot_ids: list[int]


def get_user_or_404(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='User not found.')
    return user


def get_student_or_404(db: Session, user_id: int) -> User:
    user = get_user_or_404(db, user_id)
    if user.role != ROLE_STUDENT:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Student not found.')
    return user


def username_taken(db: Session, username: str, exclude_id: int | None = None) -> bool:
    query = db.query(User.id).filter(User.username == username)
    if exclude_id is not None:
        query = query.filter(User.id != exclude_id)
    return query.first() is not None


def create_student(db: Session, data: CreateUserRequest) -> User:
    if username_taken(db, data.username):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail='This username is already taken.')

    user = User(
        username=data.username,
        hashed_password=hash_password(data.password),
        role=ROLE_STUDENT,
        name=data.name,
        email=data.email,
        phone=data.phone,
        address=data.address,
        admin_notes=data.admin_notes,
        default_price=data.default_price,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info('Created student account %s', user.username)
    return user


@router.get('/users', response_model=list[UserResponse])
def list_users(db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    try:
        return db.query(User).order_by(User.name.asc()).all()
    except SQLAlchemyError as exc:
        raise database_error(db, exc) from exc


@router.post('/users', response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def create_user(
    data: CreateUserRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        return create_student(db, data)
    except SQLAlchemyError as exc:
        raise database_error(db, exc) from exc


@router.patch('/users/{user_id}', response_model=UserResponse)
def update_user(
    user_id: int,
    data: UpdateUserRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        user = get_user_or_404(db, user_id)
        changes = data.model_dump(exclude_unset=True)

        password = changes.pop('password', None)
        if password:
            user.hashed_password = hash_password(password)

        username = changes.get('username')
        if username is not None and username_taken(db, username, exclude_id=user.id):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail='This username is already taken.')

        for name, value in changes.items():
            if name in ('username', 'name') and not value:
                continue
            setattr(user, name, value)

        db.commit()
        db.refresh(user)
        return user
    except SQLAlchemyError as exc:
        raise database_error(db, exc) from exc


@router.delete('/users/{user_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_user(
    user_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        user = get_user_or_404(db, user_id)
        if user.role == ROLE_ADMIN:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Admin accounts cannot be deleted.')

        for slot in db.query(Slot).filter(Slot.student_id == user.id).all():
            booking.release_slot(slot)
        db.query(WeeklyTemplateItem).filter(WeeklyTemplateItem.student_id == user.id).delete(
            synchronize_session=False,
        )
        db.delete(user)
        db.commit()
        logger.info('Deleted user %s and released their lessons', user_id)
    except SQLAlchemyError as exc:
        raise database_error(db, exc) from exc


@router.get('/users/{user_id}/balance', response_model=BalanceResponse)
def get_balance(
    user_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        student = get_student_or_404(db, user_id)
        return booking.student_balance(db, student)
    except SQLAlchemyError as exc:
        raise database_error(db, exc) from exc


@router.post('/users/{user_id}/settle', response_model=BalanceResponse)
def settle_balance(
    user_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        student = get_student_or_404(db, user_id)
        return booking.settle_student_debt(db, student)
    except SQLAlchemyError as exc:
        raise database_error(db, exc) from exc


@router.patch('/user', response_model=UserResponse)
def update_profile(
    data: UpdateProfileRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        current_user.email = data.email
        current_user.phone = data.phone
        db.commit()
        db.refresh(current_user)
        return current_user
    except SQLAlchemyError as exc:
        raise database_error(db, exc) from exc
