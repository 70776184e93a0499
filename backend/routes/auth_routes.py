import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth import jwt_handler
from backend.auth.dependencies import get_current_user
from backend.auth.passwords import verify_password
from backend.database import get_db
from backend.models.user import User
from backend.routes.common import ApiModel, database_error
from backend.routes.user_routes import CreateUserRequest, UserResponse, create_student

router = APIRouter(tags=['auth'])

logger = logging.getLogger(__name__)


class LoginRequest(ApiModel):
    username: str
    password: str


class TokenResponse(ApiModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


def issue_token(user: User) -> TokenResponse:
    token = jwt_handler.create_access_token(subject=user.username, role=user.role)
    return TokenResponse(access_token=token, user=UserResponse.model_validate(user))


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def register(data: CreateUserRequest, db: Session = Depends(get_db)):
    # Self-registration never carries tutor-only fields.
    data = data.model_copy(update={"admin_notes": None, "default_price": None})
    try:
        user = create_student(db, data)
    except SQLAlchemyError as exc:
        raise database_error(db, exc) from exc
    return issue_token(user)


@router.post("/login", response_model=TokenResponse)
def login(data: LoginRequest, db: Session = Depends(get_db)):
    username = data.username.strip().lower()
    try:
        user = db.query(User).filter(User.username == username).first()
    except SQLAlchemyError as exc:
        raise database_error(db, exc) from exc

    if user is None or not verify_password(data.password, user.hashed_password):
        logger.warning("Failed login attempt for %s", username)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid username or password.")

    return issue_token(user)


@router.get("/me", response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)):
    return current_user
