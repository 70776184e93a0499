import os

os.environ.setdefault('DATABASE_URL', 'sqlite:///:memory:')
os.environ.setdefault('SEED_ADMIN', 'false')

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from backend.auth import jwt_handler  # noqa: E402
from backend.auth.passwords import hash_password  # noqa: E402
from backend.database import Base, get_db  # noqa: E402
from backend.models import slot, waitlist, weekly_template  # noqa: E402,F401
from backend.models.user import ROLE_ADMIN, ROLE_STUDENT, User  # noqa: E402
from backend.services import notifications  # noqa: E402
from backend.services.holidays import HolidayCalendar, get_holiday_calendar  # noqa: E402

TEST_PASSWORD = 'secret-pass'


@pytest.fixture
def engine():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


def _create_user(db, username: str, role: str, name: str, **extra) -> User:
    user = User(
        username=username,
        hashed_password=hash_password(TEST_PASSWORD),
        role=role,
        name=name,
        email=f'{username}@example.com',
        **extra,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def admin(db) -> User:
    return _create_user(db, 'tutor', ROLE_ADMIN, 'Tutor')


@pytest.fixture
def student(db) -> User:
    return _create_user(db, 'anna', ROLE_STUDENT, 'Anna Nowak', default_price=80)


@pytest.fixture
def other_student(db) -> User:
    return _create_user(db, 'piotr', ROLE_STUDENT, 'Piotr Kowalski')


@pytest.fixture
def auth_headers():
    def build(user: User) -> dict[str, str]:
        token = jwt_handler.create_access_token(subject=user.username, role=user.role)
        return {'Authorization': f'Bearer {token}'}

    return build


@pytest.fixture
def client(session_factory):
    from fastapi.testclient import TestClient

    from backend.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_holiday_calendar] = lambda: HolidayCalendar('')
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def reset_notification_handlers():
    yield
    notifications.clear_handlers()
