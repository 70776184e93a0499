import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from backend.auth.passwords import hash_password
from backend.core import config
from backend.database import Base, SessionLocal, engine, ensure_slot_schema
from backend.models import slot, user, waitlist, weekly_template  # noqa: F401
from backend.models.user import ROLE_ADMIN, User
from backend.routes import auth_routes, slot_routes, user_routes, waitlist_routes, weekly_schedule_routes
from backend.services import notifications

logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(name)s: %(message)s')

config.validate_runtime_config()

app = FastAPI(title='Tutoring Booking API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


def seed_admin() -> None:
    if not config.SEED_ADMIN:
        return

    db = SessionLocal()
    try:
        if db.query(User).filter(User.role == ROLE_ADMIN).first():
            return
        db.add(User(
            username=config.ADMIN_USERNAME.strip().lower(),
            hashed_password=hash_password(config.ADMIN_PASSWORD),
            role=ROLE_ADMIN,
            name=config.ADMIN_NAME,
            email=config.ADMIN_EMAIL,
        ))
        db.commit()
        logger.info('Seeded admin account %s', config.ADMIN_USERNAME)
    finally:
        db.close()


@app.on_event('startup')
def initialize_database() -> None:
    notifications.register_default_handlers()
    try:
        Base.metadata.create_all(bind=engine)
        ensure_slot_schema()
        seed_admin()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL.')


@app.get('/')
def root():
    return {'status': 'Tutoring Booking API Running'}


app.include_router(auth_routes.router, prefix='/auth')
app.include_router(slot_routes.router, prefix='/api')
app.include_router(weekly_schedule_routes.router, prefix='/api')
app.include_router(user_routes.router, prefix='/api')
app.include_router(waitlist_routes.router, prefix='/api')
