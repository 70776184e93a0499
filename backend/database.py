from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from backend.core import config


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {}


engine = create_engine(config.DATABASE_URL, **_engine_options(config.DATABASE_URL))

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_slot_schema_checked = False


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_slot_schema() -> None:
    """Bring an older ``slots``/``weekly_schedule`` table up to the current columns."""
    global _slot_schema_checked

    if _slot_schema_checked:
        return

    with _schema_lock:
        if _slot_schema_checked:
            return

        inspector = inspect(engine)
        table_names = inspector.get_table_names()

        if 'slots' not in table_names:
            _slot_schema_checked = True
            return

        slot_columns = {column['name'] for column in inspector.get_columns('slots')}
        slot_steps = [
            ('booked_at', 'ALTER TABLE slots ADD COLUMN booked_at TIMESTAMP'),
            ('location_type', "ALTER TABLE slots ADD COLUMN location_type VARCHAR DEFAULT 'onsite'"),
            ('travel_minutes', 'ALTER TABLE slots ADD COLUMN travel_minutes INTEGER DEFAULT 0'),
            ('admin_notes', 'ALTER TABLE slots ADD COLUMN admin_notes VARCHAR'),
        ]

        template_columns = set()
        if 'weekly_schedule' in table_names:
            template_columns = {column['name'] for column in inspector.get_columns('weekly_schedule')}
        template_steps = [
            ('location_type', "ALTER TABLE weekly_schedule ADD COLUMN location_type VARCHAR DEFAULT 'onsite'"),
            ('travel_minutes', 'ALTER TABLE weekly_schedule ADD COLUMN travel_minutes INTEGER DEFAULT 0'),
        ]

        with engine.begin() as connection:
            for column_name, statement in slot_steps:
                if column_name not in slot_columns:
                    connection.execute(text(statement))
            if template_columns:
                for column_name, statement in template_steps:
                    if column_name not in template_columns:
                        connection.execute(text(statement))
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_slots_time_range ON slots(start_time, end_time)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_slots_student_paid ON slots(student_id, is_paid)')
            )

        _slot_schema_checked = True
