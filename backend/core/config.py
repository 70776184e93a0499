import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


APP_ENV = os.getenv("APP_ENV", "development")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./tutoring.db")

CORS_ORIGINS = _get_list(os.getenv("CORS_ORIGINS"), ["http://localhost:5173"])

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "720"))

# Students may cancel until this many hours before the lesson...
CANCELLATION_WINDOW_HOURS = int(os.getenv("CANCELLATION_WINDOW_HOURS", "24"))
# ...or within this many minutes of booking, whichever is later.
CANCELLATION_GRACE_MINUTES = int(os.getenv("CANCELLATION_GRACE_MINUTES", "30"))

DEFAULT_LESSON_TOPIC = os.getenv("DEFAULT_LESSON_TOPIC", "Mathematics")
# Travel assumed for a commute booking when the student gives none.
DEFAULT_COMMUTE_TRAVEL_MINUTES = int(os.getenv("DEFAULT_COMMUTE_TRAVEL_MINUTES", "30"))

# Empty disables the public-holiday lookup used by the slot generators.
HOLIDAY_COUNTRY_CODE = os.getenv("HOLIDAY_COUNTRY_CODE", "").strip().upper()
HOLIDAY_API_URL = os.getenv("HOLIDAY_API_URL", "https://date.nager.at/api/v3/PublicHolidays")
HOLIDAY_API_TIMEOUT_SECONDS = float(os.getenv("HOLIDAY_API_TIMEOUT_SECONDS", "5"))

SEED_ADMIN = _get_bool(os.getenv("SEED_ADMIN"), default=APP_ENV.lower() != "production")
ADMIN_USERNAME = os.getenv("ADMIN_USERNAME", "admin")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "admin123")
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@example.com")
ADMIN_NAME = os.getenv("ADMIN_NAME", "Tutor")


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if CANCELLATION_WINDOW_HOURS < 0 or CANCELLATION_GRACE_MINUTES < 0:
        raise RuntimeError("Cancellation windows must not be negative.")
