import logging

from fastapi import HTTPException, status
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.core.errors import DomainError
from backend.models.slot import LOCATION_TYPES

logger = logging.getLogger(__name__)

INTERNAL_ERROR_DETAIL = 'Internal server error.'


class ApiModel(BaseModel):
    """camelCase on the wire, snake_case accepted on input."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def normalize_optional_text(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip()
    return normalized or None


def normalize_email(value: str | None) -> str | None:
    normalized = normalize_optional_text(value)
    if normalized is None:
        return None
    normalized = normalized.lower()
    local_part, _, domain = normalized.partition('@')
    if not local_part or '.' not in domain:
        raise ValueError('Invalid email address.')
    return normalized


def domain_error(exc: DomainError) -> HTTPException:
    return exc.to_http_exception()


def database_error(db: Session | None, exc: SQLAlchemyError) -> HTTPException:
    if db is not None:
        db.rollback()
    logger.exception('Database operation failed: %s', exc)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=INTERNAL_ERROR_DETAIL,
    )


def normalize_location_type(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip().lower()
    if normalized not in LOCATION_TYPES:
        raise ValueError('Location type must be "onsite" or "commute".')
    return normalized
