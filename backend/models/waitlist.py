"""Waitlist model definitions."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String

from backend.database import Base


class WaitlistEntry(Base):
    """A contact request left by a prospective student."""
    __tablename__ = "waitlist"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    email = Column(String)
    phone = Column(String)
    message = Column(String)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
