"""Slot model definitions."""

from datetime import timedelta

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from backend.database import Base
from backend.models.user import User

LOCATION_ONSITE = "onsite"
LOCATION_COMMUTE = "commute"
LOCATION_TYPES = (LOCATION_ONSITE, LOCATION_COMMUTE)


class Slot(Base):
    """A concrete, dated lesson slot.

    ``end_time`` is the pure lesson end. Travel for commute lessons is a
    buffer before ``start_time`` and is never folded into the stored interval.
    """
    __tablename__ = "slots"

    id = Column(Integer, primary_key=True)
    start_time = Column(DateTime, nullable=False, index=True)
    end_time = Column(DateTime, nullable=False)
    is_booked = Column(Boolean, nullable=False, default=False)
    student_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    booked_at = Column(DateTime)
    is_paid = Column(Boolean, nullable=False, default=False)
    topic = Column(String)
    location_type = Column(String, nullable=False, default=LOCATION_ONSITE)
    travel_minutes = Column(Integer, nullable=False, default=0)
    price = Column(Integer)
    notes = Column(String)
    admin_notes = Column(String)

    student = relationship(User, lazy="joined")

    @property
    def duration_minutes(self) -> int:
        return int((self.end_time - self.start_time).total_seconds() // 60)

    @property
    def effective_travel_minutes(self) -> int:
        if self.location_type == LOCATION_COMMUTE:
            return self.travel_minutes or 0
        return 0

    @property
    def busy_start(self):
        return self.start_time - timedelta(minutes=self.effective_travel_minutes)

    @property
    def leave_by(self):
        if self.location_type != LOCATION_COMMUTE:
            return None
        return self.busy_start

    @property
    def student_name(self) -> str | None:
        return self.student.name if self.student else None
