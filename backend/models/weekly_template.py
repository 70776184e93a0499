"""Weekly template model definitions."""

from sqlalchemy import Column, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from backend.database import Base
from backend.models.slot import LOCATION_ONSITE
from backend.models.user import User


class WeeklyTemplateItem(Base):
    """A recurring weekly lesson: weekday + "HH:mm" start, no concrete date."""
    __tablename__ = "weekly_schedule"

    id = Column(Integer, primary_key=True)
    day_of_week = Column(Integer, nullable=False)  # 1=Mon .. 6=Sat
    start_time = Column(String, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    student_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    price = Column(Integer, nullable=False, default=0)
    location_type = Column(String, nullable=False, default=LOCATION_ONSITE)
    travel_minutes = Column(Integer, nullable=False, default=0)

    student = relationship(User, lazy="joined")

    @property
    def student_name(self) -> str | None:
        return self.student.name if self.student else None
