"""User model definitions."""

from sqlalchemy import Column, Integer, String

from backend.database import Base

ROLE_ADMIN = "admin"
ROLE_STUDENT = "student"


class User(Base):
    """Represents an application user: the tutor (admin) or a student."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    role = Column(String, nullable=False, default=ROLE_STUDENT)  # student/admin
    name = Column(String, nullable=False)
    email = Column(String)
    phone = Column(String)
    address = Column(String)
    admin_notes = Column(String)
    default_price = Column(Integer)

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN
