"""User and dentist model definitions."""

from uuid import uuid4

from sqlalchemy import Column, ForeignKey, String
from sqlalchemy.orm import relationship

from dental_backend.database import Base

USER_ROLES = ('patient', 'dentist', 'secretary', 'super_admin')
STAFF_ROLES = ('dentist', 'secretary', 'super_admin')


def generate_id() -> str:
    return uuid4().hex


class User(Base):
    """Represents an application user."""
    __tablename__ = "users"

    id = Column(String(32), primary_key=True, default=generate_id)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    role = Column(String, nullable=False, default='patient')  # patient/dentist/secretary/super_admin


class Dentist(Base):
    """A dentist profile attached to a user account."""
    __tablename__ = "dentists"

    id = Column(String(32), primary_key=True, default=generate_id)
    user_id = Column(String(32), ForeignKey("users.id"), unique=True, nullable=False)
    specialization = Column(String)

    user = relationship("User")
