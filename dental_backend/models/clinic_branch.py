"""Clinic branch model definitions."""

from sqlalchemy import Column, Integer, String

from dental_backend.database import Base


class ClinicBranch(Base):
    """A physical clinic location."""
    __tablename__ = "clinic_branches"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    address = Column(String, nullable=False)
    phone = Column(String)
    email = Column(String)
