"""Availability model definitions.

Weekly rows hold civil "HH:MM" strings that recur every week; specific
availability and leave rows hold naive UTC instants.
"""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from dental_backend.database import Base
from dental_backend.models.user import generate_id

DAYS_OF_WEEK = ('monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday')


class WeeklyAvailability(Base):
    """Recurring weekly working hours for a dentist at one branch."""
    __tablename__ = "dentist_availability"

    id = Column(String(32), primary_key=True, default=generate_id)
    dentist_id = Column(String(32), ForeignKey("dentists.id"), nullable=False, index=True)
    day_of_week = Column(String(9), nullable=False)
    standard_start_time = Column(String(5), nullable=False)
    standard_end_time = Column(String(5), nullable=False)
    break_start_time = Column(String(5))
    break_end_time = Column(String(5))
    clinic_branch_id = Column(Integer, ForeignKey("clinic_branches.id"), nullable=False)

    dentist = relationship("Dentist")
    clinic_branch = relationship("ClinicBranch")

    @property
    def has_break(self) -> bool:
        return bool(self.break_start_time and self.break_end_time)


class SpecificAvailability(Base):
    """A one-off window that replaces the weekly hours for its date."""
    __tablename__ = "specific_dentist_availability"

    id = Column(String(32), primary_key=True, default=generate_id)
    dentist_id = Column(String(32), ForeignKey("dentists.id"), nullable=False, index=True)
    start_date_time = Column(DateTime, nullable=False)
    end_date_time = Column(DateTime, nullable=False)
    clinic_branch_id = Column(Integer, ForeignKey("clinic_branches.id"))

    dentist = relationship("Dentist")
    clinic_branch = relationship("ClinicBranch")


class Leave(Base):
    """A span during which the dentist cannot be booked at all."""
    __tablename__ = "dentist_leaves"

    id = Column(String(32), primary_key=True, default=generate_id)
    dentist_id = Column(String(32), ForeignKey("dentists.id"), nullable=False, index=True)
    start_date_time = Column(DateTime, nullable=False)
    end_date_time = Column(DateTime, nullable=False)

    dentist = relationship("Dentist")
