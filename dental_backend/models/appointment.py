"""Appointment model definitions."""

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import relationship

from dental_backend.core.civil_time import utc_now
from dental_backend.database import ACTIVE_APPOINTMENT_PREDICATE, Base
from dental_backend.models.user import generate_id

APPOINTMENT_STATUSES = ('pending', 'confirmed', 'completed', 'cancelled', 'rescheduled')
SLOT_INDEX_NAME = 'uq_appointments_dentist_start_active'


class Appointment(Base):
    """Represents a scheduled appointment."""
    __tablename__ = "appointments"
    __table_args__ = (
        # Storage-level backstop against two live bookings sharing a start.
        Index(
            SLOT_INDEX_NAME,
            'dentist_id',
            'start_time',
            unique=True,
            postgresql_where=text(ACTIVE_APPOINTMENT_PREDICATE),
            sqlite_where=text(ACTIVE_APPOINTMENT_PREDICATE),
        ),
        Index('idx_appointments_dentist_date', 'dentist_id', 'appointment_date'),
    )

    id = Column(String(32), primary_key=True, default=generate_id)
    patient_id = Column(String(32), ForeignKey("users.id"), nullable=False, index=True)
    dentist_id = Column(String(32), ForeignKey("dentists.id"))
    scheduled_by = Column(String(32), ForeignKey("users.id"), nullable=False)
    appointment_date = Column(DateTime, nullable=False)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime)
    notes = Column(Text)
    notif_content = Column(Text)
    treatment_options = Column(JSON, nullable=False, default=list)
    status = Column(String, nullable=False, default='pending')
    clinic_branch_id = Column(Integer, ForeignKey("clinic_branches.id"))
    detailed_notes = Column(Text)  # serialized clinical intake, stored as-is
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    patient = relationship("User", foreign_keys=[patient_id])
    scheduled_by_user = relationship("User", foreign_keys=[scheduled_by])
    dentist = relationship("Dentist")
    clinic_branch = relationship("ClinicBranch")
