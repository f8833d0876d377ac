import json
from datetime import datetime
from typing import Any, Literal

from pydantic import Field, field_validator, model_validator

from dental_backend.core import config
from dental_backend.schemas.common import (
    CamelModel,
    ClinicBranchSummary,
    DentistSummary,
    Pagination,
    UserSummary,
    UtcDateTime,
    summarize_clinic_branch,
    summarize_dentist,
    summarize_user,
)

AppointmentStatus = Literal['pending', 'confirmed', 'completed', 'cancelled', 'rescheduled']


# Clinical intake captured at booking time, usually an object such as
# {"symptoms": [...], "answers": {...}, "painLevel": 6, "timestamp": "..."}.
# The scheduler never reads it: objects are stored as JSON and strings as given.
DetailedNotes = dict[str, Any] | str


def serialize_detailed_notes(value: DetailedNotes | None) -> str | None:
    if value is None or isinstance(value, str):
        return value
    return json.dumps(value)


def deserialize_detailed_notes(value: str | None) -> DetailedNotes | None:
    if value is None:
        return None
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError:
        return value
    return parsed if isinstance(parsed, dict) else value


def _normalize_notes(value: str | None) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if not normalized:
        return None

    if len(normalized) > config.MAX_APPOINTMENT_NOTES_LENGTH:
        raise ValueError(f'Notes must be {config.MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')

    return normalized


def _check_interval(start: datetime | None, end: datetime | None) -> None:
    # Mixed naive/aware values are compared by the service once both are UTC.
    if start is None or end is None or (start.tzinfo is None) != (end.tzinfo is None):
        return
    if end <= start:
        raise ValueError('End time must be after start time')


class AppointmentFields(CamelModel):
    @field_validator('notes', check_fields=False)
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_notes(value)

    @field_validator('treatment_options', check_fields=False)
    @classmethod
    def normalize_treatment_options(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        return [option.strip() for option in value if option and option.strip()]

    @field_validator('patient_id', 'scheduled_by', check_fields=False)
    @classmethod
    def require_identifier(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            raise ValueError('Identifier must not be blank.')
        return value.strip() if value is not None else None


class CreateAppointmentRequest(AppointmentFields):
    appointment_id: str | None = Field(default=None, min_length=1, max_length=32)
    patient_id: str
    dentist_id: str | None = None
    scheduled_by: str
    appointment_date: datetime
    start_time: datetime
    end_time: datetime | None = None
    notes: str | None = None
    notif_content: str | None = None
    treatment_options: list[str] = Field(default_factory=list)
    status: AppointmentStatus = 'pending'
    clinic_branch_id: int | None = Field(default=None, gt=0)
    detailed_notes: DetailedNotes | None = None

    @field_validator('dentist_id')
    @classmethod
    def blank_dentist_is_unassigned(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        return value

    @model_validator(mode='after')
    def validate_interval(self):
        _check_interval(self.start_time, self.end_time)
        return self


class UpdateAppointmentRequest(AppointmentFields):
    """Partial update; only fields present in the payload are applied."""

    patient_id: str | None = None
    dentist_id: str | None = None
    scheduled_by: str | None = None
    appointment_date: datetime | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    notes: str | None = None
    notif_content: str | None = None
    treatment_options: list[str] | None = None
    status: AppointmentStatus | None = None
    clinic_branch_id: int | None = Field(default=None, gt=0)
    detailed_notes: DetailedNotes | None = None

    @model_validator(mode='after')
    def validate_interval(self):
        _check_interval(self.start_time, self.end_time)
        return self


class RescheduleAppointmentRequest(CamelModel):
    new_date: datetime
    new_start_time: datetime
    new_end_time: datetime | None = None

    @model_validator(mode='after')
    def validate_interval(self):
        _check_interval(self.new_start_time, self.new_end_time)
        return self


class AssignDentistRequest(CamelModel):
    dentist_id: str = Field(min_length=1)


class AppointmentQuery(CamelModel):
    patient_id: str | None = None
    dentist_id: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    status: AppointmentStatus | None = None
    clinic_branch_id: int | None = None
    limit: int = Field(default_factory=lambda: config.DEFAULT_PAGE_LIMIT, ge=1, le=config.MAX_PAGE_LIMIT)
    offset: int = Field(default=0, ge=0)


class AppointmentResponse(CamelModel):
    appointment_id: str
    patient_id: str
    dentist_id: str | None = None
    scheduled_by: str
    appointment_date: UtcDateTime
    start_time: UtcDateTime
    end_time: UtcDateTime | None = None
    notes: str | None = None
    notif_content: str | None = None
    treatment_options: list[str] = Field(default_factory=list)
    status: str
    clinic_branch_id: int | None = None
    detailed_notes: DetailedNotes | None = None
    created_at: UtcDateTime | None = None
    updated_at: UtcDateTime | None = None
    patient: UserSummary | None = None
    dentist: DentistSummary | None = None
    scheduled_by_user: UserSummary | None = None
    clinic_branch: ClinicBranchSummary | None = None

    @classmethod
    def from_record(cls, appointment) -> 'AppointmentResponse':
        return cls(
            appointment_id=appointment.id,
            patient_id=appointment.patient_id,
            dentist_id=appointment.dentist_id,
            scheduled_by=appointment.scheduled_by,
            appointment_date=appointment.appointment_date,
            start_time=appointment.start_time,
            end_time=appointment.end_time,
            notes=appointment.notes,
            notif_content=appointment.notif_content,
            treatment_options=list(appointment.treatment_options or []),
            status=appointment.status,
            clinic_branch_id=appointment.clinic_branch_id,
            detailed_notes=deserialize_detailed_notes(appointment.detailed_notes),
            created_at=appointment.created_at,
            updated_at=appointment.updated_at,
            patient=summarize_user(appointment.patient),
            dentist=summarize_dentist(appointment.dentist),
            scheduled_by_user=summarize_user(appointment.scheduled_by_user),
            clinic_branch=summarize_clinic_branch(appointment.clinic_branch),
        )


class AppointmentPage(CamelModel):
    appointments: list[AppointmentResponse]
    pagination: Pagination
