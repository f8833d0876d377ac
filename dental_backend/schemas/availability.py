from datetime import datetime
from typing import Literal

from pydantic import Field, field_validator, model_validator

from dental_backend.core.civil_time import minutes_since_midnight, normalize_hhmm
from dental_backend.core.errors import ValidationError
from dental_backend.schemas.common import (
    CamelModel,
    ClinicBranchSummary,
    DentistSummary,
    Pagination,
    UtcDateTime,
    summarize_clinic_branch,
    summarize_dentist,
)

DayOfWeek = Literal['monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday']


def check_weekly_hours(
    standard_start_time: str,
    standard_end_time: str,
    break_start_time: str | None,
    break_end_time: str | None,
) -> dict[str, str]:
    """Return field -> message for every rule the hours break."""
    errors: dict[str, str] = {}
    start_minutes = minutes_since_midnight(standard_start_time)
    end_minutes = minutes_since_midnight(standard_end_time)

    if start_minutes >= end_minutes:
        errors['standardEndTime'] = 'Standard end time must be after start time'

    if (break_start_time is None) != (break_end_time is None):
        field = 'breakEndTime' if break_end_time is None else 'breakStartTime'
        errors[field] = 'Break start and end times must be provided together'
        return errors

    if break_start_time is None:
        return errors

    break_start_minutes = minutes_since_midnight(break_start_time)
    break_end_minutes = minutes_since_midnight(break_end_time)

    if break_start_minutes >= break_end_minutes:
        errors['breakEndTime'] = 'Break end time must be after break start time'
    elif break_start_minutes < start_minutes or break_end_minutes > end_minutes:
        errors['breakStartTime'] = 'Break times must be within working hours'

    return errors


def _normalize_time(value: str | None) -> str | None:
    if value is None:
        return None
    try:
        return normalize_hhmm(value)
    except ValidationError as exc:
        raise ValueError(exc.message) from exc


def _normalize_day(value: str | None) -> str | None:
    if isinstance(value, str):
        return value.strip().lower()
    return value


class WeeklyAvailabilityFields(CamelModel):
    @field_validator('day_of_week', mode='before', check_fields=False)
    @classmethod
    def normalize_day_of_week(cls, value):
        return _normalize_day(value)

    @field_validator(
        'standard_start_time',
        'standard_end_time',
        'break_start_time',
        'break_end_time',
        check_fields=False,
    )
    @classmethod
    def normalize_times(cls, value: str | None) -> str | None:
        return _normalize_time(value)


class CreateWeeklyAvailabilityRequest(WeeklyAvailabilityFields):
    dentist_id: str
    day_of_week: DayOfWeek
    standard_start_time: str
    standard_end_time: str
    break_start_time: str | None = None
    break_end_time: str | None = None
    clinic_branch_id: int = Field(gt=0)

    @model_validator(mode='after')
    def validate_hours(self):
        errors = check_weekly_hours(
            self.standard_start_time,
            self.standard_end_time,
            self.break_start_time,
            self.break_end_time,
        )
        if errors:
            raise ValueError(next(iter(errors.values())))
        return self


class UpdateWeeklyAvailabilityRequest(WeeklyAvailabilityFields):
    dentist_id: str | None = None
    day_of_week: DayOfWeek | None = None
    standard_start_time: str | None = None
    standard_end_time: str | None = None
    break_start_time: str | None = None
    break_end_time: str | None = None
    clinic_branch_id: int | None = Field(default=None, gt=0)


class WeeklyAvailabilityResponse(CamelModel):
    id: str
    dentist_id: str
    day_of_week: str
    standard_start_time: str
    standard_end_time: str
    break_start_time: str | None = None
    break_end_time: str | None = None
    clinic_branch_id: int
    dentist: DentistSummary | None = None
    clinic_branch: ClinicBranchSummary | None = None

    @classmethod
    def from_record(cls, record) -> 'WeeklyAvailabilityResponse':
        return cls(
            id=record.id,
            dentist_id=record.dentist_id,
            day_of_week=record.day_of_week,
            standard_start_time=record.standard_start_time,
            standard_end_time=record.standard_end_time,
            break_start_time=record.break_start_time,
            break_end_time=record.break_end_time,
            clinic_branch_id=record.clinic_branch_id,
            dentist=summarize_dentist(record.dentist),
            clinic_branch=summarize_clinic_branch(record.clinic_branch),
        )


class DateTimeWindowFields(CamelModel):
    @model_validator(mode='after')
    def validate_window(self):
        start = getattr(self, 'start_date_time', None)
        end = getattr(self, 'end_date_time', None)
        # Mixed naive/aware values are compared by the service once both are UTC.
        if start is not None and end is not None and (start.tzinfo is None) == (end.tzinfo is None):
            if start >= end:
                raise ValueError('End date time must be after start date time')
        return self


class CreateSpecificAvailabilityRequest(DateTimeWindowFields):
    dentist_id: str
    start_date_time: datetime
    end_date_time: datetime
    clinic_branch_id: int | None = Field(default=None, gt=0)


class UpdateSpecificAvailabilityRequest(DateTimeWindowFields):
    dentist_id: str | None = None
    start_date_time: datetime | None = None
    end_date_time: datetime | None = None
    clinic_branch_id: int | None = Field(default=None, gt=0)


class SpecificAvailabilityResponse(CamelModel):
    id: str
    dentist_id: str
    start_date_time: UtcDateTime
    end_date_time: UtcDateTime
    clinic_branch_id: int | None = None
    dentist: DentistSummary | None = None
    clinic_branch: ClinicBranchSummary | None = None

    @classmethod
    def from_record(cls, record) -> 'SpecificAvailabilityResponse':
        return cls(
            id=record.id,
            dentist_id=record.dentist_id,
            start_date_time=record.start_date_time,
            end_date_time=record.end_date_time,
            clinic_branch_id=record.clinic_branch_id,
            dentist=summarize_dentist(record.dentist),
            clinic_branch=summarize_clinic_branch(record.clinic_branch),
        )


class CreateLeaveRequest(DateTimeWindowFields):
    dentist_id: str
    start_date_time: datetime
    end_date_time: datetime


class UpdateLeaveRequest(DateTimeWindowFields):
    dentist_id: str | None = None
    start_date_time: datetime | None = None
    end_date_time: datetime | None = None


class LeaveResponse(CamelModel):
    id: str
    dentist_id: str
    start_date_time: UtcDateTime
    end_date_time: UtcDateTime
    dentist: DentistSummary | None = None

    @classmethod
    def from_record(cls, record) -> 'LeaveResponse':
        return cls(
            id=record.id,
            dentist_id=record.dentist_id,
            start_date_time=record.start_date_time,
            end_date_time=record.end_date_time,
            dentist=summarize_dentist(record.dentist),
        )


class WeeklyAvailabilityPage(CamelModel):
    availabilities: list[WeeklyAvailabilityResponse]
    pagination: Pagination


class SpecificAvailabilityPage(CamelModel):
    availabilities: list[SpecificAvailabilityResponse]
    pagination: Pagination


class LeavePage(CamelModel):
    leaves: list[LeaveResponse]
    pagination: Pagination


class AvailableSlotResponse(CamelModel):
    start_time: UtcDateTime
    end_time: UtcDateTime
    civil_date: str
    civil_start_time: str
    civil_end_time: str
    clinic_branch_id: int | None = None

    @classmethod
    def from_slot(cls, slot, clock) -> 'AvailableSlotResponse':
        civil_start = clock.to_civil(slot.start)
        return cls(
            start_time=slot.start,
            end_time=slot.end,
            civil_date=civil_start.date().isoformat(),
            civil_start_time=civil_start.strftime('%H:%M'),
            civil_end_time=clock.format_civil(slot.end, '%H:%M'),
            clinic_branch_id=slot.clinic_branch_id,
        )
