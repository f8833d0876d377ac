"""Decides whether a dentist can take a booking at a given time.

Three rules are applied, in order:

1. Appointment overlap against the dentist's other bookings that share the
   exact same ``appointment_date`` instant (not a calendar-day range).
2. Leave: the dentist is unavailable for the whole span of any leave row.
3. Availability window: the booking must sit inside the effective hours for
   its civil date, with touching windows joined into one span. Specific
   availability rows for that date replace the weekly hours; weekly breaks
   are carved out of the standard hours.

All intervals are half-open, so back-to-back bookings are allowed. The check
is read-only; callers hold the dentist row lock and perform the write.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime

from sqlalchemy import or_
from sqlalchemy.orm import Session

from dental_backend.core import config
from dental_backend.core.civil_time import CivilClock, get_civil_clock, to_storage
from dental_backend.core.errors import DentistUnavailableError, ScheduleConflictError
from dental_backend.models.appointment import Appointment
from dental_backend.models.availability import DAYS_OF_WEEK, Leave, SpecificAvailability, WeeklyAvailability

logger = logging.getLogger(__name__)

REASON_SCHEDULE_CONFLICT = 'ScheduleConflict'
REASON_ON_LEAVE = 'DentistOnLeave'
REASON_WITHIN_BREAK = 'WithinBreak'
REASON_OUTSIDE_AVAILABILITY = 'OutsideAvailability'

REASON_MESSAGES = {
    REASON_SCHEDULE_CONFLICT: 'The dentist has another appointment at this time',
    REASON_ON_LEAVE: 'The dentist is on leave at this time',
    REASON_WITHIN_BREAK: "The requested time falls within the dentist's break",
    REASON_OUTSIDE_AVAILABILITY: "The requested time is outside the dentist's available hours",
}


@dataclass
class AvailabilityWindow:
    start: datetime
    end: datetime
    clinic_branch_id: int | None = None
    break_start: datetime | None = None
    break_end: datetime | None = None
    source: str = 'weekly'


@dataclass
class EligibilityResult:
    allowed: bool
    reasons: list[str] = field(default_factory=list)
    conflicting_appointment_ids: list[str] = field(default_factory=list)

    @property
    def reason(self) -> str | None:
        return self.reasons[0] if self.reasons else None


def appointment_overlaps(
    existing_start: datetime,
    existing_end: datetime | None,
    start: datetime,
    end: datetime | None,
) -> bool:
    """Half-open overlap; a missing end on either side is open-ended."""
    if end is None:
        starts_in_range = existing_start <= start
    else:
        starts_in_range = existing_start < end
    return starts_in_range and (existing_end is None or existing_end > start)


def find_conflicting_appointments(
    db: Session,
    dentist_id: str,
    appointment_date: datetime,
    start_time: datetime,
    end_time: datetime | None = None,
    exclude_appointment_id: str | None = None,
) -> list[Appointment]:
    start_time = to_storage(start_time)
    end_time = to_storage(end_time)

    if end_time is None:
        starts_in_range = Appointment.start_time <= start_time
    else:
        starts_in_range = Appointment.start_time < end_time

    query = db.query(Appointment).filter(
        Appointment.dentist_id == dentist_id,
        Appointment.appointment_date == to_storage(appointment_date),
        Appointment.status != 'cancelled',
        starts_in_range,
        or_(Appointment.end_time.is_(None), Appointment.end_time > start_time),
    )
    if exclude_appointment_id is not None:
        query = query.filter(Appointment.id != exclude_appointment_id)

    return query.order_by(Appointment.start_time.asc()).all()


def find_overlapping_leaves(
    db: Session,
    dentist_id: str,
    start_time: datetime,
    end_time: datetime | None = None,
) -> list[Leave]:
    start_time = to_storage(start_time)
    end_time = to_storage(end_time)

    if end_time is None:
        starts_in_range = Leave.start_date_time <= start_time
    else:
        starts_in_range = Leave.start_date_time < end_time

    return db.query(Leave).filter(
        Leave.dentist_id == dentist_id,
        starts_in_range,
        Leave.end_date_time > start_time,
    ).all()


def get_effective_windows(
    db: Session,
    dentist_id: str,
    civil_date: date,
    clinic_branch_id: int | None = None,
    clock: CivilClock | None = None,
) -> list[AvailabilityWindow]:
    clock = clock or get_civil_clock()
    day_start, day_end = (to_storage(bound) for bound in clock.civil_day_bounds(civil_date))

    specific_query = db.query(SpecificAvailability).filter(
        SpecificAvailability.dentist_id == dentist_id,
        SpecificAvailability.start_date_time < day_end,
        SpecificAvailability.end_date_time > day_start,
    )
    if clinic_branch_id is not None:
        specific_query = specific_query.filter(
            or_(
                SpecificAvailability.clinic_branch_id.is_(None),
                SpecificAvailability.clinic_branch_id == clinic_branch_id,
            )
        )
    specific_rows = specific_query.order_by(SpecificAvailability.start_date_time.asc()).all()

    if specific_rows:
        return [
            AvailabilityWindow(
                start=row.start_date_time,
                end=row.end_date_time,
                clinic_branch_id=row.clinic_branch_id,
                source='specific',
            )
            for row in specific_rows
        ]

    weekly_query = db.query(WeeklyAvailability).filter(
        WeeklyAvailability.dentist_id == dentist_id,
        WeeklyAvailability.day_of_week == DAYS_OF_WEEK[civil_date.weekday()],
    )
    if clinic_branch_id is not None:
        weekly_query = weekly_query.filter(WeeklyAvailability.clinic_branch_id == clinic_branch_id)

    windows: list[AvailabilityWindow] = []
    for row in weekly_query.order_by(WeeklyAvailability.standard_start_time.asc()).all():
        window = AvailabilityWindow(
            start=to_storage(clock.combine_civil_date_and_time(civil_date, row.standard_start_time)),
            end=to_storage(clock.combine_civil_date_and_time(civil_date, row.standard_end_time)),
            clinic_branch_id=row.clinic_branch_id,
        )
        if row.has_break:
            window.break_start = to_storage(clock.combine_civil_date_and_time(civil_date, row.break_start_time))
            window.break_end = to_storage(clock.combine_civil_date_and_time(civil_date, row.break_end_time))
        windows.append(window)

    return windows


def _merge_spans(intervals: list[tuple[datetime, datetime]]) -> list[tuple[datetime, datetime]]:
    merged: list[tuple[datetime, datetime]] = []
    for start, end in sorted(intervals):
        if merged and start <= merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return merged


def _working_pieces(window: AvailabilityWindow) -> list[tuple[datetime, datetime]]:
    if window.break_start is None or window.break_end is None:
        return [(window.start, window.end)]
    return [(window.start, window.break_start), (window.break_end, window.end)]


def _fits_any(spans: list[tuple[datetime, datetime]], start_time: datetime, end_time: datetime | None) -> bool:
    for span_start, span_end in spans:
        if end_time is None:
            if span_start <= start_time < span_end:
                return True
        elif span_start <= start_time and end_time <= span_end:
            return True
    return False


def evaluate_window_fit(
    windows: list[AvailabilityWindow],
    start_time: datetime,
    end_time: datetime | None = None,
) -> str | None:
    """Return ``None`` when the interval fits the dentist's hours, else the reason it does not.

    Touching windows (09:00-12:00 and 12:00-17:00) form one continuous span,
    so a booking may run across the boundary. Breaks are carved out before
    merging.
    """
    working = _merge_spans([piece for window in windows for piece in _working_pieces(window)])
    if _fits_any(working, start_time, end_time):
        return None

    hours = _merge_spans([(window.start, window.end) for window in windows])
    if _fits_any(hours, start_time, end_time):
        return REASON_WITHIN_BREAK
    return REASON_OUTSIDE_AVAILABILITY


def check_eligibility(
    db: Session,
    dentist_id: str | None,
    appointment_date: datetime,
    start_time: datetime,
    end_time: datetime | None = None,
    clinic_branch_id: int | None = None,
    exclude_appointment_id: str | None = None,
    clock: CivilClock | None = None,
    enforce_availability: bool | None = None,
) -> EligibilityResult:
    if not dentist_id:
        return EligibilityResult(allowed=True)

    clock = clock or get_civil_clock()
    if enforce_availability is None:
        enforce_availability = config.ENFORCE_AVAILABILITY_WINDOWS

    start_time = to_storage(start_time)
    end_time = to_storage(end_time)
    reasons: list[str] = []

    conflicts = find_conflicting_appointments(
        db,
        dentist_id,
        appointment_date,
        start_time,
        end_time,
        exclude_appointment_id=exclude_appointment_id,
    )
    if conflicts:
        reasons.append(REASON_SCHEDULE_CONFLICT)

    if find_overlapping_leaves(db, dentist_id, start_time, end_time):
        reasons.append(REASON_ON_LEAVE)

    if enforce_availability:
        windows = get_effective_windows(
            db,
            dentist_id,
            clock.civil_date_of(start_time),
            clinic_branch_id=clinic_branch_id,
            clock=clock,
        )
        window_reason = evaluate_window_fit(windows, start_time, end_time)
        if window_reason is not None:
            reasons.append(window_reason)

    return EligibilityResult(
        allowed=not reasons,
        reasons=reasons,
        conflicting_appointment_ids=[appointment.id for appointment in conflicts],
    )


def ensure_eligible(result: EligibilityResult) -> None:
    if result.allowed:
        return

    details = {
        'reasons': result.reasons,
        'conflictingAppointmentIds': result.conflicting_appointment_ids,
    }
    logger.warning('Booking rejected: %s', ', '.join(result.reasons))

    if REASON_SCHEDULE_CONFLICT in result.reasons:
        raise ScheduleConflictError(REASON_MESSAGES[REASON_SCHEDULE_CONFLICT], details=details)
    raise DentistUnavailableError(REASON_MESSAGES[result.reason], details=details)
