"""Bookable slots for one dentist on one civil date."""

from dataclasses import dataclass
from datetime import date, datetime, timedelta

from sqlalchemy import or_
from sqlalchemy.orm import Session

from dental_backend.core import config
from dental_backend.core.civil_time import CivilClock, get_civil_clock, to_storage, utc_now
from dental_backend.core.errors import ValidationError
from dental_backend.models.appointment import Appointment
from dental_backend.models.availability import Leave
from dental_backend.services.availability_service import get_dentist
from dental_backend.services.eligibility_service import appointment_overlaps, get_effective_windows
from dental_backend.services.persistence import storage_guard


@dataclass
class AvailableSlot:
    start: datetime
    end: datetime
    clinic_branch_id: int | None = None


def _occupied_intervals(db: Session, dentist_id: str, day_start: datetime, day_end: datetime):
    appointments = db.query(Appointment).filter(
        Appointment.dentist_id == dentist_id,
        Appointment.status != 'cancelled',
        Appointment.start_time < day_end,
        or_(Appointment.end_time.is_(None), Appointment.end_time > day_start),
    ).all()
    leaves = db.query(Leave).filter(
        Leave.dentist_id == dentist_id,
        Leave.start_date_time < day_end,
        Leave.end_date_time > day_start,
    ).all()

    intervals = [(appointment.start_time, appointment.end_time) for appointment in appointments]
    intervals.extend((leave.start_date_time, leave.end_date_time) for leave in leaves)
    return intervals


def get_available_slots(
    db: Session,
    dentist_id: str,
    civil_date: date,
    duration_minutes: int | None = None,
    clinic_branch_id: int | None = None,
    increment_minutes: int | None = None,
    clock: CivilClock | None = None,
    now: datetime | None = None,
) -> list[AvailableSlot]:
    """Walk the effective windows for ``civil_date`` and keep every free slot.

    Appointments and leaves anywhere in the civil day count as occupied, even
    when their ``appointment_date`` differs from the one a new booking would
    carry. Slots starting before ``now`` are dropped.
    """
    clock = clock or get_civil_clock()
    duration_minutes = duration_minutes or config.DEFAULT_SLOT_DURATION_MINUTES
    increment_minutes = increment_minutes or config.SLOT_INCREMENT_MINUTES
    if duration_minutes <= 0 or increment_minutes <= 0:
        raise ValidationError(
            'Slot duration and increment must be positive',
            details={'durationMinutes': 'Must be greater than zero'},
        )

    now = to_storage(now) if now is not None else utc_now()
    duration = timedelta(minutes=duration_minutes)
    step = timedelta(minutes=increment_minutes)
    day_start, day_end = (to_storage(bound) for bound in clock.civil_day_bounds(civil_date))

    with storage_guard(db, 'listing available slots'):
        get_dentist(db, dentist_id)
        windows = get_effective_windows(db, dentist_id, civil_date, clinic_branch_id=clinic_branch_id, clock=clock)
        occupied = _occupied_intervals(db, dentist_id, day_start, day_end)

    slots: dict[datetime, AvailableSlot] = {}
    for window in windows:
        cursor = window.start
        while cursor + duration <= window.end:
            slot_end = cursor + duration
            in_break = (
                window.break_start is not None
                and window.break_end is not None
                and cursor < window.break_end
                and slot_end > window.break_start
            )
            taken = any(appointment_overlaps(start, end, cursor, slot_end) for start, end in occupied)
            if cursor >= now and not in_break and not taken and cursor not in slots:
                slots[cursor] = AvailableSlot(start=cursor, end=slot_end, clinic_branch_id=window.clinic_branch_id)
            cursor += step

    return [slots[start] for start in sorted(slots)]
