"""Weekly availability, specific availability and leave records.

Weekly rows for the same dentist, day and branch must not overlap; breaks do
not count towards that check. Specific availability and leaves only need a
valid window and existing references.
"""

import logging
from datetime import datetime

from sqlalchemy import case
from sqlalchemy.orm import Session

from dental_backend.core import config
from dental_backend.core.civil_time import CivilClock, get_civil_clock, minutes_since_midnight, to_storage
from dental_backend.core.errors import NotFoundError, TimeSlotOverlapError, ValidationError
from dental_backend.models.availability import DAYS_OF_WEEK, Leave, SpecificAvailability, WeeklyAvailability
from dental_backend.models.clinic_branch import ClinicBranch
from dental_backend.models.user import Dentist
from dental_backend.schemas.availability import (
    CreateLeaveRequest,
    CreateSpecificAvailabilityRequest,
    CreateWeeklyAvailabilityRequest,
    UpdateLeaveRequest,
    UpdateSpecificAvailabilityRequest,
    UpdateWeeklyAvailabilityRequest,
    check_weekly_hours,
)
from dental_backend.services.persistence import paginate, storage_guard

logger = logging.getLogger(__name__)


def get_dentist(db: Session, dentist_id: str) -> Dentist:
    dentist = db.query(Dentist).filter(Dentist.id == dentist_id).first()
    if dentist is None:
        raise NotFoundError('No dentist found with this ID', error='Dentist not found')
    return dentist


def get_dentist_by_user_id(db: Session, user_id: str) -> Dentist:
    with storage_guard(db, 'loading dentist'):
        dentist = db.query(Dentist).filter(Dentist.user_id == user_id).first()
    if dentist is None:
        raise NotFoundError('No dentist found for this user', error='Dentist not found')
    return dentist


def get_clinic_branch(db: Session, clinic_branch_id: int) -> ClinicBranch:
    clinic_branch = db.query(ClinicBranch).filter(ClinicBranch.id == clinic_branch_id).first()
    if clinic_branch is None:
        raise NotFoundError('No clinic branch found with this ID', error='Clinic branch not found')
    return clinic_branch


def _apply_limit(limit: int | None) -> int:
    if limit is None:
        return config.DEFAULT_PAGE_LIMIT
    return max(1, min(limit, config.MAX_PAGE_LIMIT))


# ==================== WEEKLY AVAILABILITY ====================

def find_overlapping_weekly_availability(
    db: Session,
    dentist_id: str,
    day_of_week: str,
    clinic_branch_id: int,
    standard_start_time: str,
    standard_end_time: str,
    exclude_id: str | None = None,
) -> WeeklyAvailability | None:
    query = db.query(WeeklyAvailability).filter(
        WeeklyAvailability.dentist_id == dentist_id,
        WeeklyAvailability.day_of_week == day_of_week,
        WeeklyAvailability.clinic_branch_id == clinic_branch_id,
    )
    if exclude_id is not None:
        query = query.filter(WeeklyAvailability.id != exclude_id)

    new_start = minutes_since_midnight(standard_start_time)
    new_end = minutes_since_midnight(standard_end_time)

    for other in query.all():
        other_start = minutes_since_midnight(other.standard_start_time)
        other_end = minutes_since_midnight(other.standard_end_time)
        if new_start < other_end and new_end > other_start:
            return other

    return None


def create_weekly_availability(db: Session, data: CreateWeeklyAvailabilityRequest) -> WeeklyAvailability:
    with storage_guard(db, 'creating weekly availability'):
        get_dentist(db, data.dentist_id)
        get_clinic_branch(db, data.clinic_branch_id)

        overlapping = find_overlapping_weekly_availability(
            db,
            data.dentist_id,
            data.day_of_week,
            data.clinic_branch_id,
            data.standard_start_time,
            data.standard_end_time,
        )
        if overlapping is not None:
            raise TimeSlotOverlapError(
                f'New time slot ({data.standard_start_time}-{data.standard_end_time}) overlaps with '
                f'existing slot ({overlapping.standard_start_time}-{overlapping.standard_end_time})',
            )

        availability = WeeklyAvailability(
            dentist_id=data.dentist_id,
            day_of_week=data.day_of_week,
            standard_start_time=data.standard_start_time,
            standard_end_time=data.standard_end_time,
            break_start_time=data.break_start_time,
            break_end_time=data.break_end_time,
            clinic_branch_id=data.clinic_branch_id,
        )
        db.add(availability)
        db.commit()
        db.refresh(availability)

    logger.info('Weekly availability %s created for dentist %s', availability.id, availability.dentist_id)
    return availability


def get_weekly_availability(db: Session, availability_id: str) -> WeeklyAvailability:
    with storage_guard(db, 'loading weekly availability'):
        availability = db.query(WeeklyAvailability).filter(WeeklyAvailability.id == availability_id).first()
    if availability is None:
        raise NotFoundError('No availability found with this ID', error='Availability not found')
    return availability


def list_weekly_availability(
    db: Session,
    dentist_id: str | None = None,
    day_of_week: str | None = None,
    clinic_branch_id: int | None = None,
    limit: int | None = None,
    offset: int = 0,
) -> tuple[list[WeeklyAvailability], int]:
    query = db.query(WeeklyAvailability)
    if dentist_id:
        query = query.filter(WeeklyAvailability.dentist_id == dentist_id)
    if day_of_week:
        query = query.filter(WeeklyAvailability.day_of_week == day_of_week)
    if clinic_branch_id is not None:
        query = query.filter(WeeklyAvailability.clinic_branch_id == clinic_branch_id)

    # Calendar order rather than alphabetical order of day names.
    day_order = case({day: index for index, day in enumerate(DAYS_OF_WEEK)}, value=WeeklyAvailability.day_of_week)
    query = query.order_by(day_order, WeeklyAvailability.standard_start_time.asc())

    with storage_guard(db, 'listing weekly availability'):
        return paginate(query, _apply_limit(limit), offset)


def update_weekly_availability(
    db: Session,
    availability_id: str,
    data: UpdateWeeklyAvailabilityRequest,
) -> WeeklyAvailability:
    availability = get_weekly_availability(db, availability_id)
    changes = data.model_dump(exclude_unset=True)

    for required_field in ('dentist_id', 'day_of_week', 'standard_start_time', 'standard_end_time', 'clinic_branch_id'):
        if required_field in changes and changes[required_field] is None:
            raise ValidationError(f'{required_field} cannot be cleared', details={required_field: 'Required'})

    merged = {
        'dentist_id': availability.dentist_id,
        'day_of_week': availability.day_of_week,
        'standard_start_time': availability.standard_start_time,
        'standard_end_time': availability.standard_end_time,
        'break_start_time': availability.break_start_time,
        'break_end_time': availability.break_end_time,
        'clinic_branch_id': availability.clinic_branch_id,
    }
    merged.update(changes)

    errors = check_weekly_hours(
        merged['standard_start_time'],
        merged['standard_end_time'],
        merged['break_start_time'],
        merged['break_end_time'],
    )
    if errors:
        raise ValidationError(next(iter(errors.values())), details=errors)

    with storage_guard(db, 'updating weekly availability'):
        if 'dentist_id' in changes:
            get_dentist(db, merged['dentist_id'])
        if 'clinic_branch_id' in changes:
            get_clinic_branch(db, merged['clinic_branch_id'])

        overlapping = find_overlapping_weekly_availability(
            db,
            merged['dentist_id'],
            merged['day_of_week'],
            merged['clinic_branch_id'],
            merged['standard_start_time'],
            merged['standard_end_time'],
            exclude_id=availability.id,
        )
        if overlapping is not None:
            raise TimeSlotOverlapError(
                f"Updated time slot ({merged['standard_start_time']}-{merged['standard_end_time']}) would "
                f'overlap with existing slot ({overlapping.standard_start_time}-{overlapping.standard_end_time})',
            )

        for field_name, value in merged.items():
            setattr(availability, field_name, value)
        db.commit()
        db.refresh(availability)

    return availability


def delete_weekly_availability(db: Session, availability_id: str) -> None:
    availability = get_weekly_availability(db, availability_id)
    with storage_guard(db, 'deleting weekly availability'):
        db.delete(availability)
        db.commit()


# ==================== SPECIFIC AVAILABILITY & LEAVES ====================

def _validate_window(start: datetime, end: datetime) -> None:
    if start >= end:
        raise ValidationError(
            'End date time must be after start date time',
            details={'endDateTime': 'End date time must be after start date time'},
        )


def create_specific_availability(
    db: Session,
    data: CreateSpecificAvailabilityRequest,
    clock: CivilClock | None = None,
) -> SpecificAvailability:
    clock = clock or get_civil_clock()
    start = to_storage(clock.to_utc(data.start_date_time))
    end = to_storage(clock.to_utc(data.end_date_time))
    _validate_window(start, end)

    with storage_guard(db, 'creating specific availability'):
        get_dentist(db, data.dentist_id)
        if data.clinic_branch_id is not None:
            get_clinic_branch(db, data.clinic_branch_id)

        availability = SpecificAvailability(
            dentist_id=data.dentist_id,
            start_date_time=start,
            end_date_time=end,
            clinic_branch_id=data.clinic_branch_id,
        )
        db.add(availability)
        db.commit()
        db.refresh(availability)

    return availability


def get_specific_availability(db: Session, availability_id: str) -> SpecificAvailability:
    with storage_guard(db, 'loading specific availability'):
        availability = db.query(SpecificAvailability).filter(SpecificAvailability.id == availability_id).first()
    if availability is None:
        raise NotFoundError('No specific availability found with this ID', error='Specific availability not found')
    return availability


def list_specific_availability(
    db: Session,
    dentist_id: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    clinic_branch_id: int | None = None,
    limit: int | None = None,
    offset: int = 0,
    clock: CivilClock | None = None,
) -> tuple[list[SpecificAvailability], int]:
    clock = clock or get_civil_clock()
    query = db.query(SpecificAvailability)
    if dentist_id:
        query = query.filter(SpecificAvailability.dentist_id == dentist_id)
    if clinic_branch_id is not None:
        query = query.filter(SpecificAvailability.clinic_branch_id == clinic_branch_id)
    if start_date is not None:
        query = query.filter(SpecificAvailability.start_date_time >= to_storage(clock.to_utc(start_date)))
    if end_date is not None:
        query = query.filter(SpecificAvailability.end_date_time <= to_storage(clock.to_utc(end_date)))

    query = query.order_by(SpecificAvailability.start_date_time.asc())
    with storage_guard(db, 'listing specific availability'):
        return paginate(query, _apply_limit(limit), offset)


def update_specific_availability(
    db: Session,
    availability_id: str,
    data: UpdateSpecificAvailabilityRequest,
    clock: CivilClock | None = None,
) -> SpecificAvailability:
    clock = clock or get_civil_clock()
    availability = get_specific_availability(db, availability_id)
    changes = data.model_dump(exclude_unset=True)

    for required_field in ('dentist_id', 'start_date_time', 'end_date_time'):
        if required_field in changes and changes[required_field] is None:
            raise ValidationError(f'{required_field} cannot be cleared', details={required_field: 'Required'})

    start = to_storage(clock.to_utc(changes['start_date_time'])) if 'start_date_time' in changes else availability.start_date_time
    end = to_storage(clock.to_utc(changes['end_date_time'])) if 'end_date_time' in changes else availability.end_date_time
    _validate_window(start, end)

    with storage_guard(db, 'updating specific availability'):
        if 'dentist_id' in changes:
            get_dentist(db, changes['dentist_id'])
            availability.dentist_id = changes['dentist_id']
        if 'clinic_branch_id' in changes:
            if changes['clinic_branch_id'] is not None:
                get_clinic_branch(db, changes['clinic_branch_id'])
            availability.clinic_branch_id = changes['clinic_branch_id']
        availability.start_date_time = start
        availability.end_date_time = end
        db.commit()
        db.refresh(availability)

    return availability


def delete_specific_availability(db: Session, availability_id: str) -> None:
    availability = get_specific_availability(db, availability_id)
    with storage_guard(db, 'deleting specific availability'):
        db.delete(availability)
        db.commit()


def create_leave(db: Session, data: CreateLeaveRequest, clock: CivilClock | None = None) -> Leave:
    clock = clock or get_civil_clock()
    start = to_storage(clock.to_utc(data.start_date_time))
    end = to_storage(clock.to_utc(data.end_date_time))
    _validate_window(start, end)

    with storage_guard(db, 'creating leave'):
        get_dentist(db, data.dentist_id)
        leave = Leave(dentist_id=data.dentist_id, start_date_time=start, end_date_time=end)
        db.add(leave)
        db.commit()
        db.refresh(leave)

    logger.info('Leave %s recorded for dentist %s', leave.id, leave.dentist_id)
    return leave


def get_leave(db: Session, leave_id: str) -> Leave:
    with storage_guard(db, 'loading leave'):
        leave = db.query(Leave).filter(Leave.id == leave_id).first()
    if leave is None:
        raise NotFoundError('No leave found with this ID', error='Leave not found')
    return leave


def list_leaves(
    db: Session,
    dentist_id: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    limit: int | None = None,
    offset: int = 0,
    clock: CivilClock | None = None,
) -> tuple[list[Leave], int]:
    clock = clock or get_civil_clock()
    query = db.query(Leave)
    if dentist_id:
        query = query.filter(Leave.dentist_id == dentist_id)
    if start_date is not None:
        query = query.filter(Leave.start_date_time >= to_storage(clock.to_utc(start_date)))
    if end_date is not None:
        query = query.filter(Leave.end_date_time <= to_storage(clock.to_utc(end_date)))

    query = query.order_by(Leave.start_date_time.asc())
    with storage_guard(db, 'listing leaves'):
        return paginate(query, _apply_limit(limit), offset)


def update_leave(db: Session, leave_id: str, data: UpdateLeaveRequest, clock: CivilClock | None = None) -> Leave:
    clock = clock or get_civil_clock()
    leave = get_leave(db, leave_id)
    changes = data.model_dump(exclude_unset=True)

    for required_field in ('dentist_id', 'start_date_time', 'end_date_time'):
        if required_field in changes and changes[required_field] is None:
            raise ValidationError(f'{required_field} cannot be cleared', details={required_field: 'Required'})

    start = to_storage(clock.to_utc(changes['start_date_time'])) if 'start_date_time' in changes else leave.start_date_time
    end = to_storage(clock.to_utc(changes['end_date_time'])) if 'end_date_time' in changes else leave.end_date_time
    _validate_window(start, end)

    with storage_guard(db, 'updating leave'):
        if 'dentist_id' in changes:
            get_dentist(db, changes['dentist_id'])
            leave.dentist_id = changes['dentist_id']
        leave.start_date_time = start
        leave.end_date_time = end
        db.commit()
        db.refresh(leave)

    return leave


def delete_leave(db: Session, leave_id: str) -> None:
    leave = get_leave(db, leave_id)
    with storage_guard(db, 'deleting leave'):
        db.delete(leave)
        db.commit()
