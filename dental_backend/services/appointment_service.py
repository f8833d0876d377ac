"""Appointment booking and status lifecycle.

Every write that changes who or when runs the eligibility engine while the
dentist row is locked, then flushes. The partial unique index on
``(dentist_id, start_time)`` catches anything that slips past the check.

Status transitions::

    pending ──confirm──> confirmed ──complete──> completed
    pending|confirmed|rescheduled ──cancel──> cancelled
    pending|confirmed|rescheduled ──reschedule──> rescheduled
    rescheduled ──confirm──> confirmed
    any ──reset──> pending

Re-applying the current status is a no-op so retried requests succeed.
"""

import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from dental_backend.core.civil_time import CivilClock, get_civil_clock, to_storage
from dental_backend.core.errors import (
    InvalidStatusTransitionError,
    NotFoundError,
    ScheduleConflictError,
    ValidationError,
)
from dental_backend.models.appointment import APPOINTMENT_STATUSES, SLOT_INDEX_NAME, Appointment
from dental_backend.models.user import Dentist, User
from dental_backend.schemas.appointment import (
    AppointmentQuery,
    CreateAppointmentRequest,
    RescheduleAppointmentRequest,
    UpdateAppointmentRequest,
    serialize_detailed_notes,
)
from dental_backend.services import notification_content
from dental_backend.services.availability_service import get_clinic_branch
from dental_backend.services.eligibility_service import REASON_MESSAGES, REASON_SCHEDULE_CONFLICT, check_eligibility, ensure_eligible
from dental_backend.services.persistence import paginate, storage_guard

logger = logging.getLogger(__name__)

STATUS_TRANSITIONS = {
    'confirm': ('confirmed', {'pending', 'rescheduled'}),
    'complete': ('completed', {'confirmed'}),
    'cancel': ('cancelled', {'pending', 'confirmed', 'rescheduled'}),
    'reset': ('pending', set(APPOINTMENT_STATUSES)),
}
RESCHEDULABLE_STATUSES = {'pending', 'confirmed', 'rescheduled'}

TRANSITION_EVENTS = {
    'confirm': notification_content.EVENT_CONFIRMED,
    'complete': notification_content.EVENT_COMPLETED,
    'cancel': notification_content.EVENT_CANCELLED,
    'reset': notification_content.EVENT_RESET,
}

SCHEDULE_FIELDS = ('dentist_id', 'appointment_date', 'start_time', 'end_time', 'clinic_branch_id')
REQUIRED_FIELDS = ('patient_id', 'scheduled_by', 'appointment_date', 'start_time', 'status', 'treatment_options')


def _require_user(db: Session, user_id: str, label: str) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise NotFoundError(f'No {label.lower()} found with this ID', error=f'{label} not found')
    return user


def lock_dentist(db: Session, dentist_id: str) -> Dentist:
    """Load the dentist with a row lock so bookings for one dentist serialize."""
    dentist = db.query(Dentist).filter(Dentist.id == dentist_id).with_for_update().first()
    if dentist is None:
        raise NotFoundError('No dentist found with this ID', error='Dentist not found')
    return dentist


def _validate_interval(start_time: datetime, end_time: datetime | None) -> None:
    if end_time is not None and end_time <= start_time:
        raise ValidationError('End time must be after start time', details={'endTime': 'End time must be after start time'})


def _occupies_slot(status: str) -> bool:
    return status != 'cancelled'


def is_slot_collision(exc: IntegrityError) -> bool:
    """True when the violated constraint is the active-slot index."""
    message = str(exc.orig).lower()
    # PostgreSQL names the index; SQLite lists its columns.
    return SLOT_INDEX_NAME in message or (
        'appointments.dentist_id' in message and 'appointments.start_time' in message
    )


def _integrity_failure(exc: IntegrityError):
    if is_slot_collision(exc):
        return ScheduleConflictError(REASON_MESSAGES[REASON_SCHEDULE_CONFLICT])
    return ValidationError(
        'Selected dentist, patient, or clinic branch does not exist',
        error='Invalid reference data',
    )


def _flush_booking(db: Session) -> None:
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        raise _integrity_failure(exc) from exc


def _refresh_notification(db: Session, appointment: Appointment, event: str, clock: CivilClock) -> None:
    db.flush()
    db.expire(appointment, ['dentist', 'clinic_branch'])
    appointment.notif_content = notification_content.build_notification_content(appointment, event, clock)


def get_appointment(db: Session, appointment_id: str) -> Appointment:
    with storage_guard(db, 'loading appointment'):
        appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
    if appointment is None:
        raise NotFoundError('No appointment found with this ID', error='Appointment not found')
    return appointment


def create_appointment(
    db: Session,
    data: CreateAppointmentRequest,
    clock: CivilClock | None = None,
) -> Appointment:
    clock = clock or get_civil_clock()

    if data.appointment_id is not None:
        with storage_guard(db, 'loading appointment'):
            existing = db.query(Appointment).filter(Appointment.id == data.appointment_id).first()
        if existing is not None:
            logger.info('Appointment %s already exists; returning stored record', existing.id)
            return existing

    appointment_date = to_storage(clock.to_utc(data.appointment_date))
    start_time = to_storage(clock.to_utc(data.start_time))
    end_time = to_storage(clock.to_utc(data.end_time)) if data.end_time is not None else None
    _validate_interval(start_time, end_time)

    with storage_guard(db, 'creating appointment'):
        _require_user(db, data.patient_id, 'Patient')
        _require_user(db, data.scheduled_by, 'Scheduler')
        if data.clinic_branch_id is not None:
            get_clinic_branch(db, data.clinic_branch_id)

        if data.dentist_id:
            lock_dentist(db, data.dentist_id)
        if data.dentist_id and _occupies_slot(data.status):
            ensure_eligible(
                check_eligibility(
                    db,
                    data.dentist_id,
                    appointment_date,
                    start_time,
                    end_time,
                    clinic_branch_id=data.clinic_branch_id,
                    clock=clock,
                )
            )

        appointment = Appointment(
            patient_id=data.patient_id,
            dentist_id=data.dentist_id,
            scheduled_by=data.scheduled_by,
            appointment_date=appointment_date,
            start_time=start_time,
            end_time=end_time,
            notes=data.notes,
            notif_content=data.notif_content,
            treatment_options=list(data.treatment_options),
            status=data.status,
            clinic_branch_id=data.clinic_branch_id,
            detailed_notes=serialize_detailed_notes(data.detailed_notes),
        )
        if data.appointment_id is not None:
            appointment.id = data.appointment_id

        db.add(appointment)
        try:
            db.flush()
        except IntegrityError as exc:
            db.rollback()
            if data.appointment_id is not None and not is_slot_collision(exc):
                # A concurrent create with the same id won the race.
                existing = db.query(Appointment).filter(Appointment.id == data.appointment_id).first()
                if existing is not None:
                    logger.info('Appointment %s was created concurrently; returning stored record', existing.id)
                    return existing
            raise _integrity_failure(exc) from exc
        if not appointment.notif_content:
            _refresh_notification(db, appointment, notification_content.STATUS_EVENTS[appointment.status], clock)
        db.commit()
        db.refresh(appointment)

    logger.info(
        'Appointment %s created for patient %s (dentist %s)',
        appointment.id,
        appointment.patient_id,
        appointment.dentist_id or 'unassigned',
    )
    return appointment


def list_appointments(
    db: Session,
    params: AppointmentQuery,
    clock: CivilClock | None = None,
) -> tuple[list[Appointment], int]:
    clock = clock or get_civil_clock()
    query = db.query(Appointment)

    if params.patient_id:
        query = query.filter(Appointment.patient_id == params.patient_id)
    if params.dentist_id:
        query = query.filter(Appointment.dentist_id == params.dentist_id)
    if params.status:
        query = query.filter(Appointment.status == params.status)
    if params.clinic_branch_id is not None:
        query = query.filter(Appointment.clinic_branch_id == params.clinic_branch_id)
    if params.start_date is not None:
        query = query.filter(Appointment.appointment_date >= to_storage(clock.to_utc(params.start_date)))
    if params.end_date is not None:
        query = query.filter(Appointment.appointment_date <= to_storage(clock.to_utc(params.end_date)))

    query = query.order_by(Appointment.appointment_date.asc(), Appointment.start_time.asc())
    with storage_guard(db, 'listing appointments'):
        return paginate(query, params.limit, params.offset)


def update_appointment(
    db: Session,
    appointment_id: str,
    data: UpdateAppointmentRequest,
    clock: CivilClock | None = None,
) -> Appointment:
    clock = clock or get_civil_clock()
    appointment = get_appointment(db, appointment_id)
    changes = data.model_dump(exclude_unset=True)

    for field_name in REQUIRED_FIELDS:
        if field_name in changes and changes[field_name] is None:
            raise ValidationError(f'{field_name} cannot be cleared', details={field_name: 'Required'})

    for field_name in ('appointment_date', 'start_time', 'end_time'):
        if changes.get(field_name) is not None:
            changes[field_name] = to_storage(clock.to_utc(changes[field_name]))
    if 'dentist_id' in changes and not changes['dentist_id']:
        changes['dentist_id'] = None
    if 'detailed_notes' in changes:
        changes['detailed_notes'] = serialize_detailed_notes(data.detailed_notes)

    dentist_id = changes.get('dentist_id', appointment.dentist_id)
    appointment_date = changes.get('appointment_date', appointment.appointment_date)
    start_time = changes.get('start_time', appointment.start_time)
    end_time = changes.get('end_time', appointment.end_time)
    status = changes.get('status', appointment.status)
    clinic_branch_id = changes.get('clinic_branch_id', appointment.clinic_branch_id)
    _validate_interval(start_time, end_time)

    schedule_changed = any(field_name in changes for field_name in SCHEDULE_FIELDS)
    status_changed = 'status' in changes and changes['status'] != appointment.status
    reactivated = appointment.status == 'cancelled' and _occupies_slot(status)

    with storage_guard(db, 'updating appointment'):
        if 'patient_id' in changes:
            _require_user(db, changes['patient_id'], 'Patient')
        if 'scheduled_by' in changes:
            _require_user(db, changes['scheduled_by'], 'Scheduler')
        if changes.get('clinic_branch_id') is not None:
            get_clinic_branch(db, changes['clinic_branch_id'])
        if 'dentist_id' in changes and dentist_id:
            lock_dentist(db, dentist_id)

        if (schedule_changed or reactivated) and dentist_id and _occupies_slot(status):
            if 'dentist_id' not in changes:
                lock_dentist(db, dentist_id)
            ensure_eligible(
                check_eligibility(
                    db,
                    dentist_id,
                    appointment_date,
                    start_time,
                    end_time,
                    clinic_branch_id=clinic_branch_id,
                    exclude_appointment_id=appointment.id,
                    clock=clock,
                    # Reactivation alone follows the reset rule: conflicts and leave only.
                    enforce_availability=None if schedule_changed else False,
                )
            )

        for field_name, value in changes.items():
            setattr(appointment, field_name, value)
        _flush_booking(db)
        if status_changed and 'notif_content' not in changes:
            _refresh_notification(db, appointment, notification_content.STATUS_EVENTS[status], clock)
        db.commit()
        db.refresh(appointment)

    return appointment


def _transition(db: Session, appointment_id: str, operation: str, clock: CivilClock | None) -> Appointment:
    clock = clock or get_civil_clock()
    target_status, allowed_from = STATUS_TRANSITIONS[operation]
    appointment = get_appointment(db, appointment_id)

    if appointment.status == target_status:
        return appointment
    if appointment.status not in allowed_from:
        raise InvalidStatusTransitionError(
            f'Cannot {operation} an appointment that is {appointment.status}',
            details={'from': appointment.status, 'to': target_status},
        )

    with storage_guard(db, f'applying {operation} to appointment'):
        previous_status = appointment.status
        if previous_status == 'cancelled' and appointment.dentist_id:
            # A cancelled booking no longer holds its slot; take it back only if still free.
            lock_dentist(db, appointment.dentist_id)
            ensure_eligible(
                check_eligibility(
                    db,
                    appointment.dentist_id,
                    appointment.appointment_date,
                    appointment.start_time,
                    appointment.end_time,
                    exclude_appointment_id=appointment.id,
                    clock=clock,
                    enforce_availability=False,
                )
            )
        appointment.status = target_status
        _flush_booking(db)
        _refresh_notification(db, appointment, TRANSITION_EVENTS[operation], clock)
        db.commit()
        db.refresh(appointment)

    logger.info('Appointment %s moved from %s to %s', appointment.id, previous_status, target_status)
    return appointment


def confirm_appointment(db: Session, appointment_id: str, clock: CivilClock | None = None) -> Appointment:
    return _transition(db, appointment_id, 'confirm', clock)


def complete_appointment(db: Session, appointment_id: str, clock: CivilClock | None = None) -> Appointment:
    return _transition(db, appointment_id, 'complete', clock)


def cancel_appointment(db: Session, appointment_id: str, clock: CivilClock | None = None) -> Appointment:
    return _transition(db, appointment_id, 'cancel', clock)


def reset_appointment_status(db: Session, appointment_id: str, clock: CivilClock | None = None) -> Appointment:
    return _transition(db, appointment_id, 'reset', clock)


def reschedule_appointment(
    db: Session,
    appointment_id: str,
    data: RescheduleAppointmentRequest,
    clock: CivilClock | None = None,
) -> Appointment:
    clock = clock or get_civil_clock()
    appointment = get_appointment(db, appointment_id)

    if appointment.status not in RESCHEDULABLE_STATUSES:
        raise InvalidStatusTransitionError(
            f'Cannot reschedule an appointment that is {appointment.status}',
            details={'from': appointment.status, 'to': 'rescheduled'},
        )

    appointment_date = to_storage(clock.to_utc(data.new_date))
    start_time = to_storage(clock.to_utc(data.new_start_time))
    end_time = to_storage(clock.to_utc(data.new_end_time)) if data.new_end_time is not None else None
    _validate_interval(start_time, end_time)

    with storage_guard(db, 'rescheduling appointment'):
        if appointment.dentist_id:
            lock_dentist(db, appointment.dentist_id)
            ensure_eligible(
                check_eligibility(
                    db,
                    appointment.dentist_id,
                    appointment_date,
                    start_time,
                    end_time,
                    clinic_branch_id=appointment.clinic_branch_id,
                    exclude_appointment_id=appointment.id,
                    clock=clock,
                )
            )

        appointment.appointment_date = appointment_date
        appointment.start_time = start_time
        appointment.end_time = end_time
        appointment.status = 'rescheduled'
        _flush_booking(db)
        _refresh_notification(db, appointment, notification_content.EVENT_RESCHEDULED, clock)
        db.commit()
        db.refresh(appointment)

    logger.info('Appointment %s rescheduled to %s', appointment.id, appointment.start_time.isoformat())
    return appointment


def assign_dentist(
    db: Session,
    appointment_id: str,
    dentist_id: str,
    clock: CivilClock | None = None,
) -> Appointment:
    clock = clock or get_civil_clock()
    appointment = get_appointment(db, appointment_id)

    with storage_guard(db, 'assigning dentist'):
        lock_dentist(db, dentist_id)
        if appointment.dentist_id == dentist_id:
            db.rollback()
            return appointment

        if _occupies_slot(appointment.status):
            ensure_eligible(
                check_eligibility(
                    db,
                    dentist_id,
                    appointment.appointment_date,
                    appointment.start_time,
                    appointment.end_time,
                    clinic_branch_id=appointment.clinic_branch_id,
                    exclude_appointment_id=appointment.id,
                    clock=clock,
                )
            )

        appointment.dentist_id = dentist_id
        _flush_booking(db)
        _refresh_notification(db, appointment, notification_content.EVENT_DENTIST_ASSIGNED, clock)
        db.commit()
        db.refresh(appointment)

    logger.info('Dentist %s assigned to appointment %s', dentist_id, appointment.id)
    return appointment


def delete_appointment(db: Session, appointment_id: str) -> str:
    appointment = get_appointment(db, appointment_id)
    with storage_guard(db, 'deleting appointment'):
        db.delete(appointment)
        db.commit()

    logger.info('Appointment %s deleted', appointment_id)
    return appointment_id
