from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from dental_backend.auth.dependencies import require_roles
from dental_backend.core import config
from dental_backend.database import get_db
from dental_backend.models.user import STAFF_ROLES, User
from dental_backend.schemas.appointment import (
    AppointmentPage,
    AppointmentQuery,
    AppointmentResponse,
    AssignDentistRequest,
    CreateAppointmentRequest,
    RescheduleAppointmentRequest,
    UpdateAppointmentRequest,
)
from dental_backend.schemas.common import build_pagination, success_response
from dental_backend.services import appointment_service

router = APIRouter(tags=['appointments'])

require_staff = require_roles(*STAFF_ROLES)


def _appointment_payload(appointment) -> AppointmentResponse:
    return AppointmentResponse.from_record(appointment)


@router.post('', status_code=status.HTTP_201_CREATED)
def create_appointment(data: CreateAppointmentRequest, db: Session = Depends(get_db)):
    appointment = appointment_service.create_appointment(db, data)
    return success_response(_appointment_payload(appointment), 'Appointment created successfully')


@router.get('')
def list_appointments(
    patient_id: str | None = Query(default=None, alias='patientId'),
    dentist_id: str | None = Query(default=None, alias='dentistId'),
    start_date: datetime | None = Query(default=None, alias='startDate'),
    end_date: datetime | None = Query(default=None, alias='endDate'),
    appointment_status: str | None = Query(default=None, alias='status'),
    clinic_branch_id: int | None = Query(default=None, alias='clinicBranchId'),
    limit: int = Query(default=config.DEFAULT_PAGE_LIMIT, ge=1, le=config.MAX_PAGE_LIMIT),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    params = AppointmentQuery(
        patient_id=patient_id,
        dentist_id=dentist_id,
        start_date=start_date,
        end_date=end_date,
        status=appointment_status,
        clinic_branch_id=clinic_branch_id,
        limit=limit,
        offset=offset,
    )
    appointments, total = appointment_service.list_appointments(db, params)
    page = AppointmentPage(
        appointments=[_appointment_payload(appointment) for appointment in appointments],
        pagination=build_pagination(total, params.limit, params.offset, len(appointments)),
    )
    return success_response(page, 'Appointments retrieved successfully')


@router.get('/{appointment_id}')
def get_appointment(appointment_id: str, db: Session = Depends(get_db)):
    appointment = appointment_service.get_appointment(db, appointment_id)
    return success_response(_appointment_payload(appointment), 'Appointment retrieved successfully')


@router.put('/{appointment_id}')
def update_appointment(appointment_id: str, data: UpdateAppointmentRequest, db: Session = Depends(get_db)):
    appointment = appointment_service.update_appointment(db, appointment_id, data)
    return success_response(_appointment_payload(appointment), 'Appointment updated successfully')


@router.delete('/{appointment_id}')
def delete_appointment(appointment_id: str, db: Session = Depends(get_db)):
    deleted_id = appointment_service.delete_appointment(db, appointment_id)
    return success_response({'appointmentId': deleted_id}, 'Appointment deleted successfully')


@router.patch('/{appointment_id}/confirm')
def confirm_appointment(
    appointment_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
):
    appointment = appointment_service.confirm_appointment(db, appointment_id)
    return success_response(_appointment_payload(appointment), 'Appointment confirmed successfully')


@router.patch('/{appointment_id}/complete')
def complete_appointment(
    appointment_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
):
    appointment = appointment_service.complete_appointment(db, appointment_id)
    return success_response(_appointment_payload(appointment), 'Appointment completed successfully')


@router.patch('/{appointment_id}/cancel')
def cancel_appointment(
    appointment_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
):
    appointment = appointment_service.cancel_appointment(db, appointment_id)
    return success_response(_appointment_payload(appointment), 'Appointment cancelled successfully')


@router.patch('/{appointment_id}/reset-status')
def reset_appointment_status(
    appointment_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
):
    appointment = appointment_service.reset_appointment_status(db, appointment_id)
    return success_response(_appointment_payload(appointment), 'Appointment status reset to pending')


@router.patch('/{appointment_id}/reschedule')
def reschedule_appointment(
    appointment_id: str,
    data: RescheduleAppointmentRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
):
    appointment = appointment_service.reschedule_appointment(db, appointment_id, data)
    return success_response(_appointment_payload(appointment), 'Appointment rescheduled successfully')


@router.patch('/{appointment_id}/assign-dentist')
def assign_dentist(
    appointment_id: str,
    data: AssignDentistRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
):
    appointment = appointment_service.assign_dentist(db, appointment_id, data.dentist_id)
    return success_response(_appointment_payload(appointment), 'Dentist assigned successfully')
