from datetime import date, datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from dental_backend.core import config
from dental_backend.core.civil_time import get_civil_clock
from dental_backend.database import get_db
from dental_backend.schemas.availability import (
    AvailableSlotResponse,
    CreateLeaveRequest,
    CreateSpecificAvailabilityRequest,
    CreateWeeklyAvailabilityRequest,
    DayOfWeek,
    LeavePage,
    LeaveResponse,
    SpecificAvailabilityPage,
    SpecificAvailabilityResponse,
    UpdateLeaveRequest,
    UpdateSpecificAvailabilityRequest,
    UpdateWeeklyAvailabilityRequest,
    WeeklyAvailabilityPage,
    WeeklyAvailabilityResponse,
)
from dental_backend.schemas.common import build_pagination, success_response, summarize_dentist
from dental_backend.services import availability_service, slot_service

router = APIRouter(tags=['availability'])


# ==================== WEEKLY AVAILABILITY ====================

@router.post('/dentist-availability', status_code=status.HTTP_201_CREATED)
def create_dentist_availability(data: CreateWeeklyAvailabilityRequest, db: Session = Depends(get_db)):
    availability = availability_service.create_weekly_availability(db, data)
    return success_response(WeeklyAvailabilityResponse.from_record(availability), 'Availability created successfully')


@router.get('/dentist-availability')
def list_dentist_availability(
    dentist_id: str | None = Query(default=None, alias='dentistId'),
    day_of_week: DayOfWeek | None = Query(default=None, alias='dayOfWeek'),
    clinic_branch_id: int | None = Query(default=None, alias='clinicBranchId'),
    limit: int = Query(default=config.DEFAULT_PAGE_LIMIT, ge=1, le=config.MAX_PAGE_LIMIT),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    records, total = availability_service.list_weekly_availability(
        db,
        dentist_id=dentist_id,
        day_of_week=day_of_week,
        clinic_branch_id=clinic_branch_id,
        limit=limit,
        offset=offset,
    )
    page = WeeklyAvailabilityPage(
        availabilities=[WeeklyAvailabilityResponse.from_record(record) for record in records],
        pagination=build_pagination(total, limit, offset, len(records)),
    )
    return success_response(page, 'Availabilities retrieved successfully')


@router.get('/dentist-availability/{availability_id}')
def get_dentist_availability(availability_id: str, db: Session = Depends(get_db)):
    availability = availability_service.get_weekly_availability(db, availability_id)
    return success_response(WeeklyAvailabilityResponse.from_record(availability), 'Availability retrieved successfully')


@router.put('/dentist-availability/{availability_id}')
def update_dentist_availability(
    availability_id: str,
    data: UpdateWeeklyAvailabilityRequest,
    db: Session = Depends(get_db),
):
    availability = availability_service.update_weekly_availability(db, availability_id, data)
    return success_response(WeeklyAvailabilityResponse.from_record(availability), 'Availability updated successfully')


@router.delete('/dentist-availability/{availability_id}')
def delete_dentist_availability(availability_id: str, db: Session = Depends(get_db)):
    availability_service.delete_weekly_availability(db, availability_id)
    return success_response({'id': availability_id}, 'Availability deleted successfully')


# ==================== SPECIFIC AVAILABILITY ====================

@router.post('/specific-availability', status_code=status.HTTP_201_CREATED)
def create_specific_availability(data: CreateSpecificAvailabilityRequest, db: Session = Depends(get_db)):
    availability = availability_service.create_specific_availability(db, data)
    return success_response(
        SpecificAvailabilityResponse.from_record(availability),
        'Specific availability created successfully',
    )


@router.get('/specific-availability')
def list_specific_availability(
    dentist_id: str | None = Query(default=None, alias='dentistId'),
    start_date: datetime | None = Query(default=None, alias='startDate'),
    end_date: datetime | None = Query(default=None, alias='endDate'),
    clinic_branch_id: int | None = Query(default=None, alias='clinicBranchId'),
    limit: int = Query(default=config.DEFAULT_PAGE_LIMIT, ge=1, le=config.MAX_PAGE_LIMIT),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    records, total = availability_service.list_specific_availability(
        db,
        dentist_id=dentist_id,
        start_date=start_date,
        end_date=end_date,
        clinic_branch_id=clinic_branch_id,
        limit=limit,
        offset=offset,
    )
    page = SpecificAvailabilityPage(
        availabilities=[SpecificAvailabilityResponse.from_record(record) for record in records],
        pagination=build_pagination(total, limit, offset, len(records)),
    )
    return success_response(page, 'Specific availabilities retrieved successfully')


@router.get('/specific-availability/{availability_id}')
def get_specific_availability(availability_id: str, db: Session = Depends(get_db)):
    availability = availability_service.get_specific_availability(db, availability_id)
    return success_response(
        SpecificAvailabilityResponse.from_record(availability),
        'Specific availability retrieved successfully',
    )


@router.put('/specific-availability/{availability_id}')
def update_specific_availability(
    availability_id: str,
    data: UpdateSpecificAvailabilityRequest,
    db: Session = Depends(get_db),
):
    availability = availability_service.update_specific_availability(db, availability_id, data)
    return success_response(
        SpecificAvailabilityResponse.from_record(availability),
        'Specific availability updated successfully',
    )


@router.delete('/specific-availability/{availability_id}')
def delete_specific_availability(availability_id: str, db: Session = Depends(get_db)):
    availability_service.delete_specific_availability(db, availability_id)
    return success_response({'id': availability_id}, 'Specific availability deleted successfully')


# ==================== LEAVES ====================

@router.post('/leaves', status_code=status.HTTP_201_CREATED)
def create_leave(data: CreateLeaveRequest, db: Session = Depends(get_db)):
    leave = availability_service.create_leave(db, data)
    return success_response(LeaveResponse.from_record(leave), 'Leave created successfully')


@router.get('/leaves')
def list_leaves(
    dentist_id: str | None = Query(default=None, alias='dentistId'),
    start_date: datetime | None = Query(default=None, alias='startDate'),
    end_date: datetime | None = Query(default=None, alias='endDate'),
    limit: int = Query(default=config.DEFAULT_PAGE_LIMIT, ge=1, le=config.MAX_PAGE_LIMIT),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    records, total = availability_service.list_leaves(
        db,
        dentist_id=dentist_id,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
        offset=offset,
    )
    page = LeavePage(
        leaves=[LeaveResponse.from_record(record) for record in records],
        pagination=build_pagination(total, limit, offset, len(records)),
    )
    return success_response(page, 'Leaves retrieved successfully')


@router.get('/leaves/{leave_id}')
def get_leave(leave_id: str, db: Session = Depends(get_db)):
    leave = availability_service.get_leave(db, leave_id)
    return success_response(LeaveResponse.from_record(leave), 'Leave retrieved successfully')


@router.put('/leaves/{leave_id}')
def update_leave(leave_id: str, data: UpdateLeaveRequest, db: Session = Depends(get_db)):
    leave = availability_service.update_leave(db, leave_id, data)
    return success_response(LeaveResponse.from_record(leave), 'Leave updated successfully')


@router.delete('/leaves/{leave_id}')
def delete_leave(leave_id: str, db: Session = Depends(get_db)):
    availability_service.delete_leave(db, leave_id)
    return success_response({'id': leave_id}, 'Leave deleted successfully')


# ==================== LOOKUPS ====================

@router.get('/dentist/{user_id}')
def get_dentist_by_user_id(user_id: str, db: Session = Depends(get_db)):
    dentist = availability_service.get_dentist_by_user_id(db, user_id)
    return success_response(summarize_dentist(dentist), 'Dentist retrieved successfully')


@router.get('/slots')
def list_available_slots(
    dentist_id: str = Query(..., alias='dentistId'),
    slot_date: date = Query(..., alias='date'),
    duration_minutes: int = Query(default=config.DEFAULT_SLOT_DURATION_MINUTES, ge=1, alias='durationMinutes'),
    clinic_branch_id: int | None = Query(default=None, alias='clinicBranchId'),
    db: Session = Depends(get_db),
):
    clock = get_civil_clock()
    slots = slot_service.get_available_slots(
        db,
        dentist_id,
        slot_date,
        duration_minutes=duration_minutes,
        clinic_branch_id=clinic_branch_id,
        clock=clock,
    )
    return success_response(
        [AvailableSlotResponse.from_slot(slot, clock) for slot in slots],
        'Available slots retrieved successfully',
    )
