from datetime import date, datetime

import pytest
from fastapi.testclient import TestClient
from pydantic import ValidationError

from dental_backend.core.errors import NotFoundError, TimeSlotOverlapError
from dental_backend.database import get_db
from dental_backend.main import app
from dental_backend.routes.availability_routes import (
    create_dentist_availability,
    create_leave,
    create_specific_availability,
    delete_dentist_availability,
    get_dentist_by_user_id,
    list_available_slots,
    list_dentist_availability,
    list_leaves,
    list_specific_availability,
    update_dentist_availability,
)
from dental_backend.schemas.availability import (
    CreateLeaveRequest,
    CreateSpecificAvailabilityRequest,
    CreateWeeklyAvailabilityRequest,
    UpdateWeeklyAvailabilityRequest,
)


def weekly_request(**overrides) -> CreateWeeklyAvailabilityRequest:
    values = {
        'dentistId': 'dentist1',
        'dayOfWeek': 'Wednesday',
        'standardStartTime': '08:00',
        'standardEndTime': '12:00',
        'breakStartTime': '10:00',
        'breakEndTime': '10:30',
        'clinicBranchId': 1,
    }
    values.update(overrides)
    return CreateWeeklyAvailabilityRequest(**values)


def test_weekly_request_rejects_break_outside_hours() -> None:
    with pytest.raises(ValidationError):
        weekly_request(breakStartTime='07:00', breakEndTime='07:30')


def test_weekly_request_rejects_malformed_times() -> None:
    with pytest.raises(ValidationError):
        weekly_request(standardStartTime='8am')


def test_create_dentist_availability_returns_envelope(db, clinic) -> None:
    response = create_dentist_availability(data=weekly_request(), db=db)

    assert response['success'] is True
    assert response['message'] == 'Availability created successfully'
    assert response['data']['dayOfWeek'] == 'wednesday'
    assert response['data']['breakStartTime'] == '10:00'
    assert response['data']['dentist']['user']['name'] == 'Ana Reyes'
    assert response['data']['clinicBranch']['id'] == 1


def test_create_dentist_availability_rejects_overlap(db, clinic) -> None:
    create_dentist_availability(data=weekly_request(), db=db)

    with pytest.raises(TimeSlotOverlapError):
        create_dentist_availability(
            data=weekly_request(standardStartTime='11:00', standardEndTime='13:00', breakStartTime=None, breakEndTime=None),
            db=db,
        )


def test_list_dentist_availability_paginates(db, clinic) -> None:
    create_dentist_availability(data=weekly_request(), db=db)

    response = list_dentist_availability(
        dentist_id='dentist1',
        day_of_week=None,
        clinic_branch_id=None,
        limit=1,
        offset=0,
        db=db,
    )

    assert [item['dayOfWeek'] for item in response['data']['availabilities']] == ['monday']
    assert response['data']['pagination'] == {'total': 2, 'limit': 1, 'offset': 0, 'hasMore': True}


def test_update_and_delete_dentist_availability(db, clinic) -> None:
    updated = update_dentist_availability(
        availability_id='weekly1',
        data=UpdateWeeklyAvailabilityRequest(breakStartTime=None, breakEndTime=None),
        db=db,
    )
    assert updated['data']['breakStartTime'] is None

    deleted = delete_dentist_availability(availability_id='weekly1', db=db)
    assert deleted['data'] == {'id': 'weekly1'}

    with pytest.raises(NotFoundError):
        delete_dentist_availability(availability_id='weekly1', db=db)


def test_specific_availability_is_returned_in_utc(db, clinic) -> None:
    created = create_specific_availability(
        data=CreateSpecificAvailabilityRequest(
            dentist_id='dentist1',
            start_date_time=datetime(2030, 1, 9, 9, 0),
            end_date_time=datetime(2030, 1, 9, 12, 0),
            clinic_branch_id=1,
        ),
        db=db,
    )

    assert created['data']['startDateTime'] == '2030-01-09T01:00:00.000Z'

    listed = list_specific_availability(
        dentist_id='dentist1',
        start_date=None,
        end_date=None,
        clinic_branch_id=1,
        limit=50,
        offset=0,
        db=db,
    )
    assert listed['data']['pagination']['total'] == 1


def test_leaves_round_trip_through_routes(db, clinic) -> None:
    create_leave(
        data=CreateLeaveRequest(
            dentist_id='dentist1',
            start_date_time='2030-01-10T00:00:00Z',
            end_date_time='2030-01-11T00:00:00Z',
        ),
        db=db,
    )

    listed = list_leaves(dentist_id='dentist1', start_date=None, end_date=None, limit=50, offset=0, db=db)

    assert listed['data']['leaves'][0]['endDateTime'] == '2030-01-11T00:00:00.000Z'


def test_get_dentist_by_user_id_route(db, clinic) -> None:
    response = get_dentist_by_user_id(user_id='dentistuser1', db=db)

    assert response['data']['id'] == 'dentist1'
    assert response['data']['specialization'] == 'Orthodontics'


def test_list_available_slots_route(db, clinic) -> None:
    response = list_available_slots(
        dentist_id='dentist1',
        slot_date=date(2030, 1, 7),
        duration_minutes=60,
        clinic_branch_id=1,
        db=db,
    )

    slots = response['data']
    assert slots[0]['civilStartTime'] == '09:00'
    assert slots[0]['civilEndTime'] == '10:00'
    assert all(not ('11:15' <= slot['civilStartTime'] < '13:00') for slot in slots)


@pytest.fixture
def client(db, clinic):
    app.dependency_overrides[get_db] = lambda: db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def test_overlap_is_reported_through_the_envelope(client) -> None:
    payload = {
        'dentistId': 'dentist1',
        'dayOfWeek': 'monday',
        'standardStartTime': '16:00',
        'standardEndTime': '18:00',
        'clinicBranchId': 1,
    }

    response = client.post('/availability/dentist-availability', json=payload)

    assert response.status_code == 400
    assert response.json()['error'] == 'Time slot overlap detected'


def test_missing_records_are_404_through_the_envelope(client) -> None:
    assert client.get('/availability/leaves/missing').status_code == 404
    assert client.get('/availability/dentist/patient1').json()['error'] == 'Dentist not found'


def test_slots_endpoint_reads_query_parameters(client) -> None:
    response = client.get(
        '/availability/slots',
        params={'dentistId': 'dentist2', 'date': '2030-01-07', 'durationMinutes': 120},
    )

    assert response.status_code == 200
    assert [slot['civilStartTime'] for slot in response.json()['data']][:2] == ['09:00', '09:15']
    assert response.json()['data'][-1]['civilStartTime'] == '15:00'
