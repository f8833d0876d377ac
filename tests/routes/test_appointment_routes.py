import pytest
from fastapi.testclient import TestClient

from dental_backend.auth.jwt_handler import create_access_token
from dental_backend.database import get_db
from dental_backend.main import app


@pytest.fixture
def client(db, clinic):
    app.dependency_overrides[get_db] = lambda: db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def auth_header(email: str) -> dict:
    return {'Authorization': f'Bearer {create_access_token(email)}'}


STAFF = auth_header('maria@example.com')
PATIENT = auth_header('juan@example.com')


def booking_payload(start: str = '10:00', end: str = '11:00', **overrides) -> dict:
    payload = {
        'patientId': 'patient1',
        'dentistId': 'dentist1',
        'scheduledBy': 'secretary1',
        'appointmentDate': '2030-01-07T00:00:00',
        'startTime': f'2030-01-07T{start}:00',
        'endTime': f'2030-01-07T{end}:00',
        'clinicBranchId': 1,
        'treatmentOptions': ['Cleaning', ' '],
        'detailedNotes': {'symptoms': [{'id': 's1', 'symptom': 'Toothache'}], 'painLevel': 6, 'answers': {'q1': 'yes'}},
    }
    payload.update(overrides)
    return payload


def create(client, **overrides) -> dict:
    response = client.post('/appointments', json=booking_payload(**overrides))
    assert response.status_code == 201, response.json()
    return response.json()['data']


def test_root_health_check(client) -> None:
    response = client.get('/')

    assert response.status_code == 200
    assert response.json()['success'] is True


def test_create_appointment_returns_envelope_with_joined_records(client) -> None:
    response = client.post('/appointments', json=booking_payload())

    assert response.status_code == 201
    body = response.json()
    assert body['success'] is True
    assert body['message'] == 'Appointment created successfully'
    data = body['data']
    assert data['startTime'] == '2030-01-07T02:00:00.000Z'
    assert data['appointmentDate'] == '2030-01-06T16:00:00.000Z'
    assert data['endTime'] == '2030-01-07T03:00:00.000Z'
    assert data['treatmentOptions'] == ['Cleaning']
    assert data['status'] == 'pending'
    assert data['patient']['name'] == 'Juan Dela Cruz'
    assert data['dentist']['user']['name'] == 'Ana Reyes'
    assert data['scheduledByUser']['id'] == 'secretary1'
    assert data['clinicBranch']['name'] == 'Makati Branch'
    assert data['detailedNotes'] == {
        'symptoms': [{'id': 's1', 'symptom': 'Toothache'}],
        'painLevel': 6,
        'answers': {'q1': 'yes'},
    }


def test_free_text_detailed_notes_are_echoed_back(client) -> None:
    created = create(client, detailedNotes='Patient reports pain on the upper left molar')

    fetched = client.get(f"/appointments/{created['appointmentId']}").json()['data']

    assert created['detailedNotes'] == 'Patient reports pain on the upper left molar'
    assert fetched['detailedNotes'] == 'Patient reports pain on the upper left molar'


def test_conflicting_booking_returns_400(client) -> None:
    create(client)

    response = client.post('/appointments', json=booking_payload('10:30', '11:30'))

    assert response.status_code == 400
    body = response.json()
    assert body['success'] is False
    assert body['error'] == 'Schedule conflict detected'
    assert body['details']['reasons'] == ['ScheduleConflict']


def test_missing_fields_return_field_level_validation_errors(client) -> None:
    payload = booking_payload()
    del payload['patientId']

    response = client.post('/appointments', json=payload)

    assert response.status_code == 400
    assert response.json()['error'] == 'Validation failed'
    assert 'patientId' in response.json()['details']


def test_invalid_status_filter_is_a_validation_error(client) -> None:
    response = client.get('/appointments', params={'status': 'teleported'})

    assert response.status_code == 400
    assert response.json()['success'] is False


def test_unknown_appointment_returns_404(client) -> None:
    response = client.get('/appointments/missing')

    assert response.status_code == 404
    assert response.json() == {
        'success': False,
        'error': 'Appointment not found',
        'message': 'No appointment found with this ID',
    }


def test_list_appointments_paginates(client) -> None:
    create(client)
    create(client, start='14:00', end='15:00')

    response = client.get('/appointments', params={'dentistId': 'dentist1', 'limit': 1})

    assert response.status_code == 200
    data = response.json()['data']
    assert len(data['appointments']) == 1
    assert data['pagination'] == {'total': 2, 'limit': 1, 'offset': 0, 'hasMore': True}


def test_update_appointment_merges_fields(client) -> None:
    appointment = create(client)

    response = client.put(f"/appointments/{appointment['appointmentId']}", json={'notes': 'Bring x-rays'})

    assert response.status_code == 200
    assert response.json()['data']['notes'] == 'Bring x-rays'
    assert response.json()['data']['startTime'] == appointment['startTime']


def test_lifecycle_endpoints_require_a_token(client) -> None:
    appointment = create(client)

    response = client.patch(f"/appointments/{appointment['appointmentId']}/confirm")

    assert response.status_code == 401
    assert response.json()['success'] is False


def test_lifecycle_endpoints_reject_invalid_tokens(client) -> None:
    appointment = create(client)

    response = client.patch(
        f"/appointments/{appointment['appointmentId']}/confirm",
        headers={'Authorization': 'Bearer not-a-token'},
    )

    assert response.status_code == 401
    assert response.json()['message'] == 'Invalid token'


def test_lifecycle_endpoints_reject_patients(client) -> None:
    appointment = create(client)

    response = client.patch(f"/appointments/{appointment['appointmentId']}/cancel", headers=PATIENT)

    assert response.status_code == 403
    assert response.json()['error'] == 'Forbidden'


def test_staff_can_walk_the_lifecycle(client) -> None:
    appointment_id = create(client)['appointmentId']

    confirmed = client.patch(f'/appointments/{appointment_id}/confirm', headers=STAFF)
    completed = client.patch(f'/appointments/{appointment_id}/complete', headers=STAFF)
    cancelled = client.patch(f'/appointments/{appointment_id}/cancel', headers=STAFF)
    reset = client.patch(f'/appointments/{appointment_id}/reset-status', headers=STAFF)

    assert confirmed.json()['data']['status'] == 'confirmed'
    assert completed.json()['data']['status'] == 'completed'
    assert cancelled.status_code == 400
    assert cancelled.json()['error'] == 'Invalid status transition'
    assert reset.json()['data']['status'] == 'pending'


def test_reschedule_endpoint(client) -> None:
    appointment_id = create(client)['appointmentId']

    response = client.patch(
        f'/appointments/{appointment_id}/reschedule',
        json={
            'newDate': '2030-01-07T00:00:00',
            'newStartTime': '2030-01-07T15:00:00',
            'newEndTime': '2030-01-07T15:30:00',
        },
        headers=STAFF,
    )

    assert response.status_code == 200
    data = response.json()['data']
    assert data['status'] == 'rescheduled'
    assert data['startTime'] == '2030-01-07T07:00:00.000Z'


def test_reschedule_into_break_is_rejected(client) -> None:
    appointment_id = create(client)['appointmentId']

    response = client.patch(
        f'/appointments/{appointment_id}/reschedule',
        json={
            'newDate': '2030-01-07T00:00:00',
            'newStartTime': '2030-01-07T12:15:00',
            'newEndTime': '2030-01-07T12:45:00',
        },
        headers=STAFF,
    )

    assert response.status_code == 400
    assert response.json()['error'] == 'Dentist unavailable'
    assert response.json()['details']['reasons'] == ['WithinBreak']


def test_assign_dentist_endpoint(client) -> None:
    appointment_id = create(client, dentistId=None)['appointmentId']

    missing = client.patch(f'/appointments/{appointment_id}/assign-dentist', json={'dentistId': 'ghost'}, headers=STAFF)
    assigned = client.patch(
        f'/appointments/{appointment_id}/assign-dentist',
        json={'dentistId': 'dentist2'},
        headers=STAFF,
    )

    assert missing.status_code == 404
    assert missing.json()['error'] == 'Dentist not found'
    assert assigned.status_code == 200
    assert assigned.json()['data']['dentistId'] == 'dentist2'


def test_deleted_appointment_is_gone(client) -> None:
    appointment_id = create(client)['appointmentId']

    deleted = client.delete(f'/appointments/{appointment_id}')

    assert deleted.json() == {
        'success': True,
        'data': {'appointmentId': appointment_id},
        'message': 'Appointment deleted successfully',
    }
    assert client.get(f'/appointments/{appointment_id}').status_code == 404
    assert client.get('/appointments').json()['data']['pagination']['total'] == 0
