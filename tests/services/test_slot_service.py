from datetime import date, datetime

import pytest

from dental_backend.core.civil_time import CivilClock, to_storage
from dental_backend.core.errors import NotFoundError, ValidationError
from dental_backend.models.appointment import Appointment
from dental_backend.models.availability import Leave
from dental_backend.schemas.availability import AvailableSlotResponse
from dental_backend.services.slot_service import get_available_slots

MANILA = CivilClock('Asia/Manila')
MONDAY = date(2030, 1, 7)
LONG_AGO = datetime(2000, 1, 1)


def civil(hour: int, minute: int = 0) -> datetime:
    return to_storage(MANILA.to_utc(datetime(2030, 1, 7, hour, minute)))


def labels(slots) -> list[str]:
    return [MANILA.format_civil(slot.start, '%H:%M') for slot in slots]


def slots_for(db, **kwargs):
    kwargs.setdefault('now', LONG_AGO)
    return get_available_slots(db, 'dentist1', MONDAY, duration_minutes=30, increment_minutes=15, clock=MANILA, **kwargs)


def test_slots_walk_working_hours_and_skip_the_break(db, clinic) -> None:
    slots = slots_for(db)

    assert len(slots) == 26
    assert labels(slots)[:3] == ['09:00', '09:15', '09:30']
    assert '11:30' in labels(slots)
    assert '11:45' not in labels(slots)
    assert '12:45' not in labels(slots)
    assert '13:00' in labels(slots)
    assert labels(slots)[-1] == '16:30'


def test_slots_skip_booked_time_for_the_whole_civil_day(db, clinic) -> None:
    db.add(Appointment(
        patient_id='patient1',
        dentist_id='dentist1',
        scheduled_by='secretary1',
        appointment_date=civil(0, 30),
        start_time=civil(10),
        end_time=civil(11),
        treatment_options=[],
        status='confirmed',
    ))
    db.add(Appointment(
        patient_id='patient1',
        dentist_id='dentist1',
        scheduled_by='secretary1',
        appointment_date=civil(0),
        start_time=civil(14),
        end_time=civil(15),
        treatment_options=[],
        status='cancelled',
    ))
    db.commit()

    slots = slots_for(db)

    assert len(slots) == 21
    assert '09:30' in labels(slots)
    assert '09:45' not in labels(slots)
    assert '11:00' in labels(slots)
    assert '14:00' in labels(slots)


def test_slots_skip_leave(db, clinic) -> None:
    db.add(Leave(dentist_id='dentist1', start_date_time=civil(15), end_date_time=civil(18)))
    db.commit()

    assert labels(slots_for(db))[-1] == '14:30'


def test_slots_starting_in_the_past_are_dropped(db, clinic) -> None:
    slots = slots_for(db, now=civil(14))

    assert labels(slots)[0] == '14:00'
    assert len(slots) == 11


def test_no_slots_on_a_day_without_hours(db, clinic) -> None:
    assert get_available_slots(db, 'dentist1', date(2030, 1, 8), clock=MANILA, now=LONG_AGO) == []


def test_unknown_dentist_is_not_found(db, clinic) -> None:
    with pytest.raises(NotFoundError):
        get_available_slots(db, 'ghost', MONDAY, clock=MANILA)


def test_negative_duration_is_rejected(db, clinic) -> None:
    with pytest.raises(ValidationError):
        get_available_slots(db, 'dentist1', MONDAY, duration_minutes=-15, clock=MANILA)


def test_slot_response_carries_civil_labels(db, clinic) -> None:
    slot = slots_for(db)[0]

    payload = AvailableSlotResponse.from_slot(slot, MANILA).model_dump(mode='json', by_alias=True)

    assert payload == {
        'startTime': '2030-01-07T01:00:00.000Z',
        'endTime': '2030-01-07T01:30:00.000Z',
        'civilDate': '2030-01-07',
        'civilStartTime': '09:00',
        'civilEndTime': '09:30',
        'clinicBranchId': 1,
    }
