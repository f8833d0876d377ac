from datetime import datetime
from types import SimpleNamespace

import pytest

from dental_backend.core.civil_time import CivilClock
from dental_backend.services.notification_content import (
    EVENT_CANCELLED,
    EVENT_CONFIRMED,
    EVENT_DENTIST_ASSIGNED,
    build_notification_content,
    format_clock_time,
)

MANILA = CivilClock('Asia/Manila')


def make_appointment(**overrides):
    values = {
        'start_time': datetime(2030, 1, 7, 6, 30),
        'end_time': datetime(2030, 1, 7, 7, 0),
        'clinic_branch': SimpleNamespace(name='Makati Branch'),
        'dentist': SimpleNamespace(user=SimpleNamespace(name='Ana Reyes')),
    }
    values.update(overrides)
    return SimpleNamespace(**values)


@pytest.mark.parametrize(
    ('hour', 'minute', 'expected'),
    [(0, 5, '12:05 AM'), (9, 0, '9:00 AM'), (12, 30, '12:30 PM'), (23, 45, '11:45 PM')],
)
def test_format_clock_time(hour: int, minute: int, expected: str) -> None:
    assert format_clock_time(datetime(2030, 1, 7, hour, minute)) == expected


def test_confirmation_renders_civil_time_and_branch() -> None:
    content = build_notification_content(make_appointment(), EVENT_CONFIRMED, MANILA)

    assert content == 'Your appointment on Mon, Jan 07, 2030 at 2:30 PM - 3:00 PM (Makati Branch) has been confirmed.'


def test_open_ended_appointment_without_branch() -> None:
    content = build_notification_content(make_appointment(end_time=None, clinic_branch=None), EVENT_CANCELLED, MANILA)

    assert content == 'Your appointment on Mon, Jan 07, 2030 at 2:30 PM has been cancelled.'


def test_dentist_assignment_names_the_dentist() -> None:
    assert build_notification_content(make_appointment(), EVENT_DENTIST_ASSIGNED, MANILA).startswith(
        'Dr. Ana Reyes has been assigned'
    )
    assert build_notification_content(make_appointment(dentist=None), EVENT_DENTIST_ASSIGNED, MANILA).startswith(
        'A dentist has been assigned'
    )


def test_unknown_event_is_rejected() -> None:
    with pytest.raises(ValueError):
        build_notification_content(make_appointment(), 'teleported', MANILA)
