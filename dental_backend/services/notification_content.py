"""Patient-facing notification text for appointment events.

Only the text is produced here; delivery belongs to whoever consumes
``Appointment.notif_content``.
"""

from datetime import datetime

from dental_backend.core.civil_time import CivilClock, get_civil_clock

EVENT_CREATED = 'created'
EVENT_CONFIRMED = 'confirmed'
EVENT_COMPLETED = 'completed'
EVENT_CANCELLED = 'cancelled'
EVENT_RESCHEDULED = 'rescheduled'
EVENT_RESET = 'reset'
EVENT_DENTIST_ASSIGNED = 'dentist_assigned'

EVENT_TEMPLATES = {
    EVENT_CREATED: 'Your appointment on {date} at {time}{location} has been booked and is pending confirmation.',
    EVENT_CONFIRMED: 'Your appointment on {date} at {time}{location} has been confirmed.',
    EVENT_COMPLETED: 'Your appointment on {date} at {time}{location} has been completed. Thank you for visiting.',
    EVENT_CANCELLED: 'Your appointment on {date} at {time}{location} has been cancelled.',
    EVENT_RESCHEDULED: 'Your appointment has been rescheduled to {date} at {time}{location}.',
    EVENT_RESET: 'Your appointment on {date} at {time}{location} is pending confirmation again.',
    EVENT_DENTIST_ASSIGNED: '{dentist} has been assigned to your appointment on {date} at {time}{location}.',
}

# Initial status of a new appointment -> event describing it.
STATUS_EVENTS = {
    'pending': EVENT_CREATED,
    'confirmed': EVENT_CONFIRMED,
    'completed': EVENT_COMPLETED,
    'cancelled': EVENT_CANCELLED,
    'rescheduled': EVENT_RESCHEDULED,
}


def format_clock_time(value: datetime) -> str:
    hour_12 = value.hour % 12 or 12
    period = 'AM' if value.hour < 12 else 'PM'
    return f'{hour_12}:{value.minute:02d} {period}'


def describe_dentist(dentist) -> str:
    if dentist is None or dentist.user is None:
        return 'A dentist'
    return f'Dr. {dentist.user.name}'


def build_notification_content(appointment, event: str, clock: CivilClock | None = None) -> str:
    if event not in EVENT_TEMPLATES:
        raise ValueError(f'Unknown notification event: {event}')

    clock = clock or get_civil_clock()
    start = clock.to_civil(appointment.start_time)
    time_text = format_clock_time(start)
    if appointment.end_time is not None:
        time_text = f'{time_text} - {format_clock_time(clock.to_civil(appointment.end_time))}'

    location = ''
    if appointment.clinic_branch is not None:
        location = f' ({appointment.clinic_branch.name})'

    return EVENT_TEMPLATES[event].format(
        date=start.strftime('%a, %b %d, %Y'),
        time=time_text,
        location=location,
        dentist=describe_dentist(appointment.dentist),
    )
