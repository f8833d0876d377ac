"""Conversions between the clinic's civil clock and stored UTC instants.

Everything a patient or staff member types is wall-clock time in the clinic
timezone; everything the database holds is a naive UTC ``datetime``.
``CivilClock`` is the only place where the two meet.
"""

import re
from datetime import date, datetime, timedelta, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dental_backend.core import config
from dental_backend.core.errors import ValidationError

TIME_PATTERN = re.compile(r'^([01]?\d|2[0-3]):[0-5]\d$')


def parse_hhmm(value: str) -> tuple[int, int]:
    if not isinstance(value, str) or not TIME_PATTERN.match(value.strip()):
        raise ValidationError(f'Invalid time format (HH:MM expected): {value!r}')
    hours, minutes = value.strip().split(':')
    return int(hours), int(minutes)


def normalize_hhmm(value: str) -> str:
    hours, minutes = parse_hhmm(value)
    return f'{hours:02d}:{minutes:02d}'


def minutes_since_midnight(value: str) -> int:
    hours, minutes = parse_hhmm(value)
    return hours * 60 + minutes


def parse_datetime(value: str | datetime) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if not isinstance(value, str):
        raise ValidationError(f'Invalid date/time value: {value!r}')

    text = value.strip()
    if text.endswith(('Z', 'z')):
        text = f'{text[:-1]}+00:00'
    try:
        return datetime.fromisoformat(text)
    except ValueError as exc:
        raise ValidationError(f'Invalid date/time format: {value!r}') from exc


def as_utc(value: datetime) -> datetime:
    """Attach UTC to a naive stored value, or convert an aware one."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_storage(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def utc_now() -> datetime:
    """Current instant in the naive-UTC storage form."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def format_utc_iso(value: datetime) -> str:
    return as_utc(value).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


class CivilClock:
    def __init__(self, timezone_name: str):
        try:
            self.zone = ZoneInfo(timezone_name)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValidationError(f'Unknown timezone: {timezone_name!r}') from exc
        self.timezone_name = timezone_name

    def __repr__(self) -> str:
        return f'CivilClock({self.timezone_name!r})'

    def to_utc(self, value: str | datetime) -> datetime:
        """Naive input is read as wall-clock time in the clinic zone."""
        parsed = parse_datetime(value)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=self.zone)
        return parsed.astimezone(timezone.utc)

    def to_utc_iso(self, value: str | datetime) -> str:
        return format_utc_iso(self.to_utc(value))

    def to_civil(self, value: str | datetime) -> datetime:
        """Naive input is read as a stored UTC instant."""
        return as_utc(parse_datetime(value)).astimezone(self.zone)

    def combine_civil_date_and_time(self, day: str | date | datetime, time_of_day: str) -> datetime:
        # The calendar date is taken from the value's own components; an
        # offset-carrying datetime is not shifted through UTC first.
        if isinstance(day, str):
            day = parse_datetime(day)
        if isinstance(day, datetime):
            day = day.date()
        if not isinstance(day, date):
            raise ValidationError(f'Invalid date value: {day!r}')

        hours, minutes = parse_hhmm(time_of_day)
        wall_clock = datetime(day.year, day.month, day.day, hours, minutes, tzinfo=self.zone)
        return wall_clock.astimezone(timezone.utc)

    def civil_date_of(self, value: str | datetime) -> date:
        return self.to_civil(value).date()

    def civil_day_bounds(self, day: date) -> tuple[datetime, datetime]:
        start = self.combine_civil_date_and_time(day, '00:00')
        end = self.combine_civil_date_and_time(day + timedelta(days=1), '00:00')
        return start, end

    def now_civil(self) -> datetime:
        return datetime.now(self.zone)

    def format_civil(self, value: str | datetime, fmt: str = '%Y-%m-%d %H:%M') -> str:
        return self.to_civil(value).strftime(fmt)


@lru_cache
def get_civil_clock() -> CivilClock:
    return CivilClock(config.CLINIC_TIMEZONE)
