"""Date helpers pinned to the diary's reference time zone."""

import calendar
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

# Calendar days are always taken in this zone so a dataset groups the same
# way regardless of the client's locale.
REFERENCE_TZ = ZoneInfo("Europe/Berlin")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_reference(instant: datetime) -> datetime:
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(REFERENCE_TZ)


def reference_date(instant: datetime) -> date:
    return to_reference(instant).date()


def start_of_day(instant: datetime) -> datetime:
    """Midnight at the start of the instant's reference-zone day."""
    return datetime.combine(reference_date(instant), time.min, tzinfo=REFERENCE_TZ)


def end_of_day(instant: datetime) -> datetime:
    """Last microsecond of the instant's reference-zone day."""
    next_midnight = datetime.combine(
        reference_date(instant) + timedelta(days=1), time.min, tzinfo=REFERENCE_TZ
    )
    return next_midnight - timedelta(microseconds=1)


def at_reference_time(day: date, hhmm: str) -> datetime:
    """Combine a calendar date and an "HH:MM" string in the reference zone."""
    hours, minutes = (int(part) for part in hhmm.split(":")[:2])
    return datetime.combine(day, time(hours, minutes), tzinfo=REFERENCE_TZ)


def add_months(day: date, months: int) -> date:
    """Add calendar months, clamping to the last day of the target month."""
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return day.replace(year=year, month=month, day=min(day.day, last_day))
