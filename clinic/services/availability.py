"""
Doctor availability evaluation.

Two independent predicates:

* :func:`is_available` answers whether any active weekly schedule row
  covers a clock time on a given day, outside that row's break;
* :func:`is_on_time_off` answers whether any time-off row covers a
  calendar date.

Both are pure over the rows they are given.  The ``doctor_*`` wrappers
fetch the rows for a doctor and delegate.  Absent rows mean "not
available" / "not on time off"; malformed arguments raise
:class:`~clinic.exceptions.InvalidArgument`.
"""
from __future__ import annotations

import datetime as dt
import re
from typing import Iterable

from django.utils import timezone

from clinic.exceptions import InvalidArgument
from clinic.models import DoctorSchedule, DoctorTimeOff

CLOCK_TIME_RE = re.compile(r'^([0-1]?[0-9]|2[0-3]):([0-5][0-9])(?::([0-5][0-9]))?$')


def parse_clock_time(value) -> dt.time:
    """Accept a :class:`datetime.time` or an ``HH:MM`` / ``HH:MM:SS`` string."""
    if isinstance(value, dt.datetime):
        raise InvalidArgument("expected a time of day, got a datetime")
    if isinstance(value, dt.time):
        return value
    if not isinstance(value, str):
        raise InvalidArgument(f"time must be an HH:MM string, got {type(value).__name__}")
    m = CLOCK_TIME_RE.match(value.strip())
    if not m:
        raise InvalidArgument(f"time must be in HH:MM format, got {value!r}")
    hour, minute, second = m.groups()
    return dt.time(int(hour), int(minute), int(second or 0))


def parse_date(value) -> dt.date:
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    if not isinstance(value, str):
        raise InvalidArgument(f"date must be a YYYY-MM-DD string, got {type(value).__name__}")
    try:
        return dt.date.fromisoformat(value.strip())
    except ValueError:
        raise InvalidArgument(f"date must be in YYYY-MM-DD format, got {value!r}") from None


def check_day_of_week(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgument(f"day of week must be an integer, got {value!r}")
    if not 0 <= value <= 6:
        raise InvalidArgument(f"day of week must be between 0 (Sunday) and 6 (Saturday), got {value}")
    return value


def day_of_week_for(date: dt.date) -> int:
    """Map a calendar date onto the 0=Sunday weekly convention."""
    return (date.weekday() + 1) % 7


def is_available(schedules: Iterable[DoctorSchedule], day_of_week: int, at) -> bool:
    """Return True if an active row for ``day_of_week`` covers ``at``.

    Working windows and breaks are both inclusive of their ends.  A row
    whose break covers ``at`` does not count, but other rows for the
    same day (split shifts) are still consulted.
    """
    day = check_day_of_week(day_of_week)
    when = parse_clock_time(at)
    for row in schedules:
        if not row.is_active or row.day_of_week != day:
            continue
        if not row.start_time <= when <= row.end_time:
            continue
        if row.break_start_time is not None and row.break_end_time is not None:
            if row.break_start_time <= when <= row.break_end_time:
                continue
        return True
    return False


def is_on_time_off(time_offs: Iterable[DoctorTimeOff], on_date) -> bool:
    """Return True if any row's inclusive date range contains ``on_date``.

    Approval state is not consulted: a recorded request blocks the date.
    """
    day = parse_date(on_date)
    return any(row.start_date <= day <= row.end_date for row in time_offs)


def doctor_is_available(doctor_id: int, day_of_week: int, at) -> bool:
    day = check_day_of_week(day_of_week)
    when = parse_clock_time(at)
    rows = DoctorSchedule.objects.filter(doctor_id=doctor_id, day_of_week=day, is_active=True)
    return is_available(rows, day, when)


def doctor_is_on_time_off(doctor_id: int, on_date) -> bool:
    day = parse_date(on_date)
    rows = DoctorTimeOff.objects.filter(doctor_id=doctor_id, start_date__lte=day, end_date__gte=day)
    return is_on_time_off(rows, day)


def doctor_can_see_patients(doctor_id: int, on_date, at) -> bool:
    """Combined booking check: not on time off that day and scheduled at ``at``."""
    day = parse_date(on_date)
    if doctor_is_on_time_off(doctor_id, day):
        return False
    return doctor_is_available(doctor_id, day_of_week_for(day), at)


def upcoming_time_off(doctor_id: int, today: dt.date | None = None):
    """Time-off rows that have not yet ended, earliest first."""
    today = today or timezone.localdate()
    return DoctorTimeOff.objects.filter(doctor_id=doctor_id, end_date__gte=today).order_by('start_date')
