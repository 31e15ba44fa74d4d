import datetime as dt

import pytest
from django.core.exceptions import ValidationError

from clinic.exceptions import InvalidArgument
from clinic.models import Doctor, DoctorSchedule, DoctorTimeOff
from clinic.services import availability


def _schedule(day=2, start='09:00', end='17:00', brk=('12:00', '13:00'), active=True, doctor_id=7):
    return DoctorSchedule(
        doctor_id=doctor_id,
        day_of_week=day,
        start_time=dt.time.fromisoformat(start),
        end_time=dt.time.fromisoformat(end),
        break_start_time=dt.time.fromisoformat(brk[0]) if brk else None,
        break_end_time=dt.time.fromisoformat(brk[1]) if brk else None,
        is_active=active,
    )


def _time_off(start, end, approved=False):
    return DoctorTimeOff(doctor_id=7, start_date=dt.date.fromisoformat(start),
                         end_date=dt.date.fromisoformat(end), is_approved=approved)


# ---------------------------------------------------------------------
# Weekly schedule
# ---------------------------------------------------------------------
@pytest.mark.parametrize('at,expected', [
    ('11:30', True),
    ('12:30', False),
    ('18:00', False),
    ('09:00', True),
    ('17:00', True),
    ('12:00', False),
    ('13:00', False),
    ('08:59', False),
])
def test_schedule_window_and_break(at, expected):
    assert availability.is_available([_schedule()], 2, at) is expected


def test_other_day_is_not_available():
    assert availability.is_available([_schedule()], 3, '11:30') is False


def test_no_rows_means_unavailable():
    assert availability.is_available([], 2, '11:30') is False


def test_inactive_row_is_ignored():
    assert availability.is_available([_schedule(active=False)], 2, '11:30') is False


def test_row_without_break():
    assert availability.is_available([_schedule(brk=None)], 2, '12:30') is True


def test_split_shift_rows_are_all_consulted():
    rows = [_schedule(start='08:00', end='12:00', brk=None), _schedule(start='14:00', end='18:00', brk=None)]
    assert availability.is_available(rows, 2, '15:00') is True
    assert availability.is_available(rows, 2, '13:00') is False


def test_time_object_accepted():
    assert availability.is_available([_schedule()], 2, dt.time(10, 15)) is True


@pytest.mark.parametrize('day', [-1, 7, '2', 2.0, None, True])
def test_invalid_day_raises(day):
    with pytest.raises(InvalidArgument):
        availability.is_available([_schedule()], day, '11:30')


@pytest.mark.parametrize('at', ['25:00', '9', '12:60', '', 'noon', 1130, None])
def test_invalid_time_raises(at):
    with pytest.raises(InvalidArgument):
        availability.is_available([_schedule()], 2, at)


def test_datetime_rejected_as_time():
    with pytest.raises(InvalidArgument):
        availability.parse_clock_time(dt.datetime(2024, 7, 1, 9, 0))


def test_single_digit_hour_is_accepted():
    assert availability.parse_clock_time('9:05') == dt.time(9, 5)


def test_day_of_week_for_uses_sunday_zero():
    assert availability.day_of_week_for(dt.date(2024, 7, 7)) == 0  # Sunday
    assert availability.day_of_week_for(dt.date(2024, 7, 9)) == 2  # Tuesday
    assert availability.day_of_week_for(dt.date(2024, 7, 13)) == 6  # Saturday


# ---------------------------------------------------------------------
# Time off
# ---------------------------------------------------------------------
@pytest.mark.parametrize('on_date,expected', [
    ('2024-07-05', True),
    ('2024-07-11', False),
    ('2024-07-01', True),
    ('2024-07-10', True),
    ('2024-06-30', False),
])
def test_time_off_range_is_inclusive(on_date, expected):
    assert availability.is_on_time_off([_time_off('2024-07-01', '2024-07-10')], on_date) is expected


def test_no_time_off_rows():
    assert availability.is_on_time_off([], '2024-07-05') is False


def test_unapproved_time_off_still_counts():
    assert availability.is_on_time_off([_time_off('2024-07-01', '2024-07-01', approved=False)], '2024-07-01')


@pytest.mark.parametrize('value', ['2024-13-01', '07/05/2024', '', 20240705])
def test_invalid_date_raises(value):
    with pytest.raises(InvalidArgument):
        availability.is_on_time_off([], value)


# ---------------------------------------------------------------------
# Model validation
# ---------------------------------------------------------------------
def test_schedule_clean_rejects_inverted_window():
    with pytest.raises(ValidationError):
        _schedule(start='17:00', end='09:00', brk=None).clean()


def test_schedule_clean_rejects_break_outside_window():
    with pytest.raises(ValidationError):
        _schedule(brk=('08:00', '10:00')).clean()


def test_schedule_clean_rejects_half_break():
    row = _schedule(brk=None)
    row.break_start_time = dt.time(12, 0)
    with pytest.raises(ValidationError):
        row.clean()


def test_schedule_clean_accepts_valid_row():
    _schedule().clean()


def test_time_off_clean_rejects_inverted_range():
    with pytest.raises(ValidationError):
        _time_off('2024-07-10', '2024-07-01').clean()


def test_single_day_time_off_is_valid():
    _time_off('2024-07-01', '2024-07-01').clean()


# ---------------------------------------------------------------------
# Database-backed wrappers
# ---------------------------------------------------------------------
@pytest.fixture
def doctor(make_user):
    doc = Doctor.objects.create(user=make_user(user_type='Doctor'))
    DoctorSchedule.objects.create(doctor=doc, day_of_week=2, start_time=dt.time(9), end_time=dt.time(17),
                                  break_start_time=dt.time(12), break_end_time=dt.time(13))
    DoctorTimeOff.objects.create(doctor=doc, start_date=dt.date(2024, 7, 1), end_date=dt.date(2024, 7, 10))
    return doc


@pytest.mark.django_db
def test_doctor_wrappers(doctor):
    assert availability.doctor_is_available(doctor.id, 2, '11:30') is True
    assert availability.doctor_is_available(doctor.id, 2, '12:30') is False
    assert availability.doctor_is_on_time_off(doctor.id, '2024-07-05') is True
    assert availability.doctor_is_on_time_off(doctor.id, '2024-07-11') is False


@pytest.mark.django_db
def test_unknown_doctor_is_never_available(doctor):
    assert availability.doctor_is_available(doctor.id + 100, 2, '11:30') is False
    assert availability.doctor_is_on_time_off(doctor.id + 100, '2024-07-05') is False


@pytest.mark.django_db
def test_can_see_patients_combines_schedule_and_time_off(doctor):
    # 2024-07-02 is a Tuesday inside the time off range
    assert availability.doctor_can_see_patients(doctor.id, '2024-07-02', '10:00') is False
    # 2024-07-16 is a Tuesday outside it
    assert availability.doctor_can_see_patients(doctor.id, '2024-07-16', '10:00') is True
    assert availability.doctor_can_see_patients(doctor.id, '2024-07-16', '12:30') is False


@pytest.mark.django_db
def test_upcoming_time_off_orders_by_start(doctor):
    DoctorTimeOff.objects.create(doctor=doctor, start_date=dt.date(2024, 6, 1), end_date=dt.date(2024, 6, 2))
    later = DoctorTimeOff.objects.create(doctor=doctor, start_date=dt.date(2024, 8, 1), end_date=dt.date(2024, 8, 3))
    rows = list(availability.upcoming_time_off(doctor.id, today=dt.date(2024, 7, 10)))
    assert [r.start_date for r in rows] == [dt.date(2024, 7, 1), later.start_date]
