"""
Doctor schedule and time-off views.

Weekly schedule rows and time-off ranges are plain CRUD; model
``clean()`` enforces the time and date rules.  The availability
endpoints answer the two booking questions separately, or together
when a calendar date is supplied.

Only doctors of the caller's clinic are reachable unless the caller has
the superuser type.
"""
from __future__ import annotations

from django.db import transaction
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response

from ..models import DoctorSchedule, DoctorTimeOff
from ..permissions import ModuleOperationPermission, visible_doctors
from ..serializers.schedules import (
    AvailabilityQuerySerializer,
    DateQuerySerializer,
    ScheduleSerializer,
    TimeOffSerializer,
)
from ..services import availability
from ..services.audit import log_action

Appointments = ModuleOperationPermission.require('Appointment Management')
AppointmentsRead = ModuleOperationPermission.require('Appointment Management', 'Read')


def _serialize_schedule(row: DoctorSchedule) -> dict:
    data = ScheduleSerializer(row).data
    data.update({
        'id': row.id,
        'doctorId': row.doctor_id,
        'dayName': row.get_day_of_week_display(),
    })
    return data


def _serialize_time_off(row: DoctorTimeOff) -> dict:
    data = TimeOffSerializer(row).data
    data.update({'id': row.id, 'doctorId': row.doctor_id})
    return data


def _schedules(actor):
    return DoctorSchedule.objects.filter(doctor__in=visible_doctors(actor))


def _time_off(actor):
    return DoctorTimeOff.objects.filter(doctor__in=visible_doctors(actor))


def _save(instance, values: dict):
    for field, value in values.items():
        setattr(instance, field, value)
    instance.full_clean()
    instance.save()
    return instance


# ---------------------------------------------------------------------
# Weekly schedules
# ---------------------------------------------------------------------
@api_view(['GET', 'POST'])
@permission_classes([Appointments])
def doctor_schedules(request, doctor_id: int):
    doctor = get_object_or_404(visible_doctors(request.user), pk=doctor_id)
    if request.method == 'GET':
        qs = doctor.schedules.order_by('day_of_week', 'start_time')
        if request.query_params.get('activeOnly') in {'1', 'true'}:
            qs = qs.filter(is_active=True)
        return Response({'ok': True, 'data': [_serialize_schedule(r) for r in qs]})

    s = ScheduleSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    with transaction.atomic():
        row = _save(DoctorSchedule(doctor=doctor), s.validated_data)
        log_action(user=request.user, action='schedule_create', object_type='doctor', object_id=doctor.id,
                   detail={'scheduleId': row.id, 'dayOfWeek': row.day_of_week})
    return Response({'ok': True, 'data': _serialize_schedule(row)}, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'DELETE'])
@permission_classes([Appointments])
def schedule_detail(request, pk: int):
    row = get_object_or_404(_schedules(request.user), pk=pk)
    if request.method == 'GET':
        return Response({'ok': True, 'data': _serialize_schedule(row)})
    if request.method == 'DELETE':
        doctor_id = row.doctor_id
        row.delete()
        log_action(user=request.user, action='schedule_delete', object_type='doctor', object_id=doctor_id,
                   detail={'scheduleId': pk})
        return Response(status=status.HTTP_204_NO_CONTENT)

    s = ScheduleSerializer(row, data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    with transaction.atomic():
        _save(row, s.validated_data)
    return Response({'ok': True, 'data': _serialize_schedule(row)})


@api_view(['GET'])
@permission_classes([AppointmentsRead])
def doctor_availability(request, doctor_id: int):
    """``?dayOfWeek=&time=`` checks the weekly schedule only;
    ``?date=&time=`` also rules out time off on that date."""
    doctor = get_object_or_404(visible_doctors(request.user), pk=doctor_id)
    s = AvailabilityQuerySerializer(data=request.query_params)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    at = vd['time']
    if 'date' in vd:
        on_date = vd['date']
        day = availability.day_of_week_for(on_date)
        on_time_off = availability.doctor_is_on_time_off(doctor.id, on_date)
        scheduled = availability.doctor_is_available(doctor.id, day, at)
        return Response({
            'ok': True,
            'doctorId': doctor.id,
            'date': on_date.isoformat(),
            'dayOfWeek': day,
            'time': at.strftime('%H:%M'),
            'onTimeOff': on_time_off,
            'scheduled': scheduled,
            'available': scheduled and not on_time_off,
        })
    day = vd['dayOfWeek']
    return Response({
        'ok': True,
        'doctorId': doctor.id,
        'dayOfWeek': day,
        'time': at.strftime('%H:%M'),
        'available': availability.doctor_is_available(doctor.id, day, at),
    })


# ---------------------------------------------------------------------
# Time off
# ---------------------------------------------------------------------
@api_view(['GET', 'POST'])
@permission_classes([Appointments])
def doctor_time_off(request, doctor_id: int):
    doctor = get_object_or_404(visible_doctors(request.user), pk=doctor_id)
    if request.method == 'GET':
        qs = doctor.time_off.order_by('start_date')
        return Response({'ok': True, 'data': [_serialize_time_off(r) for r in qs]})

    s = TimeOffSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    with transaction.atomic():
        row = _save(DoctorTimeOff(doctor=doctor), s.validated_data)
        log_action(user=request.user, action='time_off_create', object_type='doctor', object_id=doctor.id,
                   detail={'timeOffId': row.id, 'start': str(row.start_date), 'end': str(row.end_date)})
    return Response({'ok': True, 'data': _serialize_time_off(row)}, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([AppointmentsRead])
def doctor_time_off_upcoming(request, doctor_id: int):
    doctor = get_object_or_404(visible_doctors(request.user), pk=doctor_id)
    rows = availability.upcoming_time_off(doctor.id)
    return Response({'ok': True, 'data': [_serialize_time_off(r) for r in rows]})


@api_view(['GET'])
@permission_classes([AppointmentsRead])
def doctor_time_off_check(request, doctor_id: int):
    doctor = get_object_or_404(visible_doctors(request.user), pk=doctor_id)
    s = DateQuerySerializer(data=request.query_params)
    s.is_valid(raise_exception=True)
    on_date = s.validated_data['date']
    return Response({
        'ok': True,
        'doctorId': doctor.id,
        'date': on_date.isoformat(),
        'onTimeOff': availability.doctor_is_on_time_off(doctor.id, on_date),
    })


@api_view(['GET', 'PUT', 'DELETE'])
@permission_classes([Appointments])
def time_off_detail(request, pk: int):
    row = get_object_or_404(_time_off(request.user), pk=pk)
    if request.method == 'GET':
        return Response({'ok': True, 'data': _serialize_time_off(row)})
    if request.method == 'DELETE':
        doctor_id = row.doctor_id
        row.delete()
        log_action(user=request.user, action='time_off_delete', object_type='doctor', object_id=doctor_id,
                   detail={'timeOffId': pk})
        return Response(status=status.HTTP_204_NO_CONTENT)

    s = TimeOffSerializer(row, data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    with transaction.atomic():
        _save(row, s.validated_data)
    return Response({'ok': True, 'data': _serialize_time_off(row)})
