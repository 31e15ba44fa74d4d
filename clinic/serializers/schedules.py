from rest_framework import serializers

from clinic.exceptions import InvalidArgument
from clinic.models import DoctorTimeOff
from clinic.services.availability import parse_clock_time, parse_date


class ClockTimeField(serializers.Field):
    """``HH:MM`` (or ``HH:MM:SS``) on the wire, :class:`datetime.time` inside."""

    def to_internal_value(self, data):
        try:
            return parse_clock_time(data)
        except InvalidArgument as exc:
            raise serializers.ValidationError(str(exc))

    def to_representation(self, value):
        return value.strftime('%H:%M') if value else None


class ScheduleSerializer(serializers.Serializer):
    dayOfWeek = serializers.IntegerField(source='day_of_week', min_value=0, max_value=6)
    startTime = ClockTimeField(source='start_time')
    endTime = ClockTimeField(source='end_time')
    breakStartTime = ClockTimeField(source='break_start_time', required=False, allow_null=True)
    breakEndTime = ClockTimeField(source='break_end_time', required=False, allow_null=True)
    isActive = serializers.BooleanField(source='is_active', required=False, default=True)


class TimeOffSerializer(serializers.Serializer):
    startDate = serializers.DateField(source='start_date')
    endDate = serializers.DateField(source='end_date')
    reason = serializers.ChoiceField(choices=DoctorTimeOff.REASON_CHOICES, required=False, default='Vacation')
    isApproved = serializers.BooleanField(source='is_approved', required=False, default=False)
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class AvailabilityQuerySerializer(serializers.Serializer):
    """Either ``dayOfWeek`` or ``date`` together with ``time``."""
    dayOfWeek = serializers.IntegerField(required=False, min_value=0, max_value=6)
    date = serializers.DateField(required=False)
    time = ClockTimeField()

    def validate(self, attrs):
        if 'dayOfWeek' not in attrs and 'date' not in attrs:
            raise serializers.ValidationError({'dayOfWeek': 'Provide dayOfWeek or date'})
        return attrs


class DateQuerySerializer(serializers.Serializer):
    date = serializers.CharField()

    def validate_date(self, v):
        try:
            return parse_date(v)
        except InvalidArgument as exc:
            raise serializers.ValidationError(str(exc))
