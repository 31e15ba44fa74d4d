import bleach
from rest_framework import serializers

from clinic.models import Task


class TaskSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=255, required=False)
    description = serializers.CharField(required=False, allow_blank=True)
    status = serializers.ChoiceField(choices=Task.STATUS_CHOICES, required=False)
    priority = serializers.ChoiceField(choices=Task.PRIORITY_CHOICES, required=False)
    assignedTo = serializers.IntegerField(source='assigned_to_id', required=False, allow_null=True)
    clinicId = serializers.IntegerField(source='clinic_id', required=False, allow_null=True)
    startDate = serializers.DateField(source='start_date', required=False, allow_null=True)
    dueDate = serializers.DateField(source='due_date', required=False, allow_null=True)

    def validate_title(self, v):
        v = bleach.clean((v or '').strip(), strip=True)
        if not v:
            raise serializers.ValidationError('title is required')
        return v

    def validate_description(self, v):
        return bleach.clean((v or '').strip(), strip=True)

    def validate(self, attrs):
        if self.instance is None and not attrs.get('title'):
            raise serializers.ValidationError({'title': 'title is required'})
        return attrs


class TaskCommentSerializer(serializers.Serializer):
    text = serializers.CharField()

    def validate_text(self, v):
        v = bleach.clean((v or '').strip(), strip=True)
        if not v:
            raise serializers.ValidationError('Comment cannot be empty')
        return v
