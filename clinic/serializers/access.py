import bleach
from rest_framework import serializers

from clinic.models import Role, User


def clean_text(v):
    return bleach.clean((v or '').strip(), strip=True)


class ModuleOperationIdsSerializer(serializers.Serializer):
    moduleOperationIds = serializers.ListField(child=serializers.IntegerField(min_value=1), allow_empty=True)


class OperationIdsSerializer(serializers.Serializer):
    operationIds = serializers.ListField(child=serializers.IntegerField(min_value=1), allow_empty=True)


class PermissionQuerySerializer(serializers.Serializer):
    module = serializers.CharField()
    operation = serializers.CharField()


class PermissionCheckSerializer(serializers.Serializer):
    """``modules``/``operations`` accept a single name or a list of names."""
    modules = serializers.ListField(child=serializers.CharField(), allow_empty=False)
    operations = serializers.ListField(child=serializers.CharField(), allow_empty=False)

    def to_internal_value(self, data):
        data = dict(data)
        for key in ('modules', 'operations'):
            if isinstance(data.get(key), str):
                data[key] = [data[key]]
        return super().to_internal_value(data)


class RoleSerializer(serializers.ModelSerializer):
    isPracticeRole = serializers.BooleanField(source='is_practice_role', required=False)

    class Meta:
        model = Role
        fields = ['name', 'description', 'isPracticeRole']

    def validate_name(self, v):
        v = clean_text(v)
        if len(v) < 2:
            raise serializers.ValidationError('Role name must be at least 2 characters')
        return v

    def validate_description(self, v):
        return clean_text(v)


class UserWriteSerializer(serializers.Serializer):
    username = serializers.CharField(max_length=150, required=False)
    email = serializers.EmailField(required=False)
    password = serializers.CharField(required=False, write_only=True, min_length=8)
    firstName = serializers.CharField(source='first_name', required=False, allow_blank=True, max_length=150)
    lastName = serializers.CharField(source='last_name', required=False, allow_blank=True, max_length=150)
    phone = serializers.CharField(required=False, allow_blank=True, max_length=30)
    userType = serializers.ChoiceField(source='user_type', choices=User.USER_TYPE_CHOICES, required=False)
    status = serializers.ChoiceField(choices=User.STATUS_CHOICES, required=False)
    roleId = serializers.IntegerField(source='role_id', required=False, allow_null=True)
    clinicId = serializers.IntegerField(source='clinic_id', required=False, allow_null=True)

    def validate_roleId(self, v):
        if v is not None and not Role.objects.filter(pk=v).exists():
            raise serializers.ValidationError(f'Role {v} does not exist')
        return v

    def validate_email(self, v):
        v = v.strip().lower()
        qs = User.objects.filter(email__iexact=v)
        if self.instance is not None:
            qs = qs.exclude(pk=self.instance.pk)
        if qs.exists():
            raise serializers.ValidationError('A user with this email already exists')
        return v

    def validate(self, attrs):
        if self.instance is None:
            for required in ('email', 'password'):
                if not attrs.get(required):
                    raise serializers.ValidationError({required: 'This field is required.'})
        return attrs
