from rest_framework import serializers


class LoginSerializer(serializers.Serializer):
    """Email (or username) and password.  Extra fields such as ``userType`` are ignored."""
    email = serializers.CharField(required=False, allow_blank=True)
    username = serializers.CharField(required=False, allow_blank=True)
    password = serializers.CharField(trim_whitespace=False)

    def validate_password(self, v):
        if not v:
            raise serializers.ValidationError('Password is required')
        return v

    def validate(self, attrs):
        login = (attrs.get('email') or attrs.get('username') or '').strip()
        if not login:
            raise serializers.ValidationError({'email': 'Email or username is required'})
        attrs['login'] = login
        return attrs


class LogoutSerializer(serializers.Serializer):
    refresh = serializers.CharField(required=False, allow_blank=True)
