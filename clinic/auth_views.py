"""
Authentication views.

Login by email (or username) and password, JWT refresh/logout, and a
``me`` endpoint returning the caller's effective permissions.  Kept
separate from ``clinic.authentication`` to avoid circular imports when
REST framework initialises authentication classes.
"""
from __future__ import annotations

import logging

from django.db.models import Q
from django.utils import timezone
from rest_framework import status
from rest_framework.authtoken.models import Token
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.token_blacklist.models import BlacklistedToken, OutstandingToken
from rest_framework_simplejwt.tokens import RefreshToken
from rest_framework_simplejwt.views import TokenRefreshView

from clinic.models import User
from clinic.navigation import sidebar_visibility
from clinic.permissions import request_grants
from clinic.serializers.auth import LoginSerializer, LogoutSerializer
from clinic.services.audit import log_action
from clinic.services.authorization import AuthorizationPolicy
from clinic.services.permissions import grants_as_list, user_grants

logger = logging.getLogger(__name__)


def serialize_user(user: User) -> dict:
    return {
        'id': user.id,
        'username': user.username,
        'email': user.email,
        'firstName': user.first_name,
        'lastName': user.last_name,
        'name': user.get_full_name() or user.username,
        'phone': user.phone,
        'userType': user.user_type,
        'status': user.status,
        'roleId': user.role_id,
        'roleName': user.role.name if user.role_id else None,
        'clinicId': user.clinic_id,
        'lastLoginAt': user.last_login_at.isoformat() if user.last_login_at else None,
    }


def _find_user(login: str) -> User | None:
    return (
        User.objects.select_related('role')
        .filter(Q(email__iexact=login) | Q(username=login))
        .order_by('id')
        .first()
    )


# ---------------------------------------------------------------------
# Email/password login
# ---------------------------------------------------------------------
@api_view(['POST'])
@permission_classes([AllowAny])
def login_view(request):
    """
    Login with email (or username) and password.
    Accepts fields:
      - email or username
      - password
    Any client-supplied user type or role is ignored.
    """
    s = LoginSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    login = s.validated_data['login']
    password = s.validated_data['password']
    ip = request.META.get('REMOTE_ADDR')

    user = _find_user(login)
    if user is None or not user.check_password(password):
        log_action(user=None, action='login', object_type='user', object_id=user.id if user else None,
                   detail={'result': 'fail', 'login': login, 'ip': ip})
        logger.info("failed login for %s from %s", login, ip)
        return Response({'ok': False, 'error': {'code': 'invalid_credentials', 'message': 'Invalid email or password'}},
                        status=status.HTTP_400_BAD_REQUEST)

    if not user.is_active_account:
        log_action(user=user, action='login', object_type='user', object_id=user.id,
                   detail={'result': 'inactive', 'ip': ip})
        return Response({'ok': False, 'error': {'code': 'user_inactive', 'message': 'Account is not active'}},
                        status=status.HTTP_403_FORBIDDEN)

    now = timezone.now()
    user.last_login_at = now
    user.last_login = now
    user.save(update_fields=['last_login_at', 'last_login'])
    log_action(user=user, action='login', object_type='user', object_id=user.id,
               detail={'result': 'ok', 'ip': ip})

    token_obj, _ = Token.objects.get_or_create(user=user)
    refresh = RefreshToken.for_user(user)

    payload: dict[str, object] = {
        'ok': True,
        'token': token_obj.key,
        'jwt_access': str(refresh.access_token),
        'jwt_refresh': str(refresh),
        'user': serialize_user(user),
        'permissions': grants_as_list(user_grants(user)),
    }
    return Response(payload, status=200)

# DRF ScopedRateThrottle uses throttle_scope on the view function
login_view.throttle_scope = 'login'


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def me_view(request):
    user: User = request.user
    grants = request_grants(request)
    policy = AuthorizationPolicy.from_settings()
    return Response({
        'ok': True,
        'user': serialize_user(user),
        'permissions': grants_as_list(grants),
        'navigation': sidebar_visibility.sidebar(user.user_type, grants, policy),
    })


# ---------------------------------------------------------------------
# JWT: refresh & logout
# ---------------------------------------------------------------------
@api_view(['POST'])
@permission_classes([AllowAny])
def jwt_refresh_view(request):
    """Return a new access token from refresh token."""
    view = TokenRefreshView.as_view()
    resp = view(request._request)
    if isinstance(resp, Response):
        data = dict(resp.data)
        if 'access' in data and 'jwt_access' not in data:
            data['jwt_access'] = data.pop('access')
        return Response(data, status=resp.status_code)
    return resp


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def jwt_logout_view(request):
    """Blacklist one refresh token, or every outstanding token of the user."""
    s = LogoutSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    refresh = s.validated_data.get('refresh')
    if refresh:
        try:
            RefreshToken(refresh).blacklist()
        except TokenError as exc:
            return Response({'ok': False, 'error': {'code': 'invalid_token', 'message': str(exc)}},
                            status=status.HTTP_400_BAD_REQUEST)
        count = 1
    else:
        count = 0
        for token in OutstandingToken.objects.filter(user=request.user):
            _, created = BlacklistedToken.objects.get_or_create(token=token)
            count += int(created)
    log_action(user=request.user, action='logout', object_type='user', object_id=request.user.id,
               detail={'blacklisted': count})
    return Response({'ok': True, 'blacklisted': count})
