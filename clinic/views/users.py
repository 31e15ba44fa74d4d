"""
User management views.

Non-SuperAdmin callers only see and edit users of their own clinic.
Role changes and status changes are audited and push a permission
refresh to the affected user.
"""
from __future__ import annotations

from django.db import transaction
from django.db.models import Q
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response

from ..auth_views import serialize_user
from ..models import User
from ..permissions import ModuleOperationPermission, deny_self_grant, is_super_admin, visible_users
from ..serializers.access import UserWriteSerializer
from ..services.authorization import AuthorizationPolicy
from ..services.audit import log_action
from ..services.notifications import notify_permission_changed

UserManagement = ModuleOperationPermission.require('User Management')


def _apply(user: User, data: dict) -> list[str]:
    password = data.pop('password', None)
    changed = []
    for field, value in data.items():
        if getattr(user, field) != value:
            setattr(user, field, value)
            changed.append(field)
    if password:
        user.set_password(password)
        changed.append('password')
    return changed


@api_view(['GET', 'POST'])
@permission_classes([UserManagement])
def users(request):
    actor: User = request.user
    if request.method == 'GET':
        qs = visible_users(actor)
        params = request.query_params
        if params.get('userType'):
            qs = qs.filter(user_type=params['userType'])
        if params.get('status'):
            qs = qs.filter(status=params['status'])
        if params.get('roleId'):
            qs = qs.filter(role_id=params['roleId'])
        if params.get('q'):
            q = params['q']
            qs = qs.filter(Q(username__icontains=q) | Q(email__icontains=q) |
                           Q(first_name__icontains=q) | Q(last_name__icontains=q))
        return Response({'ok': True, 'data': [serialize_user(u) for u in qs.order_by('id')]})

    s = UserWriteSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    data = dict(s.validated_data)
    if not is_super_admin(actor):
        if data.get('user_type') == AuthorizationPolicy.from_settings().superuser_type:
            return Response({'ok': False, 'error': {'code': 'permission_denied',
                                                    'message': 'Cannot create superuser accounts'}},
                            status=status.HTTP_403_FORBIDDEN)
        data['clinic_id'] = actor.clinic_id
    data.setdefault('username', data['email'])
    with transaction.atomic():
        user = User(username=data.pop('username'), email=data.pop('email'))
        _apply(user, data)
        user.save()
        log_action(user=actor, action='user_create', object_type='user', object_id=user.id,
                   detail={'userType': user.user_type, 'roleId': user.role_id})
    return Response({'ok': True, 'data': serialize_user(user)}, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT'])
@permission_classes([UserManagement])
def user_detail(request, pk: int):
    actor: User = request.user
    user = get_object_or_404(visible_users(actor), pk=pk)
    if request.method == 'GET':
        return Response({'ok': True, 'data': serialize_user(user)})

    s = UserWriteSerializer(user, data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    data = dict(s.validated_data)
    if not is_super_admin(actor):
        if {'role_id', 'user_type'} & set(data):
            deny_self_grant(actor, user)
        if data.get('user_type') == AuthorizationPolicy.from_settings().superuser_type:
            return Response({'ok': False, 'error': {'code': 'permission_denied',
                                                    'message': 'Cannot grant the superuser type'}},
                            status=status.HTTP_403_FORBIDDEN)
        data.pop('clinic_id', None)
    with transaction.atomic():
        changed = _apply(user, data)
        if changed:
            user.save()
            log_action(user=actor, action='user_update', object_type='user', object_id=user.id,
                       detail={'fields': changed})
            if {'role_id', 'user_type', 'status'} & set(changed):
                transaction.on_commit(lambda: notify_permission_changed([user.id]))
    user.refresh_from_db()
    return Response({'ok': True, 'data': serialize_user(user)})
