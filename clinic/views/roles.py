"""
Role management views.

Roles are global objects; practice roles are flagged with
``isPracticeRole``.  Listing supports ``?practice=1|0`` and ``?q=``.
Deleting a role that users still hold is refused with 409.
"""
from __future__ import annotations

from django.db import transaction
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response

from ..models import Role
from ..permissions import ModuleOperationPermission
from ..serializers.access import RoleSerializer
from ..services.audit import history_for, log_action
from ..services.roles import delete_role, list_roles, serialize_role

RoleManagement = ModuleOperationPermission.require('Role Management')


def _flag(value: str | None) -> bool | None:
    if value is None or value == '':
        return None
    return value.lower() in {'1', 'true', 'yes'}


@api_view(['GET', 'POST'])
@permission_classes([RoleManagement])
def roles(request):
    if request.method == 'GET':
        qs = list_roles(practice=_flag(request.query_params.get('practice')), q=request.query_params.get('q'))
        return Response({'ok': True, 'data': [serialize_role(r) for r in qs]})

    s = RoleSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    with transaction.atomic():
        role = s.save()
        log_action(user=request.user, action='role_create', object_type='role', object_id=role.id,
                   detail={'name': role.name})
    return Response({'ok': True, 'data': serialize_role(role)}, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'DELETE'])
@permission_classes([RoleManagement])
def role_detail(request, pk: int):
    if request.method == 'DELETE':
        role = get_object_or_404(Role, pk=pk)
        delete_role(role, actor=request.user)
        return Response(status=status.HTTP_204_NO_CONTENT)

    role = get_object_or_404(list_roles(), pk=pk)
    if request.method == 'GET':
        data = serialize_role(role)
        data['history'] = history_for('role', role.id)
        return Response({'ok': True, 'data': data})

    s = RoleSerializer(role, data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    with transaction.atomic():
        role = s.save()
        log_action(user=request.user, action='role_update', object_type='role', object_id=role.id,
                   detail={k: v for k, v in s.validated_data.items()})
    return Response({'ok': True, 'data': serialize_role(get_object_or_404(list_roles(), pk=pk))})
