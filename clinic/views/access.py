"""
Grant management views.

* role grants: ``/api/roles/<id>/permissions``
* direct user grants: ``/api/users/<id>/access``
* effective user permissions: ``/api/users/<id>/permissions``
* the module/operation catalog
* an ad-hoc check for the current user: ``/api/permissions/check``

POST adds grants, PUT replaces them, DELETE removes the listed ones.
Bodies carry ``moduleOperationIds``.  DELETE with ``?all=1`` and no body
removes every grant; a DELETE body without ids is a validation error.

User targets are limited to the caller's clinic, and only the superuser
type may change its own grants.
"""
from __future__ import annotations

from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..models import Module, Operation, Role
from ..permissions import ModuleOperationPermission, deny_self_grant, request_grants, visible_users
from ..serializers.access import (
    ModuleOperationIdsSerializer,
    OperationIdsSerializer,
    PermissionCheckSerializer,
    PermissionQuerySerializer,
)
from ..services import permissions as grants_svc
from ..services.authorization import AccessRequirement, AuthorizationPolicy, resolve

RoleAccess = ModuleOperationPermission.require('Role Access')
UserManagement = ModuleOperationPermission.require('User Management')
CatalogRead = ModuleOperationPermission.require(('Role Access', 'User Management', 'System Settings'), 'Read')
SystemSettingsUpdate = ModuleOperationPermission.require('System Settings', 'Update')


def _ids(request) -> list[int]:
    s = ModuleOperationIdsSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    return s.validated_data['moduleOperationIds']


def _clear_all(request) -> bool:
    return request.method == 'DELETE' and request.query_params.get('all') in {'1', 'true'}


def _role_payload(role_id: int) -> dict:
    return {
        'roleId': role_id,
        'moduleOperationIds': grants_svc.role_module_operation_ids(role_id),
        'permissions': grants_svc.grants_as_list(grants_svc.role_grants(role_id)),
    }


def _user_payload(user_id: int) -> dict:
    return {
        'userId': user_id,
        'moduleOperationIds': grants_svc.user_module_operation_ids(user_id),
        'permissions': grants_svc.grants_as_list(grants_svc.direct_grants(user_id)),
    }


# ---------------------------------------------------------------------
# Role grants
# ---------------------------------------------------------------------
@api_view(['GET', 'POST', 'PUT', 'DELETE'])
@permission_classes([RoleAccess])
def role_permissions(request, pk: int):
    role = get_object_or_404(Role, pk=pk)
    if request.method == 'GET':
        return Response({'ok': True, 'data': _role_payload(role.id)})
    if _clear_all(request):
        result = {'removed': grants_svc.clear_role_permissions(role.id, actor=request.user)}
        return Response({'ok': True, 'result': result, 'data': _role_payload(role.id)})
    ids = _ids(request)
    if request.method == 'POST':
        added = grants_svc.assign_role_permissions(role.id, ids, actor=request.user)
        result = {'added': added}
    elif request.method == 'PUT':
        result = grants_svc.update_role_permissions(role.id, ids, actor=request.user)
    else:
        result = {'removed': grants_svc.remove_role_permissions(role.id, ids, actor=request.user)}
    return Response({'ok': True, 'result': result, 'data': _role_payload(role.id)})


@api_view(['GET'])
@permission_classes([RoleAccess])
def role_permission_check(request, pk: int):
    """``?module=&operation=`` by name, or ``?moduleOperationId=`` by id."""
    role = get_object_or_404(Role, pk=pk)
    mo_id = request.query_params.get('moduleOperationId')
    if mo_id is not None:
        if not mo_id.isdigit():
            return Response({'ok': False, 'error': {'code': 'validation_error',
                                                    'message': 'moduleOperationId must be an integer'}},
                            status=status.HTTP_400_BAD_REQUEST)
        return Response({'ok': True, 'hasPermission': grants_svc.role_permission_exists(role.id, int(mo_id))})
    s = PermissionQuerySerializer(data=request.query_params)
    s.is_valid(raise_exception=True)
    allowed = grants_svc.role_has_permission(role.id, s.validated_data['module'], s.validated_data['operation'])
    return Response({'ok': True, 'hasPermission': allowed})


# ---------------------------------------------------------------------
# Direct user grants
# ---------------------------------------------------------------------
@api_view(['GET', 'POST', 'PUT', 'DELETE'])
@permission_classes([UserManagement])
def user_access(request, pk: int):
    user = get_object_or_404(visible_users(request.user), pk=pk)
    if request.method == 'GET':
        return Response({'ok': True, 'data': _user_payload(user.id)})
    deny_self_grant(request.user, user)
    if _clear_all(request):
        result = {'removed': grants_svc.clear_user_access(user.id, actor=request.user)}
        return Response({'ok': True, 'result': result, 'data': _user_payload(user.id)})
    ids = _ids(request)
    if request.method == 'POST':
        result = {'added': grants_svc.assign_user_access(user.id, ids, actor=request.user)}
    elif request.method == 'PUT':
        result = grants_svc.update_user_access(user.id, ids, actor=request.user)
    else:
        result = {'removed': grants_svc.remove_user_access(user.id, ids, actor=request.user)}
    return Response({'ok': True, 'result': result, 'data': _user_payload(user.id)})


@api_view(['GET'])
@permission_classes([ModuleOperationPermission.require('User Management', 'Read')])
def user_permissions(request, pk: int):
    """Effective grants (role plus direct) of a user the caller can see."""
    user = get_object_or_404(visible_users(request.user), pk=pk)
    data = {
        'userId': user.id,
        'userType': user.user_type,
        'roleId': user.role_id,
        'permissions': grants_svc.grants_as_list(grants_svc.user_grants(user)),
    }
    module = request.query_params.get('module')
    operation = request.query_params.get('operation')
    if module and operation:
        data['hasPermission'] = grants_svc.user_has_permission(user, module, operation)
    return Response({'ok': True, 'data': data})


# ---------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------
@api_view(['GET'])
@permission_classes([CatalogRead])
def modules(request):
    data = [{'id': m.id, 'name': m.name, 'description': m.description} for m in Module.objects.order_by('name')]
    return Response({'ok': True, 'data': data})


@api_view(['GET'])
@permission_classes([CatalogRead])
def operations(request):
    data = [{'id': o.id, 'name': o.name, 'description': o.description} for o in Operation.objects.order_by('name')]
    return Response({'ok': True, 'data': data})


@api_view(['GET'])
@permission_classes([CatalogRead])
def module_operations(request):
    qs = grants_svc.module_operations()
    module_id = request.query_params.get('moduleId')
    if module_id:
        qs = qs.filter(module_id=module_id)
    return Response({'ok': True, 'data': [grants_svc.serialize_module_operation(mo) for mo in qs]})


@api_view(['PUT'])
@permission_classes([SystemSettingsUpdate])
def module_operations_update(request, pk: int):
    s = OperationIdsSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    rows = grants_svc.assign_operations_to_module(pk, s.validated_data['operationIds'], actor=request.user)
    return Response({'ok': True, 'data': [grants_svc.serialize_module_operation(mo) for mo in rows]})


# ---------------------------------------------------------------------
# Current user check
# ---------------------------------------------------------------------
@api_view(['POST'])
@permission_classes([IsAuthenticated])
def permission_check(request):
    s = PermissionCheckSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    requirement = AccessRequirement.of(s.validated_data['modules'], s.validated_data['operations'])
    allowed = resolve(
        request.user.user_type,
        request_grants(request),
        requirement,
        AuthorizationPolicy.from_settings(),
    )
    return Response({'ok': True, 'allowed': allowed}, status=status.HTTP_200_OK)
