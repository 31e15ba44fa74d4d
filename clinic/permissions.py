"""
DRF permission classes backed by the module/operation resolver.
"""
from __future__ import annotations

import logging

from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import BasePermission

from clinic.models import Doctor, User
from clinic.services.authorization import AccessRequirement, AuthorizationPolicy, resolve
from clinic.services.permissions import user_grants

logger = logging.getLogger(__name__)

# Operation implied by an HTTP method when a permission does not name one.
METHOD_OPERATIONS = {
    'GET': 'Read',
    'HEAD': 'Read',
    'OPTIONS': 'Read',
    'POST': 'Create',
    'PUT': 'Update',
    'PATCH': 'Update',
    'DELETE': 'Delete',
}


def request_grants(request):
    """Effective grants of the request user, computed once per request."""
    grants = getattr(request, '_emr_grants', None)
    if grants is None:
        grants = user_grants(getattr(request, 'user', None))
        request._emr_grants = grants
    return grants


def is_super_admin(user) -> bool:
    return AuthorizationPolicy.from_settings().is_superuser(getattr(user, 'user_type', None))


def visible_users(actor):
    """Users the actor may manage: everyone for the superuser type, else the actor's clinic."""
    qs = User.objects.select_related('role')
    if is_super_admin(actor):
        return qs
    return qs.filter(clinic_id=actor.clinic_id) if actor.clinic_id else qs.filter(pk=actor.pk)


def visible_doctors(actor):
    qs = Doctor.objects.select_related('user')
    if is_super_admin(actor):
        return qs
    return qs.filter(clinic_id=actor.clinic_id) if actor.clinic_id else qs.none()


def deny_self_grant(actor, target) -> None:
    """Only the superuser type may change its own grants, role or user type."""
    if target.pk == actor.pk and not is_super_admin(actor):
        raise PermissionDenied('You cannot change your own access')


class ModuleOperationPermission(BasePermission):
    """Allow the request when the user's grants satisfy a module/operation requirement.

    Use :meth:`require` to build a concrete class for a view::

        @permission_classes([ModuleOperationPermission.require('Role Management')])

    Without explicit operations the operation is derived from the HTTP
    method (GET -> Read, POST -> Create, PUT/PATCH -> Update, DELETE -> Delete).
    """
    modules: tuple[str, ...] = ()
    operations: tuple[str, ...] = ()
    message = 'You do not have permission to perform this action.'

    @classmethod
    def require(cls, modules, operations=None) -> type[ModuleOperationPermission]:
        if isinstance(modules, str):
            modules = (modules,)
        if isinstance(operations, str):
            operations = (operations,)
        # validate eagerly so a misconfigured view fails at import time
        AccessRequirement.of(modules, operations or ('Read',))
        name = 'Require' + ''.join(m.title().replace(' ', '') for m in modules)
        return type(name, (cls,), {'modules': tuple(modules), 'operations': tuple(operations or ())})

    def get_requirement(self, request) -> AccessRequirement:
        operations = self.operations or (METHOD_OPERATIONS.get(request.method, request.method.title()),)
        return AccessRequirement.of(self.modules, operations)

    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        user = getattr(request, "user", None)
        if not (user and user.is_authenticated):
            return False
        requirement = self.get_requirement(request)
        allowed = resolve(
            getattr(user, 'user_type', None),
            request_grants(request),
            requirement,
            AuthorizationPolicy.from_settings(),
        )
        if not allowed:
            logger.debug(
                "denied %s %s for user %s: needs %s x %s",
                request.method, request.path, user.pk, requirement.modules, requirement.operations,
            )
        return allowed
