"""
Permission storage: reading and writing role and user grants.

Reads return :class:`~clinic.services.authorization.PermissionGrant`
values only, so nothing above this layer deals with ORM rows or field
naming.  Role grant sets are cached per role and invalidated on every
write.  Writes run in a transaction, are audited, and push a
``permission.changed`` notice to the affected users once committed.
"""
from __future__ import annotations

import logging
from typing import Iterable

from django.conf import settings
from django.core.cache import cache
from django.db import transaction
from rest_framework.exceptions import NotFound, ValidationError

from clinic.models import Module, ModuleOperation, Operation, Role, RolePermission, User, UserAccess
from clinic.services.audit import log_action
from clinic.services.authorization import (
    AuthorizationPolicy,
    PermissionGrant,
    is_allowed,
)
from clinic.services.notifications import notify_permission_changed

logger = logging.getLogger(__name__)

ROLE_CACHE_PREFIX = 'grants:role:'

_GRANT_FIELDS = ('module_operation__module__name', 'module_operation__operation__name')


def _role_cache_key(role_id: int) -> str:
    return f"{ROLE_CACHE_PREFIX}{role_id}"


def invalidate_roles(role_ids: Iterable[int]) -> None:
    keys = [_role_cache_key(rid) for rid in role_ids]
    if keys:
        cache.delete_many(keys)
        # a concurrent read may refill the key before this transaction commits
        transaction.on_commit(lambda: cache.delete_many(keys))


# ---------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------
def role_grants(role_id: int | None) -> frozenset[PermissionGrant]:
    if role_id is None:
        return frozenset()
    key = _role_cache_key(role_id)
    cached = cache.get(key)
    if cached is not None:
        return frozenset(PermissionGrant(m, o) for m, o in cached)
    rows = RolePermission.objects.filter(role_id=role_id).values_list(*_GRANT_FIELDS)
    grants = frozenset(PermissionGrant(m, o) for m, o in rows)
    cache.set(key, [tuple(g) for g in sorted(grants)], getattr(settings, 'EMR_PERMISSION_CACHE_SECONDS', 300))
    return grants


def direct_grants(user_id: int) -> frozenset[PermissionGrant]:
    rows = UserAccess.objects.filter(user_id=user_id).values_list(*_GRANT_FIELDS)
    return frozenset(PermissionGrant(m, o) for m, o in rows)


def user_grants(user: User | None) -> frozenset[PermissionGrant]:
    """Effective grants: the user's role grants plus direct user grants."""
    if user is None or not getattr(user, 'pk', None):
        return frozenset()
    return role_grants(user.role_id) | direct_grants(user.pk)


def grants_as_list(grants: Iterable[PermissionGrant]) -> list[dict[str, str]]:
    return [g.as_dict() for g in sorted(grants)]


def role_has_permission(role_id: int, module_name: str, operation_name: str) -> bool:
    return PermissionGrant(module_name, operation_name) in role_grants(role_id)


def role_permission_exists(role_id: int, module_operation_id: int) -> bool:
    return RolePermission.objects.filter(role_id=role_id, module_operation_id=module_operation_id).exists()


def user_has_permission(user: User, module_name: str, operation_name: str,
                        policy: AuthorizationPolicy | None = None) -> bool:
    policy = policy or AuthorizationPolicy.from_settings()
    return is_allowed(user.user_type, user_grants(user), module_name, operation_name, policy)


def role_module_operation_ids(role_id: int) -> list[int]:
    return list(
        RolePermission.objects.filter(role_id=role_id)
        .order_by('module_operation_id')
        .values_list('module_operation_id', flat=True)
    )


def user_module_operation_ids(user_id: int) -> list[int]:
    return list(
        UserAccess.objects.filter(user_id=user_id)
        .order_by('module_operation_id')
        .values_list('module_operation_id', flat=True)
    )


def module_operations():
    return ModuleOperation.objects.select_related('module', 'operation').order_by('module__name', 'operation__name')


def serialize_module_operation(mo: ModuleOperation) -> dict:
    return {
        'id': mo.id,
        'moduleId': mo.module_id,
        'moduleName': mo.module.name,
        'operationId': mo.operation_id,
        'operationName': mo.operation.name,
    }


# ---------------------------------------------------------------------
# Helpers for writes
# ---------------------------------------------------------------------
def _get_role(role_id: int) -> Role:
    try:
        return Role.objects.get(pk=role_id)
    except Role.DoesNotExist:
        raise NotFound(f"Role {role_id} not found") from None


def _get_user(user_id: int) -> User:
    try:
        return User.objects.get(pk=user_id)
    except User.DoesNotExist:
        raise NotFound(f"User {user_id} not found") from None


def _existing_module_operation_ids(ids: Iterable[int]) -> list[int]:
    wanted = sorted(set(ids))
    found = set(ModuleOperation.objects.filter(id__in=wanted).values_list('id', flat=True))
    missing = [i for i in wanted if i not in found]
    if missing:
        raise ValidationError({'moduleOperationIds': [f"Unknown module operation ids: {missing}"]})
    return wanted


def _after_change(*, actor, action: str, object_type: str, object_id: int,
                  detail: dict, affected_user_ids: Iterable[int]) -> None:
    log_action(user=actor, action=action, object_type=object_type, object_id=object_id, detail=detail)
    logger.info("%s on %s %s: %s", action, object_type, object_id, detail)
    user_ids = list(affected_user_ids)
    transaction.on_commit(lambda: notify_permission_changed(user_ids))


def _role_user_ids(role: Role) -> list[int]:
    return list(role.users.values_list('id', flat=True))


# ---------------------------------------------------------------------
# Role grants
# ---------------------------------------------------------------------
def assign_role_permissions(role_id: int, module_operation_ids: Iterable[int], *, actor=None) -> list[int]:
    """Add grants to a role, skipping ones it already holds.  Returns the ids added."""
    role = _get_role(role_id)
    ids = _existing_module_operation_ids(module_operation_ids)
    with transaction.atomic():
        held = set(
            RolePermission.objects.filter(role=role, module_operation_id__in=ids)
            .values_list('module_operation_id', flat=True)
        )
        added = [i for i in ids if i not in held]
        RolePermission.objects.bulk_create(
            [RolePermission(role=role, module_operation_id=i) for i in added]
        )
        invalidate_roles([role.id])
        _after_change(actor=actor, action='role_permissions_assign', object_type='role', object_id=role.id,
                      detail={'added': added}, affected_user_ids=_role_user_ids(role))
    return added


def update_role_permissions(role_id: int, module_operation_ids: Iterable[int], *, actor=None) -> dict[str, list[int]]:
    """Replace a role's grants with exactly ``module_operation_ids``."""
    role = _get_role(role_id)
    ids = _existing_module_operation_ids(module_operation_ids)
    with transaction.atomic():
        held = set(RolePermission.objects.filter(role=role).values_list('module_operation_id', flat=True))
        removed = sorted(held - set(ids))
        added = [i for i in ids if i not in held]
        RolePermission.objects.filter(role=role, module_operation_id__in=removed).delete()
        RolePermission.objects.bulk_create(
            [RolePermission(role=role, module_operation_id=i) for i in added]
        )
        invalidate_roles([role.id])
        _after_change(actor=actor, action='role_permissions_update', object_type='role', object_id=role.id,
                      detail={'added': added, 'removed': removed}, affected_user_ids=_role_user_ids(role))
    return {'added': added, 'removed': removed}


def remove_role_permissions(role_id: int, module_operation_ids: Iterable[int], *, actor=None) -> int:
    role = _get_role(role_id)
    ids = sorted(set(module_operation_ids))
    with transaction.atomic():
        count, _ = RolePermission.objects.filter(role=role, module_operation_id__in=ids).delete()
        invalidate_roles([role.id])
        _after_change(actor=actor, action='role_permissions_remove', object_type='role', object_id=role.id,
                      detail={'removed': ids, 'count': count}, affected_user_ids=_role_user_ids(role))
    return count


def clear_role_permissions(role_id: int, *, actor=None) -> int:
    role = _get_role(role_id)
    with transaction.atomic():
        count, _ = RolePermission.objects.filter(role=role).delete()
        invalidate_roles([role.id])
        _after_change(actor=actor, action='role_permissions_clear', object_type='role', object_id=role.id,
                      detail={'count': count}, affected_user_ids=_role_user_ids(role))
    return count


# ---------------------------------------------------------------------
# Direct user grants
# ---------------------------------------------------------------------
def assign_user_access(user_id: int, module_operation_ids: Iterable[int], *, actor=None) -> list[int]:
    user = _get_user(user_id)
    ids = _existing_module_operation_ids(module_operation_ids)
    with transaction.atomic():
        held = set(
            UserAccess.objects.filter(user=user, module_operation_id__in=ids)
            .values_list('module_operation_id', flat=True)
        )
        added = [i for i in ids if i not in held]
        UserAccess.objects.bulk_create([UserAccess(user=user, module_operation_id=i) for i in added])
        _after_change(actor=actor, action='user_access_assign', object_type='user', object_id=user.id,
                      detail={'added': added}, affected_user_ids=[user.id])
    return added


def update_user_access(user_id: int, module_operation_ids: Iterable[int], *, actor=None) -> dict[str, list[int]]:
    user = _get_user(user_id)
    ids = _existing_module_operation_ids(module_operation_ids)
    with transaction.atomic():
        held = set(UserAccess.objects.filter(user=user).values_list('module_operation_id', flat=True))
        removed = sorted(held - set(ids))
        added = [i for i in ids if i not in held]
        UserAccess.objects.filter(user=user, module_operation_id__in=removed).delete()
        UserAccess.objects.bulk_create([UserAccess(user=user, module_operation_id=i) for i in added])
        _after_change(actor=actor, action='user_access_update', object_type='user', object_id=user.id,
                      detail={'added': added, 'removed': removed}, affected_user_ids=[user.id])
    return {'added': added, 'removed': removed}


def remove_user_access(user_id: int, module_operation_ids: Iterable[int], *, actor=None) -> int:
    user = _get_user(user_id)
    ids = sorted(set(module_operation_ids))
    with transaction.atomic():
        count, _ = UserAccess.objects.filter(user=user, module_operation_id__in=ids).delete()
        _after_change(actor=actor, action='user_access_remove', object_type='user', object_id=user.id,
                      detail={'removed': ids, 'count': count}, affected_user_ids=[user.id])
    return count


def clear_user_access(user_id: int, *, actor=None) -> int:
    user = _get_user(user_id)
    with transaction.atomic():
        count, _ = UserAccess.objects.filter(user=user).delete()
        _after_change(actor=actor, action='user_access_clear', object_type='user', object_id=user.id,
                      detail={'count': count}, affected_user_ids=[user.id])
    return count


# ---------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------
def assign_operations_to_module(module_id: int, operation_ids: Iterable[int], *, actor=None) -> list[ModuleOperation]:
    """Make ``operation_ids`` the exact set of operations offered by a module.

    Dropping an operation deletes its module-operation together with
    every role and user grant that referenced it.
    """
    try:
        module = Module.objects.get(pk=module_id)
    except Module.DoesNotExist:
        raise NotFound(f"Module {module_id} not found") from None
    wanted = sorted(set(operation_ids))
    found = set(Operation.objects.filter(id__in=wanted).values_list('id', flat=True))
    missing = [i for i in wanted if i not in found]
    if missing:
        raise ValidationError({'operationIds': [f"Unknown operation ids: {missing}"]})
    with transaction.atomic():
        stale = ModuleOperation.objects.filter(module=module).exclude(operation_id__in=wanted)
        affected_roles = set(
            RolePermission.objects.filter(module_operation__in=stale).values_list('role_id', flat=True)
        )
        affected_users = set(
            User.objects.filter(role_id__in=affected_roles).values_list('id', flat=True)
        ) | set(UserAccess.objects.filter(module_operation__in=stale).values_list('user_id', flat=True))
        stale.delete()
        held = set(ModuleOperation.objects.filter(module=module).values_list('operation_id', flat=True))
        ModuleOperation.objects.bulk_create(
            [ModuleOperation(module=module, operation_id=i) for i in wanted if i not in held]
        )
        invalidate_roles(affected_roles)
        _after_change(actor=actor, action='module_operations_update', object_type='module', object_id=module.id,
                      detail={'operationIds': wanted}, affected_user_ids=affected_users)
    return list(module_operations().filter(module=module))
