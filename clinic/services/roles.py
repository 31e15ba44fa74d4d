from __future__ import annotations

import logging

from django.db import transaction
from django.db.models import Count, ProtectedError

from clinic.exceptions import Conflict
from clinic.models import Role
from clinic.services.audit import log_action
from clinic.services.permissions import invalidate_roles

logger = logging.getLogger(__name__)


def list_roles(*, practice: bool | None = None, q: str | None = None):
    """Roles annotated with ``user_count`` and ``permission_count``."""
    qs = Role.objects.annotate(
        user_count=Count('users', distinct=True),
        permission_count=Count('permissions', distinct=True),
    )
    if practice is not None:
        qs = qs.filter(is_practice_role=practice)
    if q:
        qs = qs.filter(name__icontains=q)
    return qs.order_by('name')


def serialize_role(role: Role) -> dict:
    data = {
        'id': role.id,
        'name': role.name,
        'description': role.description,
        'isPracticeRole': role.is_practice_role,
        'createdAt': role.created_at.isoformat() if role.created_at else None,
        'updatedAt': role.updated_at.isoformat() if role.updated_at else None,
    }
    if hasattr(role, 'user_count'):
        data['userCount'] = role.user_count
        data['permissionCount'] = role.permission_count
    return data


def role_in_use(role: Role) -> bool:
    return role.users.exists()


def delete_role(role: Role, *, actor=None) -> None:
    """Delete a role and its grants.  Refused while any user holds the role."""
    message = f"Role '{role.name}' is assigned to users and cannot be deleted"
    if role_in_use(role):
        raise Conflict(message)
    role_id = role.id
    try:
        with transaction.atomic():
            role.delete()
            invalidate_roles([role_id])
            log_action(user=actor, action='role_delete', object_type='role', object_id=role_id,
                       detail={'name': role.name})
    except ProtectedError:
        # assigned after the check above
        raise Conflict(message) from None
    logger.info("role %s (%s) deleted", role_id, role.name)
