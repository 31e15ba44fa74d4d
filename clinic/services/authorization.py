"""
Role/module/operation authorization resolver.

Everything here is a pure function of its arguments: callers supply the
acting user's type and an already-resolved set of grants, the resolver
answers allow or deny.  Fetching grants is the job of
:mod:`clinic.services.permissions`.

A requirement lists acceptable modules and acceptable operations.  It
is satisfied when *some* listed module paired with *some* listed
operation appears as a single grant; a grant on one module never
combines with a grant on another to satisfy a requirement.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, NamedTuple

from clinic.exceptions import InvalidArgument


class PermissionGrant(NamedTuple):
    """One granted capability, normalised at the storage boundary."""
    module_name: str
    operation_name: str

    def as_dict(self) -> dict[str, str]:
        return {'moduleName': self.module_name, 'operationName': self.operation_name}


def _names(value, label: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        value = (value,)
    try:
        items = tuple(value)
    except TypeError:
        raise InvalidArgument(f"{label} must be a name or a list of names") from None
    names = []
    for item in items:
        if not isinstance(item, str) or not item.strip():
            raise InvalidArgument(f"{label} must contain non-empty names, got {item!r}")
        names.append(item.strip())
    return tuple(dict.fromkeys(names))


@dataclass(frozen=True)
class AccessRequirement:
    """What an action or route demands of the caller.

    Public requirements carry no module/operation lists.  A requirement
    that is not public must list at least one module and one operation;
    anything else is rejected as malformed rather than silently allowed.
    """
    modules: tuple[str, ...] = ()
    operations: tuple[str, ...] = ()
    is_public: bool = False

    def __post_init__(self):
        object.__setattr__(self, 'modules', _names(self.modules, 'modules'))
        object.__setattr__(self, 'operations', _names(self.operations, 'operations'))
        if self.is_public:
            if self.modules or self.operations:
                raise InvalidArgument("a public requirement cannot list modules or operations")
        elif not self.modules or not self.operations:
            raise InvalidArgument("a protected requirement needs at least one module and one operation")

    @classmethod
    def public(cls) -> AccessRequirement:
        return cls(is_public=True)

    @classmethod
    def of(cls, modules, operations) -> AccessRequirement:
        return cls(modules=modules, operations=operations)


@dataclass(frozen=True)
class AuthorizationPolicy:
    """Deployment-level knobs: the bypass user type and always-open paths."""
    superuser_type: str = 'SuperAdmin'
    public_paths: frozenset[str] = frozenset()

    @classmethod
    def from_settings(cls) -> AuthorizationPolicy:
        from django.conf import settings

        return cls(
            superuser_type=getattr(settings, 'EMR_SUPERUSER_TYPE', 'SuperAdmin'),
            public_paths=frozenset(getattr(settings, 'EMR_PUBLIC_PATHS', ())),
        )

    def is_superuser(self, user_type: str | None) -> bool:
        return bool(user_type) and user_type == self.superuser_type

    def is_public_path(self, path: str) -> bool:
        return path in self.public_paths


DEFAULT_POLICY = AuthorizationPolicy()


def _as_grant_set(grants: Iterable[PermissionGrant] | None) -> frozenset:
    if grants is None:
        return frozenset()
    if isinstance(grants, frozenset):
        return grants
    return frozenset(PermissionGrant(*g) for g in grants)


def resolve(
    user_type: str | None,
    grants: Iterable[PermissionGrant] | None,
    requirement: AccessRequirement,
    policy: AuthorizationPolicy = DEFAULT_POLICY,
) -> bool:
    """Return True when ``user_type`` holding ``grants`` satisfies ``requirement``.

    Order of evaluation:

    1. a missing user type is denied outright;
    2. the policy's superuser type is always allowed;
    3. public requirements are allowed;
    4. otherwise some (module, operation) pair drawn from the
       requirement must appear verbatim in ``grants``.
    """
    if not isinstance(requirement, AccessRequirement):
        raise InvalidArgument(f"requirement must be an AccessRequirement, got {type(requirement).__name__}")
    if not user_type:
        return False
    if policy.is_superuser(user_type):
        return True
    if requirement.is_public:
        return True
    granted = _as_grant_set(grants)
    if not granted:
        return False
    return any(
        (module, operation) in granted
        for module in requirement.modules
        for operation in requirement.operations
    )


def is_allowed(
    user_type: str | None,
    grants: Iterable[PermissionGrant] | None,
    module: str,
    operation: str,
    policy: AuthorizationPolicy = DEFAULT_POLICY,
) -> bool:
    """Single module/operation form of :func:`resolve`."""
    return resolve(user_type, grants, AccessRequirement.of(module, operation), policy)
