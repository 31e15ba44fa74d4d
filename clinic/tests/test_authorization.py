import pytest

from clinic.exceptions import InvalidArgument
from clinic.services.authorization import (
    AccessRequirement,
    AuthorizationPolicy,
    PermissionGrant,
    is_allowed,
    resolve,
)

RECEPTIONIST = frozenset({PermissionGrant('Appointment Management', 'Read')})


def test_superadmin_allowed_without_grants():
    req = AccessRequirement.of('User Management', 'Delete')
    assert resolve('SuperAdmin', frozenset(), req) is True
    assert resolve('SuperAdmin', None, req) is True


def test_empty_grants_deny_protected_requirement():
    assert resolve('Staff', frozenset(), AccessRequirement.of('Patient Management', 'Read')) is False


def test_receptionist_can_read_but_not_create_appointments():
    assert is_allowed('Staff', RECEPTIONIST, 'Appointment Management', 'Read') is True
    assert is_allowed('Staff', RECEPTIONIST, 'Appointment Management', 'Create') is False
    assert is_allowed('Staff', RECEPTIONIST, 'Patient Management', 'Read') is False


def test_any_listed_module_satisfies():
    req = AccessRequirement.of(['Patient Management', 'Appointment Management'], ['Read'])
    assert resolve('Staff', RECEPTIONIST, req) is True


def test_any_listed_operation_satisfies():
    req = AccessRequirement.of('Appointment Management', ['Create', 'Read'])
    assert resolve('Staff', RECEPTIONIST, req) is True


def test_grants_never_combine_across_modules():
    grants = frozenset({
        PermissionGrant('Patient Management', 'Read'),
        PermissionGrant('Appointment Management', 'Create'),
    })
    req = AccessRequirement.of(['Patient Management', 'Appointment Management'], ['Create'])
    # Appointment/Create matches on its own
    assert resolve('Staff', grants, req) is True
    req = AccessRequirement.of('Patient Management', 'Create')
    assert resolve('Staff', grants, req) is False


def test_plain_tuples_are_accepted_as_grants():
    assert is_allowed('Doctor', [('Medical Records', 'Update')], 'Medical Records', 'Update') is True


def test_resolution_is_repeatable():
    req = AccessRequirement.of('Appointment Management', 'Read')
    results = {resolve('Staff', RECEPTIONIST, req) for _ in range(5)}
    assert results == {True}


def test_public_requirement_allows_any_user_type():
    assert resolve('Patient', frozenset(), AccessRequirement.public()) is True


def test_missing_user_type_is_denied_even_when_public():
    assert resolve(None, RECEPTIONIST, AccessRequirement.public()) is False
    assert resolve('', RECEPTIONIST, AccessRequirement.of('Appointment Management', 'Read')) is False


def test_custom_superuser_type():
    policy = AuthorizationPolicy(superuser_type='HawkLogix')
    req = AccessRequirement.of('System Settings', 'Update')
    assert resolve('HawkLogix', frozenset(), req, policy) is True
    assert resolve('SuperAdmin', frozenset(), req, policy) is False


def test_names_are_trimmed_and_deduplicated():
    req = AccessRequirement.of([' Reports ', 'Reports'], 'Read')
    assert req.modules == ('Reports',)


@pytest.mark.parametrize('modules,operations', [
    ((), ('Read',)),
    (('Reports',), ()),
    (None, None),
    (('',), ('Read',)),
    (('Reports',), (None,)),
    (42, ('Read',)),
])
def test_malformed_requirement_raises(modules, operations):
    with pytest.raises(InvalidArgument):
        AccessRequirement(modules=modules, operations=operations)


def test_public_requirement_cannot_list_modules():
    with pytest.raises(InvalidArgument):
        AccessRequirement(modules=('Reports',), operations=('Read',), is_public=True)


def test_resolve_rejects_non_requirement():
    with pytest.raises(InvalidArgument):
        resolve('Staff', RECEPTIONIST, {'modules': ['Reports']})


def test_grant_as_dict():
    assert PermissionGrant('Reports', 'Read').as_dict() == {'moduleName': 'Reports', 'operationName': 'Read'}
