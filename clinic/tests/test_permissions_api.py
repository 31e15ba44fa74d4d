"""
API tests for roles, grants, users and login.

Most tests authenticate with ``force_authenticate``; the login tests go
through the real token flow.
"""
import pytest
from django.test import override_settings
from django.urls import reverse
from rest_framework.test import APIClient

from clinic.models import AuditEvent, ModuleOperation, Role, RolePermission, User, UserAccess
from clinic.services import permissions as grants_svc
from clinic.services.authorization import PermissionGrant

pytestmark = pytest.mark.django_db


def _ids(catalog, *pairs):
    return [catalog[p].id for p in pairs]


# ---------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------
def test_role_crud_as_superadmin(superadmin, client_for):
    client = client_for(superadmin)
    r = client.post(reverse('roles'), {'name': 'Billing', 'description': '<b>Money</b>', 'isPracticeRole': True},
                    format='json')
    assert r.status_code == 201
    role_id = r.data['data']['id']
    assert r.data['data']['description'] == 'Money'

    r = client.get(reverse('roles'), {'practice': '1'})
    assert [x['name'] for x in r.data['data']] == ['Billing']
    assert r.data['data'][0]['userCount'] == 0

    r = client.put(reverse('role_detail', args=[role_id]), {'name': 'Billing Desk'}, format='json')
    assert r.status_code == 200
    assert r.data['data']['name'] == 'Billing Desk'

    r = client.get(reverse('role_detail', args=[role_id]))
    assert [e['action'] for e in r.data['data']['history']] == ['role_update', 'role_create']

    r = client.delete(reverse('role_detail', args=[role_id]))
    assert r.status_code == 204
    assert not Role.objects.filter(pk=role_id).exists()


def test_role_in_use_cannot_be_deleted(superadmin, make_user, client_for):
    role = Role.objects.create(name='Nurse')
    make_user(role=role)
    r = client_for(superadmin).delete(reverse('role_detail', args=[role.id]))
    assert r.status_code == 409
    assert r.data == {'ok': False, 'error': {'code': 'conflict', 'message': r.data['error']['message']}}
    assert Role.objects.filter(pk=role.id).exists()


def test_role_assigned_while_deleting_is_a_conflict(superadmin, make_user, client_for, monkeypatch):
    role = Role.objects.create(name='Nurse')
    make_user(role=role)
    # the holder appears between the in-use check and the delete
    monkeypatch.setattr('clinic.services.roles.role_in_use', lambda role: False)
    r = client_for(superadmin).delete(reverse('role_detail', args=[role.id]))
    assert r.status_code == 409
    assert r.data['error']['code'] == 'conflict'
    assert Role.objects.filter(pk=role.id).exists()

def test_duplicate_role_name_is_a_validation_error(superadmin, client_for):
    Role.objects.create(name='Doctor')
    r = client_for(superadmin).post(reverse('roles'), {'name': 'Doctor'}, format='json')
    assert r.status_code == 400
    assert r.data['error']['code'] == 'validation_error'
    assert 'name' in r.data['error']['fields']


def test_roles_require_role_management(make_role, make_user, client_for):
    reader = make_user(role=make_role('Reader', [('Role Management', 'Read')]))
    client = client_for(reader)
    assert client.get(reverse('roles')).status_code == 200
    r = client.post(reverse('roles'), {'name': 'Sneaky'}, format='json')
    assert r.status_code == 403
    assert r.data['error']['code'] == 'permission_denied'


# ---------------------------------------------------------------------
# Role grants
# ---------------------------------------------------------------------
def test_role_grants_assign_update_remove(superadmin, catalog, client_for):
    role = Role.objects.create(name='Receptionist')
    client = client_for(superadmin)
    url = reverse('role_permissions', args=[role.id])

    read, create = _ids(catalog, ('Appointment Management', 'Read'), ('Appointment Management', 'Create'))
    r = client.post(url, {'moduleOperationIds': [read, read]}, format='json')
    assert r.status_code == 200
    assert r.data['result'] == {'added': [read]}
    assert r.data['data']['permissions'] == [{'moduleName': 'Appointment Management', 'operationName': 'Read'}]

    # assigning again is a no-op
    r = client.post(url, {'moduleOperationIds': [read]}, format='json')
    assert r.data['result'] == {'added': []}

    r = client.put(url, {'moduleOperationIds': [create]}, format='json')
    assert r.data['result'] == {'added': [create], 'removed': [read]}
    assert r.data['data']['moduleOperationIds'] == [create]

    r = client.delete(url, {'moduleOperationIds': [create]}, format='json')
    assert r.data['result'] == {'removed': 1}
    assert not RolePermission.objects.filter(role=role).exists()
    assert AuditEvent.objects.filter(object_type='role', object_id=role.id).count() == 4


def test_unknown_module_operation_ids_are_rejected(superadmin, catalog, client_for):
    role = Role.objects.create(name='Receptionist')
    r = client_for(superadmin).post(reverse('role_permissions', args=[role.id]),
                                    {'moduleOperationIds': [999999]}, format='json')
    assert r.status_code == 400
    assert 'moduleOperationIds' in r.data['error']['fields']


def test_role_grant_change_takes_effect_immediately(catalog, make_role, make_user, client_for):
    role = make_role('Receptionist', [('Appointment Management', 'Read')])
    user = make_user(role=role)
    assert grants_svc.user_has_permission(user, 'Appointment Management', 'Read') is True  # fills the cache
    grants_svc.remove_role_permissions(role.id, _ids(catalog, ('Appointment Management', 'Read')))
    assert grants_svc.user_has_permission(user, 'Appointment Management', 'Read') is False


def test_role_permission_check_endpoint(superadmin, make_role, client_for):
    role = make_role('Receptionist', [('Appointment Management', 'Read')])
    url = reverse('role_permission_check', args=[role.id])
    client = client_for(superadmin)
    r = client.get(url, {'module': 'Appointment Management', 'operation': 'Read'})
    assert r.data['hasPermission'] is True
    r = client.get(url, {'module': 'Appointment Management', 'operation': 'Create'})
    assert r.data['hasPermission'] is False
    r = client.get(url, {'module': 'Appointment Management'})
    assert r.status_code == 400


# ---------------------------------------------------------------------
# Direct user grants
# ---------------------------------------------------------------------
def test_user_access_adds_to_role_grants(superadmin, catalog, make_role, make_user, client_for):
    role = make_role('Receptionist', [('Appointment Management', 'Read')])
    user = make_user(role=role)
    client = client_for(superadmin)
    r = client.post(reverse('user_access', args=[user.id]),
                    {'moduleOperationIds': _ids(catalog, ('Patient Management', 'Read'))}, format='json')
    assert r.status_code == 200
    assert UserAccess.objects.filter(user=user).count() == 1

    r = client.get(reverse('user_permissions', args=[user.id]),
                   {'module': 'Patient Management', 'operation': 'Read'})
    assert r.data['data']['hasPermission'] is True
    assert {tuple(p.values()) for p in r.data['data']['permissions']} == {
        ('Appointment Management', 'Read'), ('Patient Management', 'Read'),
    }

    r = client.put(reverse('user_access', args=[user.id]), {'moduleOperationIds': []}, format='json')
    assert r.data['result']['removed'] == _ids(catalog, ('Patient Management', 'Read'))
    assert grants_svc.user_grants(user) == {PermissionGrant('Appointment Management', 'Read')}


# ---------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------
def test_module_operations_listing_and_update(superadmin, catalog, client_for):
    client = client_for(superadmin)
    r = client.get(reverse('module_operations'))
    assert len(r.data['data']) == len(catalog)

    module = catalog[('Patient Management', 'Read')].module
    read_op = catalog[('Patient Management', 'Read')].operation
    role = Role.objects.create(name='Clerk')
    RolePermission.objects.create(role=role, module_operation=catalog[('Patient Management', 'Delete')])

    r = client.put(reverse('module_operations_update', args=[module.id]), {'operationIds': [read_op.id]},
                   format='json')
    assert r.status_code == 200
    assert [x['operationName'] for x in r.data['data']] == ['Read']
    assert ModuleOperation.objects.filter(module=module).count() == 1
    # grants on dropped module operations go with them
    assert not RolePermission.objects.filter(role=role).exists()


def test_catalog_read_accepts_any_listed_module(catalog, make_role, make_user, client_for):
    user = make_user(role=make_role('Settings', [('System Settings', 'Read')]))
    assert client_for(user).get(reverse('modules')).status_code == 200
    other = make_user(role=make_role('Patients', [('Patient Management', 'Read')]))
    assert client_for(other).get(reverse('modules')).status_code == 403


# ---------------------------------------------------------------------
# Ad-hoc check
# ---------------------------------------------------------------------
def test_permission_check_for_current_user(make_role, make_user, client_for):
    client = client_for(make_user(role=make_role('Receptionist', [('Appointment Management', 'Read')])))
    url = reverse('permission_check')
    r = client.post(url, {'modules': 'Appointment Management', 'operations': ['Read']}, format='json')
    assert r.data == {'ok': True, 'allowed': True}
    r = client.post(url, {'modules': ['Appointment Management'], 'operations': ['Create']}, format='json')
    assert r.data['allowed'] is False


def test_permission_check_with_blank_names_is_invalid(make_user, client_for):
    client = client_for(make_user())
    r = client.post(reverse('permission_check'), {'modules': ['  '], 'operations': ['Read']}, format='json')
    assert r.status_code == 400
    assert r.data['ok'] is False


# ---------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------
def test_user_create_and_update(superadmin, client_for):
    role = Role.objects.create(name='Nurse')
    client = client_for(superadmin)
    r = client.post(reverse('users'), {
        'email': 'Nurse.Joy@Example.com', 'password': 'Sup3rSecret', 'userType': 'Staff', 'roleId': role.id,
    }, format='json')
    assert r.status_code == 201
    data = r.data['data']
    assert data['email'] == 'nurse.joy@example.com'
    assert data['roleName'] == 'Nurse'

    r = client.put(reverse('user_detail', args=[data['id']]), {'status': 'suspended'}, format='json')
    assert r.data['data']['status'] == 'suspended'

    r = client.post(reverse('users'), {'email': 'nurse.joy@example.com', 'password': 'Sup3rSecret'}, format='json')
    assert r.status_code == 400


def test_non_superadmin_cannot_create_superadmin(make_role, make_user, client_for):
    admin = make_user(role=make_role('Practice Admin', [('User Management', 'Create')]))
    r = client_for(admin).post(reverse('users'), {
        'email': 'boss@example.com', 'password': 'Sup3rSecret', 'userType': 'SuperAdmin',
    }, format='json')
    assert r.status_code == 403
    assert not User.objects.filter(email='boss@example.com').exists()


def _practice_admin(make_role, make_user, clinic):
    role = make_role('Practice Admin', [('User Management', op) for op in ('Read', 'Create', 'Update', 'Delete')])
    return make_user(role=role, clinic=clinic)


def test_user_grants_are_limited_to_own_clinic(catalog, make_role, make_user, client_for, clinic, other_clinic):
    client = client_for(_practice_admin(make_role, make_user, clinic))
    ids = _ids(catalog, ('System Settings', 'Update'))
    outsider = make_user(clinic=other_clinic)

    r = client.post(reverse('user_access', args=[outsider.id]), {'moduleOperationIds': ids}, format='json')
    assert r.status_code == 404
    assert r.data['error']['code'] == 'not_found'
    assert client.get(reverse('user_permissions', args=[outsider.id])).status_code == 404
    assert client.get(reverse('user_detail', args=[outsider.id])).status_code == 404
    assert not UserAccess.objects.filter(user=outsider).exists()

    colleague = make_user(clinic=clinic)
    r = client.post(reverse('user_access', args=[colleague.id]), {'moduleOperationIds': ids}, format='json')
    assert r.status_code == 200
    assert UserAccess.objects.filter(user=colleague).count() == 1


def test_caller_cannot_grant_themselves_access(catalog, make_role, make_user, client_for, clinic):
    admin = _practice_admin(make_role, make_user, clinic)
    client = client_for(admin)
    url = reverse('user_access', args=[admin.id])

    r = client.post(url, {'moduleOperationIds': _ids(catalog, ('System Settings', 'Update'))}, format='json')
    assert r.status_code == 403
    assert r.data['error']['code'] == 'permission_denied'
    assert not UserAccess.objects.filter(user=admin).exists()
    assert client.delete(url + '?all=1').status_code == 403
    assert client.get(url).status_code == 200
    assert grants_svc.user_has_permission(admin, 'System Settings', 'Update') is False


def test_caller_cannot_change_own_role_or_type(make_role, make_user, client_for, clinic):
    admin = _practice_admin(make_role, make_user, clinic)
    owner = make_role('Owner', [('System Settings', 'Update')])
    client = client_for(admin)
    url = reverse('user_detail', args=[admin.id])

    assert client.put(url, {'roleId': owner.id}, format='json').status_code == 403
    assert client.put(url, {'userType': 'Clinic'}, format='json').status_code == 403
    admin.refresh_from_db()
    assert admin.role.name == 'Practice Admin'
    assert admin.user_type == 'Staff'

    r = client.put(url, {'firstName': 'Ann'}, format='json')
    assert r.status_code == 200


def test_superadmin_may_change_own_access(superadmin, catalog, client_for):
    url = reverse('user_access', args=[superadmin.id])
    r = client_for(superadmin).post(url, {'moduleOperationIds': _ids(catalog, ('Task Management', 'Read'))},
                                    format='json')
    assert r.status_code == 200
    assert UserAccess.objects.filter(user=superadmin).count() == 1


@override_settings(EMR_SUPERUSER_TYPE='HawkLogix')
def test_configured_superuser_type_cannot_be_granted(make_role, make_user, client_for, clinic):
    client = client_for(_practice_admin(make_role, make_user, clinic))
    r = client.post(reverse('users'), {
        'email': 'hawk@example.com', 'password': 'Sup3rSecret', 'userType': 'HawkLogix',
    }, format='json')
    assert r.status_code == 403
    assert not User.objects.filter(email='hawk@example.com').exists()

    target = make_user(clinic=clinic)
    r = client.put(reverse('user_detail', args=[target.id]), {'userType': 'HawkLogix'}, format='json')
    assert r.status_code == 403
    target.refresh_from_db()
    assert target.user_type == 'Staff'

# ---------------------------------------------------------------------
# Login / me
# ---------------------------------------------------------------------
def test_login_by_email_returns_tokens_and_permissions(make_role, make_user):
    role = make_role('Receptionist', [('Appointment Management', 'Read')])
    make_user(role=role, email='desk@example.com')
    client = APIClient()
    r = client.post(reverse('login_view'), {'email': 'DESK@example.com', 'password': 'P@ssw0rd1'}, format='json')
    assert r.status_code == 200
    assert r.data['token'] and r.data['jwt_access'] and r.data['jwt_refresh']
    assert r.data['permissions'] == [{'moduleName': 'Appointment Management', 'operationName': 'Read'}]

    client.credentials(HTTP_AUTHORIZATION=f"Bearer {r.data['jwt_access']}")
    r = client.get(reverse('me_view'))
    assert r.status_code == 200
    assert r.data['user']['email'] == 'desk@example.com'
    assert any(item['path'] == '/appointments' for item in r.data['navigation'])


def test_login_ignores_client_supplied_user_type(make_user):
    user = make_user(email='pat@example.com', user_type='Patient')
    r = APIClient().post(reverse('login_view'),
                         {'email': 'pat@example.com', 'password': 'P@ssw0rd1', 'userType': 'SuperAdmin'},
                         format='json')
    assert r.status_code == 200
    user.refresh_from_db()
    assert user.user_type == 'Patient'
    assert r.data['user']['userType'] == 'Patient'


def test_login_wrong_password(make_user):
    make_user(email='x@example.com')
    r = APIClient().post(reverse('login_view'), {'email': 'x@example.com', 'password': 'nope'}, format='json')
    assert r.status_code == 400
    assert r.data['error']['code'] == 'invalid_credentials'


def test_inactive_account_cannot_log_in(make_user):
    make_user(email='gone@example.com', status='inactive')
    r = APIClient().post(reverse('login_view'), {'email': 'gone@example.com', 'password': 'P@ssw0rd1'},
                         format='json')
    assert r.status_code == 403
    assert r.data['error']['code'] == 'user_inactive'


def test_token_of_suspended_user_is_refused(make_user):
    make_user(email='s@example.com')
    client = APIClient()
    r = client.post(reverse('login_view'), {'email': 's@example.com', 'password': 'P@ssw0rd1'}, format='json')
    User.objects.filter(email='s@example.com').update(status='suspended')
    client.credentials(HTTP_AUTHORIZATION=f"Token {r.data['token']}")
    r = client.get(reverse('me_view'))
    assert r.status_code == 401
    assert r.data['error']['code'] == 'user_inactive'


def test_delete_all_clears_every_grant(superadmin, catalog, make_role, make_user, client_for):
    role = make_role('Doctor', [('Patient Management', 'Read'), ('Patient Management', 'Update')])
    client = client_for(superadmin)
    r = client.delete(reverse('role_permissions', args=[role.id]) + '?all=1')
    assert r.data['result'] == {'removed': 2}
    assert r.data['data']['permissions'] == []

    user = make_user()
    grants_svc.assign_user_access(user.id, _ids(catalog, ('Task Management', 'Read')))
    r = client.delete(reverse('user_access', args=[user.id]) + '?all=1')
    assert r.data['result'] == {'removed': 1}
    assert not UserAccess.objects.filter(user=user).exists()


@pytest.mark.parametrize('body', [None, {'ids': [1]}, [1, 2]])
def test_delete_without_ids_is_rejected(superadmin, catalog, make_role, client_for, body):
    role = make_role('Doctor', [('Patient Management', 'Read'), ('Patient Management', 'Update')])
    r = client_for(superadmin).delete(reverse('role_permissions', args=[role.id]), body, format='json')
    assert r.status_code == 400
    assert r.data['error']['code'] == 'validation_error'
    assert RolePermission.objects.filter(role=role).count() == 2


def test_role_permission_check_by_module_operation_id(superadmin, catalog, make_role, client_for):
    role = make_role('Receptionist', [('Appointment Management', 'Read')])
    url = reverse('role_permission_check', args=[role.id])
    client = client_for(superadmin)
    held, missing = _ids(catalog, ('Appointment Management', 'Read'), ('Appointment Management', 'Delete'))
    assert client.get(url, {'moduleOperationId': held}).data['hasPermission'] is True
    assert client.get(url, {'moduleOperationId': missing}).data['hasPermission'] is False
    assert client.get(url, {'moduleOperationId': 'x'}).status_code == 400


def test_jwt_refresh_and_logout(make_user):
    make_user(email='jwt@example.com')
    client = APIClient()
    login = client.post(reverse('login_view'), {'email': 'jwt@example.com', 'password': 'P@ssw0rd1'},
                        format='json').data
    r = client.post(reverse('jwt_refresh_view'), {'refresh': login['jwt_refresh']}, format='json')
    assert r.status_code == 200
    assert r.data['jwt_access']

    client.credentials(HTTP_AUTHORIZATION=f"Bearer {login['jwt_access']}")
    r = client.post(reverse('jwt_logout_view'), {'refresh': login['jwt_refresh']}, format='json')
    assert r.data == {'ok': True, 'blacklisted': 1}
    r = client.post(reverse('jwt_logout_view'), {'refresh': login['jwt_refresh']}, format='json')
    assert r.status_code == 400
    assert r.data['error']['code'] == 'invalid_token'
