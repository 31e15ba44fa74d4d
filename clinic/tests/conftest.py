import itertools

import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from clinic.models import Clinic, Module, ModuleOperation, Operation, Role, RolePermission, User

_seq = itertools.count(1)


@pytest.fixture(autouse=True)
def _clear_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def catalog(db):
    """A small module x operation catalog keyed by ``(module, operation)`` names."""
    modules = [Module.objects.create(name=n) for n in (
        'Patient Management', 'Appointment Management', 'User Management',
        'Role Management', 'Role Access', 'System Settings', 'Task Management',
    )]
    operations = [Operation.objects.create(name=n) for n in ('Read', 'Create', 'Update', 'Delete')]
    return {
        (m.name, o.name): ModuleOperation.objects.create(module=m, operation=o)
        for m in modules for o in operations
    }


@pytest.fixture
def clinic(db):
    return Clinic.objects.create(name='North Clinic')


@pytest.fixture
def other_clinic(db):
    return Clinic.objects.create(name='South Clinic')


@pytest.fixture
def make_user(db):
    def _make(user_type='Staff', role=None, clinic=None, password='P@ssw0rd1', **extra):
        n = next(_seq)
        return User.objects.create_user(
            username=extra.pop('username', f'user{n}'),
            email=extra.pop('email', f'user{n}@example.com'),
            password=password,
            user_type=user_type,
            role=role,
            clinic=clinic,
            **extra,
        )
    return _make


@pytest.fixture
def make_role(db, catalog):
    def _make(name, grants=()):
        role = Role.objects.create(name=name)
        for pair in grants:
            RolePermission.objects.create(role=role, module_operation=catalog[pair])
        return role
    return _make


@pytest.fixture
def superadmin(make_user):
    return make_user(user_type='SuperAdmin')


@pytest.fixture
def client_for():
    def _client(user):
        c = APIClient()
        c.force_authenticate(user=user)
        return c
    return _client
