"""
Seed the access-control catalog (idempotent).

Creates every module and operation, the full module x operation
product, a few default roles with their grants, and one SuperAdmin
account.  Existing rows are left alone except that default roles gain
any grants they are missing.
"""
from django.core.management.base import BaseCommand
from django.db import transaction

from clinic.models import Module, ModuleOperation, Operation, Role, RolePermission, User
from clinic.services.permissions import invalidate_roles

MODULES = [
    ('Patient Management', 'Patient registration and demographics'),
    ('User Management', 'Staff, doctor and account administration'),
    ('Appointment Management', 'Booking, doctor schedules and time off'),
    ('Clinic Management', 'Clinic profile, locations and services'),
    ('Reports', 'Operational reporting'),
    ('Medical Records', 'Clinical notes, vitals and history'),
    ('Task Management', 'Kanban task board'),
    ('Role Management', 'Role definitions'),
    ('System Settings', 'Platform configuration and module catalog'),
    ('Role Access', 'Role to module-operation grants'),
    ('Form Management', 'Form templates and submissions'),
]

OPERATIONS = [
    ('Read', 'View records'),
    ('Create', 'Add records'),
    ('Update', 'Change records'),
    ('Delete', 'Remove records'),
]

ALL = ('Read', 'Create', 'Update', 'Delete')

DEFAULT_ROLES = {
    'Practice Admin': (True, {
        'Patient Management': ALL,
        'User Management': ALL,
        'Appointment Management': ALL,
        'Clinic Management': ('Read', 'Update'),
        'Reports': ('Read',),
        'Task Management': ALL,
        'Role Access': ('Read',),
    }),
    'Doctor': (True, {
        'Patient Management': ('Read', 'Update'),
        'Appointment Management': ('Read',),
        'Medical Records': ('Read', 'Create', 'Update'),
        'Task Management': ('Read', 'Create', 'Update'),
    }),
    'Nurse': (True, {
        'Patient Management': ('Read',),
        'Appointment Management': ('Read',),
        'Medical Records': ('Read', 'Update'),
        'Task Management': ('Read', 'Update'),
    }),
    'Receptionist': (True, {
        'Patient Management': ('Read', 'Create'),
        'Appointment Management': ('Read',),
    }),
}


class Command(BaseCommand):
    help = "Ensure the module/operation catalog, default roles and a SuperAdmin account exist."

    def add_arguments(self, parser):
        parser.add_argument('--admin-email', default='superadmin@example.com')
        parser.add_argument('--admin-username', default='superadmin')
        parser.add_argument('--admin-password', default=None,
                            help='Password for a newly created SuperAdmin; existing accounts keep theirs.')
        parser.add_argument('--skip-admin', action='store_true')

    @transaction.atomic
    def handle(self, *args, **opts):
        modules = {}
        for name, description in MODULES:
            modules[name], _ = Module.objects.get_or_create(name=name, defaults={'description': description})
        operations = {}
        for name, description in OPERATIONS:
            operations[name], _ = Operation.objects.get_or_create(name=name, defaults={'description': description})

        pairs = {}
        created = 0
        for module in modules.values():
            for operation in operations.values():
                mo, was_created = ModuleOperation.objects.get_or_create(module=module, operation=operation)
                pairs[(module.name, operation.name)] = mo
                created += int(was_created)
        self.stdout.write(self.style.SUCCESS(
            f"catalog: {len(modules)} modules, {len(operations)} operations, {created} new module operations"
        ))

        for role_name, (is_practice, grants) in DEFAULT_ROLES.items():
            role, _ = Role.objects.get_or_create(name=role_name, defaults={'is_practice_role': is_practice})
            added = 0
            for module_name, ops in grants.items():
                for op in ops:
                    _, was_created = RolePermission.objects.get_or_create(
                        role=role, module_operation=pairs[(module_name, op)]
                    )
                    added += int(was_created)
            invalidate_roles([role.id])
            self.stdout.write(self.style.SUCCESS(f"ok: role {role_name} (+{added} grants)"))

        if opts['skip_admin']:
            return
        user, was_created = User.objects.get_or_create(
            email=opts['admin_email'],
            defaults={
                'username': opts['admin_username'],
                'user_type': 'SuperAdmin',
                'status': 'active',
                'is_staff': True,
                'is_superuser': True,
            },
        )
        if was_created:
            if opts['admin_password']:
                user.set_password(opts['admin_password'])
            else:
                user.set_unusable_password()
                self.stdout.write(self.style.WARNING("SuperAdmin created without a password; set one with changepassword"))
            user.save()
        self.stdout.write(self.style.SUCCESS(f"ok: {user.email} ({user.user_type})"))
