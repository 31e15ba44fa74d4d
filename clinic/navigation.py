"""
Client route registry and sidebar visibility.

The route table is an immutable tree built once at import time.  Each
entry declares either ``is_public=True`` or the modules and operations
it needs; an entry that declares neither is rejected when the table is
built, so a forgotten requirement can never open a route by accident.

Runtime visibility tweaks (hiding a sidebar item for a deployment) are
held by a :class:`SidebarVisibility` instance instead of being written
into the shared table.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Iterator

from clinic.services.authorization import (
    AccessRequirement,
    AuthorizationPolicy,
    PermissionGrant,
    resolve,
)

READ = 'Read'
CREATE = 'Create'
UPDATE = 'Update'


@dataclass(frozen=True)
class RouteEntry:
    path: str
    name: str
    modules: tuple[str, ...] = ()
    operations: tuple[str, ...] = ()
    is_public: bool = False
    show_in_sidebar: bool = True
    icon: str = ''
    children: tuple[RouteEntry, ...] = field(default_factory=tuple)
    requirement: AccessRequirement = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        # raises InvalidArgument for a protected route without requirements
        object.__setattr__(self, 'requirement', AccessRequirement(
            modules=self.modules, operations=self.operations, is_public=self.is_public,
        ))

    def as_dict(self, children: Iterable[dict] | None = None) -> dict:
        return {
            'path': self.path,
            'name': self.name,
            'icon': self.icon,
            'requiredModules': list(self.modules),
            'requiredOperations': list(self.operations),
            'isPublic': self.is_public,
            'children': list(children) if children is not None else [],
        }


def _route(path, name, modules=(), operations=(READ,), **kw) -> RouteEntry:
    if kw.get('is_public'):
        operations = ()
    if isinstance(modules, str):
        modules = (modules,)
    return RouteEntry(path=path, name=name, modules=tuple(modules), operations=tuple(operations), **kw)


ROUTES: tuple[RouteEntry, ...] = (
    _route('/dashboard', 'Dashboard', is_public=True, icon='dashboard'),
    _route('/patients', 'Patients', 'Patient Management', icon='people', children=(
        _route('/patients/add', 'Add Patient', 'Patient Management', (CREATE,), show_in_sidebar=False),
        _route('/patients/edit', 'Edit Patient', 'Patient Management', (UPDATE,), show_in_sidebar=False),
    )),
    _route('/appointments', 'Appointments', 'Appointment Management', icon='event', children=(
        _route('/appointments/book', 'Book Appointment', 'Appointment Management', (CREATE,)),
        _route('/appointments/schedules', 'Doctor Schedules', 'Appointment Management'),
    )),
    _route('/clinics', 'Clinics', 'Clinic Management', icon='business', children=(
        _route('/clinics/add', 'Add Clinic', 'Clinic Management', (CREATE,), show_in_sidebar=False),
        _route('/clinics/profile', 'Clinic Profile', 'Clinic Management'),
    )),
    _route('/users', 'Users', 'User Management', icon='person', children=(
        _route('/users/staff', 'Staff', 'User Management'),
        _route('/users/doctors', 'Doctors', 'User Management'),
        _route('/users/access', 'User Access', ('User Management', 'Role Access'), (UPDATE,)),
    )),
    _route('/roles', 'Roles', 'Role Management', icon='badge', children=(
        _route('/roles/permissions', 'Role Access', 'Role Access'),
    )),
    _route('/medical-records', 'Medical Records', 'Medical Records', icon='folder'),
    _route('/tasks', 'Tasks', 'Task Management', icon='task'),
    _route('/reports', 'Reports', 'Reports', icon='bar_chart'),
    _route('/forms', 'Forms', 'Form Management', icon='description'),
    _route('/system-settings', 'System Settings', 'System Settings', icon='tune'),
    _route('/settings', 'Settings', is_public=True, icon='settings', show_in_sidebar=False),
)


def flatten_routes(routes: Iterable[RouteEntry] = ROUTES) -> Iterator[RouteEntry]:
    for route in routes:
        yield route
        yield from flatten_routes(route.children)


def find_route(path: str, routes: Iterable[RouteEntry] = ROUTES) -> RouteEntry | None:
    for route in flatten_routes(routes):
        if route.path == path:
            return route
    return None


def can_access_route(user_type: str | None, grants: Iterable[PermissionGrant], route: RouteEntry,
                     policy: AuthorizationPolicy) -> bool:
    if user_type and policy.is_public_path(route.path):
        return True
    return resolve(user_type, grants, route.requirement, policy)


def allowed_routes(user_type: str | None, grants: Iterable[PermissionGrant], policy: AuthorizationPolicy,
                   routes: Iterable[RouteEntry] = ROUTES) -> list[RouteEntry]:
    """Routes the user may open, at every depth, in table order."""
    grants = frozenset(grants)
    return [r for r in flatten_routes(routes) if can_access_route(user_type, grants, r, policy)]


class SidebarVisibility:
    """Owns runtime show/hide overrides for sidebar entries.

    Overrides are keyed by path and never modify :data:`ROUTES`.
    """

    def __init__(self, routes: tuple[RouteEntry, ...] = ROUTES):
        self._routes = routes
        self._overrides: dict[str, bool] = {}

    def hide(self, path: str) -> None:
        self._overrides[path] = False

    def show(self, path: str) -> None:
        self._overrides[path] = True

    def reset(self, path: str | None = None) -> None:
        if path is None:
            self._overrides.clear()
        else:
            self._overrides.pop(path, None)

    def is_visible(self, route: RouteEntry) -> bool:
        return self._overrides.get(route.path, route.show_in_sidebar)

    def sidebar(self, user_type: str | None, grants: Iterable[PermissionGrant],
                policy: AuthorizationPolicy) -> list[dict]:
        """Visible, accessible entries as a nested list of dicts."""
        grants = frozenset(grants)

        def build(routes):
            items = []
            for route in routes:
                if not self.is_visible(route):
                    continue
                if not can_access_route(user_type, grants, route, policy):
                    continue
                items.append(route.as_dict(build(route.children)))
            return items

        return build(self._routes)


sidebar_visibility = SidebarVisibility()
