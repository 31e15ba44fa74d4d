"""
URL mappings for the EMR administration API.

Trailing slashes are deliberately omitted; the front-end calls paths
exactly as listed here.
"""
from django.urls import path, include

from .auth_views import login_view, me_view, jwt_refresh_view, jwt_logout_view
from .views import health
from .views.access import (
    module_operations,
    module_operations_update,
    modules,
    operations,
    permission_check,
    role_permission_check,
    role_permissions,
    user_access,
    user_permissions,
)
from .views.navigation import navigation
from .views.roles import roles, role_detail
from .views.schedules import (
    doctor_availability,
    doctor_schedules,
    doctor_time_off,
    doctor_time_off_check,
    doctor_time_off_upcoming,
    schedule_detail,
    time_off_detail,
)
from .views.tasks import tasks_list, task_detail, task_comments
from .views.users import users, user_detail


urlpatterns = [
    path('', include('django_prometheus.urls')),  # serves /metrics
    path('healthz', health.healthz, name='healthz'),

    # Authentication
    path('api/auth/login', login_view, name='login_view'),
    path('api/auth/me', me_view, name='me_view'),
    path('api/auth/refresh', jwt_refresh_view, name='jwt_refresh_view'),
    path('api/auth/logout', jwt_logout_view, name='jwt_logout_view'),

    # Navigation and ad-hoc checks
    path('api/navigation', navigation, name='navigation'),
    path('api/permissions/check', permission_check, name='permission_check'),

    # Roles and role grants
    path('api/roles', roles, name='roles'),
    path('api/roles/<int:pk>', role_detail, name='role_detail'),
    path('api/roles/<int:pk>/permissions', role_permissions, name='role_permissions'),
    path('api/roles/<int:pk>/permissions/check', role_permission_check, name='role_permission_check'),

    # Module / operation catalog
    path('api/modules', modules, name='modules'),
    path('api/modules/<int:pk>/operations', module_operations_update, name='module_operations_update'),
    path('api/operations', operations, name='operations'),
    path('api/module-operations', module_operations, name='module_operations'),

    # Users and direct grants
    path('api/users', users, name='users'),
    path('api/users/<int:pk>', user_detail, name='user_detail'),
    path('api/users/<int:pk>/access', user_access, name='user_access'),
    path('api/users/<int:pk>/permissions', user_permissions, name='user_permissions'),

    # Doctor schedules, availability and time off
    path('api/doctors/<int:doctor_id>/schedules', doctor_schedules, name='doctor_schedules'),
    path('api/doctors/<int:doctor_id>/availability', doctor_availability, name='doctor_availability'),
    path('api/doctors/<int:doctor_id>/time-off', doctor_time_off, name='doctor_time_off'),
    path('api/doctors/<int:doctor_id>/time-off/upcoming', doctor_time_off_upcoming, name='doctor_time_off_upcoming'),
    path('api/doctors/<int:doctor_id>/time-off/check', doctor_time_off_check, name='doctor_time_off_check'),
    path('api/schedules/<int:pk>', schedule_detail, name='schedule_detail'),
    path('api/time-off/<int:pk>', time_off_detail, name='time_off_detail'),

    # Task management
    path('api/tasks', tasks_list, name='tasks_list'),
    path('api/tasks/<int:pk>', task_detail, name='task_detail'),
    path('api/tasks/<int:pk>/comments', task_comments, name='task_comments'),
]
