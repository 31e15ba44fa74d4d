"""
Django admin registrations for the clinic models.

Lets superusers inspect and correct clinics, accounts, grants and
schedules through ``/admin/``.  Grant edits made here bypass the API
audit trail, so the API remains the normal path for access changes.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from .models import (
    AuditEvent,
    Clinic,
    Doctor,
    DoctorSchedule,
    DoctorTimeOff,
    Module,
    ModuleOperation,
    Operation,
    Role,
    RolePermission,
    Task,
    TaskComment,
    User,
    UserAccess,
)


@admin.register(Clinic)
class ClinicAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'email', 'phone', 'is_active', 'created_at')
    list_filter = ('is_active',)
    search_fields = ('name', 'email')


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ('username', 'email', 'user_type', 'role', 'clinic', 'status', 'is_staff')
    list_filter = ('user_type', 'status', 'role', 'clinic')
    search_fields = ('username', 'email', 'first_name', 'last_name')
    fieldsets = BaseUserAdmin.fieldsets + (
        ('EMR', {'fields': ('user_type', 'role', 'clinic', 'phone', 'status', 'last_login_at')}),
    )


class RolePermissionInline(admin.TabularInline):
    model = RolePermission
    extra = 0
    autocomplete_fields = ('module_operation',)


@admin.register(Role)
class RoleAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'is_practice_role', 'created_at')
    list_filter = ('is_practice_role',)
    search_fields = ('name',)
    inlines = [RolePermissionInline]


@admin.register(Module)
class ModuleAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'description')
    search_fields = ('name',)


@admin.register(Operation)
class OperationAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'description')
    search_fields = ('name',)


@admin.register(ModuleOperation)
class ModuleOperationAdmin(admin.ModelAdmin):
    list_display = ('id', 'module', 'operation')
    list_filter = ('module', 'operation')
    search_fields = ('module__name', 'operation__name')


@admin.register(RolePermission)
class RolePermissionAdmin(admin.ModelAdmin):
    list_display = ('role', 'module_operation', 'created_at')
    list_filter = ('role',)
    search_fields = ('role__name', 'module_operation__module__name')


@admin.register(UserAccess)
class UserAccessAdmin(admin.ModelAdmin):
    list_display = ('user', 'module_operation', 'created_at')
    search_fields = ('user__username', 'module_operation__module__name')


class DoctorScheduleInline(admin.TabularInline):
    model = DoctorSchedule
    extra = 0


@admin.register(Doctor)
class DoctorAdmin(admin.ModelAdmin):
    list_display = ('id', 'user', 'clinic', 'specialty', 'is_active')
    list_filter = ('clinic', 'is_active')
    search_fields = ('user__username', 'user__first_name', 'user__last_name', 'specialty')
    inlines = [DoctorScheduleInline]


@admin.register(DoctorSchedule)
class DoctorScheduleAdmin(admin.ModelAdmin):
    list_display = ('doctor', 'day_of_week', 'start_time', 'end_time', 'break_start_time', 'break_end_time', 'is_active')
    list_filter = ('day_of_week', 'is_active')
    search_fields = ('doctor__user__username',)


@admin.register(DoctorTimeOff)
class DoctorTimeOffAdmin(admin.ModelAdmin):
    list_display = ('doctor', 'start_date', 'end_date', 'reason', 'is_approved')
    list_filter = ('reason', 'is_approved')
    search_fields = ('doctor__user__username',)


@admin.register(Task)
class TaskAdmin(admin.ModelAdmin):
    list_display = ('id', 'title', 'status', 'priority', 'clinic', 'created_by', 'assigned_to', 'due_date')
    list_filter = ('status', 'priority', 'clinic')
    search_fields = ('id', 'title', 'created_by__username', 'assigned_to__username')


@admin.register(TaskComment)
class TaskCommentAdmin(admin.ModelAdmin):
    list_display = ('task', 'author', 'created_at')
    search_fields = ('task__title', 'author__username')


@admin.register(AuditEvent)
class AuditEventAdmin(admin.ModelAdmin):
    list_display = ('action', 'object_type', 'object_id', 'user', 'created_at')
    list_filter = ('action', 'object_type')
    search_fields = ('user__username',)
