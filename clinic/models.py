"""
Database models for the EMR administration backend.

The models fall into three groups: tenancy and identity (clinics and
users), access control (roles, modules, operations and the grants that
tie them together) and scheduling (doctors, their weekly schedules and
time off).  Tasks and audit events support the administrative screens.
"""
from __future__ import annotations

from django.contrib.auth.models import AbstractUser
from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator
from django.db import models


class Clinic(models.Model):
    """A practice using the system.  Users, doctors and tasks may be scoped to one."""
    name = models.CharField(max_length=255)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=30, blank=True)
    address = models.TextField(blank=True)
    is_active = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return self.name


class Role(models.Model):
    """A named bundle of module/operation grants.

    Practice roles are meant to be scoped to a single clinic while
    non-practice roles are global (platform staff).  A role cannot be
    removed while users still reference it.
    """
    name = models.CharField(max_length=100, unique=True)
    description = models.TextField(blank=True)
    is_practice_role = models.BooleanField(default=False, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return self.name


class User(AbstractUser):
    """Custom user model with a user type, an optional role and clinic.

    ``user_type`` is the coarse account category.  The distinguished
    SuperAdmin type bypasses module/operation checks entirely; every
    other type is authorised through its role grants plus any direct
    :class:`UserAccess` grants.
    """
    USER_TYPE_CHOICES = [
        ('SuperAdmin', 'Super Admin'),
        ('Clinic', 'Clinic'),
        ('Doctor', 'Doctor'),
        ('Patient', 'Patient'),
        ('Staff', 'Staff'),
        ('HawkLogix', 'HawkLogix'),
    ]
    STATUS_CHOICES = [
        ('active', 'Active'),
        ('inactive', 'Inactive'),
        ('suspended', 'Suspended'),
    ]
    email = models.EmailField(unique=True)
    user_type = models.CharField(max_length=20, choices=USER_TYPE_CHOICES, default='Staff', db_index=True)
    role = models.ForeignKey(
        Role, null=True, blank=True, on_delete=models.PROTECT, related_name='users'
    )
    clinic = models.ForeignKey(
        Clinic, null=True, blank=True, on_delete=models.SET_NULL, related_name='users'
    )
    phone = models.CharField(max_length=30, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='active', db_index=True)
    last_login_at = models.DateTimeField(null=True, blank=True)

    @property
    def is_active_account(self) -> bool:
        return self.is_active and self.status == 'active'

    def __str__(self) -> str:
        return f"{self.username} ({self.user_type})"


class Module(models.Model):
    """A functional area subject to access control, e.g. ``Patient Management``."""
    name = models.CharField(max_length=100, unique=True)
    description = models.TextField(blank=True)

    def __str__(self) -> str:
        return self.name


class Operation(models.Model):
    """An action type subject to access control, e.g. ``Read``."""
    name = models.CharField(max_length=50, unique=True)
    description = models.TextField(blank=True)

    def __str__(self) -> str:
        return self.name


class ModuleOperation(models.Model):
    """A single grantable capability: one module paired with one operation."""
    module = models.ForeignKey(Module, on_delete=models.CASCADE, related_name='module_operations')
    operation = models.ForeignKey(Operation, on_delete=models.CASCADE, related_name='module_operations')

    class Meta:
        unique_together = [('module', 'operation')]

    def __str__(self) -> str:
        return f"{self.module.name}/{self.operation.name}"


class RolePermission(models.Model):
    """Grants one :class:`ModuleOperation` to one :class:`Role`."""
    role = models.ForeignKey(Role, on_delete=models.CASCADE, related_name='permissions')
    module_operation = models.ForeignKey(
        ModuleOperation, on_delete=models.CASCADE, related_name='role_permissions'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = [('role', 'module_operation')]

    def __str__(self) -> str:
        return f"{self.role} -> {self.module_operation}"


class UserAccess(models.Model):
    """Grants one :class:`ModuleOperation` directly to one user, on top of the role."""
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='access_grants')
    module_operation = models.ForeignKey(
        ModuleOperation, on_delete=models.CASCADE, related_name='user_grants'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = [('user', 'module_operation')]

    def __str__(self) -> str:
        return f"{self.user} -> {self.module_operation}"


class Doctor(models.Model):
    """Clinical profile attached to a user account."""
    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='doctor_profile')
    clinic = models.ForeignKey(
        Clinic, null=True, blank=True, on_delete=models.SET_NULL, related_name='doctors'
    )
    specialty = models.CharField(max_length=100, blank=True)
    license_number = models.CharField(max_length=50, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return self.user.get_full_name() or self.user.username


class DoctorSchedule(models.Model):
    """A recurring weekly working window for a doctor.

    ``day_of_week`` follows the 0=Sunday .. 6=Saturday convention.  An
    optional break must lie inside the working window.  Several rows
    may exist for the same doctor and day (split shifts).
    """
    DAY_CHOICES = [
        (0, 'Sunday'),
        (1, 'Monday'),
        (2, 'Tuesday'),
        (3, 'Wednesday'),
        (4, 'Thursday'),
        (5, 'Friday'),
        (6, 'Saturday'),
    ]
    doctor = models.ForeignKey(Doctor, on_delete=models.CASCADE, related_name='schedules')
    day_of_week = models.PositiveSmallIntegerField(choices=DAY_CHOICES, validators=[MaxValueValidator(6)])
    start_time = models.TimeField()
    end_time = models.TimeField()
    break_start_time = models.TimeField(null=True, blank=True)
    break_end_time = models.TimeField(null=True, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=['doctor', 'day_of_week', 'is_active'], name='schedule_doctor_day_idx'),
        ]

    def clean(self):
        if self.day_of_week is not None and not 0 <= self.day_of_week <= 6:
            raise ValidationError({'day_of_week': 'Day of week must be between 0 (Sunday) and 6 (Saturday)'})
        if self.start_time and self.end_time and self.start_time >= self.end_time:
            raise ValidationError({'end_time': 'End time must be after start time'})
        has_break_start = self.break_start_time is not None
        has_break_end = self.break_end_time is not None
        if has_break_start != has_break_end:
            raise ValidationError('Break start and end times must be provided together')
        if has_break_start:
            if self.break_start_time >= self.break_end_time:
                raise ValidationError({'break_end_time': 'Break end time must be after break start time'})
            if self.break_start_time < self.start_time or self.break_end_time > self.end_time:
                raise ValidationError('Break must fall within working hours')

    def __str__(self) -> str:
        return f"{self.doctor} {self.get_day_of_week_display()} {self.start_time}-{self.end_time}"


class DoctorTimeOff(models.Model):
    """An inclusive date range during which a doctor is away."""
    REASON_CHOICES = [
        ('Vacation', 'Vacation'),
        ('Sick Leave', 'Sick Leave'),
        ('Conference', 'Conference'),
        ('Training', 'Training'),
        ('Personal', 'Personal'),
        ('Emergency', 'Emergency'),
        ('Other', 'Other'),
    ]
    doctor = models.ForeignKey(Doctor, on_delete=models.CASCADE, related_name='time_off')
    start_date = models.DateField()
    end_date = models.DateField()
    reason = models.CharField(max_length=30, choices=REASON_CHOICES, default='Vacation')
    is_approved = models.BooleanField(default=False)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=['doctor', 'start_date', 'end_date'], name='timeoff_doctor_range_idx'),
        ]

    def clean(self):
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValidationError({'end_date': 'End date cannot be before start date'})

    def __str__(self) -> str:
        return f"{self.doctor} off {self.start_date}..{self.end_date}"


class Task(models.Model):
    """An administrative work item shown on the kanban board.

    Tasks belong to a clinic so that only members of that clinic (or
    users with the cross-clinic SuperAdmin type) may see them.
    """
    STATUS_CHOICES = [
        ('open', 'Open'),
        ('in_progress', 'In progress'),
        ('completed', 'Completed'),
        ('closed', 'Closed'),
    ]
    PRIORITY_CHOICES = [
        ('low', 'Low'),
        ('medium', 'Medium'),
        ('high', 'High'),
        ('urgent', 'Urgent'),
    ]
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='open', db_index=True)
    priority = models.CharField(max_length=10, choices=PRIORITY_CHOICES, default='medium')
    clinic = models.ForeignKey(
        Clinic, null=True, blank=True, on_delete=models.SET_NULL, related_name='tasks'
    )
    created_by = models.ForeignKey(
        User, null=True, on_delete=models.SET_NULL, related_name='tasks_created'
    )
    assigned_to = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='tasks_assigned'
    )
    start_date = models.DateField(null=True, blank=True)
    due_date = models.DateField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def clean(self):
        if self.start_date and self.due_date and self.start_date > self.due_date:
            raise ValidationError({'due_date': 'Due date cannot be before start date'})

    def __str__(self) -> str:
        return f"{self.title} ({self.status})"


class TaskComment(models.Model):
    task = models.ForeignKey(Task, on_delete=models.CASCADE, related_name='comments')
    author = models.ForeignKey(User, null=True, on_delete=models.SET_NULL, related_name='task_comments')
    text = models.TextField()
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"Comment on {self.task_id} by {self.author}"


class AuditEvent(models.Model):
    """Append-only record of logins and access-control changes."""
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True)
    action = models.CharField(max_length=64)
    object_type = models.CharField(max_length=64, blank=True, null=True)
    object_id = models.IntegerField(blank=True, null=True)
    detail = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['action', 'created_at'], name='audit_action_created_idx'),
            models.Index(fields=['object_type', 'object_id', 'created_at'], name='audit_object_created_idx'),
        ]

    def __str__(self) -> str:
        return f"{self.action} {self.object_type}:{self.object_id}"
