"""
Task (kanban) views.

Tasks are scoped to clinics: SuperAdmin users see every task, other
users see tasks of their own clinic plus any task they created or are
assigned to.  Module access itself is governed by ``Task Management``
grants.
"""
from __future__ import annotations

from django.db import transaction, models
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response

from ..models import Clinic, Task, TaskComment, User
from ..permissions import ModuleOperationPermission, is_super_admin
from ..serializers.tasks import TaskCommentSerializer, TaskSerializer

TaskManagement = ModuleOperationPermission.require('Task Management')
TaskRead = ModuleOperationPermission.require('Task Management', 'Read')


def _serialize(task: Task) -> dict:
    return {
        'id': task.id,
        'title': task.title,
        'description': task.description,
        'status': task.status,
        'priority': task.priority,
        'clinicId': task.clinic_id,
        'startDate': task.start_date.isoformat() if task.start_date else None,
        'dueDate': task.due_date.isoformat() if task.due_date else None,
        'createdAt': task.created_at.isoformat() if task.created_at else None,
        'updatedAt': task.updated_at.isoformat() if task.updated_at else None,
        'createdBy': task.created_by_id,
        'createdByName': (task.created_by.get_full_name() or task.created_by.username) if task.created_by else None,
        'assignedTo': task.assigned_to_id,
        'assignedToName': (task.assigned_to.get_full_name() or task.assigned_to.username) if task.assigned_to else None,
    }


def _visible(user: User):
    qs = Task.objects.select_related('created_by', 'assigned_to')
    if is_super_admin(user):
        return qs
    scope = models.Q(created_by=user) | models.Q(assigned_to=user)
    if user.clinic_id:
        scope |= models.Q(clinic_id=user.clinic_id)
    return qs.filter(scope)


def _resolve_refs(data: dict, user: User) -> dict:
    """Validate assignee and clinic ids against the caller's reach."""
    data = dict(data)
    if data.get('assigned_to_id') is not None:
        assignees = User.objects.all() if is_super_admin(user) else User.objects.filter(clinic_id=user.clinic_id)
        if not assignees.filter(pk=data['assigned_to_id']).exists():
            data['assigned_to_id'] = None
    if 'clinic_id' in data:
        if not is_super_admin(user):
            data.pop('clinic_id')
        elif data['clinic_id'] is not None and not Clinic.objects.filter(pk=data['clinic_id']).exists():
            data['clinic_id'] = None
    return data


@api_view(['GET', 'POST'])
@permission_classes([TaskManagement])
def tasks_list(request):
    user: User = request.user
    if request.method == 'GET':
        qs = _visible(user)
        for param, field in (('status', 'status'), ('priority', 'priority'), ('assignedTo', 'assigned_to_id')):
            value = request.query_params.get(param)
            if value:
                qs = qs.filter(**{field: value})
        return Response({'ok': True, 'data': [_serialize(t) for t in qs.order_by('-created_at')]})

    s = TaskSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    data = _resolve_refs(s.validated_data, user)
    data.setdefault('clinic_id', user.clinic_id)
    with transaction.atomic():
        task = Task(created_by=user, **data)
        task.full_clean()
        task.save()
    return Response({'ok': True, 'data': _serialize(task)}, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'DELETE'])
@permission_classes([TaskManagement])
def task_detail(request, pk: int):
    user: User = request.user
    task = get_object_or_404(_visible(user), pk=pk)
    if request.method == 'GET':
        return Response({'ok': True, 'data': _serialize(task)})
    if request.method == 'PUT':
        s = TaskSerializer(task, data=request.data, partial=True)
        s.is_valid(raise_exception=True)
        with transaction.atomic():
            for field, value in _resolve_refs(s.validated_data, user).items():
                setattr(task, field, value)
            task.full_clean()
            task.save()
        task.refresh_from_db()
        return Response({'ok': True, 'data': _serialize(task)})
    task.delete()
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET', 'POST'])
@permission_classes([TaskRead])
def task_comments(request, pk: int):
    user: User = request.user
    task = get_object_or_404(_visible(user), pk=pk)
    if request.method == 'POST':
        s = TaskCommentSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        TaskComment.objects.create(task=task, author=user, text=s.validated_data['text'])
    comments = task.comments.select_related('author').order_by('created_at', 'id')
    data = [
        {
            'id': c.id,
            'text': c.text,
            'authorId': c.author_id,
            'authorName': (c.author.get_full_name() or c.author.username) if c.author else None,
            'createdAt': c.created_at.isoformat(),
        }
        for c in comments
    ]
    code = status.HTTP_201_CREATED if request.method == 'POST' else status.HTTP_200_OK
    return Response({'ok': True, 'data': data}, status=code)
