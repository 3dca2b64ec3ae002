import logging

from django.contrib.auth import get_user_model
from django.db import transaction
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, parser_classes
from rest_framework.exceptions import PermissionDenied
from rest_framework.parsers import MultiPartParser, FormParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from backend.core import attachments, notifications
from backend.core.exceptions import InvalidStatus, ResourceNotFound
from backend.core.models import Attachment
from backend.core.permissions import IsAdminOrManager, is_admin_or_manager
from backend.core.serializers import AttachmentSerializer
from backend.core.utils import create_audit_log, snapshot
from backend.projects.utils import get_visible_project, refresh_project_metrics
from .models import Task
from .serializers import TaskSerializer, TaskStatusSerializer

logger = logging.getLogger('backend.tasks')

User = get_user_model()


def _get_task(project, task_id):
    task = project.tasks.select_related('assigned_user', 'created_by').filter(pk=task_id).first()
    if task is None:
        raise ResourceNotFound(f"Task with ID {task_id} was not found in project {project.id}.")
    return task


def _require_team_write(request, project):
    if not is_admin_or_manager(request.user) and not project.is_team_member(request.user):
        raise PermissionDenied('Only project team members can change tasks.')


def _serialize(tasks):
    return TaskSerializer(tasks, many=True).data


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def task_list_create(request, project_id):
    """List the project's tasks or create a new one"""
    project = get_visible_project(request.user, project_id)

    if request.method == 'GET':
        tasks = project.tasks.select_related('assigned_user', 'created_by', 'project')
        return Response(_serialize(tasks))

    _require_team_write(request, project)
    serializer = TaskSerializer(data=request.data, context={'project': project})
    serializer.is_valid(raise_exception=True)
    with transaction.atomic():
        task = serializer.save(created_by=request.user)
        refresh_project_metrics(project)
    create_audit_log(request, 'CREATE', 'Task', task.id, {'new': snapshot(task)}, object_name=task.title)
    logger.info(f"Task '{task.title}' created in project '{project.name}'")
    if task.assigned_user:
        notifications.notify_task_assigned(task, task.assigned_user)
    return Response(TaskSerializer(task).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def task_detail(request, project_id, task_id):
    """Retrieve, update or delete a task"""
    project = get_visible_project(request.user, project_id)
    task = _get_task(project, task_id)

    if request.method == 'GET':
        return Response(TaskSerializer(task).data)

    if request.method == 'DELETE':
        if not is_admin_or_manager(request.user):
            raise PermissionDenied('Only administrators and managers can delete tasks.')
        old_values = snapshot(task)
        with transaction.atomic():
            for attachment in Attachment.objects.filter(entity_type=Attachment.ENTITY_TASK, entity_id=task.id):
                attachments.delete_attachment(attachment)
            task.delete()
            refresh_project_metrics(project)
        create_audit_log(request, 'DELETE', 'Task', task_id, {'old': old_values}, object_name=old_values['title'])
        return Response(status=status.HTTP_204_NO_CONTENT)

    _require_team_write(request, project)
    old_values = snapshot(task)
    previous_assignee_id = task.assigned_user_id
    serializer = TaskSerializer(task, data=request.data, partial=True, context={'project': project})
    serializer.is_valid(raise_exception=True)
    with transaction.atomic():
        task = serializer.save()
        refresh_project_metrics(project)
    create_audit_log(request, 'UPDATE', 'Task', task.id, {'old': old_values, 'new': snapshot(task)}, object_name=task.title)
    if task.assigned_user and task.assigned_user_id != previous_assignee_id:
        notifications.notify_task_assigned(task, task.assigned_user)
    return Response(TaskSerializer(task).data)


@api_view(['PATCH'])
@permission_classes([IsAuthenticated])
def task_update_status(request, project_id, task_id):
    """Change a task's status, keeping progress and dates consistent"""
    project = get_visible_project(request.user, project_id)
    _require_team_write(request, project)
    task = _get_task(project, task_id)

    serializer = TaskStatusSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    with transaction.atomic():
        old_status = task.apply_status(serializer.validated_data['status'], serializer.validated_data.get('notes'))
        task.save()
        refresh_project_metrics(project)
    create_audit_log(
        request, 'STATUS_CHANGE', 'Task', task.id,
        {'old': {'status': old_status}, 'new': {'status': task.status, 'progress_percentage': task.progress_percentage}},
        object_name=task.title
    )
    logger.info(f"Task {task.id} status {old_status} -> {task.status}")
    return Response(TaskSerializer(task).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def task_by_status(request, project_id, status_value):
    project = get_visible_project(request.user, project_id)
    status_value = status_value.upper()
    if status_value not in Task.STATUS_VALUES:
        raise InvalidStatus(f"Invalid task status: {status_value}")
    return Response(_serialize(project.tasks.filter(status=status_value).select_related('assigned_user', 'project')))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def task_kanban(request, project_id):
    """Tasks grouped by status column"""
    project = get_visible_project(request.user, project_id)
    tasks = list(project.tasks.select_related('assigned_user', 'created_by', 'project'))
    board = {value: [] for value in Task.STATUS_VALUES}
    for task in tasks:
        board[task.status].append(task)
    data = {value: _serialize(items) for value, items in board.items()}
    data['total'] = len(tasks)
    return Response(data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminOrManager])
def task_overdue(request, project_id):
    project = get_visible_project(request.user, project_id)
    return Response(_serialize(project.tasks.overdue().select_related('assigned_user', 'project')))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def task_statistics(request, project_id):
    """Counts per status and completion percentage"""
    project = get_visible_project(request.user, project_id)
    tasks = project.tasks.all()
    total = tasks.count()
    stats = {value: tasks.filter(status=value).count() for value in Task.STATUS_VALUES}
    stats['total'] = total
    stats['overdue'] = tasks.overdue().count()
    stats['completion_percentage'] = round(stats[Task.STATUS_CONCLUIDA] * 100 / total, 2) if total else 0
    return Response(stats)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def task_assigned(request, project_id, user_id):
    """Tasks assigned to a user (admin/manager, or that user)"""
    if not is_admin_or_manager(request.user) and request.user.pk != user_id:
        raise PermissionDenied('You can only list your own tasks.')
    project = get_visible_project(request.user, project_id)
    if not User.objects.filter(pk=user_id).exists():
        raise ResourceNotFound(f"User with ID {user_id} was not found.")
    return Response(_serialize(project.tasks.filter(assigned_user_id=user_id).select_related('assigned_user', 'project')))


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
@parser_classes([MultiPartParser, FormParser])
def task_attachments(request, project_id, task_id):
    project = get_visible_project(request.user, project_id)
    task = _get_task(project, task_id)

    if request.method == 'GET':
        items = attachments.attachments_for(Attachment.ENTITY_TASK, task.id)
        return Response(AttachmentSerializer(items, many=True).data)

    _require_team_write(request, project)
    attachment = attachments.store_attachment(request.FILES.get('file'), Attachment.ENTITY_TASK, task.id, request.user)
    return Response(AttachmentSerializer(attachment).data, status=status.HTTP_201_CREATED)


def _task_attachment(project, attachment_id):
    attachment = attachments.get_attachment(attachment_id, Attachment.ENTITY_TASK)
    if not project.tasks.filter(pk=attachment.entity_id).exists():
        raise ResourceNotFound(f"Attachment not found with ID: {attachment_id}")
    return attachment


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def task_attachment_download(request, project_id, attachment_id):
    project = get_visible_project(request.user, project_id)
    return attachments.download_response(_task_attachment(project, attachment_id))


@api_view(['DELETE'])
@permission_classes([IsAuthenticated, IsAdminOrManager])
def task_attachment_delete(request, project_id, attachment_id):
    project = get_visible_project(request.user, project_id)
    attachments.delete_attachment(_task_attachment(project, attachment_id))
    return Response(status=status.HTTP_204_NO_CONTENT)
