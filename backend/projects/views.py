import logging

from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Q
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, parser_classes
from rest_framework.exceptions import PermissionDenied
from rest_framework.parsers import MultiPartParser, FormParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from backend.core import attachments
from backend.core.exceptions import InvalidStatus, ResourceAlreadyExists, ResourceNotFound, SGPCException
from backend.core.models import Attachment, ROLE_ADMIN
from backend.core.permissions import IsAdminOrManager, is_admin_or_manager
from backend.core.serializers import AttachmentSerializer
from backend.core.utils import create_audit_log, snapshot
from .models import Project
from .serializers import ProjectSerializer, ProjectSummarySerializer, TeamMemberSerializer
from .utils import get_visible_project

logger = logging.getLogger('backend.projects')

User = get_user_model()


def _visible(request):
    return Project.objects.visible_to(request.user).select_related('created_by').prefetch_related('team_members')


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def project_list_create(request):
    """List visible projects or create a new project (admin/manager)"""
    if request.method == 'GET':
        serializer = ProjectSummarySerializer(_visible(request), many=True)
        return Response(serializer.data)

    if not is_admin_or_manager(request.user):
        raise PermissionDenied('Only administrators and managers can create projects.')

    serializer = ProjectSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    with transaction.atomic():
        project = serializer.save(created_by=request.user)
    create_audit_log(request, 'CREATE', 'Project', project.id, {'new': snapshot(project)}, object_name=project.name)
    logger.info(f"Project '{project.name}' created by {request.user.email}")
    return Response(ProjectSerializer(project).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def project_detail(request, pk):
    """Retrieve, update (admin/manager) or delete (admin) a project"""
    project = get_visible_project(request.user, pk)

    if request.method == 'GET':
        return Response(ProjectSerializer(project).data)

    if request.method == 'DELETE':
        if not request.user.has_role(ROLE_ADMIN):
            raise PermissionDenied('Only administrators can delete projects.')
        project_id, old_values = project.id, snapshot(project)
        with transaction.atomic():
            task_ids = list(project.tasks.values_list('id', flat=True))
            stored = Attachment.objects.filter(
                Q(entity_type=Attachment.ENTITY_PROJECT, entity_id=project_id)
                | Q(entity_type=Attachment.ENTITY_TASK, entity_id__in=task_ids)
            )
            for attachment in stored:
                attachments.delete_attachment(attachment)
            project.delete()
        create_audit_log(request, 'DELETE', 'Project', project_id, {'old': old_values}, object_name=old_values['name'])
        logger.info(f"Project {project_id} deleted by {request.user.email}")
        return Response(status=status.HTTP_204_NO_CONTENT)

    if not is_admin_or_manager(request.user):
        raise PermissionDenied('Only administrators and managers can update projects.')

    old_values = snapshot(project)
    # Only the provided, non-null fields are applied
    serializer = ProjectSerializer(project, data=request.data, partial=True)
    serializer.is_valid(raise_exception=True)
    project = serializer.save()
    create_audit_log(request, 'UPDATE', 'Project', project.id, {'old': old_values, 'new': snapshot(project)}, object_name=project.name)
    return Response(ProjectSerializer(project).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def project_by_status(request, status_value):
    status_value = status_value.upper()
    if status_value not in Project.STATUS_VALUES:
        raise InvalidStatus(f"Invalid project status: {status_value}")
    projects = _visible(request).filter(status=status_value)
    return Response(ProjectSummarySerializer(projects, many=True).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def project_search(request):
    name = request.query_params.get('name', '').strip()
    if not name:
        raise SGPCException('Query parameter "name" is required.')
    projects = _visible(request).filter(name__icontains=name)
    return Response(ProjectSummarySerializer(projects, many=True).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def project_by_client(request, client):
    projects = _visible(request).filter(client__icontains=client)
    return Response(ProjectSummarySerializer(projects, many=True).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def project_by_user(request, user_id):
    """Projects a user belongs to (admin/manager, or the user themself)"""
    if not is_admin_or_manager(request.user) and request.user.pk != user_id:
        raise PermissionDenied('You can only list your own projects.')
    user = get_object_or_404(User, pk=user_id)
    projects = Project.objects.filter(team_members=user).select_related('created_by').prefetch_related('team_members')
    return Response(ProjectSummarySerializer(projects, many=True).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminOrManager])
def project_delayed(request):
    projects = _visible(request).delayed().order_by('end_date_planned')
    return Response(ProjectSummarySerializer(projects, many=True).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def project_team(request, pk):
    project = get_visible_project(request.user, pk)
    return Response(TeamMemberSerializer(project.team_members.all().order_by('full_name'), many=True).data)


@api_view(['POST', 'DELETE'])
@permission_classes([IsAuthenticated, IsAdminOrManager])
def project_team_member(request, pk, user_id):
    """Add or remove a team member"""
    project = get_visible_project(request.user, pk)
    user = User.objects.filter(pk=user_id).first()
    if user is None:
        raise ResourceNotFound(f"User with ID {user_id} was not found.")

    is_member = project.is_team_member(user)
    if request.method == 'POST':
        if is_member:
            raise ResourceAlreadyExists(f"User {user.full_name} is already in the project team.")
        project.team_members.add(user)
        logger.info(f"User {user.email} added to project '{project.name}'")
    else:
        if not is_member:
            raise ResourceNotFound(f"User {user.full_name} is not in the project team.")
        project.team_members.remove(user)
        logger.info(f"User {user.email} removed from project '{project.name}'")

    create_audit_log(
        request, 'UPDATE', 'Project', project.id,
        {'team_member': user.id, 'operation': 'add' if request.method == 'POST' else 'remove'},
        object_name=project.name
    )
    return Response(ProjectSerializer(project).data)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
@parser_classes([MultiPartParser, FormParser])
def project_attachments(request, pk):
    """List or upload project attachments"""
    project = get_visible_project(request.user, pk)

    if request.method == 'GET':
        items = attachments.attachments_for(Attachment.ENTITY_PROJECT, project.id)
        return Response(AttachmentSerializer(items, many=True).data)

    if not is_admin_or_manager(request.user) and not project.is_team_member(request.user):
        raise PermissionDenied('Only project team members can upload attachments.')
    attachment = attachments.store_attachment(request.FILES.get('file'), Attachment.ENTITY_PROJECT, project.id, request.user)
    return Response(AttachmentSerializer(attachment).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def project_attachment_download(request, attachment_id):
    attachment = attachments.get_attachment(attachment_id, Attachment.ENTITY_PROJECT)
    get_visible_project(request.user, attachment.entity_id)
    return attachments.download_response(attachment)


@api_view(['DELETE'])
@permission_classes([IsAuthenticated, IsAdminOrManager])
def project_attachment_delete(request, attachment_id):
    attachment = attachments.get_attachment(attachment_id, Attachment.ENTITY_PROJECT)
    get_visible_project(request.user, attachment.entity_id)
    attachments.delete_attachment(attachment)
    return Response(status=status.HTTP_204_NO_CONTENT)
