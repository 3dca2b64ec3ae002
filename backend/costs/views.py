import logging

from django.db import transaction
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from backend.core.exceptions import BusinessRuleViolation, ResourceAlreadyExists, ResourceNotFound, SGPCException
from backend.core.permissions import IsAdminOrManager, is_admin_or_manager
from backend.core.utils import create_audit_log, snapshot
from backend.projects.models import Project
from backend.projects.utils import get_visible_project, refresh_project_metrics
from backend.tasks.serializers import TaskSerializer
from .models import Service, TaskService, recalculate_task_costs
from .serializers import (
    ProjectBudgetSerializer, ServiceSerializer, TaskProgressSerializer,
    TaskServiceCreateSerializer, TaskServiceSerializer,
)
from .utils import get_visible_task, project_budget

logger = logging.getLogger('backend.costs')


def _recalculate(task):
    recalculate_task_costs(task)
    refresh_project_metrics(task.project, progress=False)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def service_list_create(request):
    """Active services, or create one (admin/manager)"""
    if request.method == 'GET':
        services = Service.objects.filter(is_active=True)
        return Response(ServiceSerializer(services, many=True).data)

    if not is_admin_or_manager(request.user):
        raise PermissionDenied('Only administrators and managers can create services.')
    serializer = ServiceSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    service = serializer.save()
    create_audit_log(request, 'CREATE', 'Service', service.id, {'new': snapshot(service)}, object_name=service.name)
    logger.info(f"Service '{service.name}' created")
    return Response(ServiceSerializer(service).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def service_search(request):
    name = request.query_params.get('name', '').strip()
    if not name:
        raise SGPCException('Query parameter "name" is required.')
    services = Service.objects.filter(is_active=True, name__icontains=name)
    return Response(ServiceSerializer(services, many=True).data)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def task_services(request, task_id):
    """Services linked to a task, or link a new one (admin/manager)"""
    task = get_visible_task(request.user, task_id)

    if request.method == 'GET':
        items = task.task_services.select_related('service', 'task')
        return Response(TaskServiceSerializer(items, many=True).data)

    if not is_admin_or_manager(request.user):
        raise PermissionDenied('Only administrators and managers can add services to tasks.')
    serializer = TaskServiceCreateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    service = Service.objects.filter(pk=data['service_id']).first()
    if service is None:
        raise ResourceNotFound(f"Service not found with ID: {data['service_id']}")
    if not service.is_active:
        raise BusinessRuleViolation(f"Service '{service.name}' is inactive.")
    if task.task_services.filter(service=service).exists():
        raise ResourceAlreadyExists(f"Service '{service.name}' is already linked to this task.")

    with transaction.atomic():
        task_service = TaskService.objects.create(
            task=task,
            service=service,
            quantity=data['quantity'],
            unit_cost_override=data.get('unit_cost_override'),
            notes=data.get('notes'),
        )
        _recalculate(task)
    create_audit_log(
        request, 'UPDATE', 'Task', task.id,
        {'service_added': service.id, 'quantity': str(task_service.quantity)}, object_name=task.title
    )
    logger.info(f"Service {service.id} added to task {task.id}")
    return Response(TaskServiceSerializer(task_service).data, status=status.HTTP_201_CREATED)


@api_view(['DELETE'])
@permission_classes([IsAuthenticated, IsAdminOrManager])
def task_service_delete(request, task_id, service_id):
    task = get_visible_task(request.user, task_id)
    task_service = task.task_services.filter(service_id=service_id).first()
    if task_service is None:
        raise ResourceNotFound(f"Service {service_id} is not linked to task {task_id}.")
    with transaction.atomic():
        task_service.delete()
        _recalculate(task)
    create_audit_log(request, 'UPDATE', 'Task', task.id, {'service_removed': service_id}, object_name=task.title)
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['PUT'])
@permission_classes([IsAuthenticated])
def task_progress(request, task_id):
    """Update a task's progress, deriving its status and actual dates"""
    task = get_visible_task(request.user, task_id)
    if not is_admin_or_manager(request.user) and not task.project.is_team_member(request.user):
        raise PermissionDenied('Only project team members can update task progress.')

    serializer = TaskProgressSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    old_progress = task.progress_percentage
    with transaction.atomic():
        task.apply_progress(data['progress_percentage'])
        if data.get('actual_hours') is not None:
            task.actual_hours = data['actual_hours']
        if data.get('notes'):
            task.append_note(f"Progress updated to {task.progress_percentage}%: {data['notes']}")
        task.save()
        refresh_project_metrics(task.project, cost=False)
    create_audit_log(
        request, 'UPDATE', 'Task', task.id,
        {'old': {'progress_percentage': old_progress}, 'new': {'progress_percentage': task.progress_percentage}},
        object_name=task.title
    )
    return Response(TaskSerializer(task).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def task_cost_report(request, task_id):
    task = get_visible_task(request.user, task_id)
    items = task.task_services.select_related('service', 'task')
    return Response({
        'task_id': task.id,
        'task_title': task.title,
        'project_id': task.project_id,
        'labor_cost': task.labor_cost,
        'material_cost': task.material_cost,
        'equipment_cost': task.equipment_cost,
        'total_cost': task.total_cost,
        'services': TaskServiceSerializer(items, many=True).data,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminOrManager])
def task_recalculate(request, task_id):
    task = get_visible_task(request.user, task_id)
    with transaction.atomic():
        _recalculate(task)
    return Response(TaskSerializer(task).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def project_budget_detail(request, project_id):
    project = get_visible_project(request.user, project_id)
    return Response(ProjectBudgetSerializer(project_budget(project)).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminOrManager])
def project_recalculate_cost(request, project_id):
    """Recalculate every task's costs and then the project's realized cost"""
    project = get_visible_project(request.user, project_id)
    with transaction.atomic():
        for task in project.tasks.all():
            recalculate_task_costs(task)
        refresh_project_metrics(project, progress=False)
    logger.info(f"Realized cost of project {project.id} recalculated: {project.realized_cost}")
    return Response(ProjectBudgetSerializer(project_budget(project)).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminOrManager])
def project_recalculate_progress(request, project_id):
    project = get_visible_project(request.user, project_id)
    refresh_project_metrics(project, cost=False)
    return Response(ProjectBudgetSerializer(project_budget(project)).data)


def _visible_projects(request):
    return Project.objects.visible_to(request.user).order_by('name')


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminOrManager])
def project_budget_report(request):
    data = [project_budget(project) for project in _visible_projects(request)]
    return Response(ProjectBudgetSerializer(data, many=True).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminOrManager])
def project_over_budget(request):
    data = [project_budget(project) for project in _visible_projects(request) if project.is_over_budget]
    return Response(ProjectBudgetSerializer(data, many=True).data)
