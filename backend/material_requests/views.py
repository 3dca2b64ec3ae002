import logging
from collections import defaultdict

from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from backend.core import notifications
from backend.core.exceptions import BusinessRuleViolation, InsufficientStock, ResourceNotFound
from backend.core.models import ROLE_ADMIN, ROLE_MANAGER
from backend.core.permissions import IsAdminOrManager, is_admin_or_manager
from backend.core.utils import create_audit_log
from backend.materials.models import Material
from backend.projects.models import Project
from .models import MaterialRequest, MaterialRequestItem
from .serializers import (
    MaterialRequestCreateSerializer, MaterialRequestSerializer,
    MaterialRequestSummarySerializer, RejectionSerializer,
)

logger = logging.getLogger('backend.material_requests')

User = get_user_model()


def _requests():
    return MaterialRequest.objects.select_related('project', 'requester', 'approved_by').prefetch_related('items__material')


def _get_request(pk):
    material_request = _requests().filter(pk=pk).first()
    if material_request is None:
        raise ResourceNotFound(f"Material request not found with ID: {pk}")
    return material_request


def _lock_request(pk):
    """Row-lock the request inside the caller's transaction; its status is read after the lock"""
    material_request = MaterialRequest.objects.select_for_update().filter(pk=pk).first()
    if material_request is None:
        raise ResourceNotFound(f"Material request not found with ID: {pk}")
    return material_request


def _approvers():
    return User.objects.filter(is_active=True, groups__name__in=[ROLE_ADMIN, ROLE_MANAGER]).distinct()


def _require_pending(material_request):
    if not material_request.is_pending:
        raise BusinessRuleViolation(
            f"Only pending requests can be changed. Current status: {material_request.status}"
        )


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def material_request_list_create(request):
    """List all requests (admin/manager) or submit a new one"""
    if request.method == 'GET':
        if not is_admin_or_manager(request.user):
            raise PermissionDenied('Only administrators and managers can list all material requests.')
        return Response(MaterialRequestSummarySerializer(_requests(), many=True).data)

    serializer = MaterialRequestCreateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    project = Project.objects.filter(pk=data['project_id']).first()
    if project is None:
        raise ResourceNotFound(f"Project not found with ID: {data['project_id']}")

    material_ids = {item['material_id'] for item in data['items']}
    materials = Material.objects.active().in_bulk(material_ids)
    missing = sorted(material_ids - set(materials))
    if missing:
        raise ResourceNotFound(f"Material not found with ID: {missing[0]}")

    with transaction.atomic():
        material_request = MaterialRequest.objects.create(
            project=project,
            requester=request.user,
            needed_date=data.get('needed_date'),
            observations=data.get('observations'),
        )
        for item in data['items']:
            material = materials[item['material_id']]
            MaterialRequestItem.objects.create(
                material_request=material_request,
                material=material,
                quantity=item['quantity'],
                unit_price=material.unit_price,
                observations=item.get('observations'),
            )

    material_request = _get_request(material_request.pk)
    create_audit_log(
        request, 'CREATE', 'MaterialRequest', material_request.id,
        {'project': project.id, 'items': material_request.item_count, 'total_amount': str(material_request.total_amount)},
        object_name=f"Request #{material_request.id}"
    )
    logger.info(f"Material request {material_request.id} created for project '{project.name}' by {request.user.email}")
    notifications.notify_new_material_request(material_request, list(_approvers()))
    return Response(MaterialRequestSerializer(material_request).data, status=status.HTTP_201_CREATED)


def _list_by_status(status_value):
    return Response(MaterialRequestSummarySerializer(_requests().filter(status=status_value), many=True).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminOrManager])
def material_request_pending(request):
    return _list_by_status(MaterialRequest.STATUS_PENDENTE)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminOrManager])
def material_request_approved(request):
    return _list_by_status(MaterialRequest.STATUS_APROVADA)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminOrManager])
def material_request_rejected(request):
    return _list_by_status(MaterialRequest.STATUS_REJEITADA)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def material_request_by_project(request, project_id):
    """Requests of a project (admin/manager or team member)"""
    project = Project.objects.filter(pk=project_id).first()
    if project is None:
        raise ResourceNotFound(f"Project not found with ID: {project_id}")
    if not is_admin_or_manager(request.user) and not project.is_team_member(request.user):
        raise PermissionDenied('Only project team members can list its material requests.')
    return Response(MaterialRequestSummarySerializer(_requests().filter(project=project), many=True).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def material_request_detail(request, pk):
    material_request = _get_request(pk)
    if not is_admin_or_manager(request.user) and material_request.requester_id != request.user.pk:
        raise PermissionDenied('You can only view your own material requests.')
    return Response(MaterialRequestSerializer(material_request).data)


@api_view(['PUT'])
@permission_classes([IsAuthenticated, IsAdminOrManager])
def material_request_approve(request, pk):
    """Approve a pending request, taking every item out of stock or none at all"""
    with transaction.atomic():
        material_request = _lock_request(pk)
        _require_pending(material_request)
        items = list(material_request.items.all())

        # Several items may share a material, so check the summed quantity
        requested = defaultdict(lambda: 0)
        for item in items:
            requested[item.material_id] += item.quantity
        locked = Material.objects.select_for_update().in_bulk(list(requested))
        for material_id, quantity in requested.items():
            material = locked[material_id]
            if not material.has_stock(quantity):
                raise InsufficientStock(
                    f"Insufficient stock for material '{material.name}'. "
                    f"Available: {material.current_stock}, requested: {quantity}"
                )

        for item in items:
            locked[item.material_id].remove_stock(
                item.quantity, request.user, f"Material request #{material_request.id} approved"
            )

        material_request.status = MaterialRequest.STATUS_APROVADA
        material_request.approved_by = request.user
        material_request.approved_at = timezone.now()
        material_request.save(update_fields=['status', 'approved_by', 'approved_at', 'updated_at'])

    create_audit_log(
        request, 'APPROVE', 'MaterialRequest', material_request.id,
        {'old': {'status': MaterialRequest.STATUS_PENDENTE}, 'new': {'status': material_request.status}},
        object_name=f"Request #{material_request.id}"
    )
    logger.info(f"Material request {material_request.id} approved by {request.user.email}")
    notifications.notify_material_request_status_changed(material_request)
    return Response(MaterialRequestSerializer(_get_request(material_request.pk)).data)


@api_view(['PUT'])
@permission_classes([IsAuthenticated, IsAdminOrManager])
def material_request_reject(request, pk):
    serializer = RejectionSerializer(data=request.data)
    with transaction.atomic():
        material_request = _lock_request(pk)
        _require_pending(material_request)
        serializer.is_valid(raise_exception=True)

        material_request.status = MaterialRequest.STATUS_REJEITADA
        material_request.approved_by = request.user
        material_request.approved_at = timezone.now()
        material_request.rejection_reason = serializer.validated_data['rejection_reason']
        material_request.save(update_fields=['status', 'approved_by', 'approved_at', 'rejection_reason', 'updated_at'])

    create_audit_log(
        request, 'REJECT', 'MaterialRequest', material_request.id,
        {'rejection_reason': material_request.rejection_reason},
        object_name=f"Request #{material_request.id}"
    )
    logger.info(f"Material request {material_request.id} rejected by {request.user.email}")
    notifications.notify_material_request_status_changed(material_request)
    return Response(MaterialRequestSerializer(_get_request(material_request.pk)).data)
