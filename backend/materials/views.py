import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from backend.core.exceptions import ResourceNotFound, SGPCException
from backend.core.permissions import IsAdminOrManagerForWrites
from backend.core.utils import create_audit_log, snapshot
from .models import Material, StockMovement
from .serializers import MaterialSerializer, StockMovementRequestSerializer, StockMovementSerializer, StockQuantitySerializer

logger = logging.getLogger('backend.materials')


def _get_material(pk):
    material = Material.objects.filter(pk=pk, is_active=True).first()
    if material is None:
        raise ResourceNotFound(f"Material not found with ID: {pk}")
    return material


def _quantity_param(request):
    raw = request.query_params.get('quantity')
    if raw is None:
        raise SGPCException('Query parameter "quantity" is required.')
    serializer = StockQuantitySerializer(data={'quantity': raw})
    serializer.is_valid(raise_exception=True)
    return serializer.validated_data['quantity']


def _record_movement(request, material, movement):
    create_audit_log(
        request, 'STOCK_MOVEMENT', 'Material', material.id,
        {
            'movement_type': movement.movement_type,
            'quantity': str(movement.quantity),
            'stock_before': str(movement.stock_before),
            'stock_after': str(movement.stock_after),
        },
        object_name=material.name
    )
    logger.info(
        f"Stock {movement.movement_type} of {movement.quantity} for material {material.id}: "
        f"{movement.stock_before} -> {movement.stock_after}"
    )
    if material.is_low_stock:
        logger.warning(f"Material '{material.name}' is below minimum stock ({material.current_stock} < {material.minimum_stock})")


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsAdminOrManagerForWrites])
def material_list_create(request):
    """List active materials or create one"""
    if request.method == 'GET':
        return Response(MaterialSerializer(Material.objects.active(), many=True).data)

    serializer = MaterialSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    material = serializer.save()
    create_audit_log(request, 'CREATE', 'Material', material.id, {'new': snapshot(material)}, object_name=material.name)
    logger.info(f"Material '{material.name}' created")
    return Response(MaterialSerializer(material).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsAdminOrManagerForWrites])
def material_detail(request, pk):
    """Retrieve, update or deactivate a material"""
    material = _get_material(pk)

    if request.method == 'GET':
        return Response(MaterialSerializer(material).data)

    if request.method == 'DELETE':
        material.is_active = False
        material.save(update_fields=['is_active', 'updated_at'])
        create_audit_log(request, 'DELETE', 'Material', material.id, {'is_active': False}, object_name=material.name)
        logger.info(f"Material {material.id} deactivated")
        return Response(status=status.HTTP_204_NO_CONTENT)

    old_values = snapshot(material)
    serializer = MaterialSerializer(material, data=request.data, partial=request.method == 'PATCH')
    serializer.is_valid(raise_exception=True)
    material = serializer.save()
    create_audit_log(request, 'UPDATE', 'Material', material.id, {'old': old_values, 'new': snapshot(material)}, object_name=material.name)
    return Response(MaterialSerializer(material).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def material_search(request):
    name = request.query_params.get('name', '').strip()
    if not name:
        raise SGPCException('Query parameter "name" is required.')
    return Response(MaterialSerializer(Material.objects.active().filter(name__icontains=name), many=True).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def material_by_supplier(request, supplier):
    materials = Material.objects.active().filter(supplier__icontains=supplier)
    return Response(MaterialSerializer(materials, many=True).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def material_low_stock(request):
    return Response(MaterialSerializer(Material.objects.low_stock(), many=True).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminOrManagerForWrites])
def material_stock_movement(request, pk):
    """Register a stock entry (ENTRADA/IN) or exit (SAIDA/OUT)"""
    material = _get_material(pk)
    serializer = StockMovementRequestSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    movement = material.move_stock(data['movement_type'], data['quantity'], request.user, data.get('observation'))
    _record_movement(request, material, movement)
    return Response(MaterialSerializer(material).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminOrManagerForWrites])
def material_stock_add(request, pk):
    material = _get_material(pk)
    movement = material.add_stock(_quantity_param(request), request.user)
    _record_movement(request, material, movement)
    return Response(MaterialSerializer(material).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminOrManagerForWrites])
def material_stock_remove(request, pk):
    material = _get_material(pk)
    movement = material.remove_stock(_quantity_param(request), request.user)
    _record_movement(request, material, movement)
    return Response(MaterialSerializer(material).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def material_movements(request, pk):
    """Movement history, newest first"""
    material = _get_material(pk)
    movements = StockMovement.objects.filter(material=material).select_related('material', 'user')
    return Response(StockMovementSerializer(movements, many=True).data)
