from decimal import Decimal

from rest_framework import serializers

from backend.core.exceptions import ResourceAlreadyExists
from .models import Material, StockMovement


class MaterialSerializer(serializers.ModelSerializer):
    name = serializers.CharField(max_length=255)
    unit_price = serializers.DecimalField(max_digits=15, decimal_places=2, min_value=Decimal('0.01'))
    current_stock = serializers.DecimalField(max_digits=12, decimal_places=3, min_value=Decimal('0'), required=False)
    minimum_stock = serializers.DecimalField(max_digits=12, decimal_places=3, min_value=Decimal('0'), required=False)
    is_low_stock = serializers.BooleanField(read_only=True)

    class Meta:
        model = Material
        fields = ['id', 'name', 'description', 'unit_of_measure', 'unit_price', 'supplier', 'current_stock',
                  'minimum_stock', 'is_low_stock', 'is_active', 'created_at', 'updated_at']
        read_only_fields = ['is_active', 'created_at', 'updated_at']

    def validate_name(self, value):
        value = value.strip()
        duplicate = Material.objects.filter(name__iexact=value)
        if self.instance is not None:
            duplicate = duplicate.exclude(pk=self.instance.pk)
        if duplicate.exists():
            raise ResourceAlreadyExists(f"A material named '{value}' already exists.")
        return value


class StockMovementSerializer(serializers.ModelSerializer):
    material_id = serializers.IntegerField(source='material.id', read_only=True)
    material_name = serializers.CharField(source='material.name', read_only=True)
    user_name = serializers.CharField(source='user.full_name', read_only=True, default=None)

    class Meta:
        model = StockMovement
        fields = ['id', 'material_id', 'material_name', 'movement_type', 'quantity', 'stock_before',
                  'stock_after', 'observation', 'user_name', 'created_at']


class StockMovementRequestSerializer(serializers.Serializer):
    """Quantity sign is checked by the stock operation itself"""
    quantity = serializers.DecimalField(max_digits=12, decimal_places=3)
    movement_type = serializers.CharField()
    observation = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class StockQuantitySerializer(serializers.Serializer):
    """`?quantity=` of the add/remove shortcuts; NaN, Infinity and oversized values are invalid"""
    quantity = serializers.DecimalField(max_digits=12, decimal_places=3)
