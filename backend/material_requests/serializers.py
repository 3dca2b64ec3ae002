from decimal import Decimal

from rest_framework import serializers

from .models import MaterialRequest, MaterialRequestItem


class MaterialRequestItemSerializer(serializers.ModelSerializer):
    material_id = serializers.IntegerField(source='material.id', read_only=True)
    material_name = serializers.CharField(source='material.name', read_only=True)
    unit_of_measure = serializers.CharField(source='material.unit_of_measure', read_only=True)
    total_price = serializers.DecimalField(max_digits=15, decimal_places=2, read_only=True)

    class Meta:
        model = MaterialRequestItem
        fields = ['id', 'material_id', 'material_name', 'unit_of_measure', 'quantity', 'unit_price',
                  'total_price', 'observations']


class MaterialRequestSerializer(serializers.ModelSerializer):
    project_id = serializers.IntegerField(source='project.id', read_only=True)
    project_name = serializers.CharField(source='project.name', read_only=True)
    requester_id = serializers.IntegerField(source='requester.id', read_only=True)
    requester_name = serializers.CharField(source='requester.full_name', read_only=True)
    approved_by_name = serializers.CharField(source='approved_by.full_name', read_only=True, default=None)
    status_description = serializers.CharField(source='get_status_display', read_only=True)
    items = MaterialRequestItemSerializer(many=True, read_only=True)
    item_count = serializers.IntegerField(read_only=True)
    total_amount = serializers.DecimalField(max_digits=15, decimal_places=2, read_only=True)

    class Meta:
        model = MaterialRequest
        fields = ['id', 'project_id', 'project_name', 'requester_id', 'requester_name', 'request_date',
                  'needed_date', 'status', 'status_description', 'approved_by_name', 'approved_at',
                  'rejection_reason', 'observations', 'items', 'item_count', 'total_amount',
                  'created_at', 'updated_at']


class MaterialRequestSummarySerializer(serializers.ModelSerializer):
    project_name = serializers.CharField(source='project.name', read_only=True)
    requester_name = serializers.CharField(source='requester.full_name', read_only=True)
    item_count = serializers.IntegerField(read_only=True)
    total_amount = serializers.DecimalField(max_digits=15, decimal_places=2, read_only=True)

    class Meta:
        model = MaterialRequest
        fields = ['id', 'project_name', 'requester_name', 'request_date', 'needed_date', 'status',
                  'item_count', 'total_amount']


class MaterialRequestItemInputSerializer(serializers.Serializer):
    material_id = serializers.IntegerField()
    quantity = serializers.DecimalField(max_digits=12, decimal_places=3, min_value=Decimal('0.001'))
    observations = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class MaterialRequestCreateSerializer(serializers.Serializer):
    project_id = serializers.IntegerField()
    needed_date = serializers.DateField(required=False, allow_null=True)
    observations = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    items = MaterialRequestItemInputSerializer(many=True)

    def validate_items(self, value):
        if not value:
            raise serializers.ValidationError('A material request needs at least one item.')
        return value


class RejectionSerializer(serializers.Serializer):
    rejection_reason = serializers.CharField()
