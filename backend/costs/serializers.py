from decimal import Decimal

from rest_framework import serializers

from backend.core.exceptions import ResourceAlreadyExists
from .models import Service, TaskService


class ServiceSerializer(serializers.ModelSerializer):
    name = serializers.CharField(max_length=255)
    total_unit_cost = serializers.DecimalField(max_digits=15, decimal_places=2, read_only=True)
    unit_labor_cost = serializers.DecimalField(max_digits=15, decimal_places=2, min_value=Decimal('0'), required=False)
    unit_material_cost = serializers.DecimalField(max_digits=15, decimal_places=2, min_value=Decimal('0'), required=False)
    unit_equipment_cost = serializers.DecimalField(max_digits=15, decimal_places=2, min_value=Decimal('0'), required=False)

    class Meta:
        model = Service
        fields = ['id', 'name', 'description', 'unit_of_measurement', 'unit_labor_cost', 'unit_material_cost',
                  'unit_equipment_cost', 'total_unit_cost', 'is_active', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']

    def validate_name(self, value):
        value = value.strip()
        duplicate = Service.objects.filter(name__iexact=value)
        if self.instance is not None:
            duplicate = duplicate.exclude(pk=self.instance.pk)
        if duplicate.exists():
            raise ResourceAlreadyExists(f"A service named '{value}' already exists.")
        return value


class TaskServiceSerializer(serializers.ModelSerializer):
    service_id = serializers.IntegerField(source='service.id', read_only=True)
    service_name = serializers.CharField(source='service.name', read_only=True)
    unit_of_measurement = serializers.CharField(source='service.unit_of_measurement', read_only=True)
    task_id = serializers.IntegerField(source='task.id', read_only=True)
    effective_labor_unit_cost = serializers.DecimalField(max_digits=15, decimal_places=2, read_only=True)
    total_labor_cost = serializers.DecimalField(max_digits=15, decimal_places=2, read_only=True)
    total_material_cost = serializers.DecimalField(max_digits=15, decimal_places=2, read_only=True)
    total_equipment_cost = serializers.DecimalField(max_digits=15, decimal_places=2, read_only=True)
    total_cost = serializers.DecimalField(max_digits=15, decimal_places=2, read_only=True)

    class Meta:
        model = TaskService
        fields = ['id', 'task_id', 'service_id', 'service_name', 'unit_of_measurement', 'quantity',
                  'unit_cost_override', 'effective_labor_unit_cost', 'total_labor_cost', 'total_material_cost',
                  'total_equipment_cost', 'total_cost', 'notes', 'created_at']


class TaskServiceCreateSerializer(serializers.Serializer):
    service_id = serializers.IntegerField()
    quantity = serializers.DecimalField(max_digits=12, decimal_places=3, min_value=Decimal('0.001'))
    unit_cost_override = serializers.DecimalField(max_digits=15, decimal_places=2, min_value=Decimal('0'),
                                                  required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class TaskProgressSerializer(serializers.Serializer):
    progress_percentage = serializers.IntegerField(min_value=0, max_value=100)
    actual_hours = serializers.IntegerField(min_value=0, required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class ProjectBudgetSerializer(serializers.Serializer):
    project_id = serializers.IntegerField()
    project_name = serializers.CharField()
    total_budget = serializers.DecimalField(max_digits=15, decimal_places=2)
    realized_cost = serializers.DecimalField(max_digits=15, decimal_places=2)
    budget_variance = serializers.DecimalField(max_digits=15, decimal_places=2)
    budget_usage_percentage = serializers.DecimalField(max_digits=9, decimal_places=2)
    progress_percentage = serializers.DecimalField(max_digits=5, decimal_places=2)
    is_over_budget = serializers.BooleanField()
    total_labor_cost = serializers.DecimalField(max_digits=15, decimal_places=2)
    total_material_cost = serializers.DecimalField(max_digits=15, decimal_places=2)
    total_equipment_cost = serializers.DecimalField(max_digits=15, decimal_places=2)
    total_tasks = serializers.IntegerField()
    completed_tasks = serializers.IntegerField()
    pending_tasks = serializers.IntegerField()
