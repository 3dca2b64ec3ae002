from decimal import Decimal

from django.db import models
from django.db.models import Q

from backend.tasks.models import Task


class Service(models.Model):
    """Priced unit of work from the cost catalogue"""
    name = models.CharField(max_length=255, unique=True)
    description = models.TextField(blank=True, null=True)
    unit_of_measurement = models.CharField(max_length=50)
    unit_labor_cost = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal('0.00'))
    unit_material_cost = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal('0.00'))
    unit_equipment_cost = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal('0.00'))
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'services'
        ordering = ['name']
        constraints = [
            models.CheckConstraint(
                condition=Q(unit_labor_cost__gte=0) & Q(unit_material_cost__gte=0) & Q(unit_equipment_cost__gte=0),
                name='services_unit_costs_non_negative',
            ),
        ]

    def __str__(self):
        return self.name

    @property
    def total_unit_cost(self):
        return self.unit_labor_cost + self.unit_material_cost + self.unit_equipment_cost


class TaskService(models.Model):
    """Quantity of a service consumed by a task"""
    task = models.ForeignKey(Task, on_delete=models.CASCADE, related_name='task_services')
    service = models.ForeignKey(Service, on_delete=models.PROTECT, related_name='task_services')
    quantity = models.DecimalField(max_digits=12, decimal_places=3)
    unit_cost_override = models.DecimalField(max_digits=15, decimal_places=2, blank=True, null=True)
    notes = models.TextField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'task_services'
        constraints = [
            models.UniqueConstraint(fields=['task', 'service'], name='task_services_unique_pair'),
            models.CheckConstraint(condition=Q(quantity__gt=0), name='task_services_quantity_positive'),
        ]

    def __str__(self):
        return f"{self.service.name} x {self.quantity}"

    @property
    def effective_labor_unit_cost(self):
        """The override replaces only the labor unit cost"""
        if self.unit_cost_override is not None:
            return self.unit_cost_override
        return self.service.unit_labor_cost

    @property
    def total_labor_cost(self):
        return (self.effective_labor_unit_cost * self.quantity).quantize(Decimal('0.01'))

    @property
    def total_material_cost(self):
        return (self.service.unit_material_cost * self.quantity).quantize(Decimal('0.01'))

    @property
    def total_equipment_cost(self):
        return (self.service.unit_equipment_cost * self.quantity).quantize(Decimal('0.01'))

    @property
    def total_cost(self):
        return self.total_labor_cost + self.total_material_cost + self.total_equipment_cost


def recalculate_task_costs(task):
    """Task labor/material/equipment costs become the sums over its services"""
    labor = material = equipment = Decimal('0.00')
    for task_service in task.task_services.select_related('service'):
        labor += task_service.total_labor_cost
        material += task_service.total_material_cost
        equipment += task_service.total_equipment_cost
    task.labor_cost = labor
    task.material_cost = material
    task.equipment_cost = equipment
    task.save(update_fields=['labor_cost', 'material_cost', 'equipment_cost', 'updated_at'])
    return task
