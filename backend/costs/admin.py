from django.contrib import admin
from .models import Service, TaskService


@admin.register(Service)
class ServiceAdmin(admin.ModelAdmin):
    list_display = ['name', 'unit_of_measurement', 'unit_labor_cost', 'unit_material_cost', 'unit_equipment_cost', 'is_active']
    list_filter = ['is_active']
    search_fields = ['name']


@admin.register(TaskService)
class TaskServiceAdmin(admin.ModelAdmin):
    list_display = ['task', 'service', 'quantity', 'unit_cost_override', 'created_at']
    search_fields = ['task__title', 'service__name']
    raw_id_fields = ['task']
