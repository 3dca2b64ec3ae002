from django.contrib import admin
from .models import Task


@admin.register(Task)
class TaskAdmin(admin.ModelAdmin):
    list_display = ['title', 'project', 'status', 'priority', 'progress_percentage', 'assigned_user', 'end_date_planned', 'total_cost']
    list_filter = ['status', 'priority', 'project']
    search_fields = ['title', 'project__name', 'assigned_user__email']
    readonly_fields = ['total_cost', 'created_at', 'updated_at']
