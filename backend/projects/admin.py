from django.contrib import admin
from .models import Project


@admin.register(Project)
class ProjectAdmin(admin.ModelAdmin):
    list_display = ['name', 'client', 'status', 'total_budget', 'realized_cost', 'progress_percentage', 'end_date_planned', 'created_by']
    list_filter = ['status', 'created_at']
    search_fields = ['name', 'client']
    filter_horizontal = ['team_members']
    readonly_fields = ['realized_cost', 'progress_percentage', 'created_at', 'updated_at']
