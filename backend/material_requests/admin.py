from django.contrib import admin
from .models import MaterialRequest, MaterialRequestItem


class MaterialRequestItemInline(admin.TabularInline):
    model = MaterialRequestItem
    extra = 0


@admin.register(MaterialRequest)
class MaterialRequestAdmin(admin.ModelAdmin):
    list_display = ['id', 'project', 'requester', 'request_date', 'needed_date', 'status', 'approved_by']
    list_filter = ['status', 'request_date']
    search_fields = ['project__name', 'requester__email']
    inlines = [MaterialRequestItemInline]
