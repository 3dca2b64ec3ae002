from django.contrib import admin
from .models import Material, StockMovement


@admin.register(Material)
class MaterialAdmin(admin.ModelAdmin):
    list_display = ['name', 'unit_of_measure', 'unit_price', 'supplier', 'current_stock', 'minimum_stock', 'is_active']
    list_filter = ['is_active', 'supplier']
    search_fields = ['name', 'supplier']


@admin.register(StockMovement)
class StockMovementAdmin(admin.ModelAdmin):
    list_display = ['material', 'movement_type', 'quantity', 'stock_before', 'stock_after', 'user', 'created_at']
    list_filter = ['movement_type', 'created_at']
    search_fields = ['material__name', 'observation']
    readonly_fields = ['material', 'movement_type', 'quantity', 'stock_before', 'stock_after', 'user', 'created_at']
