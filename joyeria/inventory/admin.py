from django.contrib import admin
from .models import Stock, StockMovement


@admin.register(Stock)
class StockAdmin(admin.ModelAdmin):
    list_display = ['product', 'location', 'quantity', 'updated_at']
    list_filter = ['location__branch']
    search_fields = ['product__sku', 'product__name']


@admin.register(StockMovement)
class StockMovementAdmin(admin.ModelAdmin):
    list_display = ['movement_type', 'product', 'source_location', 'target_location', 'quantity', 'created_at']
    list_filter = ['movement_type']
    readonly_fields = ['created_at']
