from django.contrib import admin
from .models import Supplier, Purchase, PurchaseItem


@admin.register(Supplier)
class SupplierAdmin(admin.ModelAdmin):
    list_display = ['name', 'tax_id', 'is_active']
    search_fields = ['name', 'tax_id']


class PurchaseItemInline(admin.TabularInline):
    model = PurchaseItem
    extra = 0


@admin.register(Purchase)
class PurchaseAdmin(admin.ModelAdmin):
    list_display = ['id', 'branch', 'supplier', 'status', 'total', 'created_at']
    list_filter = ['status', 'branch']
    inlines = [PurchaseItemInline]
