from django.contrib import admin
from .models import Sale, SaleItem, SalePayment


class SaleItemInline(admin.TabularInline):
    model = SaleItem
    extra = 0


class SalePaymentInline(admin.TabularInline):
    model = SalePayment
    extra = 0


@admin.register(Sale)
class SaleAdmin(admin.ModelAdmin):
    list_display = ['id', 'branch', 'user', 'status', 'total', 'created_at']
    list_filter = ['status', 'branch']
    date_hierarchy = 'created_at'
    inlines = [SaleItemInline, SalePaymentInline]
