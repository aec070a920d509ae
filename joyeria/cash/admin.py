from django.contrib import admin
from .models import CashClosure


@admin.register(CashClosure)
class CashClosureAdmin(admin.ModelAdmin):
    list_display = ['id', 'branch', 'user', 'period_start', 'period_end', 'total_general', 'difference']
    list_filter = ['branch']
    readonly_fields = ['created_at']
