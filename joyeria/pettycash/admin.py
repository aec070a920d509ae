from django.contrib import admin
from .models import PettyCashDelivery, PettyCashExchange


@admin.register(PettyCashDelivery)
class PettyCashDeliveryAdmin(admin.ModelAdmin):
    list_display = ['id', 'date', 'branch', 'cashier', 'amount', 'authorized_by']
    list_filter = ['branch']


@admin.register(PettyCashExchange)
class PettyCashExchangeAdmin(admin.ModelAdmin):
    list_display = ['id', 'date', 'branch', 'cashier', 'amount', 'authorized_by']
    list_filter = ['branch']
