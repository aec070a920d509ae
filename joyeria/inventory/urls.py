from django.urls import path
from .views import (
    stock_list, stock_low, movement_list_create,
    ensure_showcase, transfer_to_showcase, purchase_confirm,
)

urlpatterns = [
    path('inventory/stock/', stock_list, name='inventory-stock'),
    path('inventory/stock-bajo/', stock_low, name='inventory-stock-low'),
    path('inventory/movimientos/', movement_list_create, name='inventory-movements'),
    path('inventory/pos/ensure-vitrina/', ensure_showcase, name='inventory-ensure-showcase'),
    path('inventory/traslado-vitrina/', transfer_to_showcase, name='inventory-transfer-showcase'),
    path('inventory/compras/<int:pk>/confirmar/', purchase_confirm, name='inventory-purchase-confirm'),
]
