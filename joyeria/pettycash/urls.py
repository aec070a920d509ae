from django.urls import path
from . import views

urlpatterns = [
    path('caja-chica/entregas/', views.delivery_list_create, name='petty-cash-deliveries'),
    path('caja-chica/cambios/', views.exchange_list_create, name='petty-cash-exchanges'),
    path('caja-chica/resumen/', views.petty_cash_summary, name='petty-cash-summary'),
    path('caja-chica/saldo/', views.petty_cash_balance, name='petty-cash-balance'),
    path('caja-chica/export/', views.petty_cash_export, name='petty-cash-export'),
]
