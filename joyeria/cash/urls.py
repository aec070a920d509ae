from django.urls import path
from .views import (
    cash_summary, cash_close, cash_closures,
    register_today, register_open, register_close, register_history,
)

urlpatterns = [
    # Cash summaries and closures
    path('cash/summary/', cash_summary, name='cash-summary'),
    path('cash/close/', cash_close, name='cash-close'),
    path('cash/closures/', cash_closures, name='cash-closures'),

    # POS cash register
    path('cash-register/today/', register_today, name='cash-register-today'),
    path('cash-register/open/', register_open, name='cash-register-open'),
    path('cash-register/close/', register_close, name='cash-register-close'),
    path('cash-register/history/', register_history, name='cash-register-history'),
]
