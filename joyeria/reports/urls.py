from django.urls import path
from . import views

urlpatterns = [
    # Excel exports
    path('reportes/ventas/export/', views.sales_export, name='sales-export'),
    path('reportes/inventario-interno/export/', views.internal_inventory_export, name='internal-inventory-export'),

    # JSON reports
    path('reports/ventas-metodo/', views.report_sales_by_method, name='report-sales-by-method'),
    path('reports/top-productos/', views.report_top_products, name='report-top-products'),

    # Dashboard
    path('dashboard/summary/', views.dashboard_summary, name='dashboard-summary'),
    path('dashboard/top-products/', views.dashboard_top_products, name='dashboard-top-products'),
    path('dashboard/low-stock/', views.dashboard_low_stock, name='dashboard-low-stock'),
    path('dashboard/last-sales/', views.dashboard_last_sales, name='dashboard-last-sales'),
]
