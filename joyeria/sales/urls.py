from django.urls import path
from . import views

urlpatterns = [
    path('sales/', views.create_sale, name='sale-create'),
    path('sales/pos/', views.create_pos_sale, name='sale-pos'),
    path('sales/summary/today/', views.summary_today, name='sales-summary-today'),
    path('sales/summary/stream/', views.summary_stream, name='sales-summary-stream'),
    path('sales/manual-product/', views.manual_product_create, name='manual-product-create'),
    path('sales/manual-product/<int:pk>/', views.manual_product_delete, name='manual-product-delete'),
    path('sales/bulk-products/', views.bulk_products, name='bulk-products'),
    path('sales/import-excel/', views.import_excel, name='sales-import-excel'),
]
