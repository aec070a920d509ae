from django.urls import path
from .views import purchase_import, purchase_labels_pdf, purchase_list, purchase_recent

urlpatterns = [
    path('purchases/', purchase_list, name='purchase-list'),
    path('purchases/recent/', purchase_recent, name='purchase-recent'),
    path('purchases/import/', purchase_import, name='purchase-import'),
    path('purchases/<int:pk>/labels/pdf/', purchase_labels_pdf, name='purchase-labels-pdf'),
]
