"""
URL configuration for the joyeria project.

Every REST module is mounted under ``/api/``; the Django admin lives at
``/django-admin/`` so ``/api/admin/`` stays free for user management.
"""
from django.contrib import admin
from django.http import JsonResponse
from django.urls import path, include
from django.conf import settings

admin.site.site_header = "Joyeria Admin Panel"
admin.site.site_title = "Joyeria Admin Portal"


def health(request):
    return JsonResponse({
        'ok': True,
        'message': 'Backend joyeria OK',
        'env': 'dev' if settings.DEBUG else 'prod',
    })


urlpatterns = [
    path('django-admin/', admin.site.urls),
    path('api/health/', health, name='health'),
    path('api/', include('joyeria.core.urls')),
    path('api/', include('joyeria.catalog.urls')),
    path('api/', include('joyeria.inventory.urls')),
    path('api/', include('joyeria.sales.urls')),
    path('api/', include('joyeria.purchasing.urls')),
    path('api/', include('joyeria.cash.urls')),
    path('api/', include('joyeria.pettycash.urls')),
    path('api/', include('joyeria.reports.urls')),
]
