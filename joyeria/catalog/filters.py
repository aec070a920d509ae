import django_filters
from django.db.models import Q

from .models import Product

TRUE_VALUES = ('1', 'true', 'yes', 'si')


class ProductFilter(django_filters.FilterSet):
    """
    Product list filters.

    By default only active, non-archived products are listed;
    ``includeInactivos=1`` or ``soloActivos=false`` also lists inactive ones.
    Archived products appear only with ``archivado=true``.
    """
    q = django_filters.CharFilter(method='filter_search')
    categoria = django_filters.NumberFilter(field_name='category_id')
    activo = django_filters.BooleanFilter(field_name='is_active')
    archivado = django_filters.BooleanFilter(field_name='is_archived')

    class Meta:
        model = Product
        fields = ['q', 'categoria', 'activo', 'archivado']

    def filter_search(self, queryset, name, value):
        value = (value or '').strip()
        if not value:
            return queryset
        return queryset.filter(
            Q(name__icontains=value) | Q(sku__icontains=value) | Q(barcode__icontains=value)
        )

    @property
    def qs(self):
        queryset = super().qs
        params = self.data
        if params.get('archivado') in (None, ''):
            queryset = queryset.filter(is_archived=False)
        include_inactive = (
            str(params.get('includeInactivos', '')).lower() in TRUE_VALUES
            or str(params.get('soloActivos', 'true')).lower() not in TRUE_VALUES
        )
        if params.get('activo') in (None, '') and not include_inactive:
            queryset = queryset.filter(is_active=True)
        return queryset
