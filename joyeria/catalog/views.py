import logging

from django.db.models import Count
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from joyeria.core.permissions import IsAdminOrCashier
from joyeria.core.utils import create_audit_log, error_response, ok_response
from joyeria.pricing.utils import calculate_sale_price

from .filters import ProductFilter
from .models import Category, Product
from .serializers import CategorySerializer, ProductSerializer

logger = logging.getLogger('joyeria.catalog')

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


def _page_params(request):
    try:
        page = max(int(request.query_params.get('page', 1)), 1)
    except (TypeError, ValueError):
        page = 1
    try:
        page_size = int(request.query_params.get('pageSize', DEFAULT_PAGE_SIZE))
    except (TypeError, ValueError):
        page_size = DEFAULT_PAGE_SIZE
    return page, min(max(page_size, 1), MAX_PAGE_SIZE)


def apply_default_sale_price(product):
    """Fill a missing sale price from the product's landed cost"""
    if product.sale_price is not None:
        return
    category_margin = product.category.recommended_margin if product.category_id else None
    result = calculate_sale_price(product.unit_cost, row_margin=product.margin, category_margin=category_margin)
    if result.sale_price > 0:
        product.sale_price = result.sale_price
        product.margin = result.margin


def _serializer_error(serializer):
    errors = serializer.errors
    for value in errors.values():
        return error_response(str(value[0]) if isinstance(value, list) else str(value), errors=errors)
    return error_response('Datos inválidos', errors=errors)


# Category views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsAdminOrCashier])
def category_list_create(request):
    """List categories or create a new one"""
    if request.method == 'GET':
        categories = Category.objects.annotate(product_count=Count('products'))
        return ok_response(CategorySerializer(categories, many=True).data)

    serializer = CategorySerializer(data=request.data)
    if not serializer.is_valid():
        return _serializer_error(serializer)
    category = serializer.save()
    create_audit_log(request=request, action='create', model_name='Category',
                     object_id=category.pk, object_name=category.name)
    return ok_response(CategorySerializer(category).data, status_code=status.HTTP_201_CREATED)


@api_view(['PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsAdminOrCashier])
def category_detail(request, pk):
    """Update or delete a category"""
    category = get_object_or_404(Category, pk=pk)

    if request.method == 'DELETE':
        in_use = category.products.count()
        if in_use:
            return error_response(f'No se puede eliminar: {in_use} producto(s) usan esta categoría')
        category.delete()
        create_audit_log(request=request, action='delete', model_name='Category',
                         object_id=pk, object_name=category.name)
        return ok_response()

    serializer = CategorySerializer(category, data=request.data, partial=request.method == 'PATCH')
    if not serializer.is_valid():
        return _serializer_error(serializer)
    serializer.save()
    return ok_response(serializer.data)


# Product views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsAdminOrCashier])
def product_list_create(request):
    """Paginated product search, or product creation"""
    if request.method == 'GET':
        queryset = Product.objects.select_related('category').order_by('-created_at')
        filterset = ProductFilter(request.query_params, queryset=queryset)
        if not filterset.is_valid():
            return error_response('Filtros inválidos', errors=filterset.errors)
        products = filterset.qs
        page, page_size = _page_params(request)
        total = products.count()
        offset = (page - 1) * page_size
        items = ProductSerializer(products[offset:offset + page_size], many=True).data
        return ok_response({'total': total, 'page': page, 'pageSize': page_size, 'items': items})

    serializer = ProductSerializer(data=request.data)
    if not serializer.is_valid():
        return _serializer_error(serializer)
    product = Product(**serializer.validated_data)
    apply_default_sale_price(product)
    product.save()
    logger.info(f"Product {product.sku} created by user {request.user.id}")
    create_audit_log(request=request, action='create', model_name='Product',
                     object_id=product.pk, object_name=product.name)
    return ok_response(ProductSerializer(product).data, status_code=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH'])
@permission_classes([IsAuthenticated, IsAdminOrCashier])
def product_detail(request, pk):
    """Retrieve or update a product"""
    product = get_object_or_404(Product.objects.select_related('category'), pk=pk)

    if request.method == 'GET':
        return ok_response(ProductSerializer(product).data)

    old_price = product.sale_price
    serializer = ProductSerializer(product, data=request.data, partial=request.method == 'PATCH')
    if not serializer.is_valid():
        return _serializer_error(serializer)
    product = serializer.save()
    if product.sale_price != old_price:
        create_audit_log(request=request, action='price_change', model_name='Product',
                         object_id=product.pk, object_name=product.name,
                         changes={'old': str(old_price), 'new': str(product.sale_price)})
    return ok_response(ProductSerializer(product).data)
