import logging
from decimal import Decimal

from django.db import transaction
from django.db.models import DecimalField, Q, Sum, Value
from django.db.models.functions import Coalesce
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from joyeria.catalog.models import Product
from joyeria.core.permissions import IsAdminOrCashier, IsAdminRole
from joyeria.core.utils import (
    create_audit_log, error_response, get_request_user, id_param, is_id, ok_response, resolve_branch_for_user,
    to_decimal,
)
from joyeria.locations.models import Branch, Location

from .models import Stock, StockMovement
from .serializers import StockMovementSerializer, StockSerializer
from .services import apply_movement, ensure_showcase_stock, low_stock_rows

logger = logging.getLogger('joyeria.inventory')

PUBLIC_VIEWS = ('publico', 'público', 'public', 'clientes', 'cliente', 'lista')
QUANTITY_FIELD = DecimalField(max_digits=12, decimal_places=3)
NO_BRANCH_MESSAGE = 'No se pudo resolver sucursal (asigna sucursal al usuario o crea sucursal SP).'


def _branch_from_request(request, branch_id=None):
    """``(branch, error_message)``; an explicit ``sucursal_id`` wins over the user's branch"""
    if branch_id not in (None, ''):
        if not is_id(branch_id):
            return None, 'sucursal_id inválido'
        branch = Branch.objects.filter(pk=branch_id).first()
    else:
        branch = resolve_branch_for_user(get_request_user(request))
    if branch is None:
        return None, NO_BRANCH_MESSAGE
    return branch, None


def _public_stock(product_id=None):
    products = Product.objects.filter(is_active=True, is_archived=False)
    if product_id:
        products = products.filter(pk=product_id)
    products = (
        products.select_related('category')
        .annotate(
            stock_total=Coalesce(Sum('stock_entries__quantity'), Value(Decimal('0')), output_field=QUANTITY_FIELD),
            stock_vitrina=Coalesce(
                Sum('stock_entries__quantity', filter=Q(stock_entries__location__is_showcase=True)),
                Value(Decimal('0')), output_field=QUANTITY_FIELD,
            ),
        )
        .order_by('name')
    )
    return [
        {
            'producto_id': p.pk,
            'sku': p.sku,
            'nombre': p.name,
            'codigo_barras': p.barcode,
            'precio_venta': float(p.sale_price) if p.sale_price is not None else None,
            'precio_mayorista': float(p.wholesale_price) if p.wholesale_price is not None else None,
            'categoria': p.category.name if p.category_id else None,
            'stock_total': float(p.stock_total),
            'stock_vitrina': float(p.stock_vitrina),
            'disponible': p.stock_total > 0,
        }
        for p in products
    ]


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def stock_list(request):
    """
    Stock listing.

    ``vista=publico`` returns the customer price list (active products with
    total and VITRINA stock); any other value returns the internal stock rows.
    """
    vista = str(request.query_params.get('vista') or request.query_params.get('tipo') or '').strip().lower()
    product_id = request.query_params.get('productoId')
    if product_id and not str(product_id).isdigit():
        product_id = None

    if vista in PUBLIC_VIEWS:
        rows = _public_stock(product_id)
        return ok_response({'mode': 'PUBLICO', 'items': rows})

    stocks = Stock.objects.select_related('product', 'product__category', 'location', 'location__branch')
    if product_id:
        stocks = stocks.filter(product_id=product_id)
    branch_id, ok = id_param(request.query_params, 'sucursalId')
    if not ok:
        return error_response('sucursalId inválido')
    if branch_id:
        stocks = stocks.filter(location__branch_id=branch_id)
    stocks = stocks.order_by('product__name', 'location__name')
    return ok_response({'mode': 'INTERNO', 'items': StockSerializer(stocks, many=True).data})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def stock_low(request):
    """Products at or below their minimum stock"""
    branch_id, ok = id_param(request.query_params, 'sucursalId')
    if not ok:
        return error_response('sucursalId inválido')
    return ok_response({'items': low_stock_rows(branch_id)})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def movement_list_create(request):
    """List recent movements or register a manual one"""
    if request.method == 'GET':
        movements = StockMovement.objects.all()
        product_id, ok = id_param(request.query_params, 'productoId')
        if not ok:
            return error_response('productoId inválido')
        if product_id:
            movements = movements.filter(product_id=product_id)
        return ok_response({'items': StockMovementSerializer(movements[:200], many=True).data})

    data = request.data
    movement_type = str(data.get('tipo') or '').strip().upper()
    if not movement_type or not data.get('producto_id') or to_decimal(data.get('cantidad')) is None:
        return error_response('Datos incompletos')
    if movement_type not in dict(StockMovement.MOVEMENT_TYPE_CHOICES):
        return error_response('Tipo de movimiento inválido')
    for field in ('producto_id', 'ubicacion_origen_id', 'ubicacion_destino_id'):
        if data.get(field) and not is_id(data[field]):
            return error_response(f'{field} inválido')

    product = get_object_or_404(Product, pk=data['producto_id'])
    source = target = None
    if data.get('ubicacion_origen_id'):
        source = get_object_or_404(Location, pk=data['ubicacion_origen_id'])
    if data.get('ubicacion_destino_id'):
        target = get_object_or_404(Location, pk=data['ubicacion_destino_id'])

    user = get_request_user(request)
    with transaction.atomic():
        movement = apply_movement(
            product, movement_type, data.get('cantidad'),
            source=source, target=target,
            user_id=user.pk if user else None,
            reason=data.get('motivo') or '',
            unit_cost=to_decimal(data.get('costo_unitario')),
        )
    create_audit_log(request=request, action='stock_movement', model_name='StockMovement',
                     object_id=movement.pk, object_name=product.sku,
                     changes={'tipo': movement_type, 'cantidad': str(movement.quantity)})
    return ok_response(StockMovementSerializer(movement).data, status_code=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminOrCashier])
def ensure_showcase(request):
    """Top up VITRINA from BODEGA so ``items`` can be sold"""
    items = request.data.get('items')
    if not isinstance(items, list) or not items:
        return error_response('items requerido')

    branch, message = _branch_from_request(request, request.data.get('sucursal_id'))
    if branch is None:
        return error_response(message)

    user = get_request_user(request)
    with transaction.atomic():
        result = ensure_showcase_stock(branch, items, user_id=user.pk if user else None,
                                       reason=request.data.get('motivo'))
    return ok_response(result)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminOrCashier])
def transfer_to_showcase(request):
    """Single-product BODEGA -> VITRINA transfer"""
    product_id = request.data.get('producto_id')
    quantity = to_decimal(request.data.get('cantidad'))
    if not product_id or quantity is None:
        return error_response('producto_id y cantidad son obligatorios')
    if not is_id(product_id):
        return error_response('producto_id inválido')
    quantity = max(Decimal('1'), quantity)

    branch, message = _branch_from_request(request, request.data.get('sucursal_id'))
    if branch is None:
        return error_response(message)

    user = get_request_user(request)
    with transaction.atomic():
        result = ensure_showcase_stock(
            branch, [{'producto_id': product_id, 'cantidad': quantity}],
            user_id=user.pk if user else None,
            reason=request.data.get('motivo') or 'TRASPASO A VITRINA (manual)',
        )
    return ok_response(result)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def purchase_confirm(request, pk):
    """Confirm a draft purchase into BODEGA"""
    from joyeria.purchasing.models import Purchase
    from joyeria.purchasing.services import confirm_purchase

    purchase = get_object_or_404(Purchase, pk=pk)
    if purchase.status != Purchase.DRAFT:
        return error_response('Solo se pueden confirmar compras en estado BORRADOR')

    user = get_request_user(request)
    with transaction.atomic():
        purchase = confirm_purchase(purchase, user_id=user.pk if user else None)
    create_audit_log(request=request, action='purchase_confirm', model_name='Purchase', object_id=purchase.pk)
    return ok_response({'id': purchase.pk, 'estado': purchase.status}, message='Compra confirmada')
