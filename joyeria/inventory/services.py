"""
Stock mutations. Every function here expects to run inside
``transaction.atomic()``; stock rows are locked before they are read.
"""
import logging
from collections import OrderedDict
from decimal import Decimal

from django.db.models import DecimalField, F, Q, Sum, Value
from django.db.models.functions import Coalesce
from rest_framework import status

from joyeria.core.exceptions import ApiError
from joyeria.catalog.models import Product
from joyeria.core.utils import to_decimal, to_id
from joyeria.locations.models import Location

from .models import Stock, StockMovement

logger = logging.getLogger('joyeria.inventory')

ZERO = Decimal('0')


def _locked_stock(product_id, location_id):
    stock, _ = Stock.objects.get_or_create(product_id=product_id, location_id=location_id)
    return Stock.objects.select_for_update().get(pk=stock.pk)


def _decrease(product_id, location, quantity):
    stock = _locked_stock(product_id, location.pk)
    if stock.quantity < quantity:
        raise ApiError(
            'Stock insuficiente',
            status.HTTP_409_CONFLICT,
            code='STOCK_INSUFICIENTE',
            extra={'producto_id': product_id, 'ubicacion': location.name,
                   'disponible': float(stock.quantity), 'requerido': float(quantity)},
        )
    Stock.objects.filter(pk=stock.pk).update(quantity=F('quantity') - quantity)


def _increase(product_id, location, quantity):
    stock = _locked_stock(product_id, location.pk)
    Stock.objects.filter(pk=stock.pk).update(quantity=F('quantity') + quantity)


def apply_movement(product, movement_type, quantity, source=None, target=None,
                   user_id=None, reason='', unit_cost=None):
    """
    Record a movement and apply it to the stock table.

    ENTRADA adds at ``target``, SALIDA removes from ``source``, TRASPASO does
    both and AJUSTE sets the absolute quantity at ``target``.
    Raises ApiError(409) when a location would go negative.
    """
    quantity = to_decimal(quantity)
    if quantity is None or quantity < ZERO or (quantity == ZERO and movement_type != StockMovement.ADJUSTMENT):
        raise ApiError('Cantidad inválida')

    if movement_type == StockMovement.ENTRY:
        if target is None:
            raise ApiError('ENTRADA requiere ubicación destino')
        _increase(product.pk, target, quantity)
    elif movement_type == StockMovement.EXIT:
        if source is None:
            raise ApiError('SALIDA requiere ubicación origen')
        _decrease(product.pk, source, quantity)
    elif movement_type == StockMovement.TRANSFER:
        if source is None or target is None:
            raise ApiError('TRASPASO requiere ubicación origen y destino')
        if source.pk == target.pk:
            raise ApiError('Origen y destino deben ser distintos')
        _decrease(product.pk, source, quantity)
        _increase(product.pk, target, quantity)
    elif movement_type == StockMovement.ADJUSTMENT:
        if target is None:
            raise ApiError('AJUSTE requiere ubicación destino')
        stock = _locked_stock(product.pk, target.pk)
        Stock.objects.filter(pk=stock.pk).update(quantity=quantity)
    else:
        raise ApiError('Tipo de movimiento inválido')

    return StockMovement.objects.create(
        movement_type=movement_type,
        product=product,
        source_location=source,
        target_location=target,
        quantity=quantity,
        unit_cost=unit_cost,
        reason=reason or '',
        user_id=user_id,
    )


def resolve_pos_locations(branch):
    """
    (VITRINA, BODEGA) of a branch, by flag first and by name second.
    Raises ApiError(400) when either is missing.
    """
    if branch is None:
        raise ApiError('No se pudo resolver sucursal')
    locations = list(Location.objects.filter(branch=branch))

    def pick(flag, name):
        for location in locations:
            if getattr(location, flag):
                return location
        for location in locations:
            if location.name.strip().upper() == name:
                return location
        return None

    showcase = pick('is_showcase', Location.SHOWCASE)
    storeroom = pick('is_storeroom', Location.STOREROOM)
    if showcase is None:
        raise ApiError(f'No existe ubicación VITRINA en la sucursal {branch.code}')
    if storeroom is None:
        raise ApiError(f'No existe ubicación BODEGA en la sucursal {branch.code}')
    return showcase, storeroom


def group_quantities(items):
    """Sum requested quantities per product id, keeping first-seen order"""
    required = OrderedDict()
    for item in items or []:
        raw_id = item.get('producto_id')
        quantity = to_decimal(item.get('cantidad'), ZERO)
        if not raw_id or quantity <= ZERO:
            continue
        product_id = to_id(raw_id)
        if product_id is None:
            raise ApiError(f'producto_id inválido: {raw_id}')
        required[product_id] = required.get(product_id, ZERO) + quantity
    return required


def ensure_showcase_stock(branch, items, user_id=None, reason=None):
    """
    Make sure VITRINA can cover ``items``, moving the missing quantity from
    BODEGA. Nothing is moved unless every product can be covered; otherwise
    ApiError(409, STOCK_INSUFICIENTE_BODEGA) lists the shortfalls.
    """
    showcase, storeroom = resolve_pos_locations(branch)
    required = group_quantities(items)
    if not required:
        raise ApiError('items requerido')

    products = Product.objects.in_bulk(list(required.keys()))
    missing_ids = [pid for pid in required if pid not in products]
    if missing_ids:
        raise ApiError('Producto no encontrado', status.HTTP_404_NOT_FOUND, extra={'productos': missing_ids})

    transfers = []
    shortfalls = []
    for product_id, quantity in required.items():
        in_showcase = _locked_stock(product_id, showcase.pk).quantity
        in_storeroom = _locked_stock(product_id, storeroom.pk).quantity
        missing = max(ZERO, quantity - in_showcase)
        if missing <= ZERO:
            continue
        if in_storeroom < missing:
            shortfalls.append({
                'producto_id': product_id,
                'nombre': products[product_id].name,
                'requerido': float(quantity),
                'stock_vitrina': float(in_showcase),
                'stock_bodega': float(in_storeroom),
                'falta_en_vitrina': float(missing),
            })
            continue
        transfers.append((product_id, missing, in_showcase, in_storeroom))

    if shortfalls:
        raise ApiError(
            'No hay suficiente stock en BODEGA para completar el stock de VITRINA.',
            status.HTTP_409_CONFLICT,
            code='STOCK_INSUFICIENTE_BODEGA',
            extra={'faltantes': shortfalls},
        )

    movements = []
    for product_id, missing, in_showcase, in_storeroom in transfers:
        movement = apply_movement(
            products[product_id], StockMovement.TRANSFER, missing,
            source=storeroom, target=showcase, user_id=user_id,
            reason=reason or 'AUTO TRASPASO A VITRINA (POS)',
        )
        movements.append({
            'movimiento_id': movement.pk,
            'producto_id': product_id,
            'mover': float(missing),
            'stock_vitrina_antes': float(in_showcase),
            'stock_bodega_antes': float(in_storeroom),
        })

    if movements:
        logger.info(f"Moved {len(movements)} product(s) from BODEGA to VITRINA in branch {branch.code}")
    return {
        'ubicaciones': {
            'bodega': {'id': storeroom.pk, 'nombre': storeroom.name},
            'vitrina': {'id': showcase.pk, 'nombre': showcase.name},
        },
        'transferencias': movements,
        'movimientos_creados': len(movements),
    }


def record_purchase_cost(product, quantity, unit_cost):
    """
    Update last and weighted average cost for ``quantity`` units bought at
    ``unit_cost``; call before the stock entry is applied.
    """
    on_hand = sum((s.quantity for s in Stock.objects.filter(product=product)), ZERO)
    previous_avg = product.average_cost
    if previous_avg is None or on_hand <= ZERO:
        new_avg = unit_cost
    else:
        new_avg = (on_hand * previous_avg + quantity * unit_cost) / (on_hand + quantity)
    product.last_cost = unit_cost
    product.average_cost = Decimal(new_avg).quantize(Decimal('0.01'))
    product.save(update_fields=['last_cost', 'average_cost', 'updated_at'])


def low_stock_rows(branch_id=None):
    """Active products whose on-hand stock is at or below ``min_stock``"""
    stock_filter = Q(stock_entries__location__branch_id=branch_id) if branch_id else Q()
    products = (
        Product.objects.filter(is_active=True, is_archived=False)
        .annotate(stock_total=Coalesce(
            Sum('stock_entries__quantity', filter=stock_filter),
            Value(ZERO), output_field=DecimalField(max_digits=12, decimal_places=3),
        ))
        .filter(stock_total__lte=F('min_stock'))
        .select_related('category')
        .order_by('name')
    )
    return [
        {
            'producto_id': p.pk,
            'sku': p.sku,
            'nombre': p.name,
            'categoria': p.category.name if p.category_id else None,
            'stock_total': float(p.stock_total),
            'stock_minimo': float(p.min_stock),
        }
        for p in products
    ]
