import logging
from decimal import Decimal

from django.db import transaction
from django.utils import timezone

from joyeria.catalog.models import Product
from joyeria.catalog.utils import clean_barcode, find_or_create_category
from joyeria.core.exceptions import ApiError
from joyeria.core.utils import money, to_decimal
from joyeria.inventory.models import StockMovement
from joyeria.inventory.services import apply_movement, record_purchase_cost, resolve_pos_locations
from joyeria.pricing.utils import calculate_sale_price

from .models import Purchase, PurchaseItem

logger = logging.getLogger('joyeria.purchasing')

ZERO = Decimal('0')


def confirm_purchase(purchase, user_id=None):
    """
    Stock every line of a draft purchase into its branch BODEGA and update
    product costs. Must run inside ``transaction.atomic()``.
    """
    purchase = Purchase.objects.select_for_update().select_related('branch').get(pk=purchase.pk)
    if purchase.status != Purchase.DRAFT:
        raise ApiError('Solo se pueden confirmar compras en estado BORRADOR')

    _, storeroom = resolve_pos_locations(purchase.branch)
    for item in purchase.items.select_related('product'):
        record_purchase_cost(item.product, item.quantity, item.unit_cost)
        apply_movement(
            item.product, StockMovement.ENTRY, item.quantity,
            target=storeroom, user_id=user_id, unit_cost=item.unit_cost,
            reason=f'COMPRA {purchase.pk}',
        )

    purchase.status = Purchase.CONFIRMED
    purchase.confirmed_at = timezone.now()
    purchase.save(update_fields=['status', 'confirmed_at'])
    logger.info(f"Purchase {purchase.pk} confirmed into {storeroom}")
    return purchase


def _row_value(row, *keys, default=None):
    for key in keys:
        if row.get(key) not in (None, ''):
            return row[key]
    return default


def _find_product(barcode, sku):
    product = None
    if barcode:
        product = Product.objects.filter(barcode=barcode).first()
    if product is None and sku:
        product = Product.objects.filter(sku=sku).first()
    return product


def import_row(purchase, row, index, default_margin):
    """Create the purchase line for one import row; returns its summary"""
    name = str(_row_value(row, 'nombre_producto', 'nombreProducto', 'nombre', default='')).strip()
    quantity = to_decimal(row.get('cantidad'), ZERO)
    purchase_cost = to_decimal(_row_value(row, 'costo_compra', 'costoCompra'), ZERO)
    shipping_cost = to_decimal(_row_value(row, 'costo_envio', 'costoEnvio'), ZERO)
    tax_cost = to_decimal(_row_value(row, 'costo_impuestos', 'costoImpuestos'), ZERO)
    customs_cost = to_decimal(_row_value(row, 'costo_desaduanaje', 'costoDesaduanaje'), ZERO)
    if not name or quantity <= ZERO or purchase_cost <= ZERO:
        raise ApiError(f'Fila {index}: datos incompletos (nombre, cantidad, costo_compra son obligatorios)')

    barcode = clean_barcode(_row_value(row, 'codigo_barras', 'codigoBarras'))
    sku = str(row.get('sku') or '').strip() or None
    category_name = str(row.get('categoria') or '').strip().upper()
    category = find_or_create_category(category_name) if category_name else None

    unit_cost = money(purchase_cost + shipping_cost + tax_cost + customs_cost)
    pricing = calculate_sale_price(
        unit_cost,
        row_margin=_row_value(row, 'porcentaje_margen', 'margen'),
        category_margin=category.recommended_margin if category else None,
        default_margin=default_margin,
    )

    costs = {
        'purchase_cost': money(purchase_cost),
        'shipping_cost': money(shipping_cost),
        'tax_cost': money(tax_cost),
        'customs_cost': money(customs_cost),
    }
    product = _find_product(barcode, sku)
    created = product is None
    if created:
        product = Product.objects.create(
            sku=sku or barcode or f"SKU-{int(timezone.now().timestamp() * 1000)}-{index}",
            name=name,
            barcode=barcode,
            category=category,
            is_active=False,
            margin=pricing.margin,
            sale_price=pricing.sale_price,
            **costs,
        )
    else:
        for field, value in costs.items():
            setattr(product, field, value)
        update_fields = list(costs) + ['updated_at']
        if category is not None:
            product.category = category
            update_fields.append('category')
        product.save(update_fields=update_fields)

    PurchaseItem.objects.create(
        purchase=purchase,
        product=product,
        quantity=quantity,
        unit_cost=unit_cost,
        margin=pricing.margin,
        sale_price=pricing.sale_price,
        line_total=money(quantity * unit_cost),
        **costs,
    )
    return {
        'fila': index,
        'productoId': product.pk,
        'sku': product.sku,
        'codigo_barras': product.barcode,
        'creado': created,
        'cantidad': float(quantity),
        'costoTotalUnit': float(unit_cost),
        'precioVentaSugerido': float(pricing.sale_price),
        'margenFraccionSugerido': float(pricing.margin),
    }


def import_purchase(branch, items, user_id=None, supplier=None, currency='GTQ',
                    exchange_rate=None, default_margin=None):
    """
    Create a purchase from import rows and confirm it into BODEGA.
    Invalid rows are reported in ``errores`` and skipped.
    """
    with transaction.atomic():
        purchase = Purchase.objects.create(
            branch=branch,
            supplier=supplier,
            user_id=user_id,
            currency=currency or 'GTQ',
            exchange_rate=to_decimal(exchange_rate, Decimal('1')),
        )
        summary = []
        errors = []
        for index, row in enumerate(items, start=1):
            try:
                with transaction.atomic():
                    summary.append(import_row(purchase, row or {}, index, default_margin))
            except ApiError as e:
                errors.append({'fila': index, 'message': str(e.detail)})

        if not summary:
            raise ApiError('Ninguna fila válida para importar', extra={'errores': errors})

        lines = list(purchase.items.all())
        purchase.subtotal = money(sum((i.quantity * i.purchase_cost for i in lines), ZERO))
        purchase.total_shipping = money(sum((i.quantity * i.shipping_cost for i in lines), ZERO))
        purchase.total_tax = money(sum((i.quantity * i.tax_cost for i in lines), ZERO))
        purchase.total_customs = money(sum((i.quantity * i.customs_cost for i in lines), ZERO))
        purchase.total = money(sum((i.line_total for i in lines), ZERO))
        purchase.save(update_fields=['subtotal', 'total_shipping', 'total_tax', 'total_customs', 'total'])
        purchase = confirm_purchase(purchase, user_id=user_id)

    return purchase, summary, errors
