"""
Sale registration and the live sales summary.

Both registration paths create the sale, its lines and payments, then
confirm it, which takes the sold quantities out of the branch VITRINA.
"""
import logging
from datetime import date
from decimal import Decimal

from django.conf import settings
from django.db.models import Count, Sum
from django.utils import timezone
from rest_framework import status

from joyeria.cash.services import payment_totals
from joyeria.catalog.models import Product
from joyeria.catalog.utils import (
    clean_barcode, detect_category_from_name, find_or_create_category, generate_sku_from_name,
)
from joyeria.core.cache_utils import SALES_NAMESPACE, SALES_SUMMARY_CACHE_TTL, cached_query
from joyeria.core.exceptions import ApiError
from joyeria.core.utils import local_day_bounds, money, resolve_branch_for_user, to_decimal, to_id
from joyeria.inventory.models import Stock, StockMovement
from joyeria.inventory.services import apply_movement, ensure_showcase_stock, resolve_pos_locations
from joyeria.locations.models import Branch

from .models import Sale, SaleItem, SalePayment

logger = logging.getLogger('joyeria.sales')

ZERO = Decimal('0')
ONE = Decimal('1')

PAYMENT_ALIASES = {
    'CASH': SalePayment.CASH,
    'CARD': SalePayment.CARD,
    'CREDITO': SalePayment.CARD,
    'DEBITO': SalePayment.CARD,
    'TRANSFER': SalePayment.TRANSFER,
    'BANK': SalePayment.TRANSFER,
}
PAYMENT_METHODS = {choice for choice, _ in SalePayment.METHOD_CHOICES}
CARD_FIELDS = ('card_brand', 'card_last4', 'auth_code', 'processor_txn_id', 'reference')

SCOPE_USER = 'USER'
SCOPE_BRANCH = 'SUCURSAL'


def normalize_payment_method(value):
    """Map common aliases onto EFECTIVO, TRANSFERENCIA or TARJETA; blank means cash"""
    method = str(value or '').strip().upper()
    if not method:
        return SalePayment.CASH
    return PAYMENT_ALIASES.get(method, method)


def _card_details(payload):
    details = {}
    for field in CARD_FIELDS:
        value = payload.get(field)
        details[field] = str(value).strip() if value not in (None, '') else None
    if details['card_last4']:
        details['card_last4'] = details['card_last4'][-4:]
    return details


def confirm_sale(sale, showcase):
    """Deduct every line from VITRINA and mark the sale CONFIRMADA"""
    for item in sale.items.select_related('product'):
        apply_movement(
            item.product, StockMovement.EXIT, item.quantity,
            source=showcase, user_id=sale.user_id, reason=f'VENTA {sale.pk}',
        )
    sale.status = Sale.CONFIRMED
    sale.save(update_fields=['status'])
    return sale


def register_sale(branch, user, items, payments, customer_name=None, discount=None, tax=None, notes=''):
    """
    Generic sale. ``subtotal`` is the sum of price times quantity; the total
    subtracts line and sale discounts and adds line and sale taxes.
    Must run inside ``transaction.atomic()``.
    """
    showcase, _ = resolve_pos_locations(branch)

    lines = []
    for index, raw in enumerate(items, start=1):
        quantity = to_decimal(raw.get('cantidad'))
        price = to_decimal(raw.get('precio_unitario'))
        product_id = to_id(raw.get('producto_id'))
        if product_id is None or quantity is None or quantity <= ZERO or price is None or price < ZERO:
            raise ApiError(f'Item {index}: producto_id, cantidad y precio_unitario son obligatorios')
        lines.append({
            'product_id': product_id,
            'quantity': quantity,
            'unit_price': money(price),
            'discount': money(to_decimal(raw.get('descuento'), ZERO)),
            'tax': money(to_decimal(raw.get('impuesto'), ZERO)),
        })

    products = Product.objects.in_bulk([line['product_id'] for line in lines])
    for line in lines:
        if line['product_id'] not in products:
            raise ApiError('Producto no encontrado', status.HTTP_404_NOT_FOUND)

    subtotal = money(sum((l['quantity'] * l['unit_price'] for l in lines), ZERO))
    total_discount = money(sum((l['discount'] for l in lines), ZERO) + to_decimal(discount, ZERO))
    total_tax = money(sum((l['tax'] for l in lines), ZERO) + to_decimal(tax, ZERO))
    total = money(subtotal - total_discount + total_tax)
    if total < ZERO:
        raise ApiError('El descuento no puede superar el subtotal')

    sale = Sale.objects.create(
        branch=branch,
        user=user,
        customer_name=customer_name or None,
        subtotal=subtotal,
        discount=total_discount,
        tax=total_tax,
        total=total,
        notes=notes or '',
    )
    SaleItem.objects.bulk_create([
        SaleItem(
            sale=sale,
            product=products[l['product_id']],
            quantity=l['quantity'],
            unit_price=l['unit_price'],
            discount=l['discount'],
            tax=l['tax'],
            line_total=money(l['quantity'] * l['unit_price'] - l['discount'] + l['tax']),
        )
        for l in lines
    ])

    for index, raw in enumerate(payments, start=1):
        method = normalize_payment_method(raw.get('metodo'))
        amount = to_decimal(raw.get('monto'))
        if method not in PAYMENT_METHODS:
            raise ApiError(f'Pago {index}: método inválido')
        if amount is None or amount <= ZERO:
            raise ApiError(f'Pago {index}: monto inválido')
        SalePayment.objects.create(sale=sale, method=method, amount=money(amount), **_card_details(raw))

    confirm_sale(sale, showcase)
    logger.info(f"Sale {sale.pk} registered in branch {branch.code}: total {total}")
    return sale


def prepare_pos_items(items):
    """
    Normalize POS lines: quantity at least 1, price falls back to the
    product sale price. Raises ApiError for unknown, unavailable or
    unpriced products.
    """
    lines = []
    for raw in items:
        product_id = to_id(raw.get('producto_id'))
        if product_id is None:
            raise ApiError('Items inválidos')
        quantity = to_decimal(raw.get('cantidad', raw.get('qty')), ONE)
        lines.append({
            'producto_id': product_id,
            'cantidad': max(ONE, quantity),
            'precio_unitario': to_decimal(raw.get('precio_unitario'), ZERO),
        })

    products = Product.objects.in_bulk({line['producto_id'] for line in lines})
    for line in lines:
        product = products.get(line['producto_id'])
        if product is None:
            raise ApiError('Producto no encontrado', status.HTTP_404_NOT_FOUND)
        if product.is_archived or not product.is_active:
            raise ApiError(f'Producto no disponible: {product.name}')
        if line['precio_unitario'] <= ZERO:
            line['precio_unitario'] = product.sale_price or ZERO
        if line['precio_unitario'] <= ZERO:
            raise ApiError(f'Producto sin precio de venta: {product.name}')
        line['precio_unitario'] = money(line['precio_unitario'])
    return lines, products


def register_pos_sale(branch, user, items, method, cash_received=None, customer_name=None, card_details=None):
    """
    POS sale with a single payment. VITRINA is topped up from BODEGA first;
    a shortfall aborts with 409 STOCK_INSUFICIENTE.
    Must run inside ``transaction.atomic()``.
    """
    lines, products = prepare_pos_items(items)
    total = money(sum((l['cantidad'] * l['precio_unitario'] for l in lines), ZERO))

    method = normalize_payment_method(method)
    if method not in PAYMENT_METHODS:
        raise ApiError('Método de pago inválido')

    change = None
    if method == SalePayment.CASH and cash_received not in (None, ''):
        received = to_decimal(cash_received)
        if received is None or received <= ZERO:
            raise ApiError('efectivo_recibido inválido')
        if received < total:
            raise ApiError('Efectivo insuficiente')
        cash_received = money(received)
        change = money(received - total)
    else:
        cash_received = None

    try:
        transfers = ensure_showcase_stock(branch, lines, user_id=user.pk)
    except ApiError as e:
        if e.error_code != 'STOCK_INSUFICIENTE_BODEGA':
            raise
        raise ApiError('No se pudo confirmar la venta por stock insuficiente.', status.HTTP_409_CONFLICT,
                       code='STOCK_INSUFICIENTE', extra=e.extra)

    sale = Sale.objects.create(
        branch=branch,
        user=user,
        customer_name=customer_name or None,
        subtotal=total,
        total=total,
        cash_received=cash_received,
        change_given=change,
    )
    SaleItem.objects.bulk_create([
        SaleItem(
            sale=sale,
            product=products[l['producto_id']],
            quantity=l['cantidad'],
            unit_price=l['precio_unitario'],
            line_total=money(l['cantidad'] * l['precio_unitario']),
        )
        for l in lines
    ])
    SalePayment.objects.create(sale=sale, method=method, amount=total, **_card_details(card_details or {}))

    showcase, _ = resolve_pos_locations(branch)
    confirm_sale(sale, showcase)
    logger.info(f"POS sale {sale.pk} by user {user.pk}: total {total} ({method})")
    return sale, change, transfers


# Live summary
@cached_query(cache_ttl=SALES_SUMMARY_CACHE_TTL, namespace=SALES_NAMESPACE)
def build_summary(day_iso, scope, branch_id, user_id=None):
    """
    Day totals for a branch, or for one cashier in it when ``scope`` is USER.
    Arguments are plain values so the result can be cached.
    """
    day = date.fromisoformat(day_iso)
    start, end = local_day_bounds(day)
    user_filter = user_id if scope == SCOPE_USER else None

    sales = Sale.objects.filter(status=Sale.CONFIRMED, branch_id=branch_id,
                                created_at__gte=start, created_at__lt=end)
    if user_filter:
        sales = sales.filter(user_id=user_filter)
    totals = payment_totals(start, end, branch_id=branch_id, user_id=user_filter)

    items = SaleItem.objects.filter(sale__in=sales)
    top_products = list(
        items.values('product_id', 'product__name', 'product__sku')
        .annotate(qty=Sum('quantity'), total=Sum('line_total'))
        .order_by('-qty', '-total')[:5]
    )
    categories = list(
        items.values('product__category__name')
        .annotate(qty=Sum('quantity'), total=Sum('line_total'))
        .order_by('-qty', '-total')[:1]
    )

    products_out = [
        {
            'producto_id': row['product_id'],
            'nombre': row['product__name'],
            'sku': row['product__sku'],
            'qty': float(row['qty']),
            'total': float(money(row['total'])),
        }
        for row in top_products
    ]
    top_category = None
    if categories:
        row = categories[0]
        top_category = {
            'categoria': row['product__category__name'] or 'Sin categoría',
            'qty': float(row['qty']),
            'total': float(money(row['total'])),
        }

    return {
        'date': day_iso,
        'timezone': settings.TIME_ZONE,
        'scope': scope,
        'totals': {
            'num_ventas': sales.aggregate(n=Count('id'))['n'],
            'efectivo': float(totals['efectivo']),
            'transferencia': float(totals['transferencia']),
            'tarjeta': float(totals['tarjeta']),
            'total_general': float(totals['general']),
        },
        'top': {
            'producto': products_out[0] if products_out else None,
            'categoria': top_category,
        },
        'top_productos': products_out,
        'range': {
            'start': timezone.localtime(start).isoformat(),
            'end': timezone.localtime(end).isoformat(),
        },
    }


# Products maintained from the sales screen
def save_manual_product(data, user_id=None):
    """
    Create a manual product, or refresh the existing one with the same
    barcode or SKU. Archived barcodes and SKUs are never reused.
    Returns ``(product, created)``. Must run inside ``transaction.atomic()``.
    """
    name = str(data.get('nombre') or '').strip()
    price = to_decimal(data.get('precio_venta'))
    if not name or price is None or price < ZERO:
        raise ApiError('Nombre y precio_venta son obligatorios')
    wholesale = to_decimal(data.get('precio_mayorista'))
    branch_id = data.get('sucursal_id')
    if branch_id and to_id(branch_id) is None:
        raise ApiError('sucursal_id inválido')

    sku_input = str(data.get('sku') or '').strip() or None
    barcode = clean_barcode(data.get('codigo_barras'))
    category_name = str(data.get('categoria') or '').strip() or detect_category_from_name(name)
    category = find_or_create_category(category_name) if category_name else None

    existing = None
    if barcode:
        existing = Product.objects.filter(barcode=barcode).first()
        if existing is not None and existing.is_archived:
            raise ApiError('Ya existe un producto eliminado con ese código de barras. No se puede reutilizar.')
        if existing is not None and sku_input and existing.sku != sku_input:
            raise ApiError('Ese código de barras ya pertenece a otro SKU. '
                           'No se puede cambiar el SKU de un producto existente.')
    if existing is None and sku_input:
        existing = Product.objects.filter(sku=sku_input).first()
        if existing is not None and existing.is_archived:
            raise ApiError('Ese SKU pertenece a un producto eliminado. No se puede reutilizar.')
        if existing is not None and barcode and \
                Product.objects.filter(barcode=barcode).exclude(pk=existing.pk).exists():
            raise ApiError('Ya existe otro producto con ese código de barras. No se puede reutilizar.')

    if existing is not None:
        product, created = existing, False
        product.name = name
        product.barcode = barcode or product.barcode
    else:
        product, created = Product(sku=sku_input or generate_sku_from_name(name), name=name,
                                   barcode=barcode, is_manual=True), True
        while Product.objects.filter(sku=product.sku).exists():
            product.sku = generate_sku_from_name(name)
    product.sale_price = money(price)
    product.wholesale_price = money(wholesale) if wholesale is not None else None
    product.category = category
    product.is_active = True
    product.is_archived = False
    product.save()

    initial_stock = to_decimal(data.get('stock_inicial'), ZERO)
    if initial_stock > ZERO:
        branch = Branch.objects.filter(pk=branch_id).first() if branch_id else resolve_branch_for_user(None)
        showcase, _ = resolve_pos_locations(branch)
        apply_movement(product, StockMovement.ENTRY, initial_stock, target=showcase,
                       user_id=user_id, reason='STOCK INICIAL (producto manual)')
    return product, created


def remove_manual_product(product):
    """
    Delete a product without history; archive it otherwise. The barcode
    of an archived product stays blocked. Returns ``True`` when archived.
    """
    has_history = (
        product.sale_items.exists()
        or product.movements.exists()
        or product.purchase_items.exists()
    )
    if has_history:
        product.is_archived = True
        product.is_active = False
        product.save(update_fields=['is_archived', 'is_active', 'updated_at'])
        return True
    Stock.objects.filter(product=product).delete()
    product.delete()
    return False


def bulk_update_products(items):
    """
    Apply name, category, prices and barcode edits to many products.
    Must run inside ``transaction.atomic()``; any bad row aborts all.
    """
    ids = []
    for raw in items:
        try:
            ids.append(int(raw.get('id')))
        except (TypeError, ValueError):
            raise ApiError('Cada producto debe incluir un id válido')
    products = Product.objects.select_for_update().in_bulk(ids)

    updated = 0
    for product_id, raw in zip(ids, items):
        product = products.get(product_id)
        if product is None:
            raise ApiError(f'Producto no encontrado: {product_id}', status.HTTP_404_NOT_FOUND)

        barcode = clean_barcode(raw.get('codigo_barras'))
        if barcode and Product.objects.filter(barcode=barcode).exclude(pk=product_id).exists():
            raise ApiError('Ya existe un producto con ese código de barras. No se puede reutilizar.')
        price = to_decimal(raw.get('precio_venta'))
        if price is None or price < ZERO:
            raise ApiError(f'precio_venta inválido para el producto {product_id}')
        wholesale = to_decimal(raw.get('precio_mayorista'))
        category_name = str(raw.get('categoria') or '').strip()

        name = str(raw.get('nombre') or '').strip()
        if name:
            product.name = name
        product.barcode = barcode
        product.sale_price = money(price)
        product.wholesale_price = money(wholesale) if wholesale is not None else None
        product.category = find_or_create_category(category_name) if category_name else None
        product.save()
        updated += 1
    return updated
