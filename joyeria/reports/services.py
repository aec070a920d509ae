"""
Report queries. Each function returns plain rows so the same data can feed
JSON responses and workbooks.
"""
import logging
from collections import OrderedDict
from decimal import Decimal

from django.db.models import Count, DecimalField, ExpressionWrapper, F, Max, Sum, Value
from django.db.models.functions import Coalesce, TruncDate
from django.utils import timezone

from joyeria.core.cache_utils import (
    DASHBOARD_CACHE_TTL, LOW_STOCK_CACHE_TTL, SALES_NAMESPACE, STOCK_NAMESPACE, cached_query,
)
from joyeria.core.utils import money
from joyeria.inventory.models import Stock, StockMovement
from joyeria.inventory.services import low_stock_rows
from joyeria.sales.models import Sale, SaleItem, SalePayment

logger = logging.getLogger('joyeria.reports')

ZERO = Decimal('0')
PAYMENT_METHODS = [SalePayment.CASH, SalePayment.TRANSFER, SalePayment.CARD]
MONEY_FIELD = DecimalField(max_digits=14, decimal_places=2)
TOP_PRODUCTS_LIMIT = 50
LAST_SALES_LIMIT = 10


def _fmt(value):
    return timezone.localtime(value).strftime('%Y-%m-%d %H:%M:%S') if value else ''


# Sales export
def line_tax(item):
    """Line tax, else IVA on the line, else the product's per-unit tax cost"""
    if item.tax:
        return money(item.tax)
    product = item.product
    if product.iva_percentage and product.iva_percentage > 0:
        return money(item.unit_price * item.quantity * product.iva_percentage / 100)
    if product.tax_cost and product.tax_cost > 0:
        return money(product.tax_cost * item.quantity)
    return ZERO


def line_discount(item):
    """Explicit discount plus any markdown below the product's list price"""
    list_price = item.product.sale_price or ZERO
    markdown = ZERO
    if list_price > 0 and 0 < item.unit_price < list_price:
        markdown = (list_price - item.unit_price) * item.quantity
    return money(item.discount + markdown)


def sales_report(start, end, method=None, branch_id=None, user_id=None):
    """
    Confirmed sales in [start, end). Returns a dict with ``summary``,
    ``by_method``, ``sales`` and ``details`` rows.
    """
    sales = (Sale.objects.filter(status=Sale.CONFIRMED, created_at__gte=start, created_at__lt=end)
             .prefetch_related('payments', 'items__product').order_by('created_at'))
    if branch_id:
        sales = sales.filter(branch_id=branch_id)
    if user_id:
        sales = sales.filter(user_id=user_id)
    if method:
        sales = sales.filter(payments__method=method).distinct()

    by_method = OrderedDict((m, ZERO) for m in ([method] if method else PAYMENT_METHODS))
    totals = {'ventas': 0, 'total': ZERO, 'pagos': ZERO, 'items': ZERO}
    sale_rows, detail_rows = [], []

    for sale in sales:
        payments = list(sale.payments.all())
        items = list(sale.items.all())
        paid = sum((p.amount for p in payments), ZERO)
        items_total = sum((i.line_total for i in items), ZERO)
        for payment in payments:
            if payment.method in by_method:
                by_method[payment.method] += payment.amount
        methods_text = ' + '.join(f'{p.method}(Q{p.amount:.2f})' for p in payments)

        totals['ventas'] += 1
        totals['total'] += sale.total
        totals['pagos'] += paid
        totals['items'] += items_total

        sale_rows.append({
            'fecha': _fmt(sale.created_at),
            'id': sale.pk,
            'cliente': sale.customer_name or '',
            'metodos': methods_text,
            'total': sale.total,
            'pagos': paid,
            'items': items_total,
            'dif_pagos': sale.total - paid,
            'dif_items': sale.total - items_total,
        })
        for item in items:
            detail_rows.append({
                'fecha': _fmt(sale.created_at),
                'venta_id': sale.pk,
                'cliente': sale.customer_name or '',
                'metodos': methods_text,
                'sku': item.product.sku,
                'producto': item.product.name,
                'cantidad': item.quantity,
                'precio_unitario': item.unit_price,
                'descuento': line_discount(item),
                'impuesto': line_tax(item),
                'total_linea': item.line_total,
                'total_venta': sale.total,
            })

    return {
        'summary': {
            'ventas': totals['ventas'],
            'total': money(totals['total']),
            'pagos': money(totals['pagos']),
            'items': money(totals['items']),
            'dif_pagos': money(totals['total'] - totals['pagos']),
            'dif_items': money(totals['total'] - totals['items']),
        },
        'by_method': [{'metodo': m, 'monto': money(v)} for m, v in by_method.items()],
        'sales': sale_rows,
        'details': detail_rows,
    }


# Internal inventory
def internal_inventory_rows(branch_id=None):
    """One row per stock record of active products, with its cost and sale value"""
    stocks = (Stock.objects.filter(product__is_active=True, product__is_archived=False)
              .select_related('product', 'product__category', 'location', 'location__branch')
              .order_by('product__name', 'location__name'))
    if branch_id:
        stocks = stocks.filter(location__branch_id=branch_id)

    last_restock = dict(
        StockMovement.objects
        .filter(movement_type__in=[StockMovement.ENTRY, StockMovement.ADJUSTMENT, StockMovement.TRANSFER])
        .values_list('product_id')
        .order_by()
        .annotate(last=Max('created_at'))
    )

    rows = []
    for stock in stocks:
        product = stock.product
        cost = product.average_cost or product.last_cost or product.unit_cost or ZERO
        price = product.sale_price or ZERO
        rows.append({
            'sku': product.sku,
            'producto': product.name,
            'categoria': product.category.name if product.category_id else '',
            'sucursal': stock.location.branch.name,
            'ubicacion': stock.location.name,
            'stock': stock.quantity,
            'estado': 'Agotado' if stock.quantity <= 0 else 'Disponible',
            'precio_venta': price,
            'costo_promedio': product.average_cost or ZERO,
            'costo_ultimo': product.last_cost or ZERO,
            'valor_venta': money(stock.quantity * price),
            'valor_costo': money(stock.quantity * cost),
            'iva': product.iva_percentage,
            'ultimo_restock': _fmt(last_restock.get(product.pk)),
        })
    return rows


# JSON reports
def sales_by_method(start=None, end=None):
    """Daily totals per payment method; ``end`` is exclusive"""
    payments = SalePayment.objects.filter(sale__status=Sale.CONFIRMED)
    if start:
        payments = payments.filter(sale__created_at__gte=start)
    if end:
        payments = payments.filter(sale__created_at__lt=end)
    rows = (payments.annotate(fecha=TruncDate('sale__created_at'))
            .values('fecha', 'method')
            .annotate(num_ventas=Count('sale', distinct=True), total=Sum('amount'))
            .order_by('fecha', 'method'))
    return [
        {
            'fecha': row['fecha'].isoformat(),
            'metodo_pago': row['method'],
            'num_ventas': row['num_ventas'],
            'total': float(money(row['total'])),
        }
        for row in rows
    ]


def top_products(limit=TOP_PRODUCTS_LIMIT, branch_id=None):
    items = SaleItem.objects.filter(sale__status=Sale.CONFIRMED)
    if branch_id:
        items = items.filter(sale__branch_id=branch_id)
    rows = (items.values('product_id', 'product__sku', 'product__name')
            .annotate(unidades=Sum('quantity'), facturacion=Sum('line_total'))
            .order_by('-unidades', '-facturacion')[:limit])
    return [
        {
            'producto_id': row['product_id'],
            'sku': row['product__sku'],
            'nombre': row['product__name'],
            'unidades': float(row['unidades']),
            'facturacion': float(money(row['facturacion'])),
        }
        for row in rows
    ]


# Dashboard
@cached_query(cache_ttl=DASHBOARD_CACHE_TTL, namespace=SALES_NAMESPACE)
def cost_of_sales(start_iso, end_iso, branch_id, user_id=None):
    """Σ qty × (average cost, else last cost) over confirmed sales in the range"""
    items = SaleItem.objects.filter(
        sale__status=Sale.CONFIRMED, sale__branch_id=branch_id,
        sale__created_at__gte=start_iso, sale__created_at__lt=end_iso,
    )
    if user_id:
        items = items.filter(sale__user_id=user_id)
    cost = items.aggregate(total=Coalesce(
        Sum(ExpressionWrapper(
            F('quantity') * Coalesce('product__average_cost', 'product__last_cost', Value(ZERO)),
            output_field=MONEY_FIELD,
        )),
        Value(ZERO), output_field=MONEY_FIELD,
    ))['total']
    return money(cost)


@cached_query(cache_ttl=LOW_STOCK_CACHE_TTL, namespace=STOCK_NAMESPACE)
def cached_low_stock(branch_id=None):
    return low_stock_rows(branch_id)


def last_sales(branch_id, user_id=None, limit=LAST_SALES_LIMIT):
    sales = (Sale.objects.filter(status=Sale.CONFIRMED, branch_id=branch_id)
             .prefetch_related('payments').order_by('-created_at'))
    if user_id:
        sales = sales.filter(user_id=user_id)
    return [
        {
            'id': sale.pk,
            'fecha': sale.created_at,
            'cliente': sale.customer_name or '',
            'total': float(sale.total),
            'metodo': ' + '.join(sorted({p.method for p in sale.payments.all()})),
        }
        for sale in sales[:limit]
    ]