"""Payment aggregation behind cash summaries and register closes"""
from decimal import Decimal

from django.db.models import Sum

from joyeria.core.utils import money
from joyeria.sales.models import Sale, SalePayment

METHOD_KEYS = {
    SalePayment.CASH: 'efectivo',
    SalePayment.TRANSFER: 'transferencia',
    SalePayment.CARD: 'tarjeta',
}


def payment_totals(start, end, branch_id=None, user_id=None, end_inclusive=False):
    """
    Sum payments of CONFIRMADA sales created in [start, end) (or [start, end]
    when ``end_inclusive``), grouped by method.

    Returns ``{efectivo, transferencia, tarjeta, general}`` as 2-decimal Decimals.
    """
    filters = {
        'sale__status': Sale.CONFIRMED,
        'sale__created_at__gte': start,
    }
    filters['sale__created_at__lte' if end_inclusive else 'sale__created_at__lt'] = end
    if branch_id:
        filters['sale__branch_id'] = branch_id
    if user_id:
        filters['sale__user_id'] = user_id

    totals = {key: Decimal('0.00') for key in METHOD_KEYS.values()}
    rows = SalePayment.objects.filter(**filters).values('method').annotate(total=Sum('amount'))
    for row in rows:
        key = METHOD_KEYS.get(row['method'])
        if key:
            totals[key] = money(row['total'])
    totals['general'] = money(sum(totals.values(), Decimal('0')))
    return totals


def totals_as_float(totals):
    return {key: float(value) for key, value in totals.items()}
