"""
Sale price calculation from landed cost and a margin.

Margins may be given as a fraction (``0.40``) or as a percentage (``40``);
anything greater than 1 is treated as a percentage. The margin applied is
the first one available among the row, its category and the default.
"""
from collections import namedtuple
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from django.conf import settings

SalePrice = namedtuple('SalePrice', ['sale_price', 'margin'])

CENT = Decimal('0.01')
ZERO = Decimal('0')
ONE = Decimal('1')
HUNDRED = Decimal('100')


def _to_decimal(value):
    if value is None or value == '' or isinstance(value, bool):
        return None
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    return result if result.is_finite() else None


def default_margin():
    value = _to_decimal(getattr(settings, 'DEFAULT_MARGIN', None))
    return Decimal('0.40') if value is None else value


def normalize_margin(value, fallback=None):
    """
    Margin fraction for ``value``; percentages (> 1) are divided by 100 and
    negatives clamp to zero. Unparseable values give ``fallback``.
    """
    margin = _to_decimal(value)
    if margin is None:
        return fallback
    if margin > ONE:
        margin = margin / HUNDRED
    if margin < ZERO:
        margin = ZERO
    return margin


def resolve_margin(row_margin=None, category_margin=None, default=None):
    """Row margin, else category margin, else the default"""
    fallback = normalize_margin(default if default is not None else default_margin(), Decimal('0.40'))
    for candidate in (row_margin, category_margin):
        if candidate is None or candidate == '':
            continue
        return normalize_margin(candidate, fallback)
    return fallback


def calculate_sale_price(cost, row_margin=None, category_margin=None, default_margin=None):
    """
    Sale price for a unit cost.

    >>> calculate_sale_price(100)
    SalePrice(sale_price=Decimal('140.00'), margin=Decimal('0.40'))
    >>> calculate_sale_price(200, row_margin=50, category_margin='0.3').sale_price
    Decimal('300.00')
    """
    margin = resolve_margin(row_margin, category_margin, default_margin)
    unit_cost = _to_decimal(cost)
    if unit_cost is None or unit_cost <= ZERO:
        return SalePrice(ZERO.quantize(CENT), margin)
    price = (unit_cost * (ONE + margin)).quantize(CENT, rounding=ROUND_HALF_UP)
    return SalePrice(price, margin)
