"""
Test suite for sale price calculation
"""
from decimal import Decimal

from django.test import SimpleTestCase, override_settings

from joyeria.pricing.utils import calculate_sale_price, normalize_margin, resolve_margin


class MarginTests(SimpleTestCase):
    def test_percentage_and_fraction_are_equivalent(self):
        self.assertEqual(normalize_margin(40), normalize_margin('0.40'))

    def test_negative_margin_clamps_to_zero(self):
        self.assertEqual(normalize_margin('-0.2'), Decimal('0'))

    def test_unparseable_margin_uses_fallback(self):
        self.assertEqual(normalize_margin('abc', Decimal('0.25')), Decimal('0.25'))

    def test_row_margin_wins_over_category(self):
        self.assertEqual(resolve_margin(row_margin='0.5', category_margin='0.3'), Decimal('0.5'))

    def test_category_margin_used_when_row_missing(self):
        self.assertEqual(resolve_margin(row_margin='', category_margin=30), Decimal('0.3'))

    @override_settings(DEFAULT_MARGIN='0.25')
    def test_default_margin_from_settings(self):
        self.assertEqual(resolve_margin(), Decimal('0.25'))


class SalePriceTests(SimpleTestCase):
    def test_default_margin(self):
        result = calculate_sale_price(Decimal('100'), default_margin='0.40')
        self.assertEqual(result.sale_price, Decimal('140.00'))
        self.assertEqual(result.margin, Decimal('0.40'))

    def test_rounds_half_up_to_cents(self):
        result = calculate_sale_price('10.01', row_margin='0.5')
        self.assertEqual(result.sale_price, Decimal('15.02'))

    def test_price_never_below_cost(self):
        for cost in ('0.01', '3.33', '999.99'):
            for margin in ('0', '0.1', '45', '-5'):
                result = calculate_sale_price(cost, row_margin=margin)
                self.assertGreaterEqual(result.sale_price, Decimal(cost))

    def test_zero_or_invalid_cost_gives_zero_price(self):
        self.assertEqual(calculate_sale_price(0).sale_price, Decimal('0.00'))
        self.assertEqual(calculate_sale_price('x').sale_price, Decimal('0.00'))
