"""
Test suite for the cash module
Tests: cash summaries and closures, register open/close, register history
"""
from datetime import timedelta
from decimal import Decimal

from django.core.cache import cache
from django.test import TestCase
from django.utils import timezone
from rest_framework import status

from joyeria.cash.models import CashClosure
from joyeria.cash.services import payment_totals
from joyeria.cash.views import HISTORY_LIMIT
from joyeria.core.test_utils import AuthenticatedAPIClient, TestDataFactory
from joyeria.sales.models import Sale, SalePayment


class PaymentTotalsTests(TestCase):
    def setUp(self):
        self.branch = TestDataFactory.create_branch()
        self.cashier = TestDataFactory.create_cashier(branch=self.branch)
        self.product = TestDataFactory.create_product(sale_price=Decimal('50.00'))

    def test_groups_by_method_and_ignores_unconfirmed(self):
        TestDataFactory.create_sale(self.cashier, self.branch, self.product, quantity=2)
        TestDataFactory.create_sale(self.cashier, self.branch, self.product, method=SalePayment.CARD)
        TestDataFactory.create_sale(self.cashier, self.branch, self.product, method=SalePayment.TRANSFER,
                                    status=Sale.VOIDED)
        start = timezone.now() - timedelta(hours=1)
        totals = payment_totals(start, timezone.now() + timedelta(hours=1), branch_id=self.branch.pk)
        self.assertEqual(totals['efectivo'], Decimal('100.00'))
        self.assertEqual(totals['tarjeta'], Decimal('50.00'))
        self.assertEqual(totals['transferencia'], Decimal('0.00'))
        self.assertEqual(totals['general'], Decimal('150.00'))

    def test_filters_by_user(self):
        other = TestDataFactory.create_cashier(branch=self.branch)
        TestDataFactory.create_sale(self.cashier, self.branch, self.product)
        TestDataFactory.create_sale(other, self.branch, self.product)
        start = timezone.now() - timedelta(hours=1)
        totals = payment_totals(start, timezone.now() + timedelta(hours=1), user_id=other.pk)
        self.assertEqual(totals['general'], Decimal('50.00'))


class CashSummaryAPITests(TestCase):
    def setUp(self):
        cache.clear()
        self.branch = TestDataFactory.create_fallback_branch()
        self.cashier = TestDataFactory.create_cashier(branch=self.branch)
        self.product = TestDataFactory.create_product(sale_price=Decimal('75.00'))
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.cashier)

    def test_today_defaults_to_fallback_branch(self):
        TestDataFactory.create_sale(self.cashier, self.branch, self.product)
        response = self.client.get('/api/cash/summary/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['sucursalId'], self.branch.pk)
        self.assertEqual(response.data['data']['totales']['efectivo'], 75.0)

    def test_single_range_end_falls_back_to_today(self):
        TestDataFactory.create_sale(self.cashier, self.branch, self.product)
        response = self.client.get('/api/cash/summary/', {'from': '2020-01-01'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['totales']['efectivo'], 75.0)

    def test_invalid_range_rejected(self):
        response = self.client.get('/api/cash/summary/', {'from': 'ayer', 'to': '2024-01-01'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_non_numeric_branch_rejected(self):
        response = self.client.get('/api/cash/summary/', {'sucursalId': 'abc'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.data['ok'])
        response = self.client.post('/api/cash/close/', {'sucursalId': 'abc'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(CashClosure.objects.exists())

    def test_past_range_is_empty(self):
        TestDataFactory.create_sale(self.cashier, self.branch, self.product)
        response = self.client.get('/api/cash/summary/', {'from': '2020-01-01', 'to': '2020-01-31'})
        self.assertEqual(response.data['data']['totales']['general'], 0.0)

    def test_close_writes_closed_row(self):
        TestDataFactory.create_sale(self.cashier, self.branch, self.product, method=SalePayment.TRANSFER)
        response = self.client.post('/api/cash/close/', {'notas': 'fin de día'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        closure = CashClosure.objects.get()
        self.assertIsNotNone(closure.closed_at)
        self.assertEqual(closure.total_transfer, Decimal('75.00'))
        self.assertEqual(response.data['data']['cierre']['estado'], 'CERRADA')

    def test_closures_list_is_admin_only(self):
        response = self.client.get('/api/cash/closures/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.client.authenticate_user(TestDataFactory.create_admin())
        response = self.client.get('/api/cash/closures/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        response = self.client.get('/api/cash/closures/', {'sucursalId': 'abc'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class CashRegisterAPITests(TestCase):
    """POS register lifecycle for one cashier"""

    def setUp(self):
        cache.clear()
        self.branch = TestDataFactory.create_branch()
        self.cashier = TestDataFactory.create_cashier(branch=self.branch)
        self.product = TestDataFactory.create_product(sale_price=Decimal('100.00'))
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.cashier)

    def test_state_without_opening(self):
        response = self.client.get('/api/cash-register/today/')
        self.assertEqual(response.data['data']['estado'], 'SIN_APERTURA')
        self.assertIsNone(response.data['data']['cierreActual'])

    def test_open_then_second_open_conflicts(self):
        response = self.client.post('/api/cash-register/open/', {'monto_apertura': '200'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Decimal(response.data['data']['cierre']['opening_amount']), Decimal('200.00'))

        response = self.client.post('/api/cash-register/open/', {'monto_apertura': '10'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'CAJA_YA_ABIERTA')

        response = self.client.get('/api/cash-register/today/')
        self.assertEqual(response.data['data']['estado'], 'ABIERTA')

    def test_negative_opening_rejected(self):
        response = self.client.post('/api/cash-register/open/', {'monto_apertura': '-1'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.post('/api/cash-register/open/', {'monto_apertura': 'abc'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_close_computes_difference(self):
        self.client.post('/api/cash-register/open/', {'monto_apertura': '50'}, format='json')
        TestDataFactory.create_sale(self.cashier, self.branch, self.product)
        TestDataFactory.create_sale(self.cashier, self.branch, self.product, method=SalePayment.CARD)
        other = TestDataFactory.create_cashier(branch=self.branch)
        TestDataFactory.create_sale(other, self.branch, self.product)

        response = self.client.post('/api/cash-register/close/', {'monto_cierre_reportado': '140'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        closure = CashClosure.objects.get(user=self.cashier)
        self.assertEqual(closure.total_cash, Decimal('100.00'))
        self.assertEqual(closure.total_card, Decimal('100.00'))
        self.assertEqual(closure.total_general, Decimal('200.00'))
        self.assertEqual(closure.difference, Decimal('-10.00'))
        self.assertIsNotNone(closure.closed_at)

        response = self.client.get('/api/cash-register/today/')
        self.assertEqual(response.data['data']['estado'], 'CERRADA')

    def test_close_without_open_register(self):
        response = self.client.post('/api/cash-register/close/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_close_without_reported_amount(self):
        self.client.post('/api/cash-register/open/', {}, format='json')
        response = self.client.post('/api/cash-register/close/', {'monto_cierre_reportado': None}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIsNone(CashClosure.objects.get().difference)

    def test_reopen_after_close(self):
        self.client.post('/api/cash-register/open/', {}, format='json')
        self.client.post('/api/cash-register/close/', {}, format='json')
        response = self.client.post('/api/cash-register/open/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)


class CashRegisterHistoryTests(TestCase):
    def setUp(self):
        self.branch = TestDataFactory.create_branch()
        self.cashier = TestDataFactory.create_cashier(branch=self.branch)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(TestDataFactory.create_admin())

    def _closure(self, period_start, user=None):
        return CashClosure.objects.create(branch=self.branch, user=user or self.cashier,
                                          period_start=period_start, period_end=period_start,
                                          closed_at=period_start)

    def test_newest_first_and_capped(self):
        base = timezone.now() - timedelta(days=200)
        for offset in range(HISTORY_LIMIT + 5):
            self._closure(base + timedelta(days=offset))
        response = self.client.get('/api/cash-register/history/')
        items = response.data['data']['items']
        self.assertEqual(len(items), HISTORY_LIMIT)
        starts = [item['period_start'] for item in items]
        self.assertEqual(starts, sorted(starts, reverse=True))

    def test_filters(self):
        old = self._closure(timezone.now() - timedelta(days=10))
        recent = self._closure(timezone.now() - timedelta(hours=1))
        other = TestDataFactory.create_cashier(branch=self.branch)
        self._closure(timezone.now() - timedelta(hours=2), user=other)

        since = (timezone.localdate() - timedelta(days=2)).isoformat()
        response = self.client.get('/api/cash-register/history/', {'from': since, 'userId': self.cashier.pk})
        ids = [item['id'] for item in response.data['data']['items']]
        self.assertEqual(ids, [recent.pk])
        self.assertNotIn(old.pk, ids)

    def test_invalid_from(self):
        response = self.client.get('/api/cash-register/history/', {'from': 'ayer'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_non_numeric_user_rejected(self):
        response = self.client.get('/api/cash-register/history/', {'userId': 'abc'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['message'], 'userId inválido')

    def test_cashier_forbidden(self):
        self.client.authenticate_user(self.cashier)
        response = self.client.get('/api/cash-register/history/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
