"""
Test suite for the pettycash module
Tests: deliveries, exchanges, per-cashier visibility, balances, export
"""
from datetime import date
from decimal import Decimal
from io import BytesIO

from django.test import TestCase
from django.utils import timezone
from openpyxl import load_workbook
from rest_framework import status

from joyeria.core.test_utils import AuthenticatedAPIClient, TestDataFactory
from joyeria.pettycash.models import PettyCashDelivery, PettyCashExchange


class PettyCashTestCase(TestCase):
    def setUp(self):
        self.branch = TestDataFactory.create_branch()
        self.admin = TestDataFactory.create_admin(branch=self.branch)
        self.cashier = TestDataFactory.create_cashier(branch=self.branch)
        self.other_cashier = TestDataFactory.create_cashier(branch=self.branch)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)

    def deliver(self, cashier, amount, **extra):
        payload = {'sucursal_id': self.branch.pk, 'cajera_id': cashier.pk, 'monto': amount}
        payload.update(extra)
        return self.client.post('/api/caja-chica/entregas/', payload, format='json')


class DeliveryAPITests(PettyCashTestCase):
    def test_admin_registers_delivery(self):
        response = self.deliver(self.cashier, '200', motivo='Fondo de cambio')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['data']['cajera']['id'], self.cashier.pk)
        self.assertEqual(response.data['data']['autorizado_por']['id'], self.admin.pk)
        delivery = PettyCashDelivery.objects.get()
        self.assertEqual(delivery.amount, Decimal('200.00'))
        self.assertEqual(delivery.reason, 'Fondo de cambio')

    def test_explicit_date(self):
        self.deliver(self.cashier, '50', fecha='2024-03-05')
        self.assertEqual(timezone.localtime(PettyCashDelivery.objects.get().date).date(), date(2024, 3, 5))

    def test_validation(self):
        self.assertEqual(self.deliver(self.cashier, '0').status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(self.deliver(self.cashier, 'abc').status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(self.deliver(self.cashier, '10', fecha='ayer').status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.post('/api/caja-chica/entregas/', {'cajera_id': self.cashier.pk, 'monto': 10},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_cashier_cannot_register(self):
        self.client.authenticate_user(self.cashier)
        response = self.deliver(self.cashier, '100')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertFalse(PettyCashDelivery.objects.exists())

    def test_cashier_only_sees_own_deliveries(self):
        self.deliver(self.cashier, '100')
        self.deliver(self.other_cashier, '300')
        self.client.authenticate_user(self.cashier)
        response = self.client.get('/api/caja-chica/entregas/', {'cajera_id': self.other_cashier.pk})
        items = response.data['data']['items']
        self.assertEqual(len(items), 1)
        self.assertEqual(items[0]['cajera']['id'], self.cashier.pk)

    def test_admin_filters(self):
        self.deliver(self.cashier, '100')
        self.deliver(self.other_cashier, '300')
        response = self.client.get('/api/caja-chica/entregas/', {'cajera_id': self.other_cashier.pk})
        self.assertEqual(len(response.data['data']['items']), 1)
        response = self.client.get('/api/caja-chica/entregas/', {'from': 'ayer'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class ExchangeAPITests(PettyCashTestCase):
    def test_cashier_records_own_exchange(self):
        self.client.authenticate_user(self.cashier)
        response = self.client.post('/api/caja-chica/cambios/', {
            'monto': '35.50', 'cajera_id': self.other_cashier.pk,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        exchange = PettyCashExchange.objects.get()
        self.assertEqual(exchange.cashier, self.cashier)
        self.assertEqual(exchange.branch, self.branch)
        self.assertEqual(exchange.amount, Decimal('35.50'))

    def test_admin_records_for_cashier(self):
        response = self.client.post('/api/caja-chica/cambios/', {
            'monto': '20', 'cajera_id': self.cashier.pk,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(PettyCashExchange.objects.get().cashier, self.cashier)

    def test_invalid_amount(self):
        response = self.client.post('/api/caja-chica/cambios/', {'monto': '-5'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_admin_non_numeric_branch_rejected(self):
        response = self.client.post('/api/caja-chica/cambios/', {
            'monto': '20', 'cajera_id': self.cashier.pk, 'sucursal_id': 'abc',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(PettyCashExchange.objects.exists())


class BalanceAPITests(PettyCashTestCase):
    def test_summary_and_balance(self):
        self.deliver(self.cashier, '300')
        self.deliver(self.other_cashier, '1000')
        self.client.authenticate_user(self.cashier)
        self.client.post('/api/caja-chica/cambios/', {'monto': '120'}, format='json')

        summary = self.client.get('/api/caja-chica/resumen/').data['data']
        self.assertEqual(summary['totalEntregadoHoy'], 300.0)
        self.assertEqual(summary['totalCambiosHoy'], 120.0)
        self.assertEqual(summary['saldoMes'], 180.0)
        self.assertEqual(summary['ultimaEntrega']['monto'], 300.0)

        balance = self.client.get('/api/caja-chica/saldo/').data['data']
        self.assertEqual(balance['saldoHoy'], 180.0)
        self.assertEqual(balance['ultimoCambio']['monto'], 120.0)

    def test_admin_summary_covers_everyone(self):
        self.deliver(self.cashier, '300')
        self.deliver(self.other_cashier, '1000')
        summary = self.client.get('/api/caja-chica/resumen/').data['data']
        self.assertEqual(summary['totalEntregadoMes'], 1300.0)
        self.assertIsNone(summary['ultimoCambio'])

    def test_invalid_summary_date(self):
        response = self.client.get('/api/caja-chica/resumen/', {'date': '2024-02-30'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class ExportAPITests(PettyCashTestCase):
    def test_workbook_sheets(self):
        self.deliver(self.cashier, '300', motivo='Fondo')
        response = self.client.get('/api/caja-chica/export/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response['Content-Type'],
                         'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet')
        self.assertIn('caja-chica_todo_a_todo.xlsx', response['Content-Disposition'])

        workbook = load_workbook(BytesIO(response.content))
        self.assertEqual(workbook.sheetnames, ['Resumen', 'Entregas', 'Cambios'])
        self.assertEqual(workbook['Resumen']['C2'].value, 300.0)
        self.assertEqual(workbook['Entregas']['E2'].value, 'Fondo')
        self.assertEqual(workbook['Cambios'].max_row, 1)


class MissingUserTests(PettyCashTestCase):
    """A valid cashier token whose user row no longer exists"""

    def setUp(self):
        super().setUp()
        self.deliver(self.other_cashier, '300')
        ghost = TestDataFactory.create_cashier(branch=self.branch)
        self.client.authenticate_user(ghost)
        ghost.delete()

    def test_listing_is_empty(self):
        response = self.client.get('/api/caja-chica/entregas/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['items'], [])

    def test_balances_and_exchange_not_found(self):
        self.assertEqual(self.client.get('/api/caja-chica/resumen/').status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(self.client.get('/api/caja-chica/saldo/').status_code, status.HTTP_404_NOT_FOUND)
        response = self.client.post('/api/caja-chica/cambios/', {'monto': '10'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertFalse(PettyCashExchange.objects.exists())
