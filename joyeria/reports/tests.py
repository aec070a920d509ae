"""
Test suite for the reports module
Tests: sales and inventory workbooks, JSON reports, dashboard widgets
"""
from datetime import timedelta
from decimal import Decimal
from io import BytesIO

from django.core.cache import cache
from django.test import TestCase
from django.utils import timezone
from openpyxl import load_workbook
from rest_framework import status

from joyeria.core.test_utils import AuthenticatedAPIClient, TestDataFactory
from joyeria.reports.services import line_discount
from joyeria.sales.models import SaleItem, SalePayment


class ReportsTestCase(TestCase):
    def setUp(self):
        cache.clear()
        self.branch = TestDataFactory.create_branch()
        self.showcase = TestDataFactory.showcase(self.branch)
        self.admin = TestDataFactory.create_admin(branch=self.branch)
        self.cashier = TestDataFactory.create_cashier(branch=self.branch)
        self.product = TestDataFactory.create_product(name='Pulsera', sku='PUL-001', sale_price=Decimal('150.00'),
                                                      average_cost=Decimal('60.00'))
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)

    def today_range(self):
        today = timezone.localdate()
        return {'from': today.isoformat(), 'to': (today + timedelta(days=1)).isoformat()}


class SalesExportTests(ReportsTestCase):
    def test_workbook_sheets_and_totals(self):
        TestDataFactory.create_sale(self.cashier, self.branch, self.product, quantity=2)
        TestDataFactory.create_sale(self.admin, self.branch, self.product, method=SalePayment.CARD)

        response = self.client.get('/api/reportes/ventas/export/', self.today_range())
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('_TODAS.xlsx', response['Content-Disposition'])
        workbook = load_workbook(BytesIO(response.content))
        self.assertEqual(workbook.sheetnames, ['Resumen', 'Ventas', 'Detalle'])

        summary = workbook['Resumen']
        self.assertEqual(summary['D2'].value, 2)
        self.assertEqual(summary['E2'].value, 450.0)
        self.assertEqual(summary['H2'].value, 0.0)
        self.assertEqual(workbook['Ventas'].max_row, 3)
        self.assertEqual(workbook['Detalle']['E2'].value, 'PUL-001')

    def test_method_filter(self):
        TestDataFactory.create_sale(self.cashier, self.branch, self.product)
        TestDataFactory.create_sale(self.cashier, self.branch, self.product, method=SalePayment.CARD)
        response = self.client.get('/api/reportes/ventas/export/',
                                   dict(self.today_range(), metodo=SalePayment.CARD))
        workbook = load_workbook(BytesIO(response.content))
        self.assertEqual(workbook['Resumen']['D2'].value, 1)
        self.assertEqual(workbook['Ventas'].max_row, 2)

    def test_cashier_exports_only_own_sales(self):
        TestDataFactory.create_sale(self.cashier, self.branch, self.product)
        TestDataFactory.create_sale(self.admin, self.branch, self.product)
        self.client.authenticate_user(self.cashier)
        response = self.client.get('/api/reportes/ventas/export/',
                                   dict(self.today_range(), usuario_id=self.admin.pk))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        workbook = load_workbook(BytesIO(response.content))
        self.assertEqual(workbook['Resumen']['D2'].value, 1)

    def test_invalid_params(self):
        self.assertEqual(self.client.get('/api/reportes/ventas/export/').status_code,
                         status.HTTP_400_BAD_REQUEST)
        response = self.client.get('/api/reportes/ventas/export/', dict(self.today_range(), metodo='CHEQUE'))
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.get('/api/reportes/ventas/export/', dict(self.today_range(), sucursal_id='x'))
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_requires_token(self):
        self.client.logout()
        response = self.client.get('/api/reportes/ventas/export/', self.today_range())
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_markdown_counts_as_discount(self):
        sale = TestDataFactory.create_sale(self.cashier, self.branch, self.product, quantity=2,
                                           unit_price=Decimal('120.00'))
        self.assertEqual(line_discount(SaleItem.objects.get(sale=sale)), Decimal('60.00'))


class InternalInventoryExportTests(ReportsTestCase):
    def test_one_row_per_stock_record(self):
        TestDataFactory.set_stock(self.product, self.showcase, 2)
        TestDataFactory.set_stock(self.product, TestDataFactory.storeroom(self.branch), 3)
        inactive = TestDataFactory.create_product(is_active=False)
        TestDataFactory.set_stock(inactive, self.showcase, 9)

        response = self.client.get('/api/reportes/inventario-interno/export/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        workbook = load_workbook(BytesIO(response.content))
        self.assertEqual(workbook.sheetnames, ['Resumen', 'Inventario'])
        self.assertEqual(workbook['Inventario'].max_row, 3)
        summary = workbook['Resumen']
        self.assertEqual(summary['B2'].value, 1)
        self.assertEqual(summary['D2'].value, 750.0)
        self.assertEqual(summary['E2'].value, 300.0)

    def test_cashier_forbidden(self):
        self.client.authenticate_user(self.cashier)
        response = self.client.get('/api/reportes/inventario-interno/export/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class JsonReportTests(ReportsTestCase):
    def test_sales_by_method(self):
        TestDataFactory.create_sale(self.cashier, self.branch, self.product)
        TestDataFactory.create_sale(self.cashier, self.branch, self.product)
        TestDataFactory.create_sale(self.cashier, self.branch, self.product, method=SalePayment.TRANSFER)
        today = timezone.localdate().isoformat()
        response = self.client.get('/api/reports/ventas-metodo/', {'desde': today, 'hasta': today})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        rows = {row['metodo_pago']: row for row in response.data['datos']}
        self.assertEqual(rows[SalePayment.CASH]['num_ventas'], 2)
        self.assertEqual(rows[SalePayment.CASH]['total'], 300.0)
        self.assertEqual(rows[SalePayment.TRANSFER]['total'], 150.0)

    def test_sales_by_method_bad_date(self):
        response = self.client.get('/api/reports/ventas-metodo/', {'desde': '01/02/2024'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_top_products(self):
        other = TestDataFactory.create_product(name='Collar')
        TestDataFactory.create_sale(self.cashier, self.branch, self.product, quantity=3)
        TestDataFactory.create_sale(self.cashier, self.branch, other)
        response = self.client.get('/api/reports/top-productos/')
        products = response.data['productos']
        self.assertEqual(products[0]['producto_id'], self.product.pk)
        self.assertEqual(products[0]['unidades'], 3.0)
        self.assertEqual(len(products), 2)

    def test_top_products_non_numeric_branch(self):
        response = self.client.get('/api/reports/top-productos/', {'sucursal_id': 'abc'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.data['ok'])

    def test_reports_are_admin_only(self):
        self.client.authenticate_user(self.cashier)
        self.assertEqual(self.client.get('/api/reports/top-productos/').status_code, status.HTTP_403_FORBIDDEN)


class DashboardTests(ReportsTestCase):
    def test_summary_for_cashier(self):
        TestDataFactory.create_sale(self.cashier, self.branch, self.product)
        TestDataFactory.create_sale(self.cashier, self.branch, self.product, method=SalePayment.CARD)
        TestDataFactory.create_sale(self.admin, self.branch, self.product)
        self.client.authenticate_user(self.cashier)

        data = self.client.get('/api/dashboard/summary/').data['data']
        self.assertEqual(data['totalVentasDia'], 300.0)
        self.assertEqual(data['totalTicketsDia'], 2)
        self.assertEqual(data['ticketPromedio'], 150.0)
        self.assertEqual(data['utilidadBrutaDia'], 180.0)
        methods = {row['metodo']: row['monto'] for row in data['porMetodo']}
        self.assertEqual(methods[SalePayment.CARD], 150.0)

    def test_summary_for_admin_covers_branch(self):
        TestDataFactory.create_sale(self.cashier, self.branch, self.product)
        TestDataFactory.create_sale(self.admin, self.branch, self.product)
        data = self.client.get('/api/dashboard/summary/').data['data']
        self.assertEqual(data['totalTicketsDia'], 2)

    def test_empty_day(self):
        data = self.client.get('/api/dashboard/summary/').data['data']
        self.assertEqual(data['ticketPromedio'], 0)

    def test_non_numeric_branch_rejected(self):
        for url in ('/api/dashboard/summary/', '/api/dashboard/last-sales/', '/api/dashboard/low-stock/'):
            response = self.client.get(url, {'sucursal_id': 'abc'})
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, url)
            self.assertEqual(response.data['message'], 'sucursal_id inválido')

    def test_top_products_and_last_sales(self):
        sale = TestDataFactory.create_sale(self.cashier, self.branch, self.product, quantity=2)
        self.client.authenticate_user(self.cashier)
        top = self.client.get('/api/dashboard/top-products/').data['items']
        self.assertEqual(top[0]['sku'], 'PUL-001')
        self.assertEqual(top[0]['unidades'], 2.0)
        last = self.client.get('/api/dashboard/last-sales/').data['items']
        self.assertEqual([row['id'] for row in last], [sale.pk])
        self.assertEqual(last[0]['metodo'], SalePayment.CASH)

    def test_low_stock(self):
        product = TestDataFactory.create_product(name='Tobillera', min_stock=Decimal('5'))
        TestDataFactory.set_stock(product, self.showcase, 1)
        TestDataFactory.set_stock(self.product, self.showcase, 10)
        items = self.client.get('/api/dashboard/low-stock/').data['items']
        self.assertEqual([row['nombre'] for row in items], ['Tobillera'])

    def test_requires_role(self):
        self.client.authenticate_user(TestDataFactory.create_user(role=None))
        self.assertEqual(self.client.get('/api/dashboard/summary/').status_code, status.HTTP_403_FORBIDDEN)


class HealthCheckTests(TestCase):
    def test_health(self):
        response = self.client.get('/api/health/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.json()['ok'])
