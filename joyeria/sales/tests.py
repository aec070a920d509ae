"""
Test suite for the sales module
Tests: generic and POS sales, live summary, manual products, bulk edits, price list import
"""
import json
from decimal import Decimal
from io import BytesIO

from django.core.cache import cache
from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import TestCase
from openpyxl import Workbook
from rest_framework import status

from joyeria.catalog.models import Product
from joyeria.core.models import AuditLog
from joyeria.core.test_utils import AuthenticatedAPIClient, TestDataFactory
from joyeria.inventory.models import Stock, StockMovement
from joyeria.sales.importers import is_usable_identifier, normalize_key, parse_money, parse_rows
from joyeria.sales.models import Sale, SalePayment
from joyeria.sales.services import normalize_payment_method


def stock_of(product, location):
    stock = Stock.objects.filter(product=product, location=location).first()
    return stock.quantity if stock else Decimal('0')


def xlsx_upload(rows, name='precios.xlsx'):
    workbook = Workbook()
    sheet = workbook.active
    for row in rows:
        sheet.append(row)
    stream = BytesIO()
    workbook.save(stream)
    return SimpleUploadedFile(name, stream.getvalue(),
                              content_type='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet')


class SalesTestCase(TestCase):
    def setUp(self):
        cache.clear()
        self.branch = TestDataFactory.create_branch()
        self.showcase = TestDataFactory.showcase(self.branch)
        self.storeroom = TestDataFactory.storeroom(self.branch)
        self.cashier = TestDataFactory.create_cashier(branch=self.branch)
        self.product = TestDataFactory.create_product(name='Anillo plata', sale_price=Decimal('150.00'))
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.cashier)


class GenericSaleAPITests(SalesTestCase):
    def _payload(self, **overrides):
        payload = {
            'sucursal_id': self.branch.pk,
            'items': [{'producto_id': self.product.pk, 'cantidad': 2, 'precio_unitario': '100.00',
                       'descuento': '10.00', 'impuesto': '5.00'}],
            'pagos': [{'metodo': 'efectivo', 'monto': '195.00'}],
        }
        payload.update(overrides)
        return payload

    def test_totals_and_stock(self):
        TestDataFactory.set_stock(self.product, self.showcase, 5)
        response = self.client.post('/api/sales/', self._payload(descuento='5.00'), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        data = response.data['data']
        self.assertEqual(data['estado'], Sale.CONFIRMED)
        self.assertEqual(data['subtotal'], 200.0)
        self.assertEqual(data['descuento'], 15.0)
        self.assertEqual(data['impuesto'], 5.0)
        self.assertEqual(data['total'], 190.0)
        self.assertEqual(stock_of(self.product, self.showcase), Decimal('3'))
        self.assertEqual(SalePayment.objects.get().method, SalePayment.CASH)

    def test_missing_fields(self):
        response = self.client.post('/api/sales/', self._payload(pagos=[]), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_non_numeric_ids_rejected(self):
        response = self.client.post('/api/sales/', self._payload(sucursal_id='abc'), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        items = [{'producto_id': 'abc', 'cantidad': 1, 'precio_unitario': '100.00'}]
        response = self.client.post('/api/sales/', self._payload(items=items), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.post('/api/sales/pos/', {
            'items': [{'producto_id': 'abc', 'cantidad': 1}], 'metodo_pago': 'EFECTIVO',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(Sale.objects.exists())

    def test_insufficient_showcase_rolls_back(self):
        TestDataFactory.set_stock(self.product, self.showcase, 1)
        TestDataFactory.set_stock(self.product, self.storeroom, 10)
        response = self.client.post('/api/sales/', self._payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'STOCK_INSUFICIENTE')
        self.assertFalse(Sale.objects.exists())
        self.assertEqual(stock_of(self.product, self.storeroom), Decimal('10'))

    def test_invalid_payment_method(self):
        TestDataFactory.set_stock(self.product, self.showcase, 5)
        response = self.client.post('/api/sales/', self._payload(pagos=[{'metodo': 'BITCOIN', 'monto': 1}]),
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(Sale.objects.exists())

    def test_payment_aliases(self):
        self.assertEqual(normalize_payment_method('card'), SalePayment.CARD)
        self.assertEqual(normalize_payment_method(' bank '), SalePayment.TRANSFER)
        self.assertEqual(normalize_payment_method(''), SalePayment.CASH)


class PosSaleAPITests(SalesTestCase):
    def test_cash_sale_returns_change_and_tops_up_showcase(self):
        TestDataFactory.set_stock(self.product, self.storeroom, 4)
        response = self.client.post('/api/sales/pos/', {
            'items': [{'producto_id': self.product.pk, 'cantidad': 2}],
            'metodo_pago': 'EFECTIVO',
            'efectivo_recibido': '500',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        data = response.data['data']
        self.assertEqual(data['total'], 300.0)
        self.assertEqual(data['cambio'], 200.0)
        self.assertEqual(data['inventario']['movimientos_creados'], 1)
        self.assertEqual(stock_of(self.product, self.showcase), Decimal('0'))
        self.assertEqual(stock_of(self.product, self.storeroom), Decimal('2'))
        self.assertEqual(StockMovement.objects.filter(movement_type=StockMovement.EXIT).count(), 1)
        sale = Sale.objects.get(pk=data['venta_id'])
        self.assertEqual(sale.change_given, Decimal('200.00'))
        self.assertEqual(sale.user_id, self.cashier.pk)

    def test_insufficient_cash(self):
        TestDataFactory.set_stock(self.product, self.showcase, 4)
        response = self.client.post('/api/sales/pos/', {
            'items': [{'producto_id': self.product.pk, 'cantidad': 1}],
            'metodo_pago': 'EFECTIVO',
            'efectivo_recibido': '100',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_card_sale_keeps_last_four_digits(self):
        TestDataFactory.set_stock(self.product, self.showcase, 1)
        response = self.client.post('/api/sales/pos/', {
            'items': [{'producto_id': self.product.pk, 'cantidad': 1}],
            'metodo_pago': 'TARJETA',
            'tarjeta_marca': 'VISA',
            'tarjeta_ultimos4': '4111111111111234',
            'codigo_autorizacion': 'A1B2',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIsNone(response.data['data']['cambio'])
        payment = SalePayment.objects.get()
        self.assertEqual(payment.card_last4, '1234')
        self.assertEqual(payment.auth_code, 'A1B2')

    def test_stock_shortfall_is_conflict(self):
        TestDataFactory.set_stock(self.product, self.storeroom, 1)
        response = self.client.post('/api/sales/pos/', {
            'items': [{'producto_id': self.product.pk, 'cantidad': 3}],
            'metodo_pago': 'EFECTIVO',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'STOCK_INSUFICIENTE')
        self.assertIn('faltantes', response.data)
        self.assertFalse(Sale.objects.exists())

    def test_archived_product_rejected(self):
        Product.objects.filter(pk=self.product.pk).update(is_archived=True)
        response = self.client.post('/api/sales/pos/', {
            'items': [{'producto_id': self.product.pk, 'cantidad': 1}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_unpriced_product_rejected(self):
        product = TestDataFactory.create_product(sale_price=None)
        TestDataFactory.set_stock(product, self.showcase, 1)
        response = self.client.post('/api/sales/pos/', {
            'items': [{'producto_id': product.pk, 'cantidad': 1}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_cashier_cannot_sell_for_another_branch(self):
        other = TestDataFactory.create_branch()
        TestDataFactory.set_stock(self.product, self.showcase, 1)
        response = self.client.post('/api/sales/pos/', {
            'sucursal_id': other.pk,
            'items': [{'producto_id': self.product.pk, 'cantidad': 1}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Sale.objects.get().branch_id, self.branch.pk)

    def test_requires_authentication(self):
        self.client.logout()
        response = self.client.post('/api/sales/pos/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class SummaryAPITests(SalesTestCase):
    def test_cashier_sees_own_sales(self):
        other = TestDataFactory.create_cashier(branch=self.branch)
        TestDataFactory.create_sale(self.cashier, self.branch, self.product)
        TestDataFactory.create_sale(other, self.branch, self.product, method=SalePayment.CARD)

        response = self.client.get('/api/sales/summary/today/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.data['data']
        self.assertEqual(data['scope'], 'USER')
        self.assertEqual(data['totals']['num_ventas'], 1)
        self.assertEqual(data['totals']['efectivo'], 150.0)
        self.assertEqual(data['totals']['tarjeta'], 0.0)
        self.assertEqual(data['top']['producto']['producto_id'], self.product.pk)

    def test_admin_sees_branch(self):
        other = TestDataFactory.create_cashier(branch=self.branch)
        TestDataFactory.create_sale(self.cashier, self.branch, self.product)
        TestDataFactory.create_sale(other, self.branch, self.product, method=SalePayment.CARD)
        self.client.authenticate_user(TestDataFactory.create_admin(branch=self.branch))

        response = self.client.get('/api/sales/summary/today/')
        data = response.data['data']
        self.assertEqual(data['scope'], 'SUCURSAL')
        self.assertEqual(data['totals']['num_ventas'], 2)
        self.assertEqual(data['totals']['total_general'], 300.0)

    def test_summary_refreshes_after_new_sale(self):
        self.client.get('/api/sales/summary/today/')
        TestDataFactory.create_sale(self.cashier, self.branch, self.product)
        response = self.client.get('/api/sales/summary/today/')
        self.assertEqual(response.data['data']['totals']['num_ventas'], 1)

    def test_invalid_date(self):
        response = self.client.get('/api/sales/summary/today/', {'date': '2024-13-01'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_stream_accepts_query_token(self):
        TestDataFactory.create_sale(self.cashier, self.branch, self.product)
        token = self.client.token
        self.client.logout()

        response = self.client.get('/api/sales/summary/stream/', {'token': token}, HTTP_ACCEPT='text/event-stream')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response['Content-Type'], 'text/event-stream')
        body = b''.join(response.streaming_content).decode()
        self.assertTrue(body.startswith('retry: 5000'))
        payload = json.loads(body.split('event: summary\ndata: ')[1].strip())
        self.assertEqual(payload['data']['totals']['num_ventas'], 1)

    def test_stream_without_token(self):
        self.client.logout()
        response = self.client.get('/api/sales/summary/stream/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class ManualProductAPITests(SalesTestCase):
    def test_create_with_initial_stock(self):
        response = self.client.post('/api/sales/manual-product/', {
            'nombre': 'Collar perla', 'precio_venta': '250', 'codigo_barras': '7501234',
            'stock_inicial': 3, 'sucursal_id': self.branch.pk,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        product = Product.objects.get(barcode='7501234')
        self.assertTrue(product.is_manual)
        self.assertEqual(product.category.name, 'Collares')
        self.assertRegex(product.sku, r'^COLLAR-PER-\d{4}$')
        self.assertEqual(stock_of(product, self.showcase), Decimal('3'))

    def test_existing_barcode_updates(self):
        product = TestDataFactory.create_product(barcode='7509999', sale_price=Decimal('10.00'))
        response = self.client.post('/api/sales/manual-product/', {
            'nombre': 'Renombrado', 'precio_venta': '20', 'codigo_barras': '7509999',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        product.refresh_from_db()
        self.assertEqual(product.name, 'Renombrado')
        self.assertEqual(product.sale_price, Decimal('20.00'))

    def test_archived_barcode_cannot_be_reused(self):
        TestDataFactory.create_product(barcode='7508888', is_archived=True)
        response = self.client.post('/api/sales/manual-product/', {
            'nombre': 'Nuevo', 'precio_venta': '20', 'codigo_barras': '7508888',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_barcode_of_other_sku(self):
        TestDataFactory.create_product(sku='ORIG-1', barcode='7507777')
        response = self.client.post('/api/sales/manual-product/', {
            'nombre': 'Nuevo', 'precio_venta': '20', 'codigo_barras': '7507777', 'sku': 'OTRO-1',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_requires_name_and_price(self):
        response = self.client.post('/api/sales/manual-product/', {'nombre': 'Sin precio'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_delete_without_history(self):
        product = TestDataFactory.create_product()
        TestDataFactory.set_stock(product, self.showcase, 0)
        response = self.client.delete(f'/api/sales/manual-product/{product.pk}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['data']['archivado'])
        self.assertFalse(Product.objects.filter(pk=product.pk).exists())

    def test_delete_with_history_archives(self):
        TestDataFactory.create_sale(self.cashier, self.branch, self.product)
        response = self.client.delete(f'/api/sales/manual-product/{self.product.pk}/')
        self.assertTrue(response.data['data']['archivado'])
        self.product.refresh_from_db()
        self.assertTrue(self.product.is_archived)
        self.assertFalse(self.product.is_active)


class BulkProductsAPITests(SalesTestCase):
    def test_updates_all_rows(self):
        second = TestDataFactory.create_product()
        response = self.client.post('/api/sales/bulk-products/', {'items': [
            {'id': self.product.pk, 'nombre': 'Anillo oro', 'precio_venta': '300', 'categoria': 'Anillos'},
            {'id': second.pk, 'precio_venta': '80.5', 'precio_mayorista': '70', 'codigo_barras': '75000001'},
        ]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['actualizados'], 2)
        self.product.refresh_from_db()
        second.refresh_from_db()
        self.assertEqual(self.product.name, 'Anillo oro')
        self.assertEqual(self.product.category.name, 'Anillos')
        self.assertEqual(second.sale_price, Decimal('80.50'))
        self.assertEqual(second.barcode, '75000001')
        self.assertTrue(AuditLog.objects.filter(action='bulk_update').exists())

    def test_bad_row_aborts_everything(self):
        second = TestDataFactory.create_product()
        response = self.client.post('/api/sales/bulk-products/', {'items': [
            {'id': self.product.pk, 'precio_venta': '999'},
            {'id': second.pk, 'precio_venta': 'abc'},
        ]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.product.refresh_from_db()
        self.assertEqual(self.product.sale_price, Decimal('150.00'))

    def test_duplicate_barcode(self):
        TestDataFactory.create_product(barcode='75000002')
        response = self.client.post('/api/sales/bulk-products/', {'items': [
            {'id': self.product.pk, 'precio_venta': '10', 'codigo_barras': '75000002'},
        ]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_unknown_product(self):
        response = self.client.post('/api/sales/bulk-products/', {'items': [
            {'id': 999999, 'precio_venta': '10'},
        ]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class PriceListParsingTests(TestCase):
    def test_parse_money_formats(self):
        self.assertEqual(parse_money('Q36.41'), Decimal('36.41'))
        self.assertEqual(parse_money('1,234.56'), Decimal('1234.56'))
        self.assertEqual(parse_money('36,41'), Decimal('36.41'))
        self.assertEqual(parse_money(12), Decimal('12'))
        self.assertIsNone(parse_money('sin precio'))
        self.assertIsNone(parse_money(None))

    def test_normalize_key(self):
        self.assertEqual(normalize_key(' Precio Cliente Final '), 'precio_cliente_final')
        self.assertEqual(normalize_key('Código de Barras'), 'codigo_de_barras')

    def test_placeholder_barcodes(self):
        self.assertFalse(is_usable_identifier('E'))
        self.assertTrue(is_usable_identifier('1234'))

    def test_invalid_rows_reported(self):
        parsed, invalid = parse_rows([
            {'bar_code': 'E', 'articulo': 'Sin código', 'precio_cliente_final': '10'},
            {'sku': 'SKU-1', 'articulo': 'Sin precio', 'precio_cliente_final': None},
            {'sku': 'SKU-2', 'articulo': 'N_Cadena fina', 'precio_cliente_final': 'Q20.00'},
        ])
        self.assertEqual([row['fila'] for row in invalid], [2, 3])
        self.assertEqual(parsed[0]['categoria'], 'Cadenas')


class PriceListImportAPITests(SalesTestCase):
    HEADER = ['SKU', 'Bar Code', 'Artículo', 'Precio Cliente Final', 'Precio Mayorista']

    def test_import_updates_matching_products(self):
        by_barcode = TestDataFactory.create_product(barcode='75011111', wholesale_price=Decimal('50.00'))
        archived = TestDataFactory.create_product(sku='ARCH-1', is_archived=True)
        upload = xlsx_upload([
            self.HEADER,
            [self.product.sku, None, 'Anillo', 'Q200.00', None],
            [None, '75011111', 'Otro', '80', None],
            ['ARCH-1', None, 'Archivado', '10', None],
            ['NO-EXISTE', None, 'Fantasma', '10', None],
            [None, 'R', 'Basura', '10', None],
        ])
        response = self.client.post('/api/sales/import-excel/', {'archivo': upload, 'mayorista_factor': '0.8'},
                                    format='multipart')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        summary = response.data['data']['resumen']
        self.assertEqual(summary['filas_total'], 5)
        self.assertEqual(summary['actualizados'], 2)
        self.assertEqual(summary['archivados'], 1)
        self.assertEqual(summary['no_encontrados'], 1)
        self.assertEqual(summary['invalidas'], 1)
        self.assertEqual(summary['mayorista_factor_usado'], 0.8)

        self.product.refresh_from_db()
        by_barcode.refresh_from_db()
        archived.refresh_from_db()
        self.assertEqual(self.product.sale_price, Decimal('200.00'))
        self.assertEqual(self.product.wholesale_price, Decimal('160.00'))
        self.assertEqual(by_barcode.sale_price, Decimal('80.00'))
        self.assertEqual(by_barcode.wholesale_price, Decimal('50.00'))
        self.assertEqual(archived.sale_price, Decimal('100.00'))

    def test_missing_file(self):
        response = self.client.post('/api/sales/import-excel/', {}, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_not_a_workbook(self):
        upload = SimpleUploadedFile('precios.xlsx', b'not a zip file')
        response = self.client.post('/api/sales/import-excel/', {'archivo': upload}, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_no_valid_rows(self):
        upload = xlsx_upload([self.HEADER, [None, 'E', 'Nada', None, None]])
        response = self.client.post('/api/sales/import-excel/', {'archivo': upload}, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(len(response.data['invalidas']), 1)
