"""
Test suite for the purchasing module
Tests: purchase import with landed cost pricing, listing, draft confirmation, barcode labels
"""
from decimal import Decimal

from django.test import TestCase
from rest_framework import status

from joyeria.catalog.models import Product
from joyeria.core.test_utils import AuthenticatedAPIClient, TestDataFactory
from joyeria.inventory.models import Stock, StockMovement
from joyeria.purchasing.labels import layout_pages, purchase_labels
from joyeria.purchasing.models import Purchase, PurchaseItem, Supplier


class PurchaseImportAPITests(TestCase):
    def setUp(self):
        self.branch = TestDataFactory.create_branch()
        self.storeroom = TestDataFactory.storeroom(self.branch)
        self.supplier = Supplier.objects.create(name='Platería Central')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(TestDataFactory.create_admin(branch=self.branch))

    def _import(self, items, **extra):
        payload = {'sucursalId': self.branch.pk, 'items': items}
        payload.update(extra)
        return self.client.post('/api/purchases/import/', payload, format='json')

    def test_import_creates_products_and_stock(self):
        response = self._import([{
            'nombre_producto': 'Anillo oro', 'cantidad': 2, 'costo_compra': '80', 'costo_envio': '10',
            'costo_impuestos': '5', 'costo_desaduanaje': '5', 'codigo_barras': '75010001', 'categoria': 'anillos',
        }], proveedorId=self.supplier.pk)
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        data = response.data['data']
        row = data['resumen'][0]
        self.assertTrue(row['creado'])
        self.assertEqual(row['costoTotalUnit'], 100.0)
        self.assertEqual(row['precioVentaSugerido'], 140.0)
        self.assertEqual(data['compra']['status'], Purchase.CONFIRMED)
        self.assertEqual(data['compra']['supplier_name'], 'Platería Central')

        product = Product.objects.get(barcode='75010001')
        self.assertFalse(product.is_active)
        self.assertEqual(product.category.name, 'ANILLOS')
        self.assertEqual(product.average_cost, Decimal('100.00'))
        self.assertEqual(Stock.objects.get(product=product, location=self.storeroom).quantity, Decimal('2'))
        self.assertEqual(StockMovement.objects.get(product=product).unit_cost, Decimal('100.00'))

        purchase = Purchase.objects.get()
        self.assertEqual(purchase.subtotal, Decimal('160.00'))
        self.assertEqual(purchase.total_shipping, Decimal('20.00'))
        self.assertEqual(purchase.total, Decimal('200.00'))

    def test_existing_product_matched_by_sku(self):
        product = TestDataFactory.create_product(sku='ANI-001')
        response = self._import([{
            'nombre': 'Anillo', 'sku': 'ANI-001', 'cantidad': 1, 'costoCompra': '100', 'margen': 50,
        }])
        row = response.data['data']['resumen'][0]
        self.assertFalse(row['creado'])
        self.assertEqual(row['productoId'], product.pk)
        self.assertEqual(row['precioVentaSugerido'], 150.0)
        product.refresh_from_db()
        self.assertEqual(product.purchase_cost, Decimal('100.00'))
        self.assertEqual(product.sale_price, Decimal('100.00'))

    def test_category_margin_applies(self):
        TestDataFactory.create_category(name='RELOJES', recommended_margin=Decimal('0.25'))
        response = self._import([{
            'nombre': 'Reloj', 'cantidad': 1, 'costo_compra': '200', 'categoria': 'relojes',
        }])
        self.assertEqual(response.data['data']['resumen'][0]['precioVentaSugerido'], 250.0)

    def test_bad_rows_are_reported(self):
        response = self._import([
            {'nombre': 'Cadena', 'cantidad': 1, 'costo_compra': '50'},
            {'nombre': 'Sin cantidad', 'cantidad': 0, 'costo_compra': '50'},
            {'cantidad': 1, 'costo_compra': '50'},
        ])
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        data = response.data['data']
        self.assertEqual(len(data['resumen']), 1)
        self.assertEqual([e['fila'] for e in data['errores']], [2, 3])
        self.assertEqual(PurchaseItem.objects.count(), 1)

    def test_all_rows_invalid(self):
        response = self._import([{'nombre': 'Nada', 'cantidad': 1, 'costo_compra': '0'}])
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(len(response.data['errores']), 1)
        self.assertFalse(Purchase.objects.exists())

    def test_defaults_to_fallback_branch(self):
        fallback = TestDataFactory.create_fallback_branch()
        response = self.client.post('/api/purchases/import/', {'items': [
            {'nombre': 'Arete', 'cantidad': 3, 'costo_compra': '10'},
        ]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Purchase.objects.get().branch, fallback)

    def test_invalid_branch_and_supplier(self):
        rows = [{'nombre': 'Arete', 'cantidad': 1, 'costo_compra': '10'}]
        self.assertEqual(self._import(rows, sucursalId=999999).status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(self._import(rows, proveedorId=999999).status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(self._import(rows, sucursalId='abc').status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(self._import(rows, proveedorId='abc').status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(Purchase.objects.exists())

    def test_empty_items(self):
        self.assertEqual(self._import([]).status_code, status.HTTP_400_BAD_REQUEST)

    def test_cashier_forbidden(self):
        self.client.authenticate_user(TestDataFactory.create_cashier(branch=self.branch))
        response = self._import([{'nombre': 'Arete', 'cantidad': 1, 'costo_compra': '10'}])
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class PurchaseListAndConfirmTests(TestCase):
    def setUp(self):
        self.branch = TestDataFactory.create_branch()
        self.storeroom = TestDataFactory.storeroom(self.branch)
        self.product = TestDataFactory.create_product()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(TestDataFactory.create_admin(branch=self.branch))

    def _draft(self, quantity='4', unit_cost='25.00'):
        purchase = Purchase.objects.create(branch=self.branch)
        PurchaseItem.objects.create(purchase=purchase, product=self.product, quantity=Decimal(quantity),
                                    purchase_cost=Decimal(unit_cost), unit_cost=Decimal(unit_cost),
                                    line_total=Decimal(quantity) * Decimal(unit_cost))
        return purchase

    def test_confirm_draft(self):
        purchase = self._draft()
        response = self.client.post(f'/api/inventory/compras/{purchase.pk}/confirmar/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['estado'], Purchase.CONFIRMED)
        self.assertEqual(Stock.objects.get(product=self.product, location=self.storeroom).quantity, Decimal('4'))
        self.product.refresh_from_db()
        self.assertEqual(self.product.last_cost, Decimal('25.00'))

        again = self.client.post(f'/api/inventory/compras/{purchase.pk}/confirmar/')
        self.assertEqual(again.status_code, status.HTTP_400_BAD_REQUEST)

    def test_confirm_unknown(self):
        response = self.client.post('/api/inventory/compras/999999/confirmar/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_list_only_confirmed(self):
        self._draft()
        confirmed = self._draft()
        self.client.post(f'/api/inventory/compras/{confirmed.pk}/confirmar/')
        response = self.client.get('/api/purchases/', {'limit': 'abc'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([p['id'] for p in response.data['data']['items']], [confirmed.pk])
        self.assertEqual(response.data['data']['items'][0]['item_count'], 1)

    def test_recent_includes_drafts(self):
        draft = self._draft()
        response = self.client.get('/api/purchases/recent/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([p['id'] for p in response.data['data']['items']], [draft.pk])
        self.assertEqual(response.data['data']['items'][0]['status'], Purchase.DRAFT)


class PurchaseLabelTests(TestCase):
    def setUp(self):
        self.branch = TestDataFactory.create_branch()
        self.ring = TestDataFactory.create_product(name='Anillo plata', sku='ANI-001', barcode='75010001')
        self.chain = TestDataFactory.create_product(name='Cadena', sku='CAD-001')
        self.purchase = Purchase.objects.create(branch=self.branch,
                                                supplier=Supplier.objects.create(name='Platería Central'))
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(TestDataFactory.create_admin(branch=self.branch))

    def _line(self, product, quantity):
        return PurchaseItem.objects.create(purchase=self.purchase, product=product, quantity=Decimal(quantity),
                                           purchase_cost=Decimal('10.00'), unit_cost=Decimal('10.00'),
                                           line_total=Decimal(quantity) * Decimal('10.00'))

    def test_one_label_per_unit(self):
        self._line(self.ring, '3')
        self._line(self.chain, '1.5')
        labels = purchase_labels(self.purchase)
        self.assertEqual(len(labels), 5)
        self.assertEqual([l['sku'] for l in labels].count('ANI-001'), 3)
        self.assertEqual(labels[0], {'sku': 'ANI-001', 'nombre': 'Anillo plata', 'codigo_barras': '75010001'})
        self.assertEqual(labels[-1]['codigo_barras'], 'CAD-001')

    def test_fractional_quantity_prints_at_least_one(self):
        self._line(self.ring, '0.2')
        self.assertEqual(len(purchase_labels(self.purchase)), 1)

    def test_labels_overflow_to_next_page(self):
        label = {'sku': 'ANI-001', 'nombre': 'Anillo plata', 'codigo_barras': '75010001'}
        self.assertEqual(len(layout_pages([label] * 24, ['Compra'])), 1)
        self.assertEqual(len(layout_pages([label] * 25, ['Compra'])), 2)

    def test_pdf_response(self):
        self._line(self.ring, '2')
        response = self.client.get(f'/api/purchases/{self.purchase.pk}/labels/pdf/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response['Content-Type'], 'application/pdf')
        self.assertIn(f'etiquetas-{self.purchase.pk}.pdf', response['Content-Disposition'])
        self.assertTrue(response.content.startswith(b'%PDF'))

    def test_pdf_accept_header(self):
        self._line(self.ring, '1')
        response = self.client.get(f'/api/purchases/{self.purchase.pk}/labels/pdf/', HTTP_ACCEPT='application/pdf')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_unknown_purchase(self):
        response = self.client.get('/api/purchases/999999/labels/pdf/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertFalse(response.json()['ok'])

    def test_purchase_without_lines(self):
        response = self.client.get(f'/api/purchases/{self.purchase.pk}/labels/pdf/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.json()['message'], 'La compra no tiene detalle para generar etiquetas')

    def test_cashier_forbidden(self):
        self._line(self.ring, '1')
        self.client.authenticate_user(TestDataFactory.create_cashier(branch=self.branch))
        response = self.client.get(f'/api/purchases/{self.purchase.pk}/labels/pdf/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
