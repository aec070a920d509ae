"""
Test suite for the inventory module
Tests: stock movements, VITRINA top-up, stock listings, purchase cost averaging
"""
from decimal import Decimal

from django.test import TestCase
from rest_framework import status

from joyeria.core.test_utils import AuthenticatedAPIClient, TestDataFactory
from joyeria.inventory.models import Stock, StockMovement
from joyeria.inventory.services import record_purchase_cost


def stock_of(product, location):
    stock = Stock.objects.filter(product=product, location=location).first()
    return stock.quantity if stock else Decimal('0')


class StockMovementAPITests(TestCase):
    """Manual movements (ADMIN only)"""

    def setUp(self):
        self.branch = TestDataFactory.create_branch()
        self.showcase = TestDataFactory.showcase(self.branch)
        self.storeroom = TestDataFactory.storeroom(self.branch)
        self.product = TestDataFactory.create_product()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(TestDataFactory.create_admin(branch=self.branch))

    def _move(self, **data):
        return self.client.post('/api/inventory/movimientos/', dict({'producto_id': self.product.pk}, **data),
                                format='json')

    def test_entry_adds_stock(self):
        response = self._move(tipo='entrada', cantidad='5', ubicacion_destino_id=self.storeroom.pk)
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(stock_of(self.product, self.storeroom), Decimal('5'))
        self.assertEqual(StockMovement.objects.get().movement_type, StockMovement.ENTRY)

    def test_exit_cannot_go_negative(self):
        TestDataFactory.set_stock(self.product, self.showcase, 2)
        response = self._move(tipo='SALIDA', cantidad='3', ubicacion_origen_id=self.showcase.pk)
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'STOCK_INSUFICIENTE')
        self.assertEqual(response.data['disponible'], 2.0)
        self.assertEqual(stock_of(self.product, self.showcase), Decimal('2'))
        self.assertFalse(StockMovement.objects.exists())

    def test_transfer_moves_between_locations(self):
        TestDataFactory.set_stock(self.product, self.storeroom, 10)
        response = self._move(tipo='TRASPASO', cantidad='4', ubicacion_origen_id=self.storeroom.pk,
                              ubicacion_destino_id=self.showcase.pk)
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(stock_of(self.product, self.storeroom), Decimal('6'))
        self.assertEqual(stock_of(self.product, self.showcase), Decimal('4'))

    def test_transfer_to_same_location_rejected(self):
        TestDataFactory.set_stock(self.product, self.storeroom, 10)
        response = self._move(tipo='TRASPASO', cantidad='1', ubicacion_origen_id=self.storeroom.pk,
                              ubicacion_destino_id=self.storeroom.pk)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_adjustment_sets_absolute_quantity(self):
        TestDataFactory.set_stock(self.product, self.showcase, 7)
        response = self._move(tipo='AJUSTE', cantidad='0', ubicacion_destino_id=self.showcase.pk)
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(stock_of(self.product, self.showcase), Decimal('0'))

    def test_invalid_type_and_quantity(self):
        self.assertEqual(self._move(tipo='ROBO', cantidad='1').status_code, status.HTTP_400_BAD_REQUEST)
        response = self._move(tipo='ENTRADA', cantidad='-1', ubicacion_destino_id=self.storeroom.pk)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_list_movements(self):
        self._move(tipo='ENTRADA', cantidad='1', ubicacion_destino_id=self.storeroom.pk)
        response = self.client.get('/api/inventory/movimientos/', {'productoId': self.product.pk})
        self.assertEqual(len(response.data['data']['items']), 1)
        response = self.client.get('/api/inventory/movimientos/', {'productoId': 'abc'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_non_numeric_ids_rejected(self):
        response = self._move(tipo='ENTRADA', cantidad='1', producto_id='abc',
                              ubicacion_destino_id=self.storeroom.pk)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self._move(tipo='ENTRADA', cantidad='1', ubicacion_destino_id='bodega')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(StockMovement.objects.exists())

    def test_cashier_forbidden(self):
        self.client.authenticate_user(TestDataFactory.create_cashier(branch=self.branch))
        response = self._move(tipo='ENTRADA', cantidad='1', ubicacion_destino_id=self.storeroom.pk)
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class ShowcaseTopUpTests(TestCase):
    """BODEGA -> VITRINA transfers before a sale"""

    def setUp(self):
        self.branch = TestDataFactory.create_branch()
        self.showcase = TestDataFactory.showcase(self.branch)
        self.storeroom = TestDataFactory.storeroom(self.branch)
        self.ring = TestDataFactory.create_product(name='Anillo')
        self.chain = TestDataFactory.create_product(name='Cadena')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(TestDataFactory.create_cashier(branch=self.branch))

    def test_moves_only_the_missing_quantity(self):
        TestDataFactory.set_stock(self.ring, self.showcase, 1)
        TestDataFactory.set_stock(self.ring, self.storeroom, 5)
        response = self.client.post('/api/inventory/pos/ensure-vitrina/', {'items': [
            {'producto_id': self.ring.pk, 'cantidad': 2},
            {'producto_id': self.ring.pk, 'cantidad': 1},
        ]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['movimientos_creados'], 1)
        self.assertEqual(response.data['data']['transferencias'][0]['mover'], 2.0)
        self.assertEqual(stock_of(self.ring, self.showcase), Decimal('3'))
        self.assertEqual(stock_of(self.ring, self.storeroom), Decimal('3'))

    def test_nothing_moves_when_showcase_is_enough(self):
        TestDataFactory.set_stock(self.ring, self.showcase, 4)
        response = self.client.post('/api/inventory/pos/ensure-vitrina/', {'items': [
            {'producto_id': self.ring.pk, 'cantidad': 2},
        ]}, format='json')
        self.assertEqual(response.data['data']['movimientos_creados'], 0)

    def test_shortfall_moves_nothing(self):
        TestDataFactory.set_stock(self.ring, self.storeroom, 5)
        TestDataFactory.set_stock(self.chain, self.storeroom, 1)
        response = self.client.post('/api/inventory/pos/ensure-vitrina/', {'items': [
            {'producto_id': self.ring.pk, 'cantidad': 2},
            {'producto_id': self.chain.pk, 'cantidad': 3},
        ]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'STOCK_INSUFICIENTE_BODEGA')
        self.assertEqual([f['producto_id'] for f in response.data['faltantes']], [self.chain.pk])
        self.assertEqual(stock_of(self.ring, self.storeroom), Decimal('5'))
        self.assertFalse(StockMovement.objects.exists())

    def test_unknown_product(self):
        response = self.client.post('/api/inventory/pos/ensure-vitrina/', {'items': [
            {'producto_id': 999999, 'cantidad': 1},
        ]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_non_numeric_product_rejected(self):
        response = self.client.post('/api/inventory/pos/ensure-vitrina/', {'items': [
            {'producto_id': 'abc', 'cantidad': 1},
        ]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.post('/api/inventory/traslado-vitrina/',
                                    {'producto_id': 'abc', 'cantidad': 1}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.post('/api/inventory/pos/ensure-vitrina/', {'sucursal_id': 'abc', 'items': [
            {'producto_id': self.ring.pk, 'cantidad': 1},
        ]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_branch_without_locations(self):
        branch = TestDataFactory.create_branch(with_locations=False)
        self.client.authenticate_user(TestDataFactory.create_cashier(branch=branch))
        response = self.client.post('/api/inventory/pos/ensure-vitrina/', {'items': [
            {'producto_id': self.ring.pk, 'cantidad': 1},
        ]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_single_product_transfer(self):
        TestDataFactory.set_stock(self.ring, self.storeroom, 5)
        response = self.client.post('/api/inventory/traslado-vitrina/',
                                    {'producto_id': self.ring.pk, 'cantidad': 2}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(stock_of(self.ring, self.showcase), Decimal('2'))

    def test_user_without_branch_uses_fallback(self):
        fallback = TestDataFactory.create_fallback_branch()
        TestDataFactory.set_stock(self.ring, TestDataFactory.storeroom(fallback), 1)
        self.client.authenticate_user(TestDataFactory.create_cashier())
        response = self.client.post('/api/inventory/pos/ensure-vitrina/', {'items': [
            {'producto_id': self.ring.pk, 'cantidad': 1},
        ]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(stock_of(self.ring, TestDataFactory.showcase(fallback)), Decimal('1'))


class StockListingTests(TestCase):
    def setUp(self):
        self.branch = TestDataFactory.create_branch()
        self.showcase = TestDataFactory.showcase(self.branch)
        self.storeroom = TestDataFactory.storeroom(self.branch)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(TestDataFactory.create_cashier(branch=self.branch))

    def test_public_view_totals(self):
        product = TestDataFactory.create_product(name='Aretes')
        TestDataFactory.set_stock(product, self.showcase, 2)
        TestDataFactory.set_stock(product, self.storeroom, 3)
        response = self.client.get('/api/inventory/stock/', {'vista': 'publico'})
        self.assertEqual(response.data['data']['mode'], 'PUBLICO')
        row = response.data['data']['items'][0]
        self.assertEqual(row['stock_total'], 5.0)
        self.assertEqual(row['stock_vitrina'], 2.0)
        self.assertTrue(row['disponible'])

    def test_internal_view_rows_per_location(self):
        product = TestDataFactory.create_product()
        TestDataFactory.set_stock(product, self.showcase, 2)
        TestDataFactory.set_stock(product, self.storeroom, 3)
        response = self.client.get('/api/inventory/stock/', {'sucursalId': self.branch.pk})
        self.assertEqual(response.data['data']['mode'], 'INTERNO')
        self.assertEqual(len(response.data['data']['items']), 2)

    def test_low_stock(self):
        low = TestDataFactory.create_product(name='Bajo', min_stock=Decimal('3'))
        ok = TestDataFactory.create_product(name='Suficiente', min_stock=Decimal('1'))
        TestDataFactory.set_stock(low, self.showcase, 2)
        TestDataFactory.set_stock(ok, self.showcase, 5)
        response = self.client.get('/api/inventory/stock-bajo/')
        self.assertEqual([row['nombre'] for row in response.data['data']['items']], ['Bajo'])

    def test_non_numeric_branch_rejected(self):
        for url in ('/api/inventory/stock/', '/api/inventory/stock-bajo/'):
            response = self.client.get(url, {'sucursalId': 'abc'})
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, url)


class PurchaseCostTests(TestCase):
    def test_weighted_average(self):
        branch = TestDataFactory.create_branch()
        product = TestDataFactory.create_product()
        record_purchase_cost(product, Decimal('10'), Decimal('100.00'))
        self.assertEqual(product.average_cost, Decimal('100.00'))

        TestDataFactory.set_stock(product, TestDataFactory.storeroom(branch), 10)
        record_purchase_cost(product, Decimal('10'), Decimal('120.00'))
        product.refresh_from_db()
        self.assertEqual(product.last_cost, Decimal('120.00'))
        self.assertEqual(product.average_cost, Decimal('110.00'))
