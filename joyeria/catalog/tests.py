"""
Test suite for the catalog module
Tests: categories, product search and pagination, price defaults
"""
from decimal import Decimal

from django.test import TestCase
from rest_framework import status

from joyeria.catalog.models import Category, Product
from joyeria.catalog.utils import (
    clean_barcode, detect_category_from_name, find_or_create_category, generate_sku_from_name,
)
from joyeria.core.models import AuditLog
from joyeria.core.test_utils import AuthenticatedAPIClient, TestDataFactory


class CatalogUtilsTests(TestCase):
    def test_category_name_normalization_prevents_duplicates(self):
        first = find_or_create_category('Ánillos')
        second = find_or_create_category('  anillos ')
        self.assertEqual(first.pk, second.pk)
        self.assertEqual(Category.objects.count(), 1)

    def test_detect_category(self):
        self.assertEqual(detect_category_from_name('ARETE de plata'), 'Aretes')
        self.assertEqual(detect_category_from_name('Brazalete oro'), 'Pulseras')
        self.assertIsNone(detect_category_from_name('Estuche'))

    def test_generate_sku(self):
        sku = generate_sku_from_name('Anillo Compromiso Oro')
        self.assertRegex(sku, r'^ANILLO-COM-\d{4}$')

    def test_clean_barcode_placeholders(self):
        self.assertIsNone(clean_barcode(' n/a '))
        self.assertIsNone(clean_barcode('0'))
        self.assertEqual(clean_barcode(' 750123 '), '750123')


class CategoryAPITests(TestCase):
    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(TestDataFactory.create_admin())

    def test_create_and_list(self):
        response = self.client.post('/api/catalog/categories/', {'name': 'Collares', 'recommended_margin': '35'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        response = self.client.get('/api/catalog/categories/')
        self.assertEqual([c['name'] for c in response.data['data']], ['Collares'])

    def test_duplicate_name_rejected(self):
        TestDataFactory.create_category(name='Collares')
        response = self.client.post('/api/catalog/categories/', {'name': 'COLLARES'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_category_in_use_cannot_be_deleted(self):
        category = TestDataFactory.create_category()
        TestDataFactory.create_product(category=category)
        response = self.client.delete(f'/api/catalog/categories/{category.pk}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertTrue(Category.objects.filter(pk=category.pk).exists())

    def test_requires_role(self):
        self.client.authenticate_user(TestDataFactory.create_user(role=None))
        response = self.client.get('/api/catalog/categories/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class ProductAPITests(TestCase):
    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(TestDataFactory.create_cashier())

    def test_sale_price_defaults_from_category_margin(self):
        category = TestDataFactory.create_category(recommended_margin=Decimal('50'))
        response = self.client.post('/api/catalog/products/', {
            'sku': 'AN-001', 'name': 'Anillo', 'category': category.pk, 'purchase_cost': '80.00',
            'shipping_cost': '20.00',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Decimal(response.data['data']['sale_price']), Decimal('150.00'))
        self.assertEqual(Decimal(response.data['data']['unit_cost']), Decimal('100.00'))

    def test_explicit_sale_price_is_kept(self):
        response = self.client.post('/api/catalog/products/', {
            'sku': 'AN-002', 'name': 'Anillo', 'purchase_cost': '80.00', 'sale_price': '99.00',
        }, format='json')
        self.assertEqual(Decimal(response.data['data']['sale_price']), Decimal('99.00'))

    def test_list_hides_archived_and_inactive(self):
        TestDataFactory.create_product(name='Visible')
        TestDataFactory.create_product(name='Archivado', is_archived=True)
        TestDataFactory.create_product(name='Inactivo', is_active=False)

        response = self.client.get('/api/catalog/products/')
        self.assertEqual([p['name'] for p in response.data['data']['items']], ['Visible'])

        response = self.client.get('/api/catalog/products/', {'includeInactivos': '1'})
        self.assertEqual(response.data['data']['total'], 2)

        response = self.client.get('/api/catalog/products/', {'archivado': 'true'})
        self.assertEqual([p['name'] for p in response.data['data']['items']], ['Archivado'])

    def test_search_and_pagination(self):
        for index in range(15):
            TestDataFactory.create_product(name=f'Cadena {index}')
        TestDataFactory.create_product(name='Reloj', barcode='7501112223334')

        response = self.client.get('/api/catalog/products/', {'q': 'cadena', 'page': 2, 'pageSize': 10})
        self.assertEqual(response.data['data']['total'], 15)
        self.assertEqual(len(response.data['data']['items']), 5)

        response = self.client.get('/api/catalog/products/', {'q': '2223334'})
        self.assertEqual(response.data['data']['items'][0]['name'], 'Reloj')

    def test_page_size_is_capped(self):
        response = self.client.get('/api/catalog/products/', {'pageSize': 1000})
        self.assertEqual(response.data['data']['pageSize'], 100)

    def test_price_change_is_audited(self):
        product = TestDataFactory.create_product(sale_price=Decimal('100.00'))
        response = self.client.patch(f'/api/catalog/products/{product.pk}/', {'sale_price': '120.00'},
                                     format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        log = AuditLog.objects.get(action='price_change')
        self.assertEqual(log.changes['new'], '120.00')

    def test_duplicate_sku_rejected(self):
        TestDataFactory.create_product(sku='DUP-1')
        response = self.client.post('/api/catalog/products/', {'sku': 'DUP-1', 'name': 'Otro'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Product.objects.filter(sku='DUP-1').count(), 1)
