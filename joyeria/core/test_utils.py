"""
Test utilities and factories for creating test data
"""
import random
import string
from decimal import Decimal

from rest_framework.test import APIClient

from joyeria.catalog.models import Category, Product
from joyeria.core.models import Role, User
from joyeria.core.tokens import issue_access_token
from joyeria.inventory.models import Stock
from joyeria.locations.models import Branch, Location
from joyeria.sales.models import Sale, SaleItem, SalePayment


class TestDataFactory:
    """Factory class for creating test data"""

    @staticmethod
    def random_string(length=10):
        """Generate a random string"""
        return ''.join(random.choices(string.ascii_letters + string.digits, k=length))

    @staticmethod
    def get_role(name):
        role, _ = Role.objects.get_or_create(name=name)
        return role

    @staticmethod
    def create_branch(code=None, name=None, with_locations=True):
        """Create a branch, with VITRINA and BODEGA locations by default"""
        if not code:
            code = f'B{TestDataFactory.random_string(5).upper()}'
        branch = Branch.objects.create(code=code, name=name or f'Sucursal {code}')
        if with_locations:
            Location.objects.create(branch=branch, name=Location.SHOWCASE, is_showcase=True)
            Location.objects.create(branch=branch, name=Location.STOREROOM, is_storeroom=True)
        return branch

    @staticmethod
    def create_fallback_branch():
        """The ``SP`` branch used when a user has no branch assigned"""
        return TestDataFactory.create_branch(code='SP', name='Sucursal Principal')

    @staticmethod
    def showcase(branch):
        return Location.objects.get(branch=branch, is_showcase=True)

    @staticmethod
    def storeroom(branch):
        return Location.objects.get(branch=branch, is_storeroom=True)

    @staticmethod
    def create_user(username=None, email=None, password='testpass123', role=Role.CASHIER, branch=None):
        """Create a test user with the given role name"""
        if not username:
            username = f'testuser_{TestDataFactory.random_string(6)}'
        if not email:
            email = f'{username.lower()}@test.com'
        return User.objects.create_user(
            username=username,
            email=email,
            password=password,
            nombre=username,
            role=TestDataFactory.get_role(role) if role else None,
            branch=branch,
        )

    @staticmethod
    def create_admin(branch=None, **kwargs):
        return TestDataFactory.create_user(role=Role.ADMIN, branch=branch, **kwargs)

    @staticmethod
    def create_cashier(branch=None, **kwargs):
        return TestDataFactory.create_user(role=Role.CASHIER, branch=branch, **kwargs)

    @staticmethod
    def create_category(name=None, recommended_margin=None):
        """Create a test category"""
        if not name:
            name = f'Categoria {TestDataFactory.random_string(6)}'
        return Category.objects.create(name=name, recommended_margin=recommended_margin)

    @staticmethod
    def create_product(name=None, sku=None, barcode=None, category=None, sale_price=Decimal('100.00'),
                       purchase_cost=Decimal('50.00'), min_stock=Decimal('0'), **kwargs):
        """Create a test product"""
        if not name:
            name = f'Anillo {TestDataFactory.random_string(6)}'
        if not sku:
            sku = f'SKU-{TestDataFactory.random_string(8).upper()}'
        return Product.objects.create(
            name=name,
            sku=sku,
            barcode=barcode,
            category=category,
            sale_price=sale_price,
            purchase_cost=purchase_cost,
            min_stock=min_stock,
            **kwargs
        )

    @staticmethod
    def set_stock(product, location, quantity):
        """Set the on-hand quantity of a product at a location"""
        stock, _ = Stock.objects.update_or_create(
            product=product, location=location, defaults={'quantity': Decimal(str(quantity))},
        )
        return stock

    @staticmethod
    def create_sale(user, branch, product, quantity=1, unit_price=None, method=SalePayment.CASH,
                    status=Sale.CONFIRMED):
        """Create a sale with one line and one payment covering the total"""
        quantity = Decimal(str(quantity))
        unit_price = Decimal(str(unit_price if unit_price is not None else product.sale_price))
        total = unit_price * quantity
        sale = Sale.objects.create(
            branch=branch,
            user=user,
            status=status,
            subtotal=total,
            total=total,
        )
        SaleItem.objects.create(sale=sale, product=product, quantity=quantity, unit_price=unit_price,
                                line_total=total)
        SalePayment.objects.create(sale=sale, method=method, amount=total)
        return sale


class AuthenticatedAPIClient(APIClient):
    """APIClient with authentication helper"""

    def authenticate_user(self, user):
        """Authenticate the client with a user"""
        self.token = str(issue_access_token(user))
        self.credentials(HTTP_AUTHORIZATION=f'Bearer {self.token}')
        return self

    def logout(self):
        """Remove authentication"""
        self.credentials()
