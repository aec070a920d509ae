from decimal import Decimal

from django.db import models

from joyeria.catalog.models import Product
from joyeria.core.models import User
from joyeria.locations.models import Branch


class Supplier(models.Model):
    """Suppliers (proveedores)"""
    name = models.CharField(max_length=200)
    tax_id = models.CharField(max_length=50, blank=True)
    phone = models.CharField(max_length=20, blank=True)
    email = models.EmailField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'suppliers'
        ordering = ['name']


class Purchase(models.Model):
    """Purchase from a supplier, stocked into the branch BODEGA on confirmation"""
    DRAFT = 'BORRADOR'
    CONFIRMED = 'CONFIRMADA'

    STATUS_CHOICES = [
        (DRAFT, 'Borrador'),
        (CONFIRMED, 'Confirmada'),
    ]

    branch = models.ForeignKey(Branch, on_delete=models.PROTECT, related_name='purchases')
    supplier = models.ForeignKey(Supplier, on_delete=models.SET_NULL, null=True, blank=True, related_name='purchases')
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='purchases')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=DRAFT)
    currency = models.CharField(max_length=3, default='GTQ')
    exchange_rate = models.DecimalField(max_digits=10, decimal_places=4, default=Decimal('1.0000'))
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total_shipping = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total_tax = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total_customs = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    confirmed_at = models.DateTimeField(null=True, blank=True)

    def __str__(self):
        return f"Compra-{self.pk}"

    class Meta:
        db_table = 'purchases'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', '-created_at'], name='idx_purchase_status_date'),
        ]


class PurchaseItem(models.Model):
    """Purchase line with its landed-cost breakdown and suggested price"""
    purchase = models.ForeignKey(Purchase, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='purchase_items')
    quantity = models.DecimalField(max_digits=10, decimal_places=3)
    purchase_cost = models.DecimalField(max_digits=12, decimal_places=2)
    shipping_cost = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    tax_cost = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    customs_cost = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    unit_cost = models.DecimalField(max_digits=12, decimal_places=2)
    margin = models.DecimalField(max_digits=7, decimal_places=4, null=True, blank=True)
    sale_price = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    line_total = models.DecimalField(max_digits=12, decimal_places=2)

    class Meta:
        db_table = 'purchase_items'
        ordering = ['id']
