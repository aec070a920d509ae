from decimal import Decimal

from django.db import models

from joyeria.catalog.models import Product
from joyeria.core.models import User
from joyeria.locations.models import Branch


class Sale(models.Model):
    """Sales (ventas); only CONFIRMADA sales count toward totals"""
    DRAFT = 'BORRADOR'
    CONFIRMED = 'CONFIRMADA'
    VOIDED = 'ANULADA'

    STATUS_CHOICES = [
        (DRAFT, 'Borrador'),
        (CONFIRMED, 'Confirmada'),
        (VOIDED, 'Anulada'),
    ]

    branch = models.ForeignKey(Branch, on_delete=models.PROTECT, related_name='sales')
    user = models.ForeignKey(User, on_delete=models.PROTECT, related_name='sales')
    customer_name = models.CharField(max_length=200, blank=True, null=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=DRAFT)
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    discount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    tax = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    cash_received = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    change_given = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"Venta-{self.pk}"

    class Meta:
        db_table = 'sales'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['branch', 'status', 'created_at'], name='idx_sale_branch_status_date'),
            models.Index(fields=['user', 'created_at'], name='idx_sale_user_date'),
        ]


class SaleItem(models.Model):
    """Sale line items"""
    sale = models.ForeignKey(Sale, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='sale_items')
    quantity = models.DecimalField(max_digits=10, decimal_places=3)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    discount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    tax = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    line_total = models.DecimalField(max_digits=12, decimal_places=2)

    class Meta:
        db_table = 'sale_items'
        ordering = ['id']


class SalePayment(models.Model):
    """Payments recorded against a sale"""
    CASH = 'EFECTIVO'
    TRANSFER = 'TRANSFERENCIA'
    CARD = 'TARJETA'

    METHOD_CHOICES = [
        (CASH, 'Efectivo'),
        (TRANSFER, 'Transferencia'),
        (CARD, 'Tarjeta'),
    ]

    sale = models.ForeignKey(Sale, on_delete=models.CASCADE, related_name='payments')
    method = models.CharField(max_length=20, choices=METHOD_CHOICES)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    card_brand = models.CharField(max_length=30, blank=True, null=True)
    card_last4 = models.CharField(max_length=4, blank=True, null=True)
    auth_code = models.CharField(max_length=50, blank=True, null=True)
    processor_txn_id = models.CharField(max_length=100, blank=True, null=True)
    reference = models.CharField(max_length=100, blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'sale_payments'
        ordering = ['id']
        indexes = [
            models.Index(fields=['method'], name='idx_payment_method'),
        ]
