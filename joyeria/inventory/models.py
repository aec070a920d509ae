from decimal import Decimal

from django.db import models

from joyeria.catalog.models import Product
from joyeria.locations.models import Location


class Stock(models.Model):
    """On-hand quantity of a product at one location"""
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='stock_entries')
    location = models.ForeignKey(Location, on_delete=models.CASCADE, related_name='stock_entries')
    quantity = models.DecimalField(max_digits=10, decimal_places=3, default=Decimal('0.000'))
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.product.sku} @ {self.location}: {self.quantity}"

    class Meta:
        db_table = 'stock'
        unique_together = [['product', 'location']]
        indexes = [
            models.Index(fields=['location'], name='idx_stock_location'),
        ]


class StockMovement(models.Model):
    """Ledger of every stock change"""
    ENTRY = 'ENTRADA'
    EXIT = 'SALIDA'
    TRANSFER = 'TRASPASO'
    ADJUSTMENT = 'AJUSTE'

    MOVEMENT_TYPE_CHOICES = [
        (ENTRY, 'Entrada'),
        (EXIT, 'Salida'),
        (TRANSFER, 'Traspaso'),
        (ADJUSTMENT, 'Ajuste'),
    ]

    movement_type = models.CharField(max_length=10, choices=MOVEMENT_TYPE_CHOICES)
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='movements')
    source_location = models.ForeignKey(Location, on_delete=models.PROTECT, null=True, blank=True,
                                        related_name='movements_out')
    target_location = models.ForeignKey(Location, on_delete=models.PROTECT, null=True, blank=True,
                                        related_name='movements_in')
    quantity = models.DecimalField(max_digits=10, decimal_places=3)
    unit_cost = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    reason = models.CharField(max_length=255, blank=True)
    user = models.ForeignKey('core.User', on_delete=models.SET_NULL, null=True, blank=True,
                             related_name='stock_movements')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.movement_type} {self.product_id} x {self.quantity}"

    class Meta:
        db_table = 'stock_movements'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['product', 'created_at'], name='idx_movement_product_date'),
        ]
