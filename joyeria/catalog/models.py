from decimal import Decimal

from django.db import models

from .utils import normalize_category_name


class Category(models.Model):
    """Product categories; ``name_norm`` prevents accent/case duplicates"""
    name = models.CharField(max_length=200)
    name_norm = models.CharField(max_length=200, unique=True, editable=False)
    description = models.TextField(blank=True)
    recommended_margin = models.DecimalField(max_digits=7, decimal_places=4, null=True, blank=True,
                                             help_text="Margin fraction (0.40) or percentage (40)")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def save(self, *args, **kwargs):
        self.name = (self.name or '').strip()
        self.name_norm = normalize_category_name(self.name)
        super().save(*args, **kwargs)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'categories'
        verbose_name_plural = 'Categories'
        ordering = ['name']


class Product(models.Model):
    """Sellable items with their cost breakdown and prices"""
    sku = models.CharField(max_length=100, unique=True)
    barcode = models.CharField(max_length=100, unique=True, null=True, blank=True)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    category = models.ForeignKey(Category, on_delete=models.PROTECT, null=True, blank=True, related_name='products')

    purchase_cost = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    shipping_cost = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    tax_cost = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    customs_cost = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    last_cost = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    average_cost = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)

    margin = models.DecimalField(max_digits=7, decimal_places=4, null=True, blank=True)
    sale_price = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    wholesale_price = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    iva_percentage = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('0.00'))
    min_stock = models.DecimalField(max_digits=10, decimal_places=3, default=Decimal('0.000'))

    is_active = models.BooleanField(default=True)
    is_archived = models.BooleanField(default=False)
    is_manual = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @property
    def unit_cost(self):
        """Landed cost: purchase + shipping + taxes + customs"""
        return self.purchase_cost + self.shipping_cost + self.tax_cost + self.customs_cost

    def __str__(self):
        return f"{self.sku} - {self.name}"

    class Meta:
        db_table = 'products'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['name'], name='idx_product_name'),
            models.Index(fields=['is_active', 'is_archived'], name='idx_product_flags'),
        ]
