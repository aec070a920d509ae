from rest_framework import serializers
from .models import Supplier, Purchase, PurchaseItem


class SupplierSerializer(serializers.ModelSerializer):
    class Meta:
        model = Supplier
        fields = ['id', 'name', 'tax_id', 'phone', 'email', 'is_active']


class PurchaseItemSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)
    sku = serializers.CharField(source='product.sku', read_only=True)

    class Meta:
        model = PurchaseItem
        fields = ['id', 'product', 'product_name', 'sku', 'quantity', 'purchase_cost', 'shipping_cost',
                  'tax_cost', 'customs_cost', 'unit_cost', 'margin', 'sale_price', 'line_total']


class PurchaseSerializer(serializers.ModelSerializer):
    supplier_name = serializers.CharField(source='supplier.name', read_only=True, default=None)
    branch_name = serializers.CharField(source='branch.name', read_only=True)
    item_count = serializers.IntegerField(source='items.count', read_only=True)

    class Meta:
        model = Purchase
        fields = ['id', 'branch', 'branch_name', 'supplier', 'supplier_name', 'status', 'currency',
                  'exchange_rate', 'subtotal', 'total', 'item_count', 'created_at', 'confirmed_at']
