from rest_framework import serializers
from .models import Stock, StockMovement


class StockSerializer(serializers.ModelSerializer):
    """Internal stock row with product costs and location"""
    sku = serializers.CharField(source='product.sku', read_only=True)
    product_name = serializers.CharField(source='product.name', read_only=True)
    category_name = serializers.CharField(source='product.category.name', read_only=True, default=None)
    unit_cost = serializers.DecimalField(source='product.unit_cost', max_digits=12, decimal_places=2, read_only=True)
    average_cost = serializers.DecimalField(source='product.average_cost', max_digits=12, decimal_places=2, read_only=True)
    sale_price = serializers.DecimalField(source='product.sale_price', max_digits=12, decimal_places=2, read_only=True)
    location_name = serializers.CharField(source='location.name', read_only=True)
    branch_id = serializers.IntegerField(source='location.branch_id', read_only=True)
    branch_name = serializers.CharField(source='location.branch.name', read_only=True)

    class Meta:
        model = Stock
        fields = ['id', 'product', 'sku', 'product_name', 'category_name', 'unit_cost', 'average_cost',
                  'sale_price', 'location', 'location_name', 'branch_id', 'branch_name', 'quantity', 'updated_at']


class StockMovementSerializer(serializers.ModelSerializer):
    class Meta:
        model = StockMovement
        fields = ['id', 'movement_type', 'product', 'source_location', 'target_location', 'quantity',
                  'unit_cost', 'reason', 'user', 'created_at']
        read_only_fields = ['user', 'created_at']
