from rest_framework import serializers
from .models import Category, Product


class CategorySerializer(serializers.ModelSerializer):
    product_count = serializers.IntegerField(read_only=True, required=False)

    class Meta:
        model = Category
        fields = ['id', 'name', 'description', 'recommended_margin', 'product_count', 'created_at']
        read_only_fields = ['created_at']

    def validate_name(self, value):
        from .utils import normalize_category_name

        value = (value or '').strip()
        if not value:
            raise serializers.ValidationError('El nombre es obligatorio')
        existing = Category.objects.filter(name_norm=normalize_category_name(value))
        if self.instance is not None:
            existing = existing.exclude(pk=self.instance.pk)
        if existing.exists():
            raise serializers.ValidationError('Ya existe una categoría con ese nombre')
        return value


class ProductSerializer(serializers.ModelSerializer):
    category_name = serializers.CharField(source='category.name', read_only=True, default=None)
    unit_cost = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = Product
        fields = [
            'id', 'sku', 'barcode', 'name', 'description', 'category', 'category_name',
            'purchase_cost', 'shipping_cost', 'tax_cost', 'customs_cost', 'unit_cost',
            'last_cost', 'average_cost', 'margin', 'sale_price', 'wholesale_price',
            'iva_percentage', 'min_stock', 'is_active', 'is_archived', 'is_manual',
            'created_at', 'updated_at',
        ]
        read_only_fields = ['last_cost', 'average_cost', 'is_manual', 'created_at', 'updated_at']

    def validate_sku(self, value):
        value = (value or '').strip()
        if not value:
            raise serializers.ValidationError('El SKU es obligatorio')
        return value

    def validate_barcode(self, value):
        from .utils import clean_barcode
        return clean_barcode(value)
