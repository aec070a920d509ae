from django.contrib import admin
from .models import Category, Product


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ['name', 'recommended_margin', 'created_at']
    search_fields = ['name']


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ['sku', 'name', 'category', 'sale_price', 'is_active', 'is_archived', 'is_manual']
    list_filter = ['is_active', 'is_archived', 'is_manual', 'category']
    search_fields = ['sku', 'name', 'barcode']
