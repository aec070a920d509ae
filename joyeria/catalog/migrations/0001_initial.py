from decimal import Decimal

from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
    ]

    operations = [
        migrations.CreateModel(
            name='Category',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=200)),
                ('name_norm', models.CharField(editable=False, max_length=200, unique=True)),
                ('description', models.TextField(blank=True)),
                ('recommended_margin', models.DecimalField(blank=True, decimal_places=4, help_text='Margin fraction (0.40) or percentage (40)', max_digits=7, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name_plural': 'Categories',
                'db_table': 'categories',
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='Product',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('sku', models.CharField(max_length=100, unique=True)),
                ('barcode', models.CharField(blank=True, max_length=100, null=True, unique=True)),
                ('name', models.CharField(max_length=255)),
                ('description', models.TextField(blank=True)),
                ('purchase_cost', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12)),
                ('shipping_cost', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12)),
                ('tax_cost', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12)),
                ('customs_cost', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12)),
                ('last_cost', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('average_cost', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('margin', models.DecimalField(blank=True, decimal_places=4, max_digits=7, null=True)),
                ('sale_price', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('wholesale_price', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('iva_percentage', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=5)),
                ('min_stock', models.DecimalField(decimal_places=3, default=Decimal('0.000'), max_digits=10)),
                ('is_active', models.BooleanField(default=True)),
                ('is_archived', models.BooleanField(default=False)),
                ('is_manual', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('category', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='products', to='catalog.category')),
            ],
            options={
                'db_table': 'products',
                'ordering': ['-created_at'],
                'indexes': [models.Index(fields=['name'], name='idx_product_name'), models.Index(fields=['is_active', 'is_archived'], name='idx_product_flags')],
            },
        ),
    ]
