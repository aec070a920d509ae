from decimal import Decimal

from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('locations', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='CashClosure',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('period_start', models.DateTimeField()),
                ('period_end', models.DateTimeField(blank=True, null=True)),
                ('opening_amount', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12)),
                ('total_cash', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12)),
                ('total_transfer', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12)),
                ('total_card', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12)),
                ('total_general', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12)),
                ('reported_closing_amount', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('difference', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('closed_at', models.DateTimeField(blank=True, null=True)),
                ('notes', models.TextField(blank=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('branch', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='cash_closures', to='locations.branch')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='cash_closures', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'cash_closures',
                'ordering': ['-period_start'],
                'indexes': [models.Index(fields=['branch', '-created_at'], name='idx_closure_branch_created'), models.Index(fields=['-period_start'], name='idx_closure_period_start')],
                'constraints': [models.UniqueConstraint(condition=models.Q(('closed_at__isnull', True)), fields=('user', 'branch'), name='uniq_open_cash_register')],
            },
        ),
    ]
