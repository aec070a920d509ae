from decimal import Decimal

from django.db import models
from django.db.models import Q

from joyeria.core.models import User
from joyeria.locations.models import Branch


class CashClosure(models.Model):
    """
    Cash register period (cierre de caja).

    A register opened from the POS stays open while ``closed_at`` is null;
    closures written through ``/api/cash/close/`` are closed on creation.
    """
    branch = models.ForeignKey(Branch, on_delete=models.PROTECT, related_name='cash_closures')
    user = models.ForeignKey(User, on_delete=models.PROTECT, related_name='cash_closures')
    period_start = models.DateTimeField()
    period_end = models.DateTimeField(null=True, blank=True)
    opening_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total_cash = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total_transfer = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total_card = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total_general = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    reported_closing_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    difference = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    closed_at = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    @property
    def is_open(self):
        return self.closed_at is None

    def __str__(self):
        return f"Cierre-{self.pk} ({self.branch_id}/{self.user_id})"

    class Meta:
        db_table = 'cash_closures'
        ordering = ['-period_start']
        constraints = [
            models.UniqueConstraint(fields=['user', 'branch'], condition=Q(closed_at__isnull=True),
                                    name='uniq_open_cash_register'),
        ]
        indexes = [
            models.Index(fields=['branch', '-created_at'], name='idx_closure_branch_created'),
            models.Index(fields=['-period_start'], name='idx_closure_period_start'),
        ]
