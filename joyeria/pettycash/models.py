from django.db import models
from django.utils import timezone

from joyeria.core.models import User
from joyeria.locations.models import Branch


class PettyCashEntry(models.Model):
    """Fields shared by petty-cash deliveries and exchanges"""
    branch = models.ForeignKey(Branch, on_delete=models.PROTECT, related_name='+')
    cashier = models.ForeignKey(User, on_delete=models.PROTECT, related_name='+')
    authorized_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    reason = models.CharField(max_length=255, blank=True, null=True)
    date = models.DateTimeField(default=timezone.now)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        abstract = True
        ordering = ['-date']


class PettyCashDelivery(PettyCashEntry):
    """Money handed to a cashier (entrega)"""

    def __str__(self):
        return f"Entrega {self.amount} -> {self.cashier_id}"

    class Meta(PettyCashEntry.Meta):
        db_table = 'petty_cash_deliveries'
        indexes = [models.Index(fields=['cashier', 'branch', '-date'], name='idx_pc_delivery_cashier')]


class PettyCashExchange(PettyCashEntry):
    """Money a cashier gave out as change or spent (cambio)"""

    def __str__(self):
        return f"Cambio {self.amount} <- {self.cashier_id}"

    class Meta(PettyCashEntry.Meta):
        db_table = 'petty_cash_exchanges'
        indexes = [models.Index(fields=['cashier', 'branch', '-date'], name='idx_pc_exchange_cashier')]
