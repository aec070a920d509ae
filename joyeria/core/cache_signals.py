"""
Cache invalidation signals
Automatically invalidate cached summaries when sales or stock change
"""
from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver
import logging
import threading
from contextlib import contextmanager

from .cache_utils import invalidate_sales_cache, invalidate_stock_cache

logger = logging.getLogger(__name__)

# Thread-local storage to track signal suspension
_thread_locals = threading.local()

SALES_MODELS = ('Sale', 'SaleItem', 'SalePayment', 'CashClosure')
STOCK_MODELS = ('StockMovement', 'Product', 'Stock')


@contextmanager
def suspend_cache_signals():
    """
    Temporarily suspend cache invalidation signals for bulk operations.
    Invalidate manually after the block.
    """
    try:
        _thread_locals.suspended = True
        yield
    finally:
        _thread_locals.suspended = False


def is_suspended():
    return getattr(_thread_locals, 'suspended', False)


@receiver([post_save, post_delete])
def invalidate_sales_summary(sender, instance, **kwargs):
    """Drop sales summaries when sales, payments or closures change"""
    if is_suspended() or sender.__name__ not in SALES_MODELS:
        return
    if sender._meta.app_label not in ('sales', 'cash'):
        return
    invalidate_sales_cache()


@receiver([post_save, post_delete])
def invalidate_stock_figures(sender, instance, **kwargs):
    """Drop cached stock figures when movements or products change"""
    if is_suspended() or sender.__name__ not in STOCK_MODELS:
        return
    if sender._meta.app_label not in ('inventory', 'catalog'):
        return
    invalidate_stock_cache()
