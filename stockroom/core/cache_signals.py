"""
Cache invalidation signals
Drop the dashboard summary whenever catalog or ledger data changes
"""
from django.db import transaction
from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver
import logging

from stockroom.catalog.models import Category, Product
from stockroom.inventory.models import InventoryTransaction
from .cache_utils import invalidate_dashboard_cache

logger = logging.getLogger(__name__)


@receiver([post_save, post_delete], sender=Category)
@receiver([post_save, post_delete], sender=Product)
@receiver([post_save, post_delete], sender=InventoryTransaction)
def invalidate_dashboard_on_change(sender, instance, **kwargs):
    logger.debug(f"{sender.__name__} {instance.pk} changed, dropping dashboard cache after commit")
    # A summary rebuilt before the commit would still hold the old rows
    transaction.on_commit(invalidate_dashboard_cache)
