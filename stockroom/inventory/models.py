from django.conf import settings
from django.db import models
from stockroom.catalog.models import Product


class InventoryTransaction(models.Model):
    """
    One stock movement in the append-only ledger.

    Rows are written only by ``services.apply_inventory_transaction`` and are
    never edited afterwards.
    """
    IN = 'IN'
    OUT = 'OUT'
    DIRECTION_CHOICES = [
        (IN, 'Stock In'),
        (OUT, 'Stock Out'),
    ]

    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='transactions')
    direction = models.CharField(max_length=3, choices=DIRECTION_CHOICES)
    quantity = models.PositiveIntegerField()
    quantity_after = models.PositiveIntegerField(help_text="Product quantity right after this movement")
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='inventory_transactions')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.direction} {self.quantity} x {self.product_id}"

    @property
    def signed_quantity(self):
        return self.quantity if self.direction == self.IN else -self.quantity

    class Meta:
        db_table = 'transactions'
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['product', '-created_at'], name='idx_txn_product_created'),
            models.Index(fields=['-created_at'], name='idx_txn_created'),
        ]
