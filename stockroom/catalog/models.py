from django.db import models
from decimal import Decimal


class Category(models.Model):
    """Product categories"""
    name = models.CharField(max_length=200, db_index=True)
    description = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'categories'
        verbose_name_plural = 'categories'
        ordering = ['-created_at']


class Product(models.Model):
    """
    Product master

    ``quantity`` is the on-hand stock. It only changes through a direct edit
    or through the stock ledger. ``opening_quantity`` is the baseline the
    ledger reconciles against: quantity == opening + sum(IN) - sum(OUT).
    """
    name = models.CharField(max_length=200, db_index=True)
    # Categories cannot be deleted while products still reference them
    category = models.ForeignKey(Category, on_delete=models.PROTECT, null=True, blank=True, related_name='products')
    price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    quantity = models.PositiveIntegerField(default=0)
    opening_quantity = models.IntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.name} ({self.quantity})"

    class Meta:
        db_table = 'products'
        ordering = ['-created_at']
