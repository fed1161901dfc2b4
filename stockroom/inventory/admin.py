from django.contrib import admin
from .models import InventoryTransaction


@admin.register(InventoryTransaction)
class InventoryTransactionAdmin(admin.ModelAdmin):
    list_display = ['product', 'direction', 'quantity', 'quantity_after', 'created_by', 'created_at']
    list_filter = ['direction', 'created_at']
    search_fields = ['product__name']
    ordering = ['-created_at']
    readonly_fields = ['product', 'direction', 'quantity', 'quantity_after', 'created_by', 'created_at']

    # Ledger rows are append-only and written by the ledger service
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
