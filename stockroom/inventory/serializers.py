from rest_framework import serializers
from .models import InventoryTransaction


class InventoryTransactionSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)
    created_by_email = serializers.SerializerMethodField()

    class Meta:
        model = InventoryTransaction
        fields = ['id', 'product', 'product_name', 'direction', 'quantity', 'quantity_after', 'created_by', 'created_by_email', 'created_at']
        read_only_fields = fields

    def get_created_by_email(self, obj):
        return obj.created_by.email if obj.created_by else None


class InventoryTransactionCreateSerializer(serializers.Serializer):
    """
    Shape check only. Range and direction checks belong to the ledger
    service so every caller gets the same error kinds.
    """
    product_id = serializers.IntegerField()
    direction = serializers.CharField(max_length=10)
    quantity = serializers.IntegerField()
