from decimal import Decimal

from django.db import transaction
from rest_framework import serializers
from .models import Category, Product


class CategorySerializer(serializers.ModelSerializer):
    products_count = serializers.IntegerField(source='products.count', read_only=True)

    class Meta:
        model = Category
        fields = ['id', 'name', 'description', 'products_count', 'created_at', 'updated_at']


class ProductSerializer(serializers.ModelSerializer):
    category_name = serializers.SerializerMethodField()
    price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.00'))
    quantity = serializers.IntegerField(min_value=0, required=False)

    class Meta:
        model = Product
        fields = ['id', 'name', 'category', 'category_name', 'price', 'quantity', 'opening_quantity', 'created_at', 'updated_at']
        read_only_fields = ['opening_quantity', 'created_at', 'updated_at']

    def get_category_name(self, obj):
        return obj.category.name if obj.category else None

    def create(self, validated_data):
        validated_data['opening_quantity'] = validated_data.get('quantity', 0)
        return super().create(validated_data)

    def update(self, instance, validated_data):
        """
        A direct quantity edit moves the ledger baseline by the same amount,
        so ledger history written before the edit still reconciles.
        """
        self.quantity_delta = 0
        with transaction.atomic():
            locked = Product.objects.select_for_update().get(pk=instance.pk)
            if 'quantity' in validated_data:
                self.quantity_delta = validated_data['quantity'] - locked.quantity
                validated_data['opening_quantity'] = locked.opening_quantity + self.quantity_delta
            else:
                # Keep the stock the ledger may have written since the instance was read
                instance.quantity = locked.quantity
                instance.opening_quantity = locked.opening_quantity
            return super().update(instance, validated_data)
