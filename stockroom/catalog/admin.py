from django.contrib import admin
from .models import Category, Product


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ['name', 'created_at', 'updated_at']
    search_fields = ['name', 'description']
    ordering = ['name']


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ['name', 'category', 'price', 'quantity', 'opening_quantity', 'updated_at']
    list_filter = ['category', 'created_at']
    search_fields = ['name', 'category__name']
    ordering = ['name']
    # Stock moves through the ledger, not the admin
    readonly_fields = ['quantity', 'opening_quantity', 'created_at', 'updated_at']
