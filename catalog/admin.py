"""
Django Admin configuration for catalog models.
"""
from django.contrib import admin
from .models import Category, Product


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ['id', 'name', 'product_count', 'created_at']
    search_fields = ['name']
    ordering = ['name']

    def product_count(self, obj):
        return obj.products.count()
    product_count.short_description = 'Products'


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ['id', 'name', 'category', 'price', 'quantity', 'supplier', 'updated_at']
    list_filter = ['category', 'updated_at']
    search_fields = ['name', 'supplier']
    ordering = ['name']
    raw_id_fields = ['category']

    def get_readonly_fields(self, request, obj=None):
        # Stock moves only through checkout and restock once a product exists
        if obj is not None:
            return ['quantity', 'created_at', 'updated_at']
        return ['created_at', 'updated_at']
