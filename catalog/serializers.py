"""
Serializers for catalog models.
Provides data validation and JSON conversion for API endpoints.
"""
from rest_framework import serializers
from .models import Category, Product


class CategorySerializer(serializers.ModelSerializer):
    """Serializer for Category model."""
    product_count = serializers.SerializerMethodField()

    class Meta:
        model = Category
        fields = ['id', 'name', 'product_count', 'created_at', 'updated_at']
        read_only_fields = ['id', 'created_at', 'updated_at']

    def get_product_count(self, obj):
        """Get count of products in this category."""
        return obj.products.count()


class CategoryMinimalSerializer(serializers.ModelSerializer):
    """Minimal serializer for nested category representation."""
    class Meta:
        model = Category
        fields = ['id', 'name']


class ProductSerializer(serializers.ModelSerializer):
    """
    Serializer for Product model with nested category.

    quantity may be given when a product is created; afterwards it only
    changes through checkout and restock.
    """
    category = CategoryMinimalSerializer(read_only=True)
    category_id = serializers.PrimaryKeyRelatedField(
        queryset=Category.objects.all(),
        source='category',
        write_only=True
    )
    quantity = serializers.IntegerField(min_value=0, required=False)

    class Meta:
        model = Product
        fields = [
            'id', 'name', 'category', 'category_id', 'price',
            'quantity', 'supplier', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']

    def validate_price(self, value):
        if value < 0:
            raise serializers.ValidationError("Price cannot be negative")
        return value

    def update(self, instance, validated_data):
        if 'quantity' in validated_data and validated_data['quantity'] != instance.quantity:
            raise serializers.ValidationError({
                'quantity': "Stock changes only through checkout or restock"
            })
        validated_data.pop('quantity', None)
        return super().update(instance, validated_data)


class ProductMinimalSerializer(serializers.ModelSerializer):
    """Minimal serializer for autocomplete and nested representations."""
    class Meta:
        model = Product
        fields = ['id', 'name', 'price']


class ProductSearchSerializer(serializers.ModelSerializer):
    """Serializer for product search results with category info."""
    category = CategoryMinimalSerializer(read_only=True)

    class Meta:
        model = Product
        fields = ['id', 'name', 'price', 'quantity', 'category', 'supplier']


class RestockSerializer(serializers.Serializer):
    """
    Request format for POST /products/{id}/restock/
    {
        "quantity": 20,
        "remark": "Supplier delivery"
    }
    """
    quantity = serializers.IntegerField(min_value=1)
    remark = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
