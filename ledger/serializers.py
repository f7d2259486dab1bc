"""
Serializers for ledger entries (read-only).
"""
from rest_framework import serializers
from .models import MovementEntry


class MovementEntrySerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)
    actor = serializers.CharField(source='actor.get_username', read_only=True)
    total = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)

    class Meta:
        model = MovementEntry
        fields = [
            'id', 'product', 'product_name', 'direction', 'quantity',
            'unit_price', 'total', 'actor', 'bill', 'remark', 'created_at'
        ]
        read_only_fields = fields
