"""
Serializers for billing models.
"""
from rest_framework import serializers
from .models import Bill, BillLine


class BillLineSerializer(serializers.ModelSerializer):
    """Serializer for BillLine snapshots."""

    class Meta:
        model = BillLine
        fields = ['id', 'product', 'product_name', 'quantity', 'price', 'amount']


class CartLineSerializer(serializers.Serializer):
    """Serializer for one cart line in a checkout request."""
    product_id = serializers.IntegerField(min_value=1)
    quantity = serializers.IntegerField(min_value=1)


class CheckoutSerializer(serializers.Serializer):
    """
    Serializer for checkout via POST /bills/

    Request format:
    {
        "customer_name": "Jane Doe",        (optional)
        "payment_mode": "Card",             (optional, Cash/Card/UPI)
        "items": [
            {"product_id": 1, "quantity": 2},
            {"product_id": 3, "quantity": 1}
        ]
    }

    Repeated product ids are merged by the checkout service.
    """
    customer_name = serializers.CharField(
        max_length=200, required=False, allow_blank=True, default=''
    )
    payment_mode = serializers.ChoiceField(
        choices=Bill.PaymentMode.choices, required=False, default=Bill.PaymentMode.CASH
    )
    items = CartLineSerializer(many=True)

    def validate_items(self, value):
        if not value:
            raise serializers.ValidationError("At least one item is required")
        return value


class BillSerializer(serializers.ModelSerializer):
    """
    Serializer for Bill with nested lines.
    Uses prefetch_related('lines') in views.
    """
    lines = BillLineSerializer(many=True, read_only=True)
    sold_by = serializers.CharField(source='sold_by.get_username', read_only=True)
    reference = serializers.CharField(read_only=True)

    class Meta:
        model = Bill
        fields = [
            'id', 'reference', 'customer_name', 'payment_mode',
            'total_amount', 'sold_by', 'lines', 'created_at'
        ]
        read_only_fields = fields


class BillListSerializer(serializers.ModelSerializer):
    """
    Optimized serializer for listing bills.
    """
    sold_by = serializers.CharField(source='sold_by.get_username', read_only=True)
    item_count = serializers.SerializerMethodField()

    class Meta:
        model = Bill
        fields = [
            'id', 'customer_name', 'payment_mode',
            'total_amount', 'item_count', 'sold_by', 'created_at'
        ]

    def get_item_count(self, obj):
        # Use prefetched lines if available
        if hasattr(obj, '_prefetched_objects_cache') and 'lines' in obj._prefetched_objects_cache:
            return len(obj.lines.all())
        return obj.lines.count()
