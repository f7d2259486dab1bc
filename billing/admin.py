"""
Django Admin configuration for bills (read-only receipts).
"""
from django.contrib import admin
from .models import Bill, BillLine


class BillLineInline(admin.TabularInline):
    model = BillLine
    extra = 0
    readonly_fields = ['product', 'product_name', 'quantity', 'price', 'amount']
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Bill)
class BillAdmin(admin.ModelAdmin):
    list_display = ['id', 'customer_name', 'payment_mode', 'total_amount', 'item_count', 'sold_by', 'created_at']
    list_filter = ['payment_mode', 'created_at']
    search_fields = ['id', 'customer_name', 'sold_by__username']
    ordering = ['-created_at']
    readonly_fields = ['customer_name', 'payment_mode', 'total_amount', 'sold_by', 'created_at']
    inlines = [BillLineInline]

    def item_count(self, obj):
        return obj.lines.count()
    item_count.short_description = 'Lines'

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
