"""
Django Admin configuration for the stock ledger (read-only).
"""
from django.contrib import admin
from .models import MovementEntry


@admin.register(MovementEntry)
class MovementEntryAdmin(admin.ModelAdmin):
    list_display = ['id', 'created_at', 'product', 'direction', 'quantity', 'unit_price', 'actor', 'remark']
    list_filter = ['direction', 'created_at']
    search_fields = ['product__name', 'remark', 'actor__username']
    ordering = ['-created_at']
    raw_id_fields = ['product', 'actor', 'bill']

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
