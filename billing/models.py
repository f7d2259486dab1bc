"""
Billing Models - Bill and BillLine receipt snapshots.

A Bill is written only by a successful checkout. Its lines copy the product
name and price at commit time, so later catalog edits never change a receipt.
Sales history for reporting lives in the ledger, not here.
"""
from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from catalog.models import Product


def default_customer_name():
    return getattr(settings, 'DEFAULT_CUSTOMER_NAME', 'Walk-in Customer')


class Bill(models.Model):
    """
    Customer-facing snapshot of a completed checkout.
    """

    class PaymentMode(models.TextChoices):
        CASH = 'Cash', 'Cash'
        CARD = 'Card', 'Card'
        UPI = 'UPI', 'UPI'

    customer_name = models.CharField(
        max_length=200,
        default=default_customer_name,
        help_text="Customer name, walk-in placeholder when blank"
    )
    payment_mode = models.CharField(
        max_length=10,
        choices=PaymentMode.choices,
        default=PaymentMode.CASH,
    )
    total_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        help_text="Sum of line amounts"
    )
    sold_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='bills',
        help_text="User who completed the sale"
    )
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        verbose_name = 'Bill'
        verbose_name_plural = 'Bills'
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['sold_by', 'created_at'], name='bill_sold_by_time_idx'),
        ]

    def __str__(self):
        return f"Bill #{self.id} - {self.customer_name} (${self.total_amount})"

    @property
    def reference(self) -> str:
        return f"Bill #{self.pk}"

    @property
    def item_count(self) -> int:
        return self.lines.count()


class BillLine(models.Model):
    """
    One product line of a bill, with price and quantity frozen at sale time.
    """
    bill = models.ForeignKey(
        Bill,
        on_delete=models.CASCADE,
        related_name='lines',
    )
    product = models.ForeignKey(
        Product,
        on_delete=models.PROTECT,  # Prevent deletion of products with bills
        related_name='bill_lines',
    )
    product_name = models.CharField(max_length=200)
    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        help_text="Unit price at time of sale"
    )
    amount = models.DecimalField(max_digits=12, decimal_places=2)

    class Meta:
        verbose_name = 'Bill Line'
        verbose_name_plural = 'Bill Lines'
        ordering = ['id']
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gte=1),
                name='bill_line_quantity_positive'
            ),
        ]

    def __str__(self):
        return f"{self.quantity}x {self.product_name} @ ${self.price}"
