"""
Ledger Models - Append-only history of stock movements.

Every restock writes one IN entry and every checkout line writes one OUT
entry. Entries are never updated or deleted; reporting is derived from them.
"""
from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from catalog.models import Product
from core.exceptions import ImmutableMovementError


class MovementQuerySet(models.QuerySet):

    def incoming(self):
        return self.filter(direction=MovementEntry.Direction.IN)

    def outgoing(self):
        return self.filter(direction=MovementEntry.Direction.OUT)

    def between(self, start=None, end=None):
        """Entries with ``start <= created_at < end``; either bound may be None."""
        queryset = self
        if start is not None:
            queryset = queryset.filter(created_at__gte=start)
        if end is not None:
            queryset = queryset.filter(created_at__lt=end)
        return queryset

    def update(self, **kwargs):
        raise ImmutableMovementError()

    def delete(self):
        raise ImmutableMovementError()

    delete.queryset_only = True


class MovementEntry(models.Model):
    """
    One immutable stock change.

    unit_price is the catalog price when the movement happened; revenue is
    quantity * unit_price of OUT entries.
    """

    class Direction(models.TextChoices):
        IN = 'IN', 'Restock'
        OUT = 'OUT', 'Sale'

    product = models.ForeignKey(
        Product,
        on_delete=models.PROTECT,
        related_name='movements',
        help_text="Product whose stock changed"
    )
    direction = models.CharField(
        max_length=3,
        choices=Direction.choices,
        db_index=True,
    )
    quantity = models.PositiveIntegerField(
        validators=[MinValueValidator(1)],
        help_text="Units moved"
    )
    unit_price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        help_text="Unit price at the time of the movement"
    )
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='stock_movements',
        help_text="User who performed the movement"
    )
    bill = models.ForeignKey(
        'billing.Bill',
        on_delete=models.PROTECT,
        related_name='movements',
        null=True,
        blank=True,
        help_text="Bill that caused an OUT movement"
    )
    remark = models.CharField(max_length=255, blank=True, default='')
    created_at = models.DateTimeField(default=timezone.now, db_index=True, editable=False)

    objects = MovementQuerySet.as_manager()

    class Meta:
        verbose_name = 'Stock Movement'
        verbose_name_plural = 'Stock Movements'
        ordering = ['created_at', 'id']
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gte=1),
                name='movement_quantity_positive'
            ),
            models.CheckConstraint(
                condition=models.Q(direction__in=['IN', 'OUT']),
                name='movement_direction_valid'
            ),
        ]
        indexes = [
            models.Index(fields=['product', 'created_at'], name='movement_product_time_idx'),
            models.Index(fields=['direction', 'created_at'], name='movement_direction_time_idx'),
        ]

    def __str__(self):
        return f"{self.direction} {self.quantity}x {self.product.name} ({self.remark})"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ImmutableMovementError()
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableMovementError()

    @property
    def total(self) -> Decimal:
        return self.unit_price * self.quantity

    @property
    def signed_quantity(self) -> int:
        return self.quantity if self.direction == self.Direction.IN else -self.quantity
