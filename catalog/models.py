"""
Catalog Models - Current-state store of products and on-hand stock.

Models:
    - Category: Product categorization
    - Product: Items available for sale, with on-hand quantity

Product.quantity is only changed through catalog.services (restock) and
billing.services (checkout); both record a ledger entry in the same transaction.
"""
from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models


class Category(models.Model):
    """
    Product category for organizing products.
    """
    name = models.CharField(
        max_length=100,
        unique=True,
        db_index=True,
        help_text="Unique category name"
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Category'
        verbose_name_plural = 'Categories'
        ordering = ['name']

    def __str__(self):
        return self.name


class Product(models.Model):
    """
    Catalog entry: identity, price and current on-hand quantity.
    """
    name = models.CharField(
        max_length=200,
        db_index=True,
        help_text="Product name for display and search"
    )
    category = models.ForeignKey(
        Category,
        on_delete=models.PROTECT,
        related_name='products',
        help_text="Product category"
    )
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text="Current unit price"
    )
    quantity = models.PositiveIntegerField(
        default=0,
        help_text="Units on hand"
    )
    supplier = models.CharField(
        max_length=200,
        blank=True,
        default='',
        help_text="Supplier name"
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Product'
        verbose_name_plural = 'Products'
        ordering = ['name']
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gte=0),
                name='product_quantity_non_negative'
            ),
            models.CheckConstraint(
                condition=models.Q(price__gte=0),
                name='product_price_non_negative'
            ),
        ]
        indexes = [
            models.Index(fields=['category', 'name'], name='product_category_name_idx'),
            models.Index(fields=['quantity'], name='product_quantity_idx'),
        ]

    def __str__(self):
        return f"{self.name} (${self.price})"

    @property
    def stock_value(self) -> Decimal:
        return self.price * self.quantity

    @property
    def is_out_of_stock(self) -> bool:
        return self.quantity == 0

    def is_low_stock(self, threshold: int) -> bool:
        """Check if on-hand quantity is below ``threshold``."""
        return self.quantity < threshold
