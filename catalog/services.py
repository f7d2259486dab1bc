"""
Catalog Service Layer - the only code that changes Product.quantity.

- get_product: resolve a product id
- try_reserve: guarded decrement, used by checkout inside its transaction
- increase: atomic increment, used by restock
- restock: increase + IN ledger entry as one unit
"""
import logging
from decimal import Decimal

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from core.concurrency import retry_on_contention
from core.exceptions import (
    InsufficientStockError,
    InvalidQuantityError,
    ProductNotFoundError,
)
from ledger import services as ledger
from ledger.models import MovementEntry
from .models import Product

logger = logging.getLogger(__name__)

DEFAULT_RESTOCK_REMARK = 'Manual Restock'


def _require_positive(quantity, product_id=None) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise InvalidQuantityError(quantity, product_id=product_id)


def get_product(product_id) -> Product:
    """
    Raises:
        ProductNotFoundError: If no product has this id
    """
    try:
        return Product.objects.select_related('category').get(pk=product_id)
    except (Product.DoesNotExist, ValueError, TypeError):
        raise ProductNotFoundError(product_id)


def try_reserve(product: Product, quantity: int) -> Decimal:
    """
    Decrement stock for one cart line and return the unit price to charge.

    The UPDATE only matches while enough stock remains, so two writers can
    never take the same units. Must run inside the caller's transaction.

    Args:
        product: Product as read (and locked) during validation
        quantity: Units to take (>= 1)

    Returns:
        The product's price as read during validation

    Raises:
        InvalidQuantityError: If quantity is not a positive integer
        ProductNotFoundError: If the product row no longer exists
        InsufficientStockError: If fewer than ``quantity`` units remain
    """
    _require_positive(quantity, product.pk)

    updated = Product.objects.filter(
        pk=product.pk,
        quantity__gte=quantity
    ).update(
        quantity=F('quantity') - quantity,
        updated_at=timezone.now()
    )
    if not updated:
        current = Product.objects.filter(pk=product.pk).values_list('quantity', flat=True).first()
        if current is None:
            raise ProductNotFoundError(product.pk)
        raise InsufficientStockError(product.pk, quantity, current, product.name)

    product.quantity -= quantity
    return product.price


def increase(product_id, quantity: int) -> int:
    """
    Add ``quantity`` units to a product and return the new on-hand quantity.

    Raises:
        InvalidQuantityError: If quantity is not a positive integer
        ProductNotFoundError: If no product has this id
    """
    _require_positive(quantity, product_id)

    updated = Product.objects.filter(pk=product_id).update(
        quantity=F('quantity') + quantity,
        updated_at=timezone.now()
    )
    if not updated:
        raise ProductNotFoundError(product_id)
    return Product.objects.values_list('quantity', flat=True).get(pk=product_id)


@retry_on_contention
def restock(product_id, quantity: int, actor, remark: str = '') -> Product:
    """
    Increase stock and append one IN ledger entry, atomically.

    Args:
        product_id: Product to restock
        quantity: Units received (>= 1)
        actor: User performing the restock
        remark: Ledger remark, "Manual Restock" when blank

    Returns:
        The refreshed Product

    Raises:
        InvalidQuantityError, ProductNotFoundError, ConcurrencyConflictError, StorageError
    """
    _require_positive(quantity, product_id)

    with transaction.atomic():
        new_quantity = increase(product_id, quantity)
        product = get_product(product_id)
        ledger.append(
            product,
            MovementEntry.Direction.IN,
            quantity,
            actor,
            remark=(remark or '').strip() or DEFAULT_RESTOCK_REMARK,
        )

    logger.info(
        f"Restocked {product.name} (#{product.pk}) by {quantity}, "
        f"on hand: {new_quantity}"
    )
    return product
