"""
Ledger Service Layer - append and query stock movements.

append() never enforces business rules; callers (checkout, restock) validate
stock first and call it inside the same transaction as the stock change.
"""
import logging
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Optional

from django.utils import timezone

from core.exceptions import InvalidQuantityError
from .models import MovementEntry

logger = logging.getLogger(__name__)


def append(
    product,
    direction: str,
    quantity: int,
    actor,
    remark: str = '',
    unit_price: Optional[Decimal] = None,
    bill=None,
) -> MovementEntry:
    """
    Record one stock movement.

    Args:
        product: Product whose stock changed
        direction: MovementEntry.Direction.IN or OUT
        quantity: Units moved (>= 1)
        actor: User performing the movement
        remark: Free text, e.g. bill reference or "Manual Restock"
        unit_price: Price to record; defaults to the product's current price
        bill: Bill for OUT movements produced by a checkout

    Raises:
        ValueError: If direction is not IN or OUT
        InvalidQuantityError: If quantity is not a positive integer
    """
    if direction not in MovementEntry.Direction.values:
        raise ValueError(f"Unknown movement direction {direction!r}")
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise InvalidQuantityError(quantity, product_id=product.pk)

    entry = MovementEntry.objects.create(
        product=product,
        direction=direction,
        quantity=quantity,
        unit_price=product.price if unit_price is None else unit_price,
        actor=actor,
        bill=bill,
        remark=remark or '',
    )
    logger.debug(
        f"Ledger #{entry.id}: {direction} {quantity} of product {product.pk} ({entry.remark})"
    )
    return entry


def query(start=None, end=None, product=None, direction=None):
    """
    Movements ordered by timestamp ascending.

    Returns a lazy queryset; ``.all()`` on it re-reads the filtered range.

    Args:
        start: Inclusive lower bound on created_at
        end: Exclusive upper bound on created_at
        product: Product instance or id
        direction: Restrict to IN or OUT
    """
    queryset = MovementEntry.objects.select_related('product', 'actor').between(start, end)
    if product is not None:
        queryset = queryset.filter(product=product)
    if direction is not None:
        queryset = queryset.filter(direction=direction)
    return queryset.order_by('created_at', 'id')


def net_change(product) -> int:
    """Sum of IN minus OUT quantities recorded for ``product``."""
    total = 0
    for entry in MovementEntry.objects.filter(product=product).only('direction', 'quantity'):
        total += entry.signed_quantity
    return total


def day_bounds(day: date):
    """Aware [start, end) datetimes covering ``day`` in the current time zone."""
    tz = timezone.get_current_timezone()
    start = timezone.make_aware(datetime.combine(day, time.min), tz)
    end = timezone.make_aware(datetime.combine(day + timedelta(days=1), time.min), tz)
    return start, end
