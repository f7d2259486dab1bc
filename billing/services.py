"""
Billing Service Layer - atomic multi-line checkout.

Implements fail-fast, all-or-nothing checkout:
1. Merge and validate the cart before opening a transaction
2. Lock every product row with select_for_update(), in id order
3. Validate ALL lines have sufficient stock
4. If ANY fails: raise, the transaction rolls back, nothing is written
5. If ALL pass: create the Bill, decrement stock, append one OUT ledger
   entry per line, then queue the receipt task after commit

Lock contention is retried a bounded number of times (core.concurrency).
"""
import logging
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping

from django.conf import settings
from django.db import transaction

from catalog import services as catalog
from catalog.models import Product
from core.concurrency import retry_on_contention
from core.exceptions import (
    CartValidationError,
    EmptyCartError,
    InsufficientStockError,
    InvalidPaymentModeError,
    InvalidQuantityError,
    ProductNotFoundError,
)
from ledger import services as ledger
from ledger.models import MovementEntry
from .models import Bill, BillLine

logger = logging.getLogger(__name__)


def merge_cart(items: Iterable[Mapping]) -> Dict[int, int]:
    """
    Validate cart lines and merge duplicates.

    Args:
        items: Iterable of dicts with 'product_id' and 'quantity'

    Returns:
        Ordered mapping of product_id -> total requested quantity,
        in first-seen order

    Raises:
        EmptyCartError: If there are no lines
        CartValidationError: If a line is missing a key
        InvalidQuantityError: If a quantity is not a positive integer
    """
    items = list(items or [])
    if not items:
        raise EmptyCartError()

    cart: Dict[int, int] = {}
    for idx, item in enumerate(items):
        if not isinstance(item, Mapping):
            raise CartValidationError(f"Item {idx}: expected an object with product_id and quantity")
        if 'product_id' not in item:
            raise CartValidationError(f"Item {idx}: missing 'product_id'")
        if 'quantity' not in item:
            raise CartValidationError(f"Item {idx}: missing 'quantity'")

        product_id = item['product_id']
        quantity = item['quantity']

        if isinstance(product_id, bool) or not isinstance(product_id, int):
            raise CartValidationError(f"Item {idx}: product_id must be an integer")

        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise InvalidQuantityError(quantity, product_id=product_id)

        cart[product_id] = cart.get(product_id, 0) + quantity

    return cart


def resolve_payment_mode(payment_mode) -> str:
    """Map a blank value to Cash and reject anything outside Cash/Card/UPI."""
    if payment_mode in (None, ''):
        return Bill.PaymentMode.CASH
    if payment_mode not in Bill.PaymentMode.values:
        raise InvalidPaymentModeError(payment_mode, Bill.PaymentMode.values)
    return payment_mode


def _lock_products(product_ids: List[int]) -> Dict[int, Product]:
    # Lock in id order to prevent deadlocks between overlapping carts
    locked = Product.objects.select_for_update().filter(
        pk__in=product_ids
    ).order_by('pk')
    return {p.pk: p for p in locked}


def _validate_stock(cart: Dict[int, int], products: Dict[int, Product]) -> None:
    """Raise for the first line, in cart order, that cannot be fulfilled."""
    for product_id, requested in cart.items():
        product = products.get(product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        if product.quantity < requested:
            raise InsufficientStockError(
                product_id, requested, product.quantity, product.name
            )


def _queue_receipt(bill_id: int) -> None:
    try:
        from .tasks import send_bill_receipt
        send_bill_receipt.delay(bill_id)
        logger.info(f"Triggered receipt task for bill #{bill_id}")
    except Exception as e:
        # The sale is committed; a lost receipt must not surface as a failed checkout
        logger.error(f"Failed to queue receipt task for bill #{bill_id}: {e}")


@retry_on_contention
def _commit_checkout(cart: Dict[int, int], actor, customer_name: str, payment_mode: str) -> Bill:
    with transaction.atomic():
        products = _lock_products(list(cart.keys()))

        # FAIL-FAST: check every line BEFORE any write
        _validate_stock(cart, products)

        bill = Bill.objects.create(
            customer_name=customer_name,
            payment_mode=payment_mode,
            sold_by=actor,
        )

        total_amount = Decimal('0.00')
        lines = []
        for product_id, quantity in cart.items():
            product = products[product_id]
            unit_price = catalog.try_reserve(product, quantity)
            amount = unit_price * quantity

            ledger.append(
                product,
                MovementEntry.Direction.OUT,
                quantity,
                actor,
                remark=bill.reference,
                unit_price=unit_price,
                bill=bill,
            )
            lines.append(BillLine(
                bill=bill,
                product=product,
                product_name=product.name,
                quantity=quantity,
                price=unit_price,
                amount=amount,
            ))
            total_amount += amount

            logger.debug(
                f"{bill.reference}: deducted {quantity} of {product.name}, "
                f"remaining stock: {product.quantity}"
            )

        BillLine.objects.bulk_create(lines)

        bill.total_amount = total_amount
        bill.save(update_fields=['total_amount'])

        transaction.on_commit(lambda: _queue_receipt(bill.pk))

    return bill


def checkout(items, actor, customer_name: str = '', payment_mode: str = Bill.PaymentMode.CASH) -> Bill:
    """
    Turn a cart into a committed Bill, or fail with no partial effect.

    Args:
        items: List of dicts with 'product_id' and 'quantity'
        actor: User completing the sale
        customer_name: Defaults to the walk-in placeholder when blank
        payment_mode: Cash, Card or UPI (default Cash)

    Returns:
        The committed Bill

    Raises:
        EmptyCartError, CartValidationError, InvalidQuantityError,
        InvalidPaymentModeError: Rejected before any database work
        ProductNotFoundError: Unknown product in the cart
        InsufficientStockError: First line that cannot be fulfilled
        ConcurrencyConflictError: Lock contention persisted across retries
        StorageError: Database failure
    """
    cart = merge_cart(items)
    payment_mode = resolve_payment_mode(payment_mode)
    customer_name = (customer_name or '').strip() or settings.DEFAULT_CUSTOMER_NAME

    try:
        bill = _commit_checkout(cart, actor, customer_name, payment_mode)
    except (InsufficientStockError, ProductNotFoundError) as e:
        logger.warning(f"Checkout rejected: {e}")
        raise

    logger.info(
        f"{bill.reference} committed: {len(cart)} lines, "
        f"total ${bill.total_amount}, payment {bill.payment_mode}"
    )
    return bill


def list_bills():
    """Bills newest first, with lines and seller preloaded."""
    return Bill.objects.select_related('sold_by').prefetch_related('lines').order_by('-created_at', '-id')


def get_bill_summary(bill_id: int) -> Dict:
    """
    Receipt-shaped view of a bill.

    Raises:
        Bill.DoesNotExist: If no bill has this id
    """
    bill = Bill.objects.select_related('sold_by').prefetch_related('lines').get(id=bill_id)

    return {
        'id': bill.id,
        'reference': bill.reference,
        'customer_name': bill.customer_name,
        'payment_mode': bill.payment_mode,
        'sold_by': bill.sold_by.get_username(),
        'total_amount': str(bill.total_amount),
        'items': [
            {
                'product_id': line.product_id,
                'product_name': line.product_name,
                'quantity': line.quantity,
                'price': str(line.price),
                'amount': str(line.amount),
            }
            for line in bill.lines.all()
        ],
        'created_at': bill.created_at.isoformat(),
    }
