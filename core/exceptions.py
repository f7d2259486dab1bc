"""
Domain exceptions shared by the catalog, ledger, billing and reports apps.

Hierarchy:
    StockEngineError
        ProductNotFoundError       - unknown product reference
        CartValidationError        - malformed checkout/restock request
            EmptyCartError
            InvalidQuantityError
            InvalidPaymentModeError
        InsufficientStockError     - business-rule rejection
        ConcurrencyConflictError   - lock contention, retries exhausted
        StorageError               - database failure
        ImmutableMovementError     - attempt to rewrite the ledger
"""


class StockEngineError(Exception):
    """Base class for every error raised by the stock engine."""


class ProductNotFoundError(StockEngineError):
    """Raised when a product id does not resolve to a catalog entry."""
    def __init__(self, product_id):
        self.product_id = product_id
        super().__init__(f"Product {product_id} not found")


class CartValidationError(StockEngineError):
    """Raised when a request is rejected before touching stock."""
    pass


class EmptyCartError(CartValidationError):
    def __init__(self):
        super().__init__("Cart must contain at least one item")


class InvalidQuantityError(CartValidationError):
    def __init__(self, quantity, product_id=None):
        self.quantity = quantity
        self.product_id = product_id
        if product_id is None:
            message = f"Quantity must be a positive integer, got {quantity!r}"
        else:
            message = (
                f"Quantity for product {product_id} must be a positive integer, "
                f"got {quantity!r}"
            )
        super().__init__(message)


class InvalidPaymentModeError(CartValidationError):
    def __init__(self, payment_mode, allowed):
        self.payment_mode = payment_mode
        self.allowed = list(allowed)
        super().__init__(
            f"Unknown payment mode {payment_mode!r}; expected one of {', '.join(self.allowed)}"
        )


class InsufficientStockError(StockEngineError):
    """Raised when there's not enough stock for a cart line."""
    def __init__(self, product_id, requested: int, available: int, product_name: str = ''):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        self.product_name = product_name
        label = product_name or f"product {product_id}"
        super().__init__(
            f"Insufficient stock for {label}: "
            f"requested {requested}, available {available}"
        )


class ConcurrencyConflictError(StockEngineError):
    """Raised when a stock write kept losing lock races. Safe to retry."""
    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(
            f"Stock update abandoned after {attempts} attempts due to concurrent writes"
        )


class StorageError(StockEngineError):
    """Raised when the database fails mid-operation. No partial state is left."""
    pass


class ImmutableMovementError(StockEngineError):
    """Raised on any attempt to update or delete a ledger entry."""
    def __init__(self, message="Stock movements are append-only and cannot be modified"):
        super().__init__(message)
