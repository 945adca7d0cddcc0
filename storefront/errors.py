"""
Cart error types and shared messages.

Message constants are kept in one place so log lines and notices match.
"""

# Messages
ERROR_ITEM_NOT_IN_CART = "Item is not in the cart"
ERROR_PRODUCT_NOT_FOUND = "Product not found"
ERROR_INVALID_QUANTITY = "Quantity must not be negative"
ERROR_INVALID_INCREMENT = "Quantity must be a positive integer"
ERROR_STORE_UNAVAILABLE = "Cart service unavailable"
ERROR_STALE_WRITE = "Write superseded by a newer value"


class CartError(Exception):
    """Base error for cart operations."""

    code = "CART_ERROR"
    retryable = False

    def __init__(self, message: str, product_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.product_id = product_id


class NotFoundError(CartError):
    """Mutation referenced a product that is not in the cart."""

    code = "NOT_FOUND"

    def __init__(self, product_id: str, message: str = ERROR_ITEM_NOT_IN_CART) -> None:
        super().__init__(message, product_id=product_id)


class InvalidQuantityError(CartError):
    """Negative (or, for increments, non-positive) quantity requested."""

    code = "INVALID_QUANTITY"

    def __init__(self, quantity, message: str = ERROR_INVALID_QUANTITY, product_id: str | None = None) -> None:
        super().__init__(f"{message}: {quantity!r}", product_id=product_id)
        self.quantity = quantity


class StoreUnavailableError(CartError):
    """Remote cart store call failed (network or service error)."""

    code = "STORE_UNAVAILABLE"
    retryable = True

    def __init__(self, message: str = ERROR_STORE_UNAVAILABLE, product_id: str | None = None, raw_error=None) -> None:
        super().__init__(message, product_id=product_id)
        self.raw_error = raw_error


class StaleWriteError(CartError):
    """A queued write-through was replaced by a newer one for the same product.

    Never shown to the user; only logged.
    """

    code = "STALE_WRITE"

    def __init__(self, product_id: str, message: str = ERROR_STALE_WRITE) -> None:
        super().__init__(message, product_id=product_id)


__all__ = [
    "CartError",
    "NotFoundError",
    "InvalidQuantityError",
    "StoreUnavailableError",
    "StaleWriteError",
    "ERROR_ITEM_NOT_IN_CART",
    "ERROR_PRODUCT_NOT_FOUND",
    "ERROR_INVALID_QUANTITY",
    "ERROR_INVALID_INCREMENT",
    "ERROR_STORE_UNAVAILABLE",
    "ERROR_STALE_WRITE",
]
