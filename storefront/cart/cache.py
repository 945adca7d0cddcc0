"""In-memory cart for the current session.

Every method is synchronous and does no I/O; persistence is the
reconciler's job.
"""
from storefront.errors import ERROR_INVALID_INCREMENT, InvalidQuantityError, NotFoundError
from storefront.services.models import Product

from .models import Cart, LineItem, MutationResult, MutationStatus, clamp_to_stock


def _check_increment(qty, product_id: str) -> None:
    if isinstance(qty, bool) or not isinstance(qty, int) or qty < 1:
        raise InvalidQuantityError(qty, ERROR_INVALID_INCREMENT, product_id=product_id)


def _not_found(product_id: str, qty: int) -> MutationResult:
    return MutationResult(
        product_id, 0, MutationStatus.NOT_FOUND, requested=qty, error=NotFoundError(product_id)
    )


class LocalCartCache:
    """Holds the session's Cart and enforces its invariants.

    - one LineItem per product_id
    - quantity >= 1 (an item reaching 0 is deleted)
    - quantity <= stock_quantity when stock is known
    """

    def __init__(self, cart: Cart | None = None):
        self._cart = cart if cart is not None else Cart()

    @property
    def cart(self) -> Cart:
        return self._cart

    def add_item(self, product: Product, qty: int = 1) -> MutationResult:
        """Add qty units of product, clamping to stock instead of failing."""
        _check_increment(qty, product.id)

        existing = self._cart.get(product.id)
        if existing is not None:
            # Refresh the stock bound from the newer snapshot; keep the price taken at first add
            if product.stock_quantity is not None:
                existing.stock_quantity = product.stock_quantity
            wanted = existing.quantity + qty
            new_quantity = clamp_to_stock(wanted, existing.stock_quantity)
            if new_quantity < 1:
                # Stock dropped to zero since the item was added
                del self._cart.items[product.id]
                return MutationResult(product.id, 0, MutationStatus.CLAMPED, requested=qty)
            existing.quantity = new_quantity
            status = MutationStatus.CLAMPED if new_quantity < wanted else MutationStatus.UPDATED
            return MutationResult(product.id, new_quantity, status, requested=qty)

        quantity = clamp_to_stock(qty, product.stock_quantity)
        if quantity < 1:
            return MutationResult(product.id, 0, MutationStatus.CLAMPED, requested=qty)
        self._cart.items[product.id] = LineItem.from_product(product, quantity)
        status = MutationStatus.CLAMPED if quantity < qty else MutationStatus.ADDED
        return MutationResult(product.id, quantity, status, requested=qty)

    def remove_item(self, product_id: str, qty: int = 1) -> MutationResult:
        """Take qty units out; the item is deleted when nothing is left.

        A product that is not in the cart is a no-op reported as NOT_FOUND.
        """
        _check_increment(qty, product_id)

        item = self._cart.get(product_id)
        if item is None:
            return _not_found(product_id, qty)

        remaining = item.quantity - qty
        if remaining <= 0:
            del self._cart.items[product_id]
            return MutationResult(product_id, 0, MutationStatus.REMOVED, requested=qty)
        item.quantity = remaining
        return MutationResult(product_id, remaining, MutationStatus.UPDATED, requested=qty)

    def set_quantity(self, product_id: str, qty: int) -> MutationResult:
        """Replace the quantity. 0 deletes the item; negative values are rejected."""
        if isinstance(qty, bool) or not isinstance(qty, int) or qty < 0:
            raise InvalidQuantityError(qty, product_id=product_id)

        item = self._cart.get(product_id)
        if item is None:
            return _not_found(product_id, qty)

        if qty == 0:
            del self._cart.items[product_id]
            return MutationResult(product_id, 0, MutationStatus.REMOVED, requested=qty)

        new_quantity = clamp_to_stock(qty, item.stock_quantity)
        if new_quantity < 1:
            del self._cart.items[product_id]
            return MutationResult(product_id, 0, MutationStatus.CLAMPED, requested=qty)
        item.quantity = new_quantity
        status = MutationStatus.CLAMPED if new_quantity < qty else MutationStatus.UPDATED
        return MutationResult(product_id, new_quantity, status, requested=qty)

    def clear(self) -> MutationResult:
        """Empty the cart (after a successful checkout)."""
        self._cart.items.clear()
        return MutationResult(None, 0, MutationStatus.CLEARED)

    def replace(self, cart: Cart) -> None:
        """Overwrite the whole cart (hydration and merge)."""
        self._cart = cart
