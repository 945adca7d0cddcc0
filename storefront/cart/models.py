"""Cart models with Decimal-based pricing."""
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterator, Optional

from storefront.errors import CartError
from storefront.services.models import Product
from storefront.services.money import multiply, to_decimal


def clamp_to_stock(quantity: int, stock_quantity: Optional[int]) -> int:
    """Clamp a quantity to the advisory stock bound. Unknown stock is unbounded."""
    if stock_quantity is None:
        return quantity
    return min(quantity, stock_quantity)


@dataclass
class LineItem:
    """Single product entry in the cart."""
    product_id: str
    quantity: int
    unit_price: Decimal  # Snapshot taken when the product was added
    stock_quantity: Optional[int] = None  # Advisory; None means unknown
    name: str = ""
    image_url: Optional[str] = None

    def __post_init__(self):
        self.unit_price = to_decimal(self.unit_price)

    @classmethod
    def from_product(cls, product: Product, quantity: int) -> "LineItem":
        return cls(
            product_id=product.id,
            quantity=quantity,
            unit_price=product.price,
            stock_quantity=product.stock_quantity,
            name=product.name,
            image_url=product.image_url,
        )

    @property
    def line_total(self) -> Decimal:
        """Price for all units of this item."""
        return multiply(self.unit_price, self.quantity)

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price": str(self.unit_price),
            "stock_quantity": self.stock_quantity,
            "name": self.name,
            "image_url": self.image_url,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LineItem":
        stock = data.get("stock_quantity")
        return cls(
            product_id=str(data["product_id"]),
            quantity=int(data["quantity"]),
            unit_price=to_decimal(data["unit_price"]),
            stock_quantity=int(stock) if stock is not None else None,
            name=data.get("name", ""),
            image_url=data.get("image_url"),
        )


@dataclass
class Cart:
    """Ordered collection of line items keyed by product_id.

    Insertion order is kept for display only; totals do not depend on it.
    """
    items: Dict[str, LineItem] = field(default_factory=dict)

    def __iter__(self) -> Iterator[LineItem]:
        return iter(self.items.values())

    def __len__(self) -> int:
        return len(self.items)

    def __contains__(self, product_id: str) -> bool:
        return product_id in self.items

    def get(self, product_id: str) -> Optional[LineItem]:
        return self.items.get(product_id)

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def total_item_count(self) -> int:
        """Sum of quantities."""
        return sum(item.quantity for item in self.items.values())

    @property
    def subtotal(self) -> Decimal:
        """Sum of unit_price * quantity."""
        return sum((item.line_total for item in self.items.values()), Decimal("0"))

    def quantities(self) -> Dict[str, int]:
        return {product_id: item.quantity for product_id, item in self.items.items()}

    def to_dict(self) -> dict:
        """Convert to a JSON-safe dict for local storage."""
        return {"items": [item.to_dict() for item in self.items.values()]}

    @classmethod
    def from_dict(cls, data: dict) -> "Cart":
        """Create from dictionary.

        Rows with a non-positive quantity are dropped and repeated product ids
        are folded into one item, so stored data can never break the cart
        invariants.
        """
        cart = cls()
        for raw in data.get("items", []):
            item = LineItem.from_dict(raw)
            if item.quantity < 1:
                continue
            existing = cart.items.get(item.product_id)
            if existing is None:
                cart.items[item.product_id] = item
            else:
                existing.quantity = clamp_to_stock(existing.quantity + item.quantity, existing.stock_quantity)
        return cart


class MutationStatus(str, Enum):
    """Outcome of a cart mutation."""
    ADDED = "added"
    UPDATED = "updated"
    CLAMPED = "clamped"  # Stock bound applied; surface a notice
    REMOVED = "removed"
    NOT_FOUND = "not_found"
    CLEARED = "cleared"


@dataclass(frozen=True)
class MutationResult:
    """What a mutation did to one product's line item."""
    product_id: Optional[str]
    quantity: int  # Quantity after the mutation; 0 when the item is gone
    status: MutationStatus
    requested: Optional[int] = None
    error: Optional[CartError] = field(default=None, compare=False)  # Set for NOT_FOUND

    @property
    def changed(self) -> bool:
        return self.status is not MutationStatus.NOT_FOUND

    @property
    def clamped(self) -> bool:
        return self.status is MutationStatus.CLAMPED


__all__ = [
    "Cart",
    "LineItem",
    "MutationResult",
    "MutationStatus",
    "clamp_to_stock",
]
