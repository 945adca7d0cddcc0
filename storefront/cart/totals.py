"""Derived cart values: item count, subtotal, shipping, total.

Always computed from the current Cart on read; nothing here is stored.
"""
from dataclasses import dataclass
from decimal import Decimal

from storefront.config import CartSettings
from storefront.services.money import format_money, round_money, to_float

from .models import Cart


@dataclass(frozen=True)
class CartTotals:
    total_item_count: int
    subtotal: Decimal
    shipping: Decimal
    total: Decimal
    currency: str = "INR"

    @property
    def free_shipping(self) -> bool:
        return self.shipping == 0

    def to_dict(self) -> dict:
        return {
            "total_items": self.total_item_count,
            "subtotal": to_float(self.subtotal),
            "shipping": to_float(self.shipping),
            "total": to_float(self.total),
            "free_shipping": self.free_shipping,
            "currency": self.currency,
        }

    def formatted(self) -> dict:
        return {
            "subtotal": format_money(self.subtotal, self.currency),
            "shipping": "Free" if self.free_shipping else format_money(self.shipping, self.currency),
            "total": format_money(self.total, self.currency),
        }


def shipping_for(subtotal: Decimal, settings: CartSettings) -> Decimal:
    """Flat fee, waived once the subtotal reaches the free-shipping threshold.

    An empty cart ships nothing and pays nothing.
    """
    if subtotal <= 0:
        return Decimal("0")
    if subtotal >= settings.free_shipping_threshold:
        return Decimal("0")
    return settings.shipping_fee


def compute_totals(cart: Cart, settings: CartSettings) -> CartTotals:
    subtotal = round_money(cart.subtotal)
    shipping = round_money(shipping_for(subtotal, settings))
    return CartTotals(
        total_item_count=cart.total_item_count,
        subtotal=subtotal,
        shipping=shipping,
        total=subtotal + shipping,
        currency=settings.currency,
    )
