"""
Cart configuration.

Values come from environment variables and are read once at import.
`CartSettings.from_env()` bundles the cart-related ones for the reconciler;
tests build `CartSettings(...)` directly.
"""

import os
from dataclasses import dataclass
from decimal import Decimal

from storefront.services.money import to_decimal

# Supabase project (anon key: this runs on behalf of a signed-in shopper, not as service role)
SUPABASE_URL = os.environ.get("SUPABASE_URL", "")
SUPABASE_ANON_KEY = os.environ.get("SUPABASE_ANON_KEY", "")

# Upstash Redis (guest cart storage)
UPSTASH_REDIS_REST_URL = os.environ.get("UPSTASH_REDIS_REST_URL", "")
UPSTASH_REDIS_REST_TOKEN = os.environ.get("UPSTASH_REDIS_REST_TOKEN", "")

# Pricing
CART_SHIPPING_FEE = os.environ.get("CART_SHIPPING_FEE", "10")
CART_FREE_SHIPPING_THRESHOLD = os.environ.get("CART_FREE_SHIPPING_THRESHOLD", "150")
CART_CURRENCY = os.environ.get("CART_CURRENCY", "INR")

# Write-through retries
CART_SYNC_ATTEMPTS = os.environ.get("CART_SYNC_ATTEMPTS", "3")
CART_SYNC_BACKOFF_BASE = os.environ.get("CART_SYNC_BACKOFF_BASE", "0.5")
CART_SYNC_BACKOFF_MAX = os.environ.get("CART_SYNC_BACKOFF_MAX", "8")

# Local storage key for the guest cart
CART_GUEST_STORAGE_KEY = os.environ.get("CART_GUEST_STORAGE_KEY", "cart")

# Table names in the Supabase schema
CART_TABLE = "cart"
PRODUCTS_TABLE = "products"


@dataclass(frozen=True)
class CartSettings:
    """Settings consumed by the cart reconciler and totals."""

    shipping_fee: Decimal = Decimal("10")
    free_shipping_threshold: Decimal = Decimal("150")
    currency: str = "INR"
    sync_attempts: int = 3
    sync_backoff_base: float = 0.5
    sync_backoff_max: float = 8.0
    guest_storage_key: str = "cart"

    def __post_init__(self):
        object.__setattr__(self, "shipping_fee", to_decimal(self.shipping_fee))
        object.__setattr__(self, "free_shipping_threshold", to_decimal(self.free_shipping_threshold))
        if self.sync_attempts < 1:
            raise ValueError("sync_attempts must be at least 1")

    @classmethod
    def from_env(cls) -> "CartSettings":
        return cls(
            shipping_fee=to_decimal(CART_SHIPPING_FEE),
            free_shipping_threshold=to_decimal(CART_FREE_SHIPPING_THRESHOLD),
            currency=CART_CURRENCY.upper(),
            sync_attempts=int(CART_SYNC_ATTEMPTS),
            sync_backoff_base=float(CART_SYNC_BACKOFF_BASE),
            sync_backoff_max=float(CART_SYNC_BACKOFF_MAX),
            guest_storage_key=CART_GUEST_STORAGE_KEY,
        )
