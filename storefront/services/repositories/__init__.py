"""
Repository Pattern for Supabase tables

- ProductRepository: product catalog lookups (price/stock snapshots)
- CartRepository: per-user `cart` rows (the remote cart store)
"""
from .cart_repo import CartRepository
from .product_repo import ProductRepository

__all__ = [
    "CartRepository",
    "ProductRepository",
]
