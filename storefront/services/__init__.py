"""Catalog/cart data access and money helpers."""
