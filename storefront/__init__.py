"""Storefront cart core: local cart cache, reconciler and Supabase adapters."""

__version__ = "0.1.0"
