"""
Client singletons.

- Async Supabase client (auth, `cart` and `products` tables)
- Sync Upstash Redis client (guest cart storage; the storage interface is synchronous)
"""

import asyncio
from typing import Optional

from supabase._async.client import AsyncClient
from supabase._async.client import create_client as acreate_client
from upstash_redis import Redis

from storefront import config
from storefront.logging import get_logger

logger = get_logger(__name__)

_supabase_client: Optional[AsyncClient] = None
_supabase_lock: Optional[asyncio.Lock] = None
_redis_client: Optional[Redis] = None


def _get_lock() -> asyncio.Lock:
    global _supabase_lock
    if _supabase_lock is None:
        _supabase_lock = asyncio.Lock()
    return _supabase_lock


async def get_supabase() -> AsyncClient:
    """
    Get async Supabase client (singleton).

    Created lazily on first use; concurrent first callers share one client.
    """
    global _supabase_client
    if _supabase_client is not None:
        return _supabase_client

    async with _get_lock():
        if _supabase_client is None:
            if not config.SUPABASE_URL or not config.SUPABASE_ANON_KEY:
                raise ValueError("SUPABASE_URL and SUPABASE_ANON_KEY must be set")
            logger.info("Initializing async Supabase client...")
            _supabase_client = await acreate_client(config.SUPABASE_URL, config.SUPABASE_ANON_KEY)
    return _supabase_client


def get_redis_sync() -> Redis:
    """
    Get sync Upstash Redis client (singleton).

    Uses the standard Upstash env var names:
    - UPSTASH_REDIS_REST_URL
    - UPSTASH_REDIS_REST_TOKEN
    """
    global _redis_client
    if _redis_client is None:
        if not config.UPSTASH_REDIS_REST_URL or not config.UPSTASH_REDIS_REST_TOKEN:
            raise ValueError("UPSTASH_REDIS_REST_URL and UPSTASH_REDIS_REST_TOKEN must be set")
        _redis_client = Redis(url=config.UPSTASH_REDIS_REST_URL, token=config.UPSTASH_REDIS_REST_TOKEN)
    return _redis_client


class RedisKeys:
    """Redis key prefixes."""

    GUEST_CART = "cart:guest:"  # cart:guest:{storage_key}

    @staticmethod
    def guest_cart_key(key: str) -> str:
        return f"{RedisKeys.GUEST_CART}{key}"


class TTL:
    """Time-to-live constants for Redis keys (seconds)."""

    GUEST_CART = 86400 * 30  # 30 days
