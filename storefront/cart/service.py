"""Wiring of a CartReconciler to Supabase and guest storage."""
from typing import Any, Callable, Optional

from storefront.auth import SupabaseIdentityProvider
from storefront.config import CartSettings
from storefront.db import get_supabase
from storefront.services.repositories import CartRepository, ProductRepository
from storefront.storage import LocalStorage, RedisLocalStorage

from .reconciler import CartNotice, CartReconciler


async def create_cart_session(
    storage: Optional[LocalStorage] = None,
    settings: Optional[CartSettings] = None,
    on_notice: Optional[Callable[[CartNotice], Any]] = None,
    start: bool = True,
) -> CartReconciler:
    """
    Build a reconciler over the shared async Supabase client.

    Guest carts go to Upstash Redis unless another storage is given.
    """
    client = await get_supabase()
    reconciler = CartReconciler(
        identity=SupabaseIdentityProvider(client),
        store=CartRepository(client),
        catalog=ProductRepository(client),
        storage=storage if storage is not None else RedisLocalStorage(),
        settings=settings,
        on_notice=on_notice,
    )
    if start:
        await reconciler.start()
    return reconciler
