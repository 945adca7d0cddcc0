"""Pytest configuration and fixtures"""
import asyncio
import os
from decimal import Decimal
from typing import Dict, List, Optional
from unittest.mock import AsyncMock, Mock

import pytest

# Set test environment variables
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_ANON_KEY", "test_anon_key")
os.environ.setdefault("UPSTASH_REDIS_REST_URL", "https://test.upstash.io")
os.environ.setdefault("UPSTASH_REDIS_REST_TOKEN", "test_token")

from storefront.auth import SignedIn, SignedOut  # noqa: E402
from storefront.config import CartSettings  # noqa: E402
from storefront.errors import StoreUnavailableError  # noqa: E402
from storefront.services.models import CartRow, Product  # noqa: E402


class MemoryStorage:
    """Local storage kept in a dict."""

    def __init__(self):
        self.data: Dict[str, bytes] = {}

    def load(self, key: str) -> Optional[bytes]:
        return self.data.get(key)

    def save(self, key: str, data: bytes) -> None:
        self.data[key] = data

    def delete(self, key: str) -> None:
        self.data.pop(key, None)


class FakeCartStore:
    """Remote cart store backed by a dict of {user_id: {product_id: quantity}}."""

    def __init__(self):
        self.rows: Dict[str, Dict[str, int]] = {}
        self.calls: List[tuple] = []
        self.fail_list = False
        self.fail_writes = 0  # number of upsert/delete calls that fail before succeeding
        self.delays: Dict[str, float] = {}  # product_id -> seconds per write
        self.list_delay = 0.0

    async def list_items(self, user_id: str) -> List[CartRow]:
        self.calls.append(("list", user_id))
        await asyncio.sleep(self.list_delay)
        if self.fail_list:
            raise StoreUnavailableError("list_items failed")
        return [CartRow(product_id=pid, quantity=qty) for pid, qty in self.rows.get(user_id, {}).items()]

    async def _write_gate(self, product_id: str) -> None:
        await asyncio.sleep(self.delays.get(product_id, 0))
        if self.fail_writes > 0:
            self.fail_writes -= 1
            raise StoreUnavailableError("write failed", product_id=product_id)

    async def upsert_item(self, user_id: str, product_id: str, quantity: int) -> None:
        self.calls.append(("upsert", user_id, product_id, quantity))
        await self._write_gate(product_id)
        self.rows.setdefault(user_id, {})[product_id] = quantity

    async def delete_item(self, user_id: str, product_id: str) -> None:
        self.calls.append(("delete", user_id, product_id))
        await self._write_gate(product_id)
        self.rows.get(user_id, {}).pop(product_id, None)

    def writes(self) -> List[tuple]:
        return [c for c in self.calls if c[0] in ("upsert", "delete")]


class FakeCatalog:
    def __init__(self, products: Optional[Dict[str, Product]] = None):
        self.products: Dict[str, Product] = dict(products or {})

    def add(self, product: Product) -> Product:
        self.products[product.id] = product
        return product

    async def get_product(self, product_id: str) -> Optional[Product]:
        return self.products.get(product_id)


class FakeIdentity:
    def __init__(self, user_id: Optional[str] = None):
        self.user_id = user_id
        self.callbacks = []

    async def get_current_user_id(self) -> Optional[str]:
        return self.user_id

    def subscribe(self, callback):
        self.callbacks.append(callback)
        return lambda: self.callbacks.remove(callback)

    def sign_in(self, user_id: str) -> None:
        self.user_id = user_id
        for callback in list(self.callbacks):
            callback(SignedIn(user_id))

    def sign_out(self) -> None:
        self.user_id = None
        for callback in list(self.callbacks):
            callback(SignedOut())


def make_product(product_id: str, price="100", stock: Optional[int] = None, name: Optional[str] = None) -> Product:
    return Product(id=product_id, name=name or f"Product {product_id}", price=price, stock_quantity=stock)


@pytest.fixture
def settings():
    """Cart settings with instant retries."""
    return CartSettings(
        shipping_fee=Decimal("10"),
        free_shipping_threshold=Decimal("150"),
        currency="INR",
        sync_attempts=2,
        sync_backoff_base=0,
        sync_backoff_max=0,
        guest_storage_key="cart",
    )


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def store():
    return FakeCartStore()


@pytest.fixture
def catalog():
    return FakeCatalog()


@pytest.fixture
def identity():
    return FakeIdentity()


@pytest.fixture
def reconciler(identity, store, catalog, storage, settings):
    from storefront.cart import CartReconciler

    return CartReconciler(identity, store, catalog, storage, settings=settings)


@pytest.fixture
def mock_supabase_client():
    """Mock async Supabase client; every query chain ends in an awaitable execute()."""
    client = Mock()

    table_mock = Mock()
    table_mock.select.return_value = table_mock
    table_mock.insert.return_value = table_mock
    table_mock.update.return_value = table_mock
    table_mock.delete.return_value = table_mock
    table_mock.upsert.return_value = table_mock
    table_mock.eq.return_value = table_mock
    table_mock.execute = AsyncMock(return_value=Mock(data=[]))

    client.table.return_value = table_mock
    client.auth = Mock()
    client.auth.get_session = AsyncMock(return_value=None)

    return client


@pytest.fixture
def sample_product_row():
    """Sample products row as returned by select(..., categories(name))"""
    return {
        "id": 42,
        "name": "Wireless Headphones",
        "price": 149.99,
        "stock_quantity": 5,
        "image_url": "https://cdn.test/headphones.png",
        "description": "Over-ear",
        "categories": {"name": "Audio"},
    }
