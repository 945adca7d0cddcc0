"""Product Repository - catalog lookups used to snapshot price and stock."""
from typing import Optional

from storefront.config import PRODUCTS_TABLE
from storefront.services.models import Product

from .base import BaseRepository

_PRODUCT_COLUMNS = "id, name, price, stock_quantity, image_url, description, categories(name)"


def _to_product(row: dict) -> Product:
    row = dict(row)
    row["category"] = row.pop("categories", None)
    return Product(**row)


class ProductRepository(BaseRepository):
    """Product catalog operations."""

    async def get_product(self, product_id: str) -> Optional[Product]:
        """Get product by ID, or None if it no longer exists."""
        async with self._store_call("get_product", product_id):
            result = (
                await self.client.table(PRODUCTS_TABLE)
                .select(_PRODUCT_COLUMNS)
                .eq("id", product_id)
                .execute()
            )
        return _to_product(result.data[0]) if result.data else None
