"""Cart Repository - the per-user remote cart store.

Rows are keyed by (user_id, product_id). There is no version column:
concurrent writers from other devices resolve last-write-wins per row.
"""
from typing import List

from pydantic import ValidationError

from storefront.config import CART_TABLE
from storefront.logging import get_logger, sanitize_id_for_logging
from storefront.services.models import CartRow

from .base import BaseRepository

logger = get_logger(__name__)


class CartRepository(BaseRepository):
    """Cart table operations."""

    async def list_items(self, user_id: str) -> List[CartRow]:
        """Get all cart rows of a user."""
        async with self._store_call("list_items"):
            result = (
                await self.client.table(CART_TABLE)
                .select("product_id, quantity")
                .eq("user_id", user_id)
                .execute()
            )
        rows = []
        for row in result.data or []:
            try:
                rows.append(CartRow(**row))
            except (ValidationError, TypeError) as e:
                logger.warning(f"Skipping malformed cart row for {sanitize_id_for_logging(user_id)}: {e}")
        return rows

    async def upsert_item(self, user_id: str, product_id: str, quantity: int) -> None:
        """Insert or update the quantity of one row."""
        if quantity < 1:
            raise ValueError("upsert_item requires a positive quantity; use delete_item")
        async with self._store_call("upsert_item", product_id):
            await (
                self.client.table(CART_TABLE)
                .upsert(
                    {"user_id": user_id, "product_id": product_id, "quantity": quantity},
                    on_conflict="user_id,product_id",
                )
                .execute()
            )
        logger.debug(
            f"Upserted cart row user={sanitize_id_for_logging(user_id)} "
            f"product={sanitize_id_for_logging(product_id)} qty={quantity}"
        )

    async def delete_item(self, user_id: str, product_id: str) -> None:
        """Delete one row. Deleting a missing row is not an error."""
        async with self._store_call("delete_item", product_id):
            await (
                self.client.table(CART_TABLE)
                .delete()
                .eq("user_id", user_id)
                .eq("product_id", product_id)
                .execute()
            )
        logger.debug(
            f"Deleted cart row user={sanitize_id_for_logging(user_id)} "
            f"product={sanitize_id_for_logging(product_id)}"
        )
