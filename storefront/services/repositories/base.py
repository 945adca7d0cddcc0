"""Base repository with shared Supabase client."""

from contextlib import asynccontextmanager

import httpx
from postgrest.exceptions import APIError
from supabase._async.client import AsyncClient

from storefront.errors import StoreUnavailableError
from storefront.logging import get_logger

logger = get_logger(__name__)

# Errors that mean "the store could not answer", as opposed to programming errors
STORE_ERRORS = (APIError, httpx.HTTPError)


class BaseRepository:
    """Base class for all repositories.

    All methods await the async client.
    """

    def __init__(self, client: AsyncClient) -> None:
        self.client = client

    @asynccontextmanager
    async def _store_call(self, operation: str, product_id: str | None = None):
        """Translate Supabase/network failures into StoreUnavailableError."""
        try:
            yield
        except STORE_ERRORS as e:
            logger.warning(f"{operation} failed: {e}")
            raise StoreUnavailableError(f"{operation} failed: {e}", product_id=product_id, raw_error=e) from e
