"""
Write-through queue from the local cart to the remote cart store.

Ordering rules:
- at most one in-flight write per (user_id, product_id) row
- different rows are written concurrently
- a write that has not started yet is replaced by a newer one for the same
  row (last-write-wins); the replaced write never reaches the store
"""
import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from storefront.errors import StaleWriteError, StoreUnavailableError
from storefront.logging import get_logger, sanitize_id_for_logging
from storefront.services.models import CartRow

logger = get_logger(__name__)

RowKey = Tuple[str, str]


class RemoteCartStore(Protocol):
    async def list_items(self, user_id: str) -> List[CartRow]: ...

    async def upsert_item(self, user_id: str, product_id: str, quantity: int) -> None: ...

    async def delete_item(self, user_id: str, product_id: str) -> None: ...


@dataclass(frozen=True)
class WriteOp:
    """Desired remote state of one row. quantity 0 means the row is deleted."""
    user_id: str
    product_id: str
    quantity: int

    @property
    def key(self) -> RowKey:
        return (self.user_id, self.product_id)

    @property
    def is_delete(self) -> bool:
        return self.quantity < 1


FailureCallback = Callable[[WriteOp, StoreUnavailableError], Any]


class WriteThroughQueue:
    """Per-row serialized writer with retries."""

    def __init__(
        self,
        store: RemoteCartStore,
        attempts: int = 3,
        backoff_base: float = 0.5,
        backoff_max: float = 8.0,
        on_failure: Optional[FailureCallback] = None,
    ):
        self.store = store
        self.attempts = attempts
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.on_failure = on_failure
        self._pending: Dict[RowKey, WriteOp] = {}
        self._workers: Dict[RowKey, asyncio.Task] = {}
        self._failed: Dict[RowKey, WriteOp] = {}

    @property
    def busy(self) -> bool:
        return bool(self._workers)

    @property
    def failed_keys(self) -> List[RowKey]:
        """(user_id, product_id) rows whose latest write did not reach the store."""
        return list(self._failed)

    @property
    def failed_ops(self) -> List[WriteOp]:
        return list(self._failed.values())

    def discard_failed(self, user_id: str) -> List[WriteOp]:
        """Forget the failed writes of one user and return them."""
        dropped = [op for op in self._failed.values() if op.user_id == user_id]
        for op in dropped:
            del self._failed[op.key]
        return dropped

    def enqueue(self, op: WriteOp) -> None:
        """Schedule op; never blocks. Requires a running event loop."""
        stale = self._pending.get(op.key)
        if stale is not None:
            err = StaleWriteError(op.product_id)
            logger.debug(
                f"{err.code}: product={sanitize_id_for_logging(op.product_id)} "
                f"qty {stale.quantity} -> {op.quantity}"
            )
        self._pending[op.key] = op
        if op.key not in self._workers:
            self._workers[op.key] = asyncio.create_task(self._run(op.key))

    async def drain(self) -> None:
        """Wait until every scheduled write has finished (or failed)."""
        while self._workers:
            await asyncio.gather(*list(self._workers.values()), return_exceptions=True)

    async def _run(self, key: RowKey) -> None:
        try:
            while key in self._pending:
                op = self._pending.pop(key)
                try:
                    await self._apply(op)
                except StoreUnavailableError as e:
                    self._record_failure(op, e)
                except Exception as e:
                    logger.error(f"Unexpected error writing cart row: {e}", exc_info=True)
                    self._record_failure(op, StoreUnavailableError(str(e), product_id=op.product_id, raw_error=e))
                else:
                    self._failed.pop(key, None)
        finally:
            self._workers.pop(key, None)

    def _record_failure(self, op: WriteOp, error: StoreUnavailableError) -> None:
        if op.key in self._pending:
            # A newer value is queued and will be written next
            logger.debug(f"Dropping failure of superseded write for {sanitize_id_for_logging(op.product_id)}")
            return
        self._failed[op.key] = op
        logger.warning(
            f"Write-through failed for product {sanitize_id_for_logging(op.product_id)} "
            f"after {self.attempts} attempts: {error}"
        )
        if self.on_failure is not None:
            self.on_failure(op, error)

    async def _apply(self, op: WriteOp) -> None:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.attempts),
            wait=wait_exponential(multiplier=self.backoff_base, max=self.backoff_max),
            retry=retry_if_exception_type(StoreUnavailableError),
            reraise=True,
        ):
            with attempt:
                if op.is_delete:
                    await self.store.delete_item(op.user_id, op.product_id)
                else:
                    await self.store.upsert_item(op.user_id, op.product_id, op.quantity)
