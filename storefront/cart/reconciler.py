"""
Cart Reconciler - keeps the session cart and its persistence target in step.

Guest sessions persist the whole cart to local storage on every change.
Authenticated sessions write each changed row through to the remote cart
store; the in-memory cart is updated first and is never rolled back when a
remote write fails. Signing in with a non-empty guest cart merges it into
the user's remote cart once.
"""
import asyncio
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol

from storefront.auth.session import (
    Authenticated,
    Guest,
    IdentityProvider,
    SessionEvent,
    SessionIdentity,
    SignedIn,
    SignedOut,
    identity_from_user_id,
)
from storefront.config import CartSettings
from storefront.errors import ERROR_PRODUCT_NOT_FOUND, ERROR_STORE_UNAVAILABLE, StoreUnavailableError
from storefront.logging import get_logger, sanitize_id_for_logging
from storefront.services.models import CartRow, Product
from storefront.services.money import to_float
from storefront.storage import LocalStorage

from .cache import LocalCartCache
from .models import Cart, LineItem, MutationResult, MutationStatus, clamp_to_stock
from .sync import RemoteCartStore, WriteOp, WriteThroughQueue
from .totals import CartTotals, compute_totals

logger = get_logger(__name__)


class ProductCatalog(Protocol):
    async def get_product(self, product_id: str) -> Optional[Product]: ...


class ReconcilerState(str, Enum):
    UNINITIALIZED = "uninitialized"
    HYDRATING = "hydrating"
    READY = "ready"
    SYNCING = "syncing"


class NoticeKind(str, Enum):
    CLAMPED = "clamped"
    STORE_UNAVAILABLE = "store_unavailable"
    HYDRATION_FAILED = "hydration_failed"
    PRODUCT_UNAVAILABLE = "product_unavailable"
    LOCAL_STORAGE_FAILED = "local_storage_failed"


@dataclass(frozen=True)
class CartNotice:
    """Recoverable condition worth showing to the shopper."""
    kind: NoticeKind
    message: str
    product_id: Optional[str] = None


def merge_carts(local: Cart, remote: Cart) -> Cart:
    """Merge a guest cart into a user's remote cart.

    Shared products get local + remote units, clamped to the known stock.
    Products only on one side keep their quantity. Guest items come first.
    """
    merged = Cart()
    for item in local:
        remote_item = remote.get(item.product_id)
        if remote_item is None:
            merged.items[item.product_id] = LineItem.from_dict(item.to_dict())
            continue
        # The remote snapshot was read from the catalog just now
        stock = remote_item.stock_quantity if remote_item.stock_quantity is not None else item.stock_quantity
        combined = LineItem.from_dict(item.to_dict())
        combined.stock_quantity = stock
        combined.quantity = clamp_to_stock(item.quantity + remote_item.quantity, stock)
        if combined.quantity >= 1:
            merged.items[item.product_id] = combined
    for item in remote:
        if item.product_id not in merged.items and item.product_id not in local:
            merged.items[item.product_id] = LineItem.from_dict(item.to_dict())
    return merged


class CartReconciler:
    """
    Owns one session's cart.

    Usage:
        reconciler = CartReconciler(identity, CartRepository(client), ProductRepository(client), storage)
        await reconciler.start()
        reconciler.add_item(product, 2)   # applied now, written through in the background
        reconciler.totals().total
        await reconciler.close()
    """

    def __init__(
        self,
        identity: IdentityProvider,
        store: RemoteCartStore,
        catalog: ProductCatalog,
        storage: LocalStorage,
        settings: Optional[CartSettings] = None,
        on_notice: Optional[Callable[[CartNotice], Any]] = None,
    ):
        self.identity = identity
        self.store = store
        self.catalog = catalog
        self.storage = storage
        self.settings = settings or CartSettings.from_env()
        self.on_notice = on_notice

        self.cache = LocalCartCache()
        self.session: SessionIdentity = Guest()
        self.notices: List[CartNotice] = []

        self._state = ReconcilerState.UNINITIALIZED
        self._queue = WriteThroughQueue(
            store,
            attempts=self.settings.sync_attempts,
            backoff_base=self.settings.sync_backoff_base,
            backoff_max=self.settings.sync_backoff_max,
            on_failure=self._on_write_failure,
        )
        self._session_lock = asyncio.Lock()
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._event_tasks: set = set()
        self._hydration_failure_reported = False
        # Guest items still waiting to be merged into the signed-in user's cart
        self._merge_pending = False
        # Edits made while a remote cart is loading; replayed on top of it
        self._deferred: Optional[List[Callable[[], List[MutationResult]]]] = None

    # ==================== STATE ====================

    @property
    def state(self) -> ReconcilerState:
        if self._state is ReconcilerState.READY and self._queue.busy:
            return ReconcilerState.SYNCING
        return self._state

    @property
    def cart(self) -> Cart:
        return self.cache.cart

    @property
    def user_id(self) -> Optional[str]:
        return self.session.user_id if isinstance(self.session, Authenticated) else None

    @property
    def failed_keys(self) -> List[str]:
        """Product ids of this session's rows whose write did not reach the store."""
        return [op.product_id for op in self._queue.failed_ops if op.user_id == self.user_id]

    # ==================== LIFECYCLE ====================

    async def start(self) -> None:
        """Subscribe to session changes and hydrate from the matching store."""
        if self._unsubscribe is None:
            self._unsubscribe = self.identity.subscribe(self._on_session_event)
        async with self._session_lock:
            user_id = await self.identity.get_current_user_id()
            self.session = identity_from_user_id(user_id)
            await self._hydrate()

    async def hydrate(self) -> None:
        """Reload the cart from the store matching the current session."""
        async with self._session_lock:
            await self._hydrate()

    async def close(self) -> None:
        """Stop listening for session changes and finish pending writes."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._event_tasks:
            await asyncio.gather(*list(self._event_tasks), return_exceptions=True)
        await self._queue.drain()

    async def flush(self) -> None:
        """Wait for all in-flight write-throughs."""
        await self._queue.drain()

    # ==================== SESSION CHANGES ====================

    def _on_session_event(self, event: SessionEvent) -> None:
        task = asyncio.ensure_future(self.handle_session_event(event))
        self._event_tasks.add(task)
        task.add_done_callback(self._event_tasks.discard)

    async def handle_session_event(self, event: SessionEvent) -> None:
        async with self._session_lock:
            if isinstance(event, SignedIn):
                await self._sign_in(event.user_id)
            elif isinstance(event, SignedOut):
                await self._sign_out()

    async def _sign_in(self, user_id: str) -> None:
        if self.session == Authenticated(user_id):
            return  # Supabase re-emits SIGNED_IN on token recovery
        if isinstance(self.session, Authenticated):
            await self._sign_out()

        merge_guest = self._state is ReconcilerState.READY and not self.cart.is_empty
        self.session = Authenticated(user_id)
        self._hydration_failure_reported = False
        logger.info(f"Session signed in as {sanitize_id_for_logging(user_id)} (merge_guest={merge_guest})")
        if merge_guest:
            self._merge_pending = True
            await self._merge_guest_cart()
        else:
            await self._hydrate()

    async def _sign_out(self) -> None:
        if not isinstance(self.session, Authenticated):
            return
        user_id = self.session.user_id
        # Last chance for failed rows while the user's session is still valid
        self._requeue_failed()
        await self._queue.drain()
        unsaved = self._queue.discard_failed(user_id)
        if unsaved:
            logger.warning(
                f"Session for {sanitize_id_for_logging(user_id)} ended with "
                f"{len(unsaved)} unsaved cart rows"
            )
            self._notify(NoticeKind.STORE_UNAVAILABLE, "Some cart changes could not be saved")
        logger.info(f"Session for {sanitize_id_for_logging(user_id)} ended; cart torn down")
        self.session = Guest()
        self._merge_pending = False
        self._hydration_failure_reported = False
        self.cache.replace(Cart())
        await self._hydrate()

    # ==================== HYDRATION & MERGE ====================

    async def _hydrate(self) -> None:
        self._state = ReconcilerState.HYDRATING
        self._deferred = []
        try:
            if isinstance(self.session, Authenticated):
                cart = await self._load_remote(self.session.user_id)
            else:
                cart = self._load_guest()
        except StoreUnavailableError as e:
            logger.warning(f"Cart hydration failed, starting empty: {e}")
            cart = Cart()
            if not self._hydration_failure_reported:
                self._hydration_failure_reported = True
                self._notify(NoticeKind.HYDRATION_FAILED, ERROR_STORE_UNAVAILABLE)
        finally:
            deferred, self._deferred = self._deferred, None
            self._state = ReconcilerState.READY
        self.cache.replace(cart)
        logger.debug(f"Cart hydrated: {len(cart)} items, {cart.total_item_count} units")
        if deferred:
            self._replay(deferred)

    def _replay(self, deferred: List[Callable[[], List[MutationResult]]]) -> None:
        results: List[MutationResult] = []
        for redo in deferred:
            results.extend(redo())
        logger.info(f"Replayed {len(deferred)} cart edits made while loading")
        self._persist(results)

    def _load_guest(self) -> Cart:
        key = self.settings.guest_storage_key
        try:
            raw = self.storage.load(key)
        except Exception as e:
            logger.error(f"Failed to read guest cart: {e}", exc_info=True)
            self._notify(NoticeKind.LOCAL_STORAGE_FAILED, "Saved cart could not be loaded")
            return Cart()
        if not raw:
            return Cart()
        try:
            return Cart.from_dict(json.loads(raw))
        except (json.JSONDecodeError, UnicodeDecodeError, KeyError, TypeError, ValueError) as e:
            # Corrupted data - drop it rather than fail the session
            logger.warning(f"Corrupted guest cart data: {e}")
            return Cart()

    async def _load_remote(self, user_id: str) -> Cart:
        rows = await self.store.list_items(user_id)
        return await self._snapshot_rows(rows)

    async def _snapshot_rows(self, rows: List[CartRow]) -> Cart:
        """Attach catalog price/stock to remote rows (fetched concurrently)."""
        rows = [row for row in rows if row.quantity >= 1]
        products = await asyncio.gather(*[self.catalog.get_product(row.product_id) for row in rows])

        cart = Cart()
        for row, product in zip(rows, products):
            if product is None:
                logger.warning(f"Cart row for missing product {sanitize_id_for_logging(row.product_id)} skipped")
                self._notify(NoticeKind.PRODUCT_UNAVAILABLE, ERROR_PRODUCT_NOT_FOUND, row.product_id)
                continue
            existing = cart.get(row.product_id)
            if existing is not None:
                existing.quantity += row.quantity
            else:
                cart.items[row.product_id] = LineItem.from_product(product, row.quantity)
        return cart

    async def _merge_guest_cart(self) -> None:
        """Fold the current (guest) cart into the signed-in user's remote cart."""
        user_id = self.user_id
        self._state = ReconcilerState.HYDRATING
        try:
            remote = await self._load_remote(user_id)
        except StoreUnavailableError as e:
            # Keep the guest cart and its local copy; the merge is retried later
            logger.warning(f"Guest cart merge postponed: {e}")
            if not self._hydration_failure_reported:
                self._hydration_failure_reported = True
                self._notify(NoticeKind.HYDRATION_FAILED, ERROR_STORE_UNAVAILABLE)
            self._state = ReconcilerState.READY
            return

        remote_quantities = remote.quantities()
        merged = merge_carts(self.cart, remote)
        self.cache.replace(merged)
        self._merge_pending = False
        self._state = ReconcilerState.READY

        try:
            self.storage.delete(self.settings.guest_storage_key)
        except Exception as e:
            logger.error(f"Failed to clear merged guest cart: {e}", exc_info=True)

        pushed = 0
        for item in merged:
            if remote_quantities.get(item.product_id) != item.quantity:
                self._queue.enqueue(WriteOp(user_id, item.product_id, item.quantity))
                pushed += 1
        # Shared items whose stock ran out are gone from the merged cart
        for product_id in remote_quantities:
            if product_id not in merged:
                self._queue.enqueue(WriteOp(user_id, product_id, 0))
                pushed += 1
                label = remote.get(product_id).name or product_id
                self._notify(NoticeKind.CLAMPED, f"{label} is out of stock", product_id)
        logger.info(f"Merged guest cart into {sanitize_id_for_logging(user_id)}: {len(merged)} items, {pushed} rows pushed")

    # ==================== MUTATIONS ====================

    def add_item(self, product: Product, qty: int = 1) -> MutationResult:
        """Add units of a product; the result carries the post-clamp quantity."""
        self._ensure_started()
        result = self.cache.add_item(product, qty)
        if result.clamped:
            self._notify(
                NoticeKind.CLAMPED,
                f"Only {product.stock_quantity} of {product.name} available",
                product.id,
            )
        self._persist([result], lambda: [self.cache.add_item(product, qty)])
        return result

    def remove_item(self, product_id: str, qty: int = 1) -> MutationResult:
        self._ensure_started()
        result = self.cache.remove_item(product_id, qty)
        self._persist([result], lambda: [self.cache.remove_item(product_id, qty)])
        return result

    def set_quantity(self, product_id: str, qty: int) -> MutationResult:
        self._ensure_started()
        result = self.cache.set_quantity(product_id, qty)
        if result.clamped:
            item = self.cart.get(product_id)
            label = item.name if item is not None and item.name else product_id
            self._notify(NoticeKind.CLAMPED, f"Quantity of {label} limited to {result.quantity}", product_id)
        self._persist([result], lambda: [self.cache.set_quantity(product_id, qty)])
        return result

    def clear(self) -> MutationResult:
        """Empty the cart, e.g. after a successful checkout."""
        self._ensure_started()
        self._persist(self._clear_rows(), self._clear_rows)
        return MutationResult(None, 0, MutationStatus.CLEARED)

    def _clear_rows(self) -> List[MutationResult]:
        removed = list(self.cart.items)
        self.cache.clear()
        return [MutationResult(pid, 0, MutationStatus.REMOVED) for pid in removed]

    def _ensure_started(self) -> None:
        if self._state is ReconcilerState.UNINITIALIZED:
            raise RuntimeError("CartReconciler.start() must be awaited before mutating the cart")

    # ==================== PERSISTENCE ====================

    def _persist(
        self, results: List[MutationResult], redo: Optional[Callable[[], List[MutationResult]]] = None
    ) -> None:
        if self._deferred is not None:
            # The loaded cart will replace this one; apply the edit again on top of it
            if redo is not None:
                self._deferred.append(redo)
            return
        changed = [r for r in results if r.changed and r.product_id is not None]
        if not changed:
            return

        user_id = self.user_id
        if user_id is None or self._merge_pending:
            self._save_guest()
            if self._merge_pending:
                self._schedule(self._retry_merge())
            return

        for result in changed:
            self._queue.enqueue(WriteOp(user_id, result.product_id, result.quantity))
        self._requeue_failed(skip={r.product_id for r in changed})

    def _save_guest(self) -> None:
        try:
            data = json.dumps(self.cart.to_dict()).encode("utf-8")
            self.storage.save(self.settings.guest_storage_key, data)
        except Exception as e:
            logger.error(f"Failed to save guest cart: {e}", exc_info=True)
            self._notify(NoticeKind.LOCAL_STORAGE_FAILED, "Cart could not be saved on this device")

    async def persist(self) -> None:
        """Write the whole cart to its persistence target and wait for it.

        Re-writing an unchanged cart leaves the store as it was.
        """
        user_id = self.user_id
        if user_id is None or self._merge_pending:
            self._save_guest()
            return
        for item in self.cart:
            self._queue.enqueue(WriteOp(user_id, item.product_id, item.quantity))
        await self._queue.drain()

    def _requeue_failed(self, skip: Optional[set] = None) -> int:
        user_id = self.user_id
        if user_id is None:
            return 0
        count = 0
        for product_id in self.failed_keys:
            if skip and product_id in skip:
                continue
            item = self.cart.get(product_id)
            self._queue.enqueue(WriteOp(user_id, product_id, item.quantity if item else 0))
            count += 1
        return count

    async def retry_failed(self) -> int:
        """Re-send the current local value of every row whose write failed.

        Returns the number of rows re-queued (a postponed merge counts as one).
        """
        if self._merge_pending:
            await self._retry_merge()
            return 1
        count = self._requeue_failed()
        if count:
            logger.info(f"Retrying {count} failed cart writes")
        return count

    async def run_periodic_retry(self, interval: float = 30.0) -> None:
        """Retry failed writes every `interval` seconds until cancelled."""
        while True:
            await asyncio.sleep(interval)
            try:
                await self.retry_failed()
            except Exception as e:
                logger.error(f"Periodic cart retry failed: {e}", exc_info=True)

    async def _retry_merge(self) -> None:
        async with self._session_lock:
            if self._merge_pending and isinstance(self.session, Authenticated):
                await self._merge_guest_cart()

    def _schedule(self, coro) -> None:
        task = asyncio.ensure_future(coro)
        self._event_tasks.add(task)
        task.add_done_callback(self._event_tasks.discard)

    # ==================== NOTICES ====================

    def _on_write_failure(self, op: WriteOp, error: StoreUnavailableError) -> None:
        self._notify(NoticeKind.STORE_UNAVAILABLE, ERROR_STORE_UNAVAILABLE, op.product_id)

    def _notify(self, kind: NoticeKind, message: str, product_id: Optional[str] = None) -> None:
        notice = CartNotice(kind=kind, message=message, product_id=product_id)
        self.notices.append(notice)
        if self.on_notice is not None:
            try:
                self.on_notice(notice)
            except Exception as e:
                logger.error(f"Notice handler failed: {e}", exc_info=True)

    # ==================== AGGREGATES ====================

    def totals(self) -> CartTotals:
        return compute_totals(self.cart, self.settings)

    def summary(self) -> Dict[str, Any]:
        """Cart contents and totals as a JSON-safe dict."""
        totals = self.totals()
        return {
            "is_empty": self.cart.is_empty,
            "items": [
                {
                    "product_id": item.product_id,
                    "name": item.name,
                    "image_url": item.image_url,
                    "quantity": item.quantity,
                    "stock_quantity": item.stock_quantity,
                    "unit_price": to_float(item.unit_price),
                    "total": to_float(item.line_total),
                }
                for item in self.cart
            ],
            **totals.to_dict(),
            "formatted": totals.formatted(),
            "synced": not self._queue.busy and not self.failed_keys and not self._merge_pending,
        }
