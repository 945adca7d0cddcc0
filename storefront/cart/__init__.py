"""Cart package: models, local cache, write-through queue and reconciler."""
from .cache import LocalCartCache
from .models import Cart, LineItem, MutationResult, MutationStatus
from .reconciler import CartNotice, CartReconciler, NoticeKind, ReconcilerState, merge_carts
from .service import create_cart_session
from .sync import WriteOp, WriteThroughQueue
from .totals import CartTotals, compute_totals

__all__ = [
    "Cart",
    "CartNotice",
    "CartReconciler",
    "CartTotals",
    "LineItem",
    "LocalCartCache",
    "MutationResult",
    "MutationStatus",
    "NoticeKind",
    "ReconcilerState",
    "WriteOp",
    "WriteThroughQueue",
    "compute_totals",
    "create_cart_session",
    "merge_carts",
]
