"""
Cart — server cart mirror with serialized mutations.

    from storefront import cart as Cs

    sync = Cs.CartSynchronizer(gateway, Cs.SyncPolicy().with_on_busy(Cs.REJECT))
    result = await sync.add("prod_tee", 2)
"""

from __future__ import annotations

from storefront.cart._types import CartOperation, CartOperationFailed
from storefront.cart._policy import OnBusy, QUEUE, REJECT, SyncPolicy
from storefront.cart._sync import CartSynchronizer, CartResult

__all__ = (
    "CartOperation",
    "CartOperationFailed",
    "OnBusy",
    "QUEUE",
    "REJECT",
    "SyncPolicy",
    "CartSynchronizer",
    "CartResult",
)
