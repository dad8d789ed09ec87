"""
Cart synchronizer — the local mirror of the server cart.

The held cart is always either the exact last cart the gateway returned, or
None before the first load. It is replaced whole on success and never touched
on failure.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

import structlog
from kungfu import Result, Ok, Error

from storefront._errors import Errors, ValidationReason
from storefront._types import Listener, Unsubscribe
from storefront.cart._policy import OnBusy, SyncPolicy
from storefront.cart._types import CartOperation, CartOperationFailed
from storefront.gateway import Cart, Gateway
from storefront.lift import gateway_call

log = structlog.get_logger(__name__)

type CartResult = Result[Cart, CartOperationFailed]


class CartSynchronizer:
    """
    Serializes every mutation of one server cart.

    Mutations (add, set_quantity, remove, empty, retrieve_or_create, renew)
    hold a lock for their single gateway request. refresh() is a read: reads
    may overlap each other but never a mutation. hold() keeps everyone else
    out for a whole multi-step exchange such as order capture.

    Example:
        cart = CartSynchronizer(gateway, SyncPolicy().with_on_busy(REJECT))

        match await cart.add("prod_tee", 2):
            case Ok(c):
                print(c.subtotal)
            case Error(failed):
                print(failed.kind, failed.cause.message)
    """

    def __init__(self, gateway: Gateway, policy: SyncPolicy | None = None) -> None:
        self._gateway = gateway
        self._policy = policy or SyncPolicy()
        self._cart: Cart | None = None
        self._version = 0
        self._lock = asyncio.Lock()
        self._active_reads = 0
        self._reads_idle = asyncio.Event()
        self._reads_idle.set()
        self._holder: asyncio.Task[object] | None = None
        self._listeners: list[Listener[Cart]] = []

    # ─────────────────────────────────────────────────────────────────────────
    # State
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def cart(self) -> Cart | None:
        return self._cart

    @property
    def version(self) -> int:
        """Incremented on every replacement of the held cart."""
        return self._version

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    @property
    def policy(self) -> SyncPolicy:
        return self._policy

    def subscribe(self, listener: Listener[Cart]) -> Unsubscribe:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _replace(self, cart: Cart) -> None:
        self._cart = cart
        self._version += 1
        log.info(
            "cart_replaced",
            cart_id=cart.id,
            version=self._version,
            total_items=cart.total_items,
            subtotal=cart.subtotal.formatted_with_symbol,
        )
        for listener in list(self._listeners):
            try:
                listener(cart)
            except Exception:
                log.exception("cart_listener_failed", cart_id=cart.id)

    # ─────────────────────────────────────────────────────────────────────────
    # Operations
    # ─────────────────────────────────────────────────────────────────────────

    async def retrieve_or_create(self) -> CartResult:
        return await self._mutate(
            CartOperation.RETRIEVE_OR_CREATE,
            "get_or_create_cart",
            self._gateway.get_or_create_cart,
        )

    async def add(self, product_id: str, quantity: int = 1) -> CartResult:
        if quantity <= 0:
            return self._invalid(
                CartOperation.ADD,
                ValidationReason.INVALID_QUANTITY,
                f"Quantity must be positive, got {quantity}",
            )
        if self._cart is None:
            return self._invalid(CartOperation.ADD, ValidationReason.NO_CART, "Cart is not loaded")
        return await self._mutate(
            CartOperation.ADD,
            "add_line_item",
            lambda: self._gateway.add_line_item(product_id, quantity),
        )

    async def set_quantity(self, line_item_id: str, quantity: int) -> CartResult:
        """Set a line item's quantity. Zero removes the line item."""
        if quantity < 0:
            return self._invalid(
                CartOperation.SET_QUANTITY,
                ValidationReason.INVALID_QUANTITY,
                f"Quantity must not be negative, got {quantity}",
            )
        if failed := self._check_line_item(CartOperation.SET_QUANTITY, line_item_id):
            return failed
        if quantity == 0:
            return await self._mutate(
                CartOperation.SET_QUANTITY,
                "remove_line_item",
                lambda: self._gateway.remove_line_item(line_item_id),
            )
        return await self._mutate(
            CartOperation.SET_QUANTITY,
            "update_line_item",
            lambda: self._gateway.update_line_item(line_item_id, quantity),
        )

    async def remove(self, line_item_id: str) -> CartResult:
        if failed := self._check_line_item(CartOperation.REMOVE, line_item_id):
            return failed
        return await self._mutate(
            CartOperation.REMOVE,
            "remove_line_item",
            lambda: self._gateway.remove_line_item(line_item_id),
        )

    async def empty(self) -> CartResult:
        return await self._mutate(CartOperation.EMPTY, "empty_cart", self._gateway.empty_cart)

    async def renew(self) -> CartResult:
        """Replace the held cart with a fresh empty server cart."""
        return await self._mutate(CartOperation.RENEW, "new_cart", self._gateway.new_cart)

    async def refresh(self) -> CartResult:
        """
        Re-read the server cart.

        Waits out (or, under REJECT, refuses) any mutation in flight. A
        mutation arriving mid-read waits for the read to land, so the
        response always describes the current cart.
        """
        while self._lock.locked():
            if self._policy.on_busy is OnBusy.REJECT:
                return self._busy(CartOperation.REFRESH)
            async with self._lock:
                pass

        self._active_reads += 1
        self._reads_idle.clear()
        try:
            result = await gateway_call(
                "refresh_cart",
                self._gateway.refresh_cart,
                timeout=self._policy.timeout_seconds,
            )
        finally:
            self._active_reads -= 1
            if self._active_reads == 0:
                self._reads_idle.set()

        match result:
            case Ok(cart):
                self._replace(cart)
                return Ok(cart)
            case Error(e):
                log.warning("cart_operation_failed", operation="refresh", error=str(e))
                return Error(
                    CartOperationFailed(CartOperation.REFRESH, Errors.network(str(e), cause=e))
                )

    @asynccontextmanager
    async def hold(self) -> AsyncIterator[None]:
        """
        Keep every other task's mutations and reads out until the block exits.

        Mutations issued by the holding task run straight through, so a
        caller can capture an order and renew the cart with nothing landing
        in between. Others queue or get BUSY as the policy says.

        Example:
            async with cart.hold():
                order = await gateway.capture_order(token.id, payload)
                await cart.renew()
        """
        async with self._lock:
            await self._reads_idle.wait()
            self._holder = asyncio.current_task()
            log.debug("cart_held", cart_id=self._cart.id if self._cart else None)
            try:
                yield
            finally:
                self._holder = None

    # ─────────────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────────────

    async def _mutate(
        self,
        operation: CartOperation,
        gateway_operation: str,
        call: Callable[[], Awaitable[Cart]],
    ) -> CartResult:
        if self._holder is not None and self._holder is asyncio.current_task():
            return await self._exchange(operation, gateway_operation, call)

        if self._policy.on_busy is OnBusy.REJECT and self._lock.locked():
            return self._busy(operation)

        async with self._lock:
            await self._reads_idle.wait()
            return await self._exchange(operation, gateway_operation, call)

    async def _exchange(
        self,
        operation: CartOperation,
        gateway_operation: str,
        call: Callable[[], Awaitable[Cart]],
    ) -> CartResult:
        result = await gateway_call(
            gateway_operation,
            call,
            timeout=self._policy.timeout_seconds,
        )
        match result:
            case Ok(cart):
                self._replace(cart)
                return Ok(cart)
            case Error(e):
                log.warning(
                    "cart_operation_failed",
                    operation=operation.value,
                    kind=e.kind.name,
                    error=str(e),
                )
                return Error(CartOperationFailed(operation, Errors.network(str(e), cause=e)))

    def _check_line_item(
        self,
        operation: CartOperation,
        line_item_id: str,
    ) -> Error[CartOperationFailed] | None:
        if self._cart is None:
            return self._invalid(operation, ValidationReason.NO_CART, "Cart is not loaded")
        if self._cart.line_item(line_item_id) is None:
            return self._invalid(
                operation,
                ValidationReason.UNKNOWN_LINE_ITEM,
                f"Line item {line_item_id} is not in the cart",
            )
        return None

    def _invalid(
        self,
        operation: CartOperation,
        reason: ValidationReason,
        message: str,
    ) -> Error[CartOperationFailed]:
        log.info("cart_operation_rejected", operation=operation.value, reason=reason.name)
        return Error(CartOperationFailed(operation, Errors.validation(reason, message)))

    def _busy(self, operation: CartOperation) -> Error[CartOperationFailed]:
        log.info("cart_busy", operation=operation.value)
        return Error(
            CartOperationFailed(operation, Errors.busy("Another cart operation is in progress"))
        )


__all__ = ("CartSynchronizer", "CartResult")
