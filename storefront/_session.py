"""
Storefront session — the boundary a presentation layer talks to.

Owns the merchant, catalog, cart synchronizer, checkout orchestrator and
restored receipt for one shopper. Intents go in; StorefrontState comes out.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

import structlog
from combinators import parallel
from kungfu import LazyCoroResult, Result, Ok, Error

from storefront import cache as C
from storefront._errors import CheckoutError, Errors, StorefrontError
from storefront.cart import CartOperation, CartOperationFailed, CartResult, CartSynchronizer
from storefront.checkout import (
    CheckoutFailure,
    CheckoutForm,
    CheckoutOrchestrator,
    CheckoutState,
    ShippingLocale,
)
from storefront.config import StorefrontConfig
from storefront.gateway import Cart, Gateway, GatewayError, Merchant, Order, Product
from storefront.lift import gateway_call
from storefront.receipt import ReceiptError, ReceiptStore

log = structlog.get_logger(__name__)

_CHECKOUT_ACTIVE = (
    CheckoutState.TOKEN_READY,
    CheckoutState.LOCALE_LOADING,
    CheckoutState.LOCALE_READY,
)


@dataclass(frozen=True, slots=True)
class StorefrontState:
    merchant: Merchant | None
    products: tuple[Product, ...]
    cart: Cart | None
    checkout_state: CheckoutState
    checkout_failure: CheckoutFailure | None
    locale: ShippingLocale
    order: Order | None
    errors: Mapping[str, StorefrontError | ReceiptError] = field(default_factory=dict)


def _settled[T, E](lazy: LazyCoroResult[T, E]) -> LazyCoroResult[Result[T, E], Any]:
    """Never fails: the inner Result becomes the value."""

    async def run() -> Result[Result[T, E], Any]:
        return Ok(await lazy)

    return LazyCoroResult(run)


class Storefront:
    """
    One shopper's storefront session.

    Example:
        shop = Storefront(MemoryGateway(), MemoryReceiptStore())
        await shop.start()
        await shop.add_to_cart("prod_tee", 2)
        await shop.begin_checkout()
        shop.select_shipping_option("ship_us_standard")
        await shop.submit_checkout(CheckoutForm.sample())
        print(shop.snapshot().order)
    """

    def __init__(
        self,
        gateway: Gateway,
        receipts: ReceiptStore,
        config: StorefrontConfig | None = None,
    ) -> None:
        self._config = config or StorefrontConfig()
        self._gateway = gateway
        self._receipts = receipts
        self.cart = CartSynchronizer(gateway, self._config.sync_policy())
        self.checkout = CheckoutOrchestrator(
            self.cart, gateway, receipts, self._config.checkout_policy()
        )
        timeout = self._config.timeout
        self._merchant_cache = (
            C.cache(
                lambda _: "merchant",
                lambda _: gateway_call("get_merchant", gateway.get_merchant, timeout=timeout),
            )
            .tier(C.LocalTier[Merchant](max_size=1))
            .build()
        )
        self._products_cache = (
            C.cache(
                lambda _: "products",
                lambda _: gateway_call("list_products", gateway.list_products, timeout=timeout),
            )
            .tier(C.LocalTier[list[Product]](max_size=1))
            .build()
        )
        self._merchant: Merchant | None = None
        self._products: tuple[Product, ...] = ()
        self._receipt: Order | None = None
        self._errors: dict[str, StorefrontError | ReceiptError] = {}

    # ─────────────────────────────────────────────────────────────────────────
    # Bootstrap
    # ─────────────────────────────────────────────────────────────────────────

    async def start(self) -> StorefrontState:
        """
        Load merchant, catalog, cart and stored receipt concurrently.

        Each source settles on its own: one failing leaves the others loaded
        and is recorded under its name in StorefrontState.errors.
        """
        self._errors.clear()
        outcome = await parallel(
            _settled(self._merchant_cache.get(None).map(lambda r: r.value)),
            _settled(self._products_cache.get(None).map(lambda r: tuple(r.value))),
            _settled(LazyCoroResult(self.cart.retrieve_or_create)),
            _settled(LazyCoroResult(self._receipts.load)),
        )
        merchant, products, cart, receipt = outcome.unwrap()

        match merchant:
            case Ok(m):
                self._merchant = m
            case Error(e):
                self._record("merchant", Errors.network(str(e), cause=e))
        match products:
            case Ok(p):
                self._products = p
            case Error(e):
                self._record("products", Errors.network(str(e), cause=e))
        match cart:
            case Ok(_):
                pass
            case Error(failed):
                self._record("cart", failed.cause)
        match receipt:
            case Ok(order):
                self._receipt = order
            case Error(e):
                self._record("receipt", e)

        log.info(
            "storefront_started",
            merchant=self._merchant.name if self._merchant else None,
            products=len(self._products),
            cart_id=self.cart.cart.id if self.cart.cart else None,
            receipt=self._receipt.id if self._receipt else None,
            errors=sorted(self._errors),
        )
        return self.snapshot()

    def _record(self, source: str, error: StorefrontError | ReceiptError) -> None:
        self._errors[source] = error
        log.warning("storefront_source_failed", source=source, error=str(error))

    async def reload_catalog(self) -> Result[tuple[Product, ...], GatewayError]:
        await self._products_cache.invalidate(None)
        match await self._products_cache.get(None):
            case Ok(found):
                self._products = tuple(found.value)
                self._errors.pop("products", None)
                return Ok(self._products)
            case Error(e):
                return Error(e)

    # ─────────────────────────────────────────────────────────────────────────
    # Cart intents
    # ─────────────────────────────────────────────────────────────────────────

    async def add_to_cart(self, product_id: str, quantity: int = 1) -> CartResult:
        if blocked := await self._cart_blocked(CartOperation.ADD):
            return blocked
        return await self._after_cart_change(await self.cart.add(product_id, quantity))

    async def change_quantity(self, line_item_id: str, quantity: int) -> CartResult:
        if blocked := await self._cart_blocked(CartOperation.SET_QUANTITY):
            return blocked
        return await self._after_cart_change(await self.cart.set_quantity(line_item_id, quantity))

    async def remove_item(self, line_item_id: str) -> CartResult:
        if blocked := await self._cart_blocked(CartOperation.REMOVE):
            return blocked
        return await self._after_cart_change(await self.cart.remove(line_item_id))

    async def empty_cart(self) -> CartResult:
        if blocked := await self._cart_blocked(CartOperation.EMPTY):
            return blocked
        return await self._after_cart_change(await self.cart.empty())

    async def refresh_cart(self) -> CartResult:
        if blocked := await self._cart_blocked(CartOperation.REFRESH):
            return blocked
        return await self._after_cart_change(await self.cart.refresh())

    async def _cart_blocked(self, operation: CartOperation) -> Error[CartOperationFailed] | None:
        """
        BUSY while an order is being captured. After a capture whose cart
        renewal failed, renew first so nothing lands in the ordered cart.
        """
        if self.checkout.state is CheckoutState.SUBMITTING:
            log.info("cart_busy", operation=operation.value, reason="submitting")
            return Error(CartOperationFailed(operation, Errors.busy("Order submission in progress")))
        if self.checkout.cart_error is not None:
            match await self.checkout.renew_cart():
                case Error(e):
                    self._record("cart", e)
                    return Error(CartOperationFailed(operation, e))
                case Ok(_):
                    self._errors.pop("cart", None)
        return None

    async def _after_cart_change(self, result: CartResult) -> CartResult:
        # An open checkout must not keep a token for the old cart contents
        if isinstance(result, Ok) and self.checkout.state in _CHECKOUT_ACTIVE:
            match await self.checkout.resync():
                case Error(e):
                    log.warning("checkout_resync_failed", error=str(e))
                case Ok(_):
                    pass
        return result

    # ─────────────────────────────────────────────────────────────────────────
    # Checkout intents
    # ─────────────────────────────────────────────────────────────────────────

    async def begin_checkout(self) -> Result[ShippingLocale, CheckoutError]:
        renewing = self.checkout.cart_error is not None
        result = await self.checkout.begin()
        if renewing:
            if self.checkout.cart_error is None:
                self._errors.pop("cart", None)
            else:
                self._record("cart", self.checkout.cart_error)
        return result

    async def select_country(self, code: str) -> Result[ShippingLocale, CheckoutError]:
        return await self.checkout.select_country(code)

    async def select_region(self, code: str) -> Result[ShippingLocale, CheckoutError]:
        return await self.checkout.select_region(code)

    def select_shipping_option(self, option_id: str) -> Result[ShippingLocale, CheckoutError]:
        return self.checkout.select_shipping_option(option_id)

    async def submit_checkout(self, form: CheckoutForm) -> Result[Order, CheckoutError]:
        result = await self.checkout.submit(form)
        if isinstance(result, Ok):
            self._captured(result.value)
        return result

    async def retry_checkout(self) -> Result[ShippingLocale | Order, CheckoutError]:
        result = await self.checkout.retry()
        if isinstance(result, Ok) and isinstance(result.value, Order):
            self._captured(result.value)
        return result

    def _captured(self, order: Order) -> None:
        # The order stands even when its follow-up steps failed
        self._receipt = order
        if self.checkout.receipt_error is not None:
            self._record("receipt", self.checkout.receipt_error)
        if self.checkout.cart_error is not None:
            self._record("cart", self.checkout.cart_error)
        else:
            self._errors.pop("cart", None)

    async def return_home(self) -> Result[bool, ReceiptError]:
        """Dismiss the confirmation: the stored receipt is cleared."""
        self.checkout.cancel()
        result = await self._receipts.clear()
        if isinstance(result, Ok):
            self._receipt = None
            self._errors.pop("receipt", None)
        return result

    # ─────────────────────────────────────────────────────────────────────────
    # State
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def merchant(self) -> Merchant | None:
        return self._merchant

    @property
    def products(self) -> tuple[Product, ...]:
        return self._products

    @property
    def order(self) -> Order | None:
        return self._receipt

    def snapshot(self) -> StorefrontState:
        return StorefrontState(
            merchant=self._merchant,
            products=self._products,
            cart=self.cart.cart,
            checkout_state=self.checkout.state,
            checkout_failure=self.checkout.failure,
            locale=self.checkout.locale,
            order=self._receipt,
            errors=MappingProxyType(dict(self._errors)),
        )


__all__ = ("Storefront", "StorefrontState")
