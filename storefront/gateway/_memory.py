"""
Memory gateway — in-process sandbox that plays the hosted API.

Note: only for tests, demos and the CLI --sandbox mode. Holds all state in
memory, computes totals the way the hosted API would and speaks the same JSON
shapes, parsed through the same from_json paths as HttpGateway.
"""

from __future__ import annotations

import asyncio
import itertools
from collections import defaultdict, deque
from collections.abc import Sequence
from dataclasses import dataclass, field
from decimal import Decimal

from storefront.gateway._protocol import GatewayErrorKind, GatewayFailure
from storefront.gateway._types import (
    Json,
    Merchant,
    Product,
    Cart,
    CheckoutToken,
    ShippingOption,
    Order,
)


# ═══════════════════════════════════════════════════════════════════════════════
# Seed Data
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class SandboxProduct:
    id: str
    name: str
    price: Decimal
    description: str = ""
    inventory: int = 100


DEFAULT_CATALOG: tuple[SandboxProduct, ...] = (
    SandboxProduct("prod_tee", "Sandbox Tee", Decimal("10.00"), "Soft cotton tee"),
    SandboxProduct("prod_mug", "Sandbox Mug", Decimal("5.00"), "Ceramic mug"),
    SandboxProduct("prod_cap", "Sandbox Cap", Decimal("18.50"), "Six-panel cap"),
)

DEFAULT_COUNTRIES: dict[str, str] = {
    "US": "United States",
    "CA": "Canada",
}

DEFAULT_SUBDIVISIONS: dict[str, dict[str, str]] = {
    "US": {"CA": "California", "NY": "New York", "WA": "Washington"},
    "CA": {"ON": "Ontario", "QC": "Quebec", "BC": "British Columbia"},
}

DEFAULT_SHIPPING: dict[str, tuple[tuple[str, str, Decimal], ...]] = {
    "US": (
        ("ship_us_standard", "Domestic standard", Decimal("5.00")),
        ("ship_us_express", "Domestic express", Decimal("15.00")),
    ),
    "CA": (
        ("ship_intl", "International", Decimal("20.00")),
    ),
}


def _price(value: Decimal, code: str = "USD", symbol: str = "$") -> Json:
    value = value.quantize(Decimal("0.01"))
    return {
        "raw": str(value),
        "formatted": f"{value:,.2f}",
        "formatted_with_symbol": f"{symbol}{value:,.2f}",
        "formatted_with_code": f"{value:,.2f} {code}",
    }


@dataclass(slots=True)
class _Line:
    id: str
    product: SandboxProduct
    quantity: int

    def to_json(self) -> Json:
        return {
            "id": self.id,
            "product_id": self.product.id,
            "name": self.product.name,
            "quantity": self.quantity,
            "price": _price(self.product.price),
            "line_total": _price(self.product.price * self.quantity),
        }


@dataclass(slots=True)
class _Token:
    id: str
    cart_id: str
    lines: tuple[Json, ...]
    subtotal: Decimal


# ═══════════════════════════════════════════════════════════════════════════════
# Memory Gateway
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass
class MemoryGateway:
    """
    Hosted-commerce sandbox.

    Test hooks:
        gateway.fail_next("update_line_item")          # next call raises
        gate = gateway.pause("list_subdivisions")      # next call waits
        gate.set()                                     # ... until released
        gateway.calls                                  # operations in call order

    Example:
        gateway = MemoryGateway()
        cart = await gateway.add_line_item("prod_tee", 2)
        assert cart.subtotal.formatted_with_symbol == "$20.00"
    """

    catalog: Sequence[SandboxProduct] = DEFAULT_CATALOG
    countries: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_COUNTRIES))
    subdivisions: dict[str, dict[str, str]] = field(
        default_factory=lambda: {k: dict(v) for k, v in DEFAULT_SUBDIVISIONS.items()}
    )
    shipping: dict[str, tuple[tuple[str, str, Decimal], ...]] = field(
        default_factory=lambda: dict(DEFAULT_SHIPPING)
    )
    latency: float = 0.0
    merchant_name: str = "Sandbox Store"

    calls: list[str] = field(default_factory=list, init=False)
    cart_id: str | None = field(default=None, init=False)
    orders: list[Order] = field(default_factory=list, init=False)

    _carts: dict[str, list[_Line]] = field(default_factory=dict, init=False, repr=False)
    _tokens: dict[str, _Token] = field(default_factory=dict, init=False, repr=False)
    _failures: dict[str, deque[Exception]] = field(
        default_factory=lambda: defaultdict(deque), init=False, repr=False
    )
    _gates: dict[str, deque[asyncio.Event]] = field(
        default_factory=lambda: defaultdict(deque), init=False, repr=False
    )
    _ids: itertools.count[int] = field(
        default_factory=lambda: itertools.count(1), init=False, repr=False
    )

    # ─────────────────────────────────────────────────────────────────────────
    # Test hooks
    # ─────────────────────────────────────────────────────────────────────────

    def fail_next(self, operation: str, failure: Exception | None = None) -> None:
        """Make the next call of `operation` raise `failure` (default: unreachable)."""
        self._failures[operation].append(
            failure or GatewayFailure(GatewayErrorKind.UNREACHABLE, f"{operation}: connection refused")
        )

    def pause(self, operation: str) -> asyncio.Event:
        """Block the next call of `operation` until the returned event is set."""
        gate = asyncio.Event()
        self._gates[operation].append(gate)
        return gate

    def count(self, operation: str) -> int:
        return self.calls.count(operation)

    async def _enter(self, operation: str) -> None:
        self.calls.append(operation)
        gates = self._gates.get(operation)
        if gates:
            await gates.popleft().wait()
        if self.latency:
            await asyncio.sleep(self.latency)
        failures = self._failures.get(operation)
        if failures:
            raise failures.popleft()

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}_{next(self._ids)}"

    # ─────────────────────────────────────────────────────────────────────────
    # Server-side helpers
    # ─────────────────────────────────────────────────────────────────────────

    def _product(self, product_id: str) -> SandboxProduct:
        for p in self.catalog:
            if p.id == product_id:
                return p
        raise GatewayFailure(GatewayErrorKind.REJECTED, f"Product {product_id} not found", 404)

    def _lines(self, cart_id: str) -> list[_Line]:
        try:
            return self._carts[cart_id]
        except KeyError:
            raise GatewayFailure(GatewayErrorKind.REJECTED, f"Cart {cart_id} not found", 404) from None

    def _line(self, cart_id: str, line_item_id: str) -> _Line:
        for line in self._lines(cart_id):
            if line.id == line_item_id:
                return line
        raise GatewayFailure(
            GatewayErrorKind.REJECTED, f"Line item {line_item_id} not found", 404
        )

    def _cart_json(self, cart_id: str) -> Json:
        lines = self._lines(cart_id)
        subtotal = sum((ln.product.price * ln.quantity for ln in lines), Decimal("0"))
        return {
            "id": cart_id,
            "line_items": [ln.to_json() for ln in lines],
            "subtotal": _price(subtotal),
            "total_items": sum(ln.quantity for ln in lines),
            "total_unique_items": len(lines),
            "currency": {"code": "USD", "symbol": "$"},
        }

    def _current(self) -> str:
        if self.cart_id is None or self.cart_id not in self._carts:
            self.cart_id = self._next_id("cart")
            self._carts[self.cart_id] = []
        return self.cart_id

    def _token(self, token_id: str) -> _Token:
        try:
            return self._tokens[token_id]
        except KeyError:
            raise GatewayFailure(
                GatewayErrorKind.REJECTED, f"Checkout token {token_id} not found", 404
            ) from None

    # ─────────────────────────────────────────────────────────────────────────
    # Merchant / Catalog
    # ─────────────────────────────────────────────────────────────────────────

    async def get_merchant(self) -> Merchant:
        await self._enter("get_merchant")
        return Merchant.from_json({
            "id": 1,
            "business_name": self.merchant_name,
            "support_email": "support@sandbox.test",
            "currency": {"code": "USD", "symbol": "$"},
        })

    async def list_products(self) -> list[Product]:
        await self._enter("list_products")
        return [
            Product.from_json({
                "id": p.id,
                "name": p.name,
                "description": p.description,
                "price": _price(p.price),
                "permalink": p.id.removeprefix("prod_"),
                "inventory": {"available": p.inventory},
            })
            for p in self.catalog
        ]

    # ─────────────────────────────────────────────────────────────────────────
    # Cart
    # ─────────────────────────────────────────────────────────────────────────

    async def get_or_create_cart(self) -> Cart:
        await self._enter("get_or_create_cart")
        return Cart.from_json(self._cart_json(self._current()))

    async def refresh_cart(self) -> Cart:
        await self._enter("refresh_cart")
        return Cart.from_json(self._cart_json(self._current()))

    async def new_cart(self) -> Cart:
        await self._enter("new_cart")
        self.cart_id = None
        return Cart.from_json(self._cart_json(self._current()))

    async def add_line_item(self, product_id: str, quantity: int) -> Cart:
        await self._enter("add_line_item")
        cart_id = self._current()
        product = self._product(product_id)
        if quantity <= 0:
            raise GatewayFailure(GatewayErrorKind.REJECTED, "Quantity must be positive", 422)
        lines = self._lines(cart_id)
        for line in lines:
            if line.product.id == product_id:
                line.quantity += quantity
                break
        else:
            lines.append(_Line(self._next_id("item"), product, quantity))
        return Cart.from_json({"success": True, "cart": self._cart_json(cart_id)})

    async def update_line_item(self, line_item_id: str, quantity: int) -> Cart:
        await self._enter("update_line_item")
        cart_id = self._current()
        line = self._line(cart_id, line_item_id)
        if quantity < 0:
            raise GatewayFailure(GatewayErrorKind.REJECTED, "Quantity must not be negative", 422)
        if quantity == 0:
            self._lines(cart_id).remove(line)
        else:
            line.quantity = quantity
        return Cart.from_json({"success": True, "cart": self._cart_json(cart_id)})

    async def remove_line_item(self, line_item_id: str) -> Cart:
        await self._enter("remove_line_item")
        cart_id = self._current()
        self._lines(cart_id).remove(self._line(cart_id, line_item_id))
        return Cart.from_json({"success": True, "cart": self._cart_json(cart_id)})

    async def empty_cart(self) -> Cart:
        await self._enter("empty_cart")
        cart_id = self._current()
        self._lines(cart_id).clear()
        return Cart.from_json({"success": True, "cart": self._cart_json(cart_id)})

    # ─────────────────────────────────────────────────────────────────────────
    # Checkout
    # ─────────────────────────────────────────────────────────────────────────

    async def generate_checkout_token(self, cart_id: str) -> CheckoutToken:
        await self._enter("generate_checkout_token")
        cart = self._cart_json(cart_id)
        if not cart["line_items"]:
            raise GatewayFailure(GatewayErrorKind.REJECTED, "Cart is empty", 422)
        token = _Token(
            id=self._next_id("chkt"),
            cart_id=cart_id,
            lines=tuple(cart["line_items"]),
            subtotal=Decimal(cart["subtotal"]["raw"]),
        )
        self._tokens[token.id] = token
        return CheckoutToken.from_json({
            "id": token.id,
            "cart_id": cart_id,
            "live": {"line_items": list(token.lines), "subtotal": cart["subtotal"]},
        })

    async def list_shipping_countries(self, token_id: str) -> dict[str, str]:
        await self._enter("list_shipping_countries")
        self._token(token_id)
        return dict(self.countries)

    async def list_subdivisions(self, country_code: str) -> dict[str, str]:
        await self._enter("list_subdivisions")
        if country_code not in self.countries:
            raise GatewayFailure(
                GatewayErrorKind.REJECTED, f"Unknown country {country_code}", 404
            )
        return dict(self.subdivisions.get(country_code, {}))

    async def get_shipping_options(
        self,
        token_id: str,
        country: str,
        region: str | None,
    ) -> list[ShippingOption]:
        await self._enter("get_shipping_options")
        self._token(token_id)
        return [
            ShippingOption.from_json({
                "id": option_id,
                "description": description,
                "price": _price(price),
                "countries": [country],
            })
            for option_id, description, price in self.shipping.get(country, ())
        ]

    async def capture_order(self, token_id: str, payload: Json) -> Order:
        await self._enter("capture_order")
        token = self._token(token_id)

        shipping = payload.get("shipping") or {}
        method = (payload.get("fulfillment") or {}).get("shipping_method")
        rates = {oid: price for oid, _, price in self.shipping.get(shipping.get("country", ""), ())}
        if method not in rates:
            raise GatewayFailure(
                GatewayErrorKind.REJECTED, f"Invalid shipping method {method}", 422
            )

        # Token is consumed by capture
        del self._tokens[token_id]

        number = len(self.orders) + 1
        payment = payload.get("payment") or {}
        order = Order.from_json({
            "id": self._next_id("ord"),
            "customer_reference": f"SANDBOX-{number:06d}",
            "customer": payload.get("customer"),
            "shipping": shipping,
            "fulfillment": {"shipping": {"id": method}},
            "order_value": _price(token.subtotal + rates[method]),
            "payment_gateway": payment.get("gateway", ""),
            "status_payment": "paid",
            "line_items": list(token.lines),
        })
        self.orders.append(order)
        return order


__all__ = (
    "MemoryGateway",
    "SandboxProduct",
    "DEFAULT_CATALOG",
)
