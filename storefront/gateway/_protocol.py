"""
Gateway protocol — the hosted commerce API as the core sees it.

Gateway methods raise on failure. storefront.lift.gateway_call turns them into
LazyCoroResult[T, GatewayError] with a bounded timeout.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Protocol

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
# Gateway Errors
# ═══════════════════════════════════════════════════════════════════════════════


class GatewayErrorKind(Enum):
    """
    UNREACHABLE: transport failure, no response.
    TIMEOUT:     no response within the call budget.
    REJECTED:    4xx, the API refused the request.
    SERVER:      5xx or other unexpected failure.
    DECODE:      response body could not be parsed.
    """

    UNREACHABLE = auto()
    TIMEOUT = auto()
    REJECTED = auto()
    SERVER = auto()
    DECODE = auto()


@dataclass(frozen=True, slots=True)
class GatewayError:
    """Failed gateway exchange."""

    kind: GatewayErrorKind
    operation: str
    message: str
    status: int | None = None

    def __str__(self) -> str:
        status = f" {self.status}" if self.status is not None else ""
        return f"{self.operation}: {self.kind.name}{status} {self.message}"


class GatewayFailure(Exception):
    """Raised by Gateway implementations for a failed exchange."""

    def __init__(
        self,
        kind: GatewayErrorKind,
        message: str,
        status: int | None = None,
    ) -> None:
        self.kind = kind
        self.message = message
        self.status = status
        super().__init__(message)


# ═══════════════════════════════════════════════════════════════════════════════
# Gateway Protocol
# ═══════════════════════════════════════════════════════════════════════════════


class Gateway(Protocol):
    """
    Hosted commerce API.

    The gateway tracks the session cart id itself, the same way the hosted
    SDK keeps it in browser storage: cart operations take no cart id.

    Example — custom backend:

        class MyGateway:
            async def get_merchant(self) -> Merchant:
                data = await my_client.get("/merchant")
                return Merchant.from_json(data)

            # ... other methods
    """

    async def get_merchant(self) -> Merchant: ...

    async def list_products(self) -> list[Product]: ...

    async def get_or_create_cart(self) -> Cart:
        """Retrieve the session cart, creating one on first use."""
        ...

    async def refresh_cart(self) -> Cart:
        """Re-read the session cart. No side effects."""
        ...

    async def new_cart(self) -> Cart:
        """Replace the session cart with a fresh empty one."""
        ...

    async def add_line_item(self, product_id: str, quantity: int) -> Cart: ...

    async def update_line_item(self, line_item_id: str, quantity: int) -> Cart: ...

    async def remove_line_item(self, line_item_id: str) -> Cart: ...

    async def empty_cart(self) -> Cart: ...

    async def generate_checkout_token(self, cart_id: str) -> CheckoutToken: ...

    async def list_shipping_countries(self, token_id: str) -> dict[str, str]:
        """Country code → display name, for countries the token can ship to."""
        ...

    async def list_subdivisions(self, country_code: str) -> dict[str, str]:
        """Subdivision code → display name."""
        ...

    async def get_shipping_options(
        self,
        token_id: str,
        country: str,
        region: str | None,
    ) -> list[ShippingOption]: ...

    async def capture_order(self, token_id: str, payload: Json) -> Order: ...


__all__ = (
    "GatewayErrorKind",
    "GatewayError",
    "GatewayFailure",
    "Gateway",
)
