"""
HTTP gateway — hosted Commerce.js REST API over httpx.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import httpx
import structlog

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

log = structlog.get_logger(__name__)

DEFAULT_API_URL = "https://api.chec.io/v1"


def _decode[T](parse: Callable[[Any], T], data: Any) -> T:
    try:
        return parse(data)
    except (KeyError, TypeError, ValueError, ArithmeticError) as e:
        raise GatewayFailure(GatewayErrorKind.DECODE, f"Unexpected payload: {e!r}") from e


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if body.get("message"):
            return str(body["message"])
    return response.reason_phrase


class HttpGateway:
    """
    Commerce.js REST client.

    Example:
        async with HttpGateway(public_key="pk_test_...") as gateway:
            cart = await gateway.get_or_create_cart()
    """

    def __init__(
        self,
        public_key: str,
        *,
        base_url: str = DEFAULT_API_URL,
        cart_id: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.cart_id = cart_id
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={
                "X-Authorization": public_key,
                "Accept": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> HttpGateway:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ─────────────────────────────────────────────────────────────────────────
    # Transport
    # ─────────────────────────────────────────────────────────────────────────

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        json: Json | None = None,
    ) -> Any:
        try:
            response = await self._client.request(method, path, params=params, json=json)
        except httpx.TimeoutException as e:
            raise GatewayFailure(GatewayErrorKind.TIMEOUT, f"{method} {path} timed out") from e
        except httpx.TransportError as e:
            raise GatewayFailure(GatewayErrorKind.UNREACHABLE, f"{method} {path}: {e}") from e

        log.debug("gateway_response", method=method, path=path, status=response.status_code)

        if response.status_code >= 500:
            raise GatewayFailure(
                GatewayErrorKind.SERVER, _error_message(response), response.status_code
            )
        if response.status_code >= 400:
            raise GatewayFailure(
                GatewayErrorKind.REJECTED, _error_message(response), response.status_code
            )

        try:
            return response.json()
        except ValueError as e:
            raise GatewayFailure(
                GatewayErrorKind.DECODE, f"{method} {path}: invalid JSON", response.status_code
            ) from e

    async def _cart_id(self) -> str:
        if self.cart_id is None:
            return (await self.get_or_create_cart()).id
        return self.cart_id

    def _keep(self, cart: Cart) -> Cart:
        self.cart_id = cart.id
        return cart

    # ─────────────────────────────────────────────────────────────────────────
    # Merchant / Catalog
    # ─────────────────────────────────────────────────────────────────────────

    async def get_merchant(self) -> Merchant:
        return _decode(Merchant.from_json, await self._request("GET", "/merchants"))

    async def list_products(self) -> list[Product]:
        data = await self._request("GET", "/products", params={"limit": "200"})
        return _decode(lambda d: [Product.from_json(p) for p in d.get("data") or ()], data)

    # ─────────────────────────────────────────────────────────────────────────
    # Cart
    # ─────────────────────────────────────────────────────────────────────────

    async def get_or_create_cart(self) -> Cart:
        if self.cart_id is not None:
            try:
                data = await self._request("GET", f"/carts/{self.cart_id}")
                return self._keep(_decode(Cart.from_json, data))
            except GatewayFailure as e:
                # Expired or unknown cart id: fall through to a fresh cart
                if e.status != 404:
                    raise
                log.info("cart_expired", cart_id=self.cart_id)
        return await self.new_cart()

    async def refresh_cart(self) -> Cart:
        cart_id = await self._cart_id()
        return self._keep(_decode(Cart.from_json, await self._request("GET", f"/carts/{cart_id}")))

    async def new_cart(self) -> Cart:
        return self._keep(_decode(Cart.from_json, await self._request("GET", "/carts")))

    async def add_line_item(self, product_id: str, quantity: int) -> Cart:
        cart_id = await self._cart_id()
        data = await self._request(
            "POST", f"/carts/{cart_id}", json={"id": product_id, "quantity": quantity}
        )
        return self._keep(_decode(Cart.from_json, data))

    async def update_line_item(self, line_item_id: str, quantity: int) -> Cart:
        cart_id = await self._cart_id()
        data = await self._request(
            "PUT", f"/carts/{cart_id}/items/{line_item_id}", json={"quantity": quantity}
        )
        return self._keep(_decode(Cart.from_json, data))

    async def remove_line_item(self, line_item_id: str) -> Cart:
        cart_id = await self._cart_id()
        data = await self._request("DELETE", f"/carts/{cart_id}/items/{line_item_id}")
        return self._keep(_decode(Cart.from_json, data))

    async def empty_cart(self) -> Cart:
        cart_id = await self._cart_id()
        data = await self._request("DELETE", f"/carts/{cart_id}/items")
        return self._keep(_decode(Cart.from_json, data))

    # ─────────────────────────────────────────────────────────────────────────
    # Checkout
    # ─────────────────────────────────────────────────────────────────────────

    async def generate_checkout_token(self, cart_id: str) -> CheckoutToken:
        data = await self._request("GET", f"/checkouts/{cart_id}", params={"type": "cart"})
        return _decode(CheckoutToken.from_json, data)

    async def list_shipping_countries(self, token_id: str) -> dict[str, str]:
        data = await self._request("GET", f"/services/locale/{token_id}/countries")
        return _decode(lambda d: dict(d["countries"]), data)

    async def list_subdivisions(self, country_code: str) -> dict[str, str]:
        data = await self._request("GET", f"/services/locale/{country_code}/subdivisions")
        return _decode(lambda d: dict(d["subdivisions"]), data)

    async def get_shipping_options(
        self,
        token_id: str,
        country: str,
        region: str | None,
    ) -> list[ShippingOption]:
        params = {"country": country}
        if region:
            params["region"] = region
        data = await self._request(
            "GET", f"/checkouts/{token_id}/helper/shipping_options", params=params
        )
        return _decode(lambda d: [ShippingOption.from_json(o) for o in d], data)

    async def capture_order(self, token_id: str, payload: Json) -> Order:
        data = await self._request("POST", f"/checkouts/{token_id}", json=payload)
        return _decode(Order.from_json, data)


__all__ = ("HttpGateway", "DEFAULT_API_URL")
