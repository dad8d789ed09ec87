"""
Gateway — the hosted commerce API.

    from storefront import gateway as G

    async with G.HttpGateway(public_key="pk_test_...") as api:
        cart = await api.get_or_create_cart()

    sandbox = G.MemoryGateway()          # in-process, for tests and demos
"""

from __future__ import annotations

from storefront.gateway._types import (
    Json,
    Price,
    Merchant,
    Product,
    LineItem,
    Cart,
    CheckoutToken,
    ShippingOption,
    Customer,
    ShippingAddress,
    Order,
)
from storefront.gateway._protocol import (
    Gateway,
    GatewayError,
    GatewayErrorKind,
    GatewayFailure,
)
from storefront.gateway._http import HttpGateway, DEFAULT_API_URL
from storefront.gateway._memory import MemoryGateway, SandboxProduct, DEFAULT_CATALOG

__all__ = (
    "Json",
    "Price",
    "Merchant",
    "Product",
    "LineItem",
    "Cart",
    "CheckoutToken",
    "ShippingOption",
    "Customer",
    "ShippingAddress",
    "Order",
    "Gateway",
    "GatewayError",
    "GatewayErrorKind",
    "GatewayFailure",
    "HttpGateway",
    "DEFAULT_API_URL",
    "MemoryGateway",
    "SandboxProduct",
    "DEFAULT_CATALOG",
)
