"""
Gateway models — parsed from hosted-commerce API payloads.

All models are immutable. Prices arrive pre-formatted; nothing here computes
money.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

type Json = dict[str, Any]


def _decimal(raw: Any) -> Decimal:
    return Decimal(str(raw if raw is not None else 0))


# ═══════════════════════════════════════════════════════════════════════════════
# Price
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Price:
    raw: Decimal
    formatted: str
    formatted_with_symbol: str
    formatted_with_code: str

    @classmethod
    def from_json(cls, data: Json | None) -> Price:
        data = data or {}
        raw = _decimal(data.get("raw"))
        formatted = data.get("formatted") or f"{raw:.2f}"
        return cls(
            raw=raw,
            formatted=formatted,
            formatted_with_symbol=data.get("formatted_with_symbol") or formatted,
            formatted_with_code=data.get("formatted_with_code") or formatted,
        )

    def to_json(self) -> Json:
        return {
            "raw": str(self.raw),
            "formatted": self.formatted,
            "formatted_with_symbol": self.formatted_with_symbol,
            "formatted_with_code": self.formatted_with_code,
        }

    def __str__(self) -> str:
        return self.formatted_with_symbol


# ═══════════════════════════════════════════════════════════════════════════════
# Merchant / Catalog
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Merchant:
    id: str
    name: str
    description: str = ""
    support_email: str = ""
    currency_code: str = "USD"
    currency_symbol: str = "$"

    @classmethod
    def from_json(cls, data: Json) -> Merchant:
        currency = data.get("currency") or {}
        return cls(
            id=str(data.get("id", "")),
            name=data.get("business_name") or data.get("name") or "",
            description=data.get("business_description") or data.get("description") or "",
            support_email=data.get("support_email") or "",
            currency_code=currency.get("code", "USD"),
            currency_symbol=currency.get("symbol", "$"),
        )


@dataclass(frozen=True, slots=True)
class Product:
    id: str
    name: str
    price: Price
    description: str = ""
    permalink: str = ""
    image_url: str | None = None
    inventory: int | None = None

    @classmethod
    def from_json(cls, data: Json) -> Product:
        image = data.get("image") or {}
        media = data.get("media") or {}
        inventory = data.get("inventory") or {}
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            price=Price.from_json(data.get("price")),
            description=data.get("description") or "",
            permalink=data.get("permalink") or "",
            image_url=image.get("url") or media.get("source"),
            inventory=inventory.get("available"),
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Cart
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class LineItem:
    id: str
    product_id: str
    name: str
    quantity: int
    price: Price
    line_total: Price
    image_url: str | None = None

    @classmethod
    def from_json(cls, data: Json) -> LineItem:
        image = data.get("image") or {}
        return cls(
            id=data["id"],
            product_id=data.get("product_id", ""),
            name=data.get("name") or data.get("product_name") or "",
            quantity=int(data.get("quantity", 0)),
            price=Price.from_json(data.get("price")),
            line_total=Price.from_json(data.get("line_total")),
            image_url=image.get("url"),
        )

    def to_json(self) -> Json:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "name": self.name,
            "quantity": self.quantity,
            "price": self.price.to_json(),
            "line_total": self.line_total.to_json(),
            "image": {"url": self.image_url} if self.image_url else None,
        }


@dataclass(frozen=True, slots=True)
class Cart:
    """
    Server cart as last returned by the gateway.

    Note: totals are the gateway's, never recomputed locally.
    """

    id: str
    line_items: tuple[LineItem, ...]
    subtotal: Price
    total_items: int
    total_unique_items: int
    currency_code: str = "USD"

    @classmethod
    def from_json(cls, data: Json) -> Cart:
        # Mutation endpoints wrap the cart as {"success": ..., "cart": {...}}
        data = data.get("cart", data)
        currency = data.get("currency") or {}
        items = tuple(LineItem.from_json(li) for li in data.get("line_items") or ())
        return cls(
            id=data["id"],
            line_items=items,
            subtotal=Price.from_json(data.get("subtotal")),
            total_items=int(data.get("total_items", sum(li.quantity for li in items))),
            total_unique_items=int(data.get("total_unique_items", len(items))),
            currency_code=currency.get("code", "USD"),
        )

    @property
    def is_empty(self) -> bool:
        return self.total_items == 0

    def line_item(self, line_item_id: str) -> LineItem | None:
        for li in self.line_items:
            if li.id == line_item_id:
                return li
        return None

    def snapshot(self) -> Counter[tuple[str, int]]:
        """Multiset of (product_id, quantity) used for token staleness checks."""
        return Counter((li.product_id, li.quantity) for li in self.line_items)


# ═══════════════════════════════════════════════════════════════════════════════
# Checkout
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CheckoutToken:
    """
    Handle binding a cart snapshot to a checkout.

    Consumed exactly once by capture.
    """

    id: str
    cart_id: str
    line_items: tuple[LineItem, ...]
    subtotal: Price

    @classmethod
    def from_json(cls, data: Json) -> CheckoutToken:
        live = data.get("live") or {}
        return cls(
            id=data["id"],
            cart_id=data.get("cart_id", ""),
            line_items=tuple(LineItem.from_json(li) for li in live.get("line_items") or ()),
            subtotal=Price.from_json(live.get("subtotal")),
        )

    def matches(self, cart: Cart) -> bool:
        """True while the cart still holds exactly the items this token was issued for."""
        snapshot = Counter((li.product_id, li.quantity) for li in self.line_items)
        return self.cart_id == cart.id and snapshot == cart.snapshot()


@dataclass(frozen=True, slots=True)
class ShippingOption:
    id: str
    description: str
    price: Price
    countries: tuple[str, ...] = ()

    @classmethod
    def from_json(cls, data: Json) -> ShippingOption:
        return cls(
            id=data["id"],
            description=data.get("description", ""),
            price=Price.from_json(data.get("price")),
            countries=tuple(data.get("countries") or ()),
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Order
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Customer:
    firstname: str
    lastname: str
    email: str

    @classmethod
    def from_json(cls, data: Json | None) -> Customer:
        data = data or {}
        return cls(
            firstname=data.get("firstname", ""),
            lastname=data.get("lastname", ""),
            email=data.get("email", ""),
        )

    def to_json(self) -> Json:
        return {"firstname": self.firstname, "lastname": self.lastname, "email": self.email}


@dataclass(frozen=True, slots=True)
class ShippingAddress:
    name: str
    street: str
    town_city: str
    county_state: str
    postal_zip_code: str
    country: str

    @classmethod
    def from_json(cls, data: Json | None) -> ShippingAddress:
        data = data or {}
        return cls(
            name=data.get("name", ""),
            street=data.get("street", ""),
            town_city=data.get("town_city", ""),
            county_state=data.get("county_state", ""),
            postal_zip_code=data.get("postal_zip_code", ""),
            country=data.get("country", ""),
        )

    def to_json(self) -> Json:
        return {
            "name": self.name,
            "street": self.street,
            "town_city": self.town_city,
            "county_state": self.county_state,
            "postal_zip_code": self.postal_zip_code,
            "country": self.country,
        }


@dataclass(frozen=True, slots=True)
class Order:
    """
    Immutable result of a successful capture.

    to_json()/from_json() is the receipt serialization; the pair is lossless.
    """

    id: str
    customer_reference: str
    customer: Customer
    shipping: ShippingAddress
    shipping_method: str
    order_value: Price
    payment_gateway: str = ""
    status_payment: str = ""
    created: int | None = None
    line_items: tuple[LineItem, ...] = field(default=())

    @classmethod
    def from_json(cls, data: Json) -> Order:
        fulfillment = data.get("fulfillment") or {}
        shipping_fulfillment = fulfillment.get("shipping") or {}
        payment = data.get("transactions") or []
        gateway = data.get("payment_gateway") or (
            payment[0].get("gateway", "") if payment else ""
        )
        order_data = data.get("order") or {}
        value = data.get("order_value") or order_data.get("total")
        return cls(
            id=data["id"],
            customer_reference=data.get("customer_reference", ""),
            customer=Customer.from_json(data.get("customer")),
            shipping=ShippingAddress.from_json(data.get("shipping")),
            shipping_method=(
                data.get("shipping_method")
                or shipping_fulfillment.get("id")
                or fulfillment.get("shipping_method", "")
            ),
            order_value=Price.from_json(value),
            payment_gateway=gateway,
            status_payment=data.get("status_payment", ""),
            created=data.get("created"),
            line_items=tuple(
                LineItem.from_json(li)
                for li in data.get("line_items") or order_data.get("line_items") or ()
            ),
        )

    def to_json(self) -> Json:
        return {
            "id": self.id,
            "customer_reference": self.customer_reference,
            "customer": self.customer.to_json(),
            "shipping": self.shipping.to_json(),
            "shipping_method": self.shipping_method,
            "order_value": self.order_value.to_json(),
            "payment_gateway": self.payment_gateway,
            "status_payment": self.status_payment,
            "created": self.created,
            "line_items": [li.to_json() for li in self.line_items],
        }


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
)
