"""Pytest fixtures for storefront tests."""

import asyncio

import pytest

from storefront import Storefront, StorefrontConfig
from storefront.cart import CartSynchronizer
from storefront.checkout import CheckoutOrchestrator
from storefront.gateway import MemoryGateway, Order
from storefront.receipt import MemoryReceiptStore


async def settle(rounds: int = 20) -> None:
    """Let scheduled tasks run until they block."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def gateway():
    return MemoryGateway()


@pytest.fixture
def receipts():
    return MemoryReceiptStore()


@pytest.fixture
async def cart_sync(gateway):
    """Synchronizer holding an empty, loaded cart."""
    sync = CartSynchronizer(gateway)
    (await sync.retrieve_or_create()).unwrap()
    return sync


@pytest.fixture
def checkout(cart_sync, gateway, receipts):
    return CheckoutOrchestrator(cart_sync, gateway, receipts)


@pytest.fixture
async def filled_cart(cart_sync):
    """Two sandbox tees ($20.00) in the held cart."""
    result = await cart_sync.add("prod_tee", 2)
    return result.unwrap()


@pytest.fixture
def shop(gateway, receipts):
    return Storefront(gateway, receipts, StorefrontConfig())


@pytest.fixture
def order():
    return Order.from_json({
        "id": "ord_42",
        "customer_reference": "SANDBOX-000042",
        "customer": {"firstname": "Jane", "lastname": "Doe", "email": "janedoe@email.com"},
        "shipping": {
            "name": "Jane Doe",
            "street": "123 Fake St",
            "town_city": "San Francisco",
            "county_state": "CA",
            "postal_zip_code": "94107",
            "country": "US",
        },
        "fulfillment": {"shipping": {"id": "ship_us_standard"}},
        "order_value": {
            "raw": "25.00",
            "formatted": "25.00",
            "formatted_with_symbol": "$25.00",
            "formatted_with_code": "25.00 USD",
        },
        "payment_gateway": "test_gateway",
        "status_payment": "paid",
        "created": 1700000000,
        "line_items": [
            {
                "id": "item_1",
                "product_id": "prod_tee",
                "name": "Sandbox Tee",
                "quantity": 2,
                "price": {"raw": "10.00", "formatted_with_symbol": "$10.00"},
                "line_total": {"raw": "20.00", "formatted_with_symbol": "$20.00"},
            }
        ],
    })
