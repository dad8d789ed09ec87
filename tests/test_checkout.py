"""Checkout orchestrator: token, locale chain, capture."""

import asyncio

import pytest
from kungfu import Ok, Error

from storefront import ErrorKind, ValidationReason
from storefront.cart import CartSynchronizer
from storefront.checkout import (
    CheckoutForm,
    CheckoutOrchestrator,
    CheckoutState,
    CustomerDetails,
    can_transition,
)
from storefront.gateway import Order
from storefront.receipt import ReceiptError, ReceiptErrorKind

from tests.conftest import settle

LOCALE_CHAIN = [
    "generate_checkout_token",
    "list_shipping_countries",
    "list_subdivisions",
    "get_shipping_options",
]


class FailingReceiptStore:
    async def save(self, order):
        return Error(ReceiptError(ReceiptErrorKind.IO, "disk full"))

    async def load(self):
        return Ok(None)

    async def clear(self):
        return Ok(False)


@pytest.fixture
async def ready(checkout, filled_cart):
    """Checkout in LOCALE_READY for two tees shipped to US/CA."""
    (await checkout.begin()).unwrap()
    return checkout


class TestBegin:
    async def test_empty_cart_rejected_without_request(self, checkout, gateway):
        result = await checkout.begin()

        assert isinstance(result, Error)
        assert result.error.kind is ErrorKind.VALIDATION
        assert result.error.reason is ValidationReason.EMPTY_CART
        assert checkout.state is CheckoutState.IDLE
        assert gateway.count("generate_checkout_token") == 0

    async def test_unloaded_cart_rejected(self, gateway, receipts):
        checkout = CheckoutOrchestrator(CartSynchronizer(gateway), gateway, receipts)

        result = await checkout.begin()

        assert isinstance(result, Error)
        assert result.error.reason is ValidationReason.EMPTY_CART

    async def test_loads_locale_chain_in_order(self, checkout, gateway, filled_cart):
        locale = (await checkout.begin()).unwrap()

        assert gateway.calls[-4:] == LOCALE_CHAIN
        assert checkout.state is CheckoutState.LOCALE_READY
        assert checkout.token.cart_id == filled_cart.id
        assert locale.country == "US"
        assert locale.region == "CA"
        assert set(locale.countries) == {"US", "CA"}
        assert [o.id for o in locale.options] == ["ship_us_standard", "ship_us_express"]

    async def test_no_option_preselected(self, ready):
        assert ready.locale.option_id is None
        assert ready.locale.selected_option is None

    async def test_begin_while_pending_is_busy(self, checkout, gateway, filled_cart):
        gate = gateway.pause("generate_checkout_token")
        first = asyncio.create_task(checkout.begin())
        await settle()

        result = await checkout.begin()

        assert isinstance(result, Error)
        assert result.error.kind is ErrorKind.BUSY
        gate.set()
        assert isinstance(await first, Ok)

    async def test_cancel_drops_in_flight_token(self, checkout, gateway, filled_cart):
        gate = gateway.pause("generate_checkout_token")
        pending = asyncio.create_task(checkout.begin())
        await settle()

        checkout.cancel()
        gate.set()
        result = await pending

        assert isinstance(result, Error)
        assert result.error.kind is ErrorKind.STALE_STATE
        assert checkout.state is CheckoutState.IDLE
        assert checkout.token is None


class TestLocaleSelection:
    async def test_change_country_reloads_dependents(self, ready, gateway):
        ready.select_shipping_option("ship_us_standard").unwrap()

        locale = (await ready.select_country("CA")).unwrap()

        assert locale.country == "CA"
        assert locale.region == "ON"
        assert [o.id for o in locale.options] == ["ship_intl"]
        assert locale.option_id is None
        assert gateway.count("list_shipping_countries") == 1

    async def test_change_region_keeps_valid_option(self, ready, gateway):
        ready.select_shipping_option("ship_us_express").unwrap()

        locale = (await ready.select_region("NY")).unwrap()

        assert locale.region == "NY"
        assert locale.option_id == "ship_us_express"
        assert gateway.count("list_subdivisions") == 1
        assert gateway.count("get_shipping_options") == 2

    async def test_unknown_country(self, ready):
        result = await ready.select_country("ZZ")

        assert isinstance(result, Error)
        assert result.error.reason is ValidationReason.INVALID_LOCALE
        assert ready.state is CheckoutState.LOCALE_READY

    async def test_unknown_region(self, ready):
        result = await ready.select_region("ZZ")

        assert isinstance(result, Error)
        assert result.error.reason is ValidationReason.INVALID_LOCALE

    async def test_option_must_be_listed(self, ready):
        result = ready.select_shipping_option("ship_intl")

        assert isinstance(result, Error)
        assert result.error.reason is ValidationReason.INVALID_SHIPPING_OPTION
        assert ready.locale.option_id is None

    async def test_selection_outside_checkout(self, checkout):
        result = await checkout.select_country("US")

        assert isinstance(result, Error)
        assert result.error.reason is ValidationReason.INVALID_TRANSITION

    async def test_superseded_response_is_dropped(self, ready, gateway):
        gate = gateway.pause("list_subdivisions")

        slow = asyncio.create_task(ready.select_country("CA"))
        await settle()
        assert ready.state is CheckoutState.LOCALE_LOADING
        assert ready.locale.options == ()

        fast = await ready.select_country("US")
        gate.set()
        stale = await slow

        assert fast.unwrap().country == "US"
        assert isinstance(stale, Error)
        assert stale.error.kind is ErrorKind.STALE_STATE
        assert ready.locale.country == "US"
        assert ready.state is CheckoutState.LOCALE_READY

    async def test_locale_failure_then_retry(self, checkout, gateway, filled_cart):
        gateway.fail_next("list_subdivisions")

        result = await checkout.begin()

        assert isinstance(result, Error)
        assert result.error.kind is ErrorKind.NETWORK
        assert checkout.state is CheckoutState.FAILED
        assert checkout.failure.failed_at is CheckoutState.LOCALE_LOADING

        locale = (await checkout.retry()).unwrap()

        assert checkout.state is CheckoutState.LOCALE_READY
        assert locale.region == "CA"
        assert gateway.count("generate_checkout_token") == 1
        assert checkout.failure is None


class TestSubmit:
    async def test_capture(self, ready, gateway, receipts, cart_sync, filled_cart):
        ready.select_shipping_option("ship_us_standard").unwrap()

        order = (await ready.submit(CheckoutForm.sample())).unwrap()

        assert order.order_value.formatted_with_symbol == "$25.00"
        assert order.shipping.country == "US"
        assert order.shipping.county_state == "CA"
        assert order.shipping_method == "ship_us_standard"
        assert ready.state is CheckoutState.CAPTURED
        assert ready.order == order
        assert ready.token is None
        assert (await receipts.load()).unwrap() == order
        assert cart_sync.cart.is_empty
        assert cart_sync.cart.id != filled_cart.id

    async def test_requires_shipping_option(self, ready, gateway):
        result = await ready.submit(CheckoutForm.sample())

        assert isinstance(result, Error)
        assert result.error.reason is ValidationReason.INVALID_SHIPPING_OPTION
        assert gateway.count("capture_order") == 0

    async def test_missing_fields(self, ready, gateway):
        ready.select_shipping_option("ship_us_standard").unwrap()
        form = CheckoutForm.sample()
        form = CheckoutForm(CustomerDetails("Jane", "Doe", "  "), form.shipping, form.payment)

        result = await ready.submit(form)

        assert isinstance(result, Error)
        assert result.error.reason is ValidationReason.MISSING_FIELD
        assert result.error.fields == ("customer.email",)
        assert ready.state is CheckoutState.LOCALE_READY
        assert gateway.count("capture_order") == 0

    async def test_submit_outside_locale_ready(self, checkout):
        result = await checkout.submit(CheckoutForm.sample())

        assert isinstance(result, Error)
        assert result.error.reason is ValidationReason.INVALID_TRANSITION

    async def test_double_submit_is_busy(self, ready, gateway):
        ready.select_shipping_option("ship_us_standard").unwrap()
        gate = gateway.pause("capture_order")

        first = asyncio.create_task(ready.submit(CheckoutForm.sample()))
        await settle()
        assert ready.state is CheckoutState.SUBMITTING

        second = await ready.submit(CheckoutForm.sample())
        gate.set()
        order = (await first).unwrap()

        assert isinstance(second, Error)
        assert second.error.kind is ErrorKind.BUSY
        assert gateway.count("capture_order") == 1
        assert gateway.orders == [order]

    async def test_capture_failure_then_retry(self, ready, gateway, receipts):
        ready.select_shipping_option("ship_us_standard").unwrap()
        gateway.fail_next("capture_order")

        result = await ready.submit(CheckoutForm.sample())

        assert isinstance(result, Error)
        assert result.error.kind is ErrorKind.NETWORK
        assert ready.state is CheckoutState.FAILED
        assert ready.failure.failed_at is CheckoutState.SUBMITTING
        assert (await receipts.load()).unwrap() is None

        retried = await ready.retry()

        assert isinstance(retried, Ok)
        assert isinstance(retried.value, Order)
        assert ready.state is CheckoutState.CAPTURED
        assert gateway.count("capture_order") == 2
        assert len(gateway.orders) == 1

    async def test_stale_token_is_regenerated(self, ready, gateway, cart_sync):
        ready.select_shipping_option("ship_us_standard").unwrap()
        old_token = ready.token
        await cart_sync.add("prod_mug", 1)
        assert ready.is_token_stale

        result = await ready.submit(CheckoutForm.sample())

        assert isinstance(result, Error)
        assert result.error.kind is ErrorKind.STALE_STATE
        assert gateway.count("capture_order") == 0
        assert ready.token.id != old_token.id
        assert not ready.is_token_stale
        assert ready.state is CheckoutState.LOCALE_READY
        assert ready.locale.option_id == "ship_us_standard"

        order = (await ready.submit(CheckoutForm.sample())).unwrap()

        assert order.order_value.formatted_with_symbol == "$30.00"

    async def test_cart_change_during_capture_lands_in_new_cart(
        self, ready, gateway, cart_sync, filled_cart
    ):
        ready.select_shipping_option("ship_us_standard").unwrap()
        gate = gateway.pause("capture_order")

        submitting = asyncio.create_task(ready.submit(CheckoutForm.sample()))
        await settle()
        adding = asyncio.create_task(cart_sync.add("prod_mug", 1))
        await settle()
        assert gateway.count("add_line_item") == 1

        gate.set()
        order = (await submitting).unwrap()
        cart = (await adding).unwrap()

        assert order.order_value.formatted_with_symbol == "$25.00"
        assert cart.id != filled_cart.id
        assert [(li.product_id, li.quantity) for li in cart.line_items] == [("prod_mug", 1)]
        assert cart_sync.cart == cart

    async def test_cart_renew_failure_is_kept(self, ready, gateway, cart_sync, filled_cart):
        ready.select_shipping_option("ship_us_standard").unwrap()
        gateway.fail_next("new_cart")

        result = await ready.submit(CheckoutForm.sample())

        assert isinstance(result, Ok)
        assert ready.state is CheckoutState.CAPTURED
        assert ready.cart_error.kind is ErrorKind.NETWORK
        assert cart_sync.cart.id == filled_cart.id

    async def test_begin_renews_cart_first(self, ready, gateway, cart_sync, filled_cart):
        ready.select_shipping_option("ship_us_standard").unwrap()
        gateway.fail_next("new_cart")
        (await ready.submit(CheckoutForm.sample())).unwrap()

        result = await ready.begin()

        assert isinstance(result, Error)
        assert result.error.reason is ValidationReason.EMPTY_CART
        assert ready.cart_error is None
        assert cart_sync.cart.is_empty
        assert cart_sync.cart.id != filled_cart.id
        assert gateway.count("generate_checkout_token") == 1

    async def test_begin_stops_when_renew_fails_again(self, ready, gateway, cart_sync):
        ready.select_shipping_option("ship_us_standard").unwrap()
        gateway.fail_next("new_cart")
        gateway.fail_next("new_cart")
        (await ready.submit(CheckoutForm.sample())).unwrap()

        result = await ready.begin()

        assert isinstance(result, Error)
        assert result.error.kind is ErrorKind.NETWORK
        assert ready.cart_error is not None
        assert gateway.count("generate_checkout_token") == 1

    async def test_receipt_failure_keeps_capture(self, cart_sync, gateway, filled_cart):
        checkout = CheckoutOrchestrator(cart_sync, gateway, FailingReceiptStore())
        (await checkout.begin()).unwrap()
        checkout.select_shipping_option("ship_us_standard").unwrap()

        result = await checkout.submit(CheckoutForm.sample())

        assert isinstance(result, Ok)
        assert checkout.state is CheckoutState.CAPTURED
        assert checkout.receipt_error.kind is ReceiptErrorKind.IO


class TestResync:
    async def test_unchanged_cart_keeps_token(self, ready, gateway):
        token = ready.token

        result = await ready.resync()

        assert isinstance(result, Ok)
        assert ready.token is token
        assert gateway.count("generate_checkout_token") == 1

    async def test_changed_cart_regenerates_token(self, ready, gateway, cart_sync):
        (await ready.select_country("CA")).unwrap()
        await cart_sync.add("prod_cap", 1)

        locale = (await ready.resync()).unwrap()

        assert gateway.count("generate_checkout_token") == 2
        assert locale.country == "CA"
        assert ready.token.matches(cart_sync.cart)

    async def test_emptied_cart_leaves_checkout(self, ready, cart_sync):
        await cart_sync.empty()

        result = await ready.resync()

        assert isinstance(result, Error)
        assert result.error.reason is ValidationReason.EMPTY_CART
        assert ready.state is CheckoutState.IDLE
        assert ready.token is None


class TestTokenFailure:
    async def test_token_failure_then_retry(self, checkout, gateway, filled_cart):
        gateway.fail_next("generate_checkout_token")

        result = await checkout.begin()

        assert isinstance(result, Error)
        assert checkout.state is CheckoutState.FAILED
        assert checkout.failure.failed_at is CheckoutState.TOKEN_PENDING
        assert checkout.failure.error.kind is ErrorKind.NETWORK

        (await checkout.retry()).unwrap()

        assert checkout.state is CheckoutState.LOCALE_READY
        assert gateway.count("generate_checkout_token") == 2

    async def test_nothing_to_retry(self, ready):
        result = await ready.retry()

        assert isinstance(result, Error)
        assert result.error.reason is ValidationReason.INVALID_TRANSITION


class TestTransitions:
    def test_submitting_only_resolves(self):
        targets = {s for s in CheckoutState if can_transition(CheckoutState.SUBMITTING, s)}

        assert targets == {CheckoutState.CAPTURED, CheckoutState.FAILED}

    def test_idle_only_requests_token(self):
        assert can_transition(CheckoutState.IDLE, CheckoutState.TOKEN_PENDING)
        assert not can_transition(CheckoutState.IDLE, CheckoutState.SUBMITTING)
        assert not can_transition(CheckoutState.IDLE, CheckoutState.CAPTURED)

    def test_terminal_states(self):
        assert CheckoutState.CAPTURED.is_terminal
        assert CheckoutState.FAILED.is_terminal
        assert not CheckoutState.LOCALE_READY.is_terminal

    async def test_cancel_returns_to_idle(self, ready):
        ready.cancel()

        assert ready.state is CheckoutState.IDLE
        assert ready.locale.options == ()
        assert ready.token is None
