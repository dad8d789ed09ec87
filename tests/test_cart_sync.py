"""Cart synchronizer: serialized mutations over the server cart."""

import asyncio

import pytest
from kungfu import Ok, Error

from storefront import ErrorKind, ValidationReason
from storefront.cart import REJECT, CartOperation, CartSynchronizer, SyncPolicy
from storefront.gateway import GatewayError, GatewayErrorKind, MemoryGateway

from tests.conftest import settle


class TestRetrieve:
    async def test_creates_empty_cart(self, gateway):
        sync = CartSynchronizer(gateway)

        result = await sync.retrieve_or_create()

        match result:
            case Ok(cart):
                assert cart.is_empty
                assert sync.cart is cart
                assert sync.version == 1
            case Error(failed):
                pytest.fail(str(failed))

    async def test_failure_leaves_no_cart(self, gateway):
        sync = CartSynchronizer(gateway)
        gateway.fail_next("get_or_create_cart")

        result = await sync.retrieve_or_create()

        assert isinstance(result, Error)
        assert result.error.operation is CartOperation.RETRIEVE_OR_CREATE
        assert result.error.kind is ErrorKind.NETWORK
        assert sync.cart is None
        assert sync.version == 0


class TestMutations:
    async def test_add_uses_gateway_totals(self, cart_sync):
        cart = (await cart_sync.add("prod_tee", 2)).unwrap()

        assert cart.total_items == 2
        assert cart.subtotal.formatted_with_symbol == "$20.00"
        assert cart.line_items[0].product_id == "prod_tee"

    async def test_add_same_product_merges(self, cart_sync):
        await cart_sync.add("prod_tee", 1)
        cart = (await cart_sync.add("prod_tee", 2)).unwrap()

        assert cart.total_unique_items == 1
        assert cart.line_items[0].quantity == 3

    @pytest.mark.parametrize("quantity", [0, -1])
    async def test_add_rejects_non_positive_quantity(self, cart_sync, gateway, quantity):
        result = await cart_sync.add("prod_tee", quantity)

        assert isinstance(result, Error)
        assert result.error.kind is ErrorKind.VALIDATION
        assert result.error.cause.reason is ValidationReason.INVALID_QUANTITY
        assert gateway.count("add_line_item") == 0

    async def test_set_quantity(self, cart_sync, filled_cart):
        line = filled_cart.line_items[0]

        cart = (await cart_sync.set_quantity(line.id, 5)).unwrap()

        assert cart.line_items[0].quantity == 5
        assert cart.subtotal.formatted_with_symbol == "$50.00"

    async def test_set_quantity_zero_removes(self, cart_sync, gateway, filled_cart):
        line = filled_cart.line_items[0]

        cart = (await cart_sync.set_quantity(line.id, 0)).unwrap()

        assert cart.is_empty
        assert gateway.count("remove_line_item") == 1
        assert gateway.count("update_line_item") == 0

    async def test_set_quantity_negative_is_rejected(self, cart_sync, filled_cart):
        result = await cart_sync.set_quantity(filled_cart.line_items[0].id, -2)

        assert isinstance(result, Error)
        assert result.error.cause.reason is ValidationReason.INVALID_QUANTITY

    async def test_unknown_line_item(self, cart_sync, gateway, filled_cart):
        result = await cart_sync.remove("item_missing")

        assert isinstance(result, Error)
        assert result.error.cause.reason is ValidationReason.UNKNOWN_LINE_ITEM
        assert gateway.count("remove_line_item") == 0

    async def test_mutations_need_a_loaded_cart(self, gateway):
        sync = CartSynchronizer(gateway)

        for result in (
            await sync.add("prod_tee", 1),
            await sync.set_quantity("item_1", 1),
            await sync.remove("item_1"),
        ):
            assert isinstance(result, Error)
            assert result.error.kind is ErrorKind.VALIDATION
            assert result.error.cause.reason is ValidationReason.NO_CART
        assert gateway.calls == []

    async def test_empty(self, cart_sync, filled_cart):
        cart = (await cart_sync.empty()).unwrap()

        assert cart.is_empty
        assert cart.id == filled_cart.id

    async def test_renew_starts_new_cart(self, cart_sync, filled_cart):
        cart = (await cart_sync.renew()).unwrap()

        assert cart.is_empty
        assert cart.id != filled_cart.id


class TestFailures:
    async def test_failed_mutation_keeps_cart(self, cart_sync, gateway, filled_cart):
        version = cart_sync.version
        gateway.fail_next("update_line_item")

        result = await cart_sync.set_quantity(filled_cart.line_items[0].id, 4)

        assert isinstance(result, Error)
        assert result.error.operation is CartOperation.SET_QUANTITY
        assert result.error.kind is ErrorKind.NETWORK
        assert isinstance(result.error.cause.cause, GatewayError)
        assert cart_sync.cart is filled_cart
        assert cart_sync.version == version

    async def test_rejected_request_is_network_error(self, cart_sync):
        result = await cart_sync.add("prod_missing", 1)

        assert isinstance(result, Error)
        assert result.error.kind is ErrorKind.NETWORK
        assert result.error.cause.cause.kind is GatewayErrorKind.REJECTED
        assert result.error.cause.cause.status == 404

    async def test_timeout(self):
        gateway = MemoryGateway(latency=0.5)
        sync = CartSynchronizer(gateway, SyncPolicy().with_timeout(seconds=0.05))

        result = await sync.retrieve_or_create()

        assert isinstance(result, Error)
        assert result.error.kind is ErrorKind.NETWORK
        assert result.error.cause.cause.kind is GatewayErrorKind.TIMEOUT
        assert sync.cart is None


class TestSerialization:
    async def test_queued_mutations_run_in_order(self, cart_sync, gateway):
        gate = gateway.pause("add_line_item")

        first = asyncio.create_task(cart_sync.add("prod_tee", 1))
        await settle()
        assert cart_sync.busy

        second = asyncio.create_task(cart_sync.add("prod_mug", 1))
        await settle()
        assert gateway.count("add_line_item") == 1

        gate.set()
        r1, r2 = await asyncio.gather(first, second)

        assert r1.unwrap().total_unique_items == 1
        assert r2.unwrap().total_unique_items == 2
        assert cart_sync.cart == r2.unwrap()
        assert cart_sync.version == 3
        assert not cart_sync.busy

    async def test_reject_policy_refuses_overlap(self, gateway):
        sync = CartSynchronizer(gateway, SyncPolicy().with_on_busy(REJECT))
        await sync.retrieve_or_create()
        gate = gateway.pause("add_line_item")

        first = asyncio.create_task(sync.add("prod_tee", 1))
        await settle()

        result = await sync.add("prod_mug", 1)

        assert isinstance(result, Error)
        assert result.error.kind is ErrorKind.BUSY
        assert gateway.count("add_line_item") == 1

        gate.set()
        assert isinstance(await first, Ok)
        assert sync.cart.total_unique_items == 1

    async def test_refresh_waits_for_mutation(self, cart_sync, gateway):
        gate = gateway.pause("add_line_item")

        mutation = asyncio.create_task(cart_sync.add("prod_tee", 3))
        await settle()
        read = asyncio.create_task(cart_sync.refresh())
        await settle()
        assert gateway.count("refresh_cart") == 0

        gate.set()
        await mutation
        cart = (await read).unwrap()

        assert cart.total_items == 3
        assert cart_sync.cart.total_items == 3

    async def test_refresh_rejected_while_busy(self, gateway):
        sync = CartSynchronizer(gateway, SyncPolicy().with_on_busy(REJECT))
        await sync.retrieve_or_create()
        gate = gateway.pause("add_line_item")

        mutation = asyncio.create_task(sync.add("prod_tee", 1))
        await settle()

        result = await sync.refresh()

        assert isinstance(result, Error)
        assert result.error.kind is ErrorKind.BUSY
        gate.set()
        await mutation

    async def test_mutation_waits_for_read(self, cart_sync, gateway, filled_cart):
        gate = gateway.pause("refresh_cart")

        read = asyncio.create_task(cart_sync.refresh())
        await settle()
        mutation = asyncio.create_task(cart_sync.empty())
        await settle()
        assert gateway.count("empty_cart") == 0

        gate.set()
        await read
        cart = (await mutation).unwrap()

        assert cart.is_empty
        assert cart_sync.cart is cart


class TestHold:
    async def test_others_wait_for_holder(self, cart_sync, gateway, filled_cart):
        release = asyncio.Event()

        async def renew_under_hold():
            async with cart_sync.hold():
                await release.wait()
                return (await cart_sync.renew()).unwrap()

        holder = asyncio.create_task(renew_under_hold())
        await settle()
        outsider = asyncio.create_task(cart_sync.add("prod_mug", 1))
        read = asyncio.create_task(cart_sync.refresh())
        await settle()

        assert cart_sync.busy
        assert gateway.count("add_line_item") == 1
        assert gateway.count("refresh_cart") == 0

        release.set()
        renewed = await holder
        cart = (await outsider).unwrap()

        assert isinstance(await read, Ok)
        assert cart.id == renewed.id != filled_cart.id
        assert [(li.product_id, li.quantity) for li in cart.line_items] == [("prod_mug", 1)]
        assert not cart_sync.busy

    async def test_reject_policy_while_held(self, gateway):
        sync = CartSynchronizer(gateway, SyncPolicy().with_on_busy(REJECT))
        await sync.retrieve_or_create()

        async with sync.hold():
            outsider = await asyncio.create_task(sync.add("prod_tee", 1))
            own = await sync.add("prod_mug", 1)

        assert isinstance(outsider, Error)
        assert outsider.error.kind is ErrorKind.BUSY
        assert [li.product_id for li in own.unwrap().line_items] == ["prod_mug"]
        assert gateway.count("add_line_item") == 1


class TestListeners:
    async def test_notified_on_replace(self, cart_sync):
        seen = []
        unsubscribe = cart_sync.subscribe(seen.append)

        await cart_sync.add("prod_tee", 1)
        unsubscribe()
        await cart_sync.add("prod_mug", 1)

        assert len(seen) == 1
        assert seen[0].total_items == 1

    async def test_not_notified_on_failure(self, cart_sync, gateway):
        seen = []
        cart_sync.subscribe(seen.append)
        gateway.fail_next("add_line_item")

        await cart_sync.add("prod_tee", 1)

        assert seen == []

    async def test_failing_listener_does_not_break_sync(self, cart_sync):
        def broken(cart):
            raise RuntimeError("listener bug")

        cart_sync.subscribe(broken)

        result = await cart_sync.add("prod_tee", 1)

        assert isinstance(result, Ok)
        assert cart_sync.cart.total_items == 1


class TestSyncPolicy:
    def test_defaults(self):
        policy = SyncPolicy()

        assert policy.timeout_seconds == 10.0

    def test_non_positive_timeout(self):
        with pytest.raises(ValueError):
            SyncPolicy().with_timeout(seconds=0)
