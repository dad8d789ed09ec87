"""
Checkout orchestrator — token, locale data, shipping options, capture.

Each step awaits the previous one and records an explicit state transition.
Gateway failures move the machine to FAILED; nothing is retried unless
retry() is called. Locale responses that belong to a superseded selection are
dropped by epoch comparison instead of blocking newer selections.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, UTC

import structlog
from kungfu import Result, Ok, Error

from storefront._errors import CheckoutError, Errors, ValidationReason
from storefront.cart import CartSynchronizer
from storefront.checkout._form import CheckoutForm
from storefront.checkout._locale import LocaleLookups, ShippingLocale
from storefront.checkout._types import (
    CheckoutFailure,
    CheckoutPolicy,
    CheckoutState,
    can_transition,
)
from storefront.gateway import Cart, CheckoutToken, Gateway, Order
from storefront.lift import gateway_call
from storefront.receipt import ReceiptError, ReceiptStore

log = structlog.get_logger(__name__)

type LocaleResult = Result[ShippingLocale, CheckoutError]

_S = CheckoutState


class CheckoutOrchestrator:
    """
    Drives one checkout at a time against the synchronizer's cart.

    Example:
        checkout = CheckoutOrchestrator(cart_sync, gateway, receipts)

        await checkout.begin()                      # token + locale chain
        await checkout.select_country("CA")
        checkout.select_shipping_option("ship_intl")

        match await checkout.submit(form):
            case Ok(order):
                print(order.customer_reference)
            case Error(e):
                print(e.kind, checkout.state, checkout.failure)
    """

    def __init__(
        self,
        cart: CartSynchronizer,
        gateway: Gateway,
        receipts: ReceiptStore,
        policy: CheckoutPolicy | None = None,
        *,
        lookups: LocaleLookups | None = None,
    ) -> None:
        self._cart = cart
        self._gateway = gateway
        self._receipts = receipts
        self._policy = policy or CheckoutPolicy()
        self._lookups = lookups or LocaleLookups(
            gateway,
            timeout=self._policy.timeout_seconds,
            max_size=self._policy.locale_cache_size,
        )
        self._state = _S.IDLE
        self._failure: CheckoutFailure | None = None
        self._token: CheckoutToken | None = None
        self._locale = ShippingLocale()
        self._order: Order | None = None
        self._receipt_error: ReceiptError | None = None
        self._cart_error: CheckoutError | None = None
        self._last_form: CheckoutForm | None = None
        self._epoch = 0

    # ─────────────────────────────────────────────────────────────────────────
    # State
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def state(self) -> CheckoutState:
        return self._state

    @property
    def failure(self) -> CheckoutFailure | None:
        return self._failure

    @property
    def token(self) -> CheckoutToken | None:
        return self._token

    @property
    def locale(self) -> ShippingLocale:
        return self._locale

    @property
    def order(self) -> Order | None:
        return self._order

    @property
    def receipt_error(self) -> ReceiptError | None:
        """Set when capture succeeded but the receipt could not be stored."""
        return self._receipt_error

    @property
    def cart_error(self) -> CheckoutError | None:
        """Set when capture succeeded but no fresh cart could be started."""
        return self._cart_error

    @property
    def is_token_stale(self) -> bool:
        if self._token is None:
            return False
        cart = self._cart.cart
        return cart is None or not self._token.matches(cart)

    def _to(self, target: CheckoutState) -> None:
        if target is self._state:
            return
        if not can_transition(self._state, target):
            raise RuntimeError(f"illegal checkout transition {self._state.name} -> {target.name}")
        log.info("checkout_transition", source=self._state.value, target=target.value)
        self._state = target

    def _next_epoch(self) -> int:
        self._epoch += 1
        return self._epoch

    def _superseded(self, epoch: int) -> bool:
        return epoch != self._epoch

    def _stale_response(self, step: str) -> Error[CheckoutError]:
        log.info("checkout_response_superseded", step=step)
        return Error(Errors.stale(f"{step} was superseded by a newer request"))

    def _fail(self, at: CheckoutState, error: CheckoutError) -> Error[CheckoutError]:
        self._failure = CheckoutFailure(at, error, datetime.now(UTC))
        self._to(_S.FAILED)
        log.warning("checkout_failed", failed_at=at.value, error=str(error))
        return Error(error)

    def _invalid(
        self,
        reason: ValidationReason,
        message: str,
        fields: tuple[str, ...] = (),
    ) -> Error[CheckoutError]:
        log.info("checkout_rejected", reason=reason.name, state=self._state.value)
        return Error(Errors.validation(reason, message, fields))

    def _reset(self) -> None:
        self._next_epoch()
        self._to(_S.IDLE)
        self._failure = None
        self._token = None
        self._locale = ShippingLocale()
        self._order = None
        self._receipt_error = None
        self._cart_error = None
        self._last_form = None

    # ─────────────────────────────────────────────────────────────────────────
    # Entering checkout
    # ─────────────────────────────────────────────────────────────────────────

    async def begin(self) -> LocaleResult:
        """
        Enter checkout: generate a token for the current cart, then load
        countries, subdivisions and shipping options.

        An empty or unloaded cart is rejected without any transition or
        request.
        """
        if self._state in (_S.TOKEN_PENDING, _S.SUBMITTING):
            return Error(Errors.busy(f"Checkout is {self._state.value}"))

        # The held cart still lists what was just ordered
        if self._cart_error is not None:
            match await self.renew_cart():
                case Error(e):
                    return Error(e)
                case Ok(_):
                    pass

        cart = self._cart.cart
        if cart is None or cart.is_empty:
            log.info("checkout_rejected", reason="EMPTY_CART")
            return Error(Errors.empty_cart())

        if self._state is not _S.IDLE:
            self._reset()
        return await self._issue_token(
            self._policy.default_country,
            self._policy.default_region,
        )

    def cancel(self) -> None:
        """Leave checkout. In-flight responses are dropped."""
        if self._state is _S.SUBMITTING:
            return
        if self._state is not _S.IDLE:
            self._reset()

    async def _issue_token(self, country: str | None, region: str | None) -> LocaleResult:
        cart = self._cart.cart
        if cart is None or cart.is_empty:
            self._reset()
            return Error(Errors.empty_cart())

        epoch = self._next_epoch()
        self._token = None
        self._to(_S.TOKEN_PENDING)

        result = await gateway_call(
            "generate_checkout_token",
            lambda: self._gateway.generate_checkout_token(cart.id),
            timeout=self._policy.timeout_seconds,
        )
        if self._superseded(epoch):
            return self._stale_response("generate_checkout_token")

        match result:
            case Ok(token):
                self._token = token
                self._to(_S.TOKEN_READY)
                log.info("checkout_token_ready", token_id=token.id, cart_id=token.cart_id)
                return await self._load_locale(country=country, region=region)
            case Error(e):
                return self._fail(_S.TOKEN_PENDING, Errors.network(str(e), cause=e))

    # ─────────────────────────────────────────────────────────────────────────
    # Locale chain
    # ─────────────────────────────────────────────────────────────────────────

    async def _load_locale(
        self,
        *,
        country: str | None,
        region: str | None,
        keep_countries: bool = False,
        keep_subdivisions: bool = False,
    ) -> LocaleResult:
        """countries → subdivisions(country) → options(country, region), in order."""
        token = self._token
        if token is None:
            return self._invalid(ValidationReason.INVALID_TRANSITION, "No checkout token")
        epoch = self._next_epoch()
        previous_option = self._locale.option_id
        self._to(_S.LOCALE_LOADING)

        countries = self._locale.countries
        if not keep_countries:
            self._locale = ShippingLocale(epoch=epoch)
            match await self._lookups.countries.get(token.id):
                case Ok(found):
                    countries = found.value
                case Error(e):
                    if self._superseded(epoch):
                        return self._stale_response("list_shipping_countries")
                    return self._fail(_S.LOCALE_LOADING, Errors.network(str(e), cause=e))
            if self._superseded(epoch):
                return self._stale_response("list_shipping_countries")

        if country not in countries:
            country = next(iter(countries), None)
        if country is None:
            return self._fail(
                _S.LOCALE_LOADING,
                Errors.validation(ValidationReason.INVALID_LOCALE, "No shipping countries available"),
            )

        subdivisions = self._locale.subdivisions if keep_subdivisions else {}
        self._locale = self._locale.loading(
            epoch,
            countries=countries,
            subdivisions=subdivisions,
            country=country,
            region=None,
        )
        if not keep_subdivisions:
            match await self._lookups.subdivisions.get(country):
                case Ok(found):
                    subdivisions = found.value
                case Error(e):
                    if self._superseded(epoch):
                        return self._stale_response("list_subdivisions")
                    return self._fail(_S.LOCALE_LOADING, Errors.network(str(e), cause=e))
            if self._superseded(epoch):
                return self._stale_response("list_subdivisions")

        if region not in subdivisions:
            region = next(iter(subdivisions), None)
        self._locale = self._locale.loading(epoch, subdivisions=subdivisions, region=region)

        result = await gateway_call(
            "get_shipping_options",
            lambda: self._gateway.get_shipping_options(token.id, country, region),
            timeout=self._policy.timeout_seconds,
        )
        if self._superseded(epoch):
            return self._stale_response("get_shipping_options")

        match result:
            case Ok(options):
                option_ids = {o.id for o in options}
                kept = previous_option if previous_option in option_ids else None
                if previous_option and kept is None:
                    log.info("shipping_option_cleared", option_id=previous_option, country=country)
                self._locale = ShippingLocale(
                    countries=countries,
                    subdivisions=subdivisions,
                    options=tuple(options),
                    country=country,
                    region=region,
                    option_id=kept,
                    epoch=epoch,
                )
                self._to(_S.LOCALE_READY)
                return Ok(self._locale)
            case Error(e):
                return self._fail(_S.LOCALE_LOADING, Errors.network(str(e), cause=e))

    async def select_country(self, code: str) -> LocaleResult:
        """Change shipping country; reloads subdivisions and options."""
        if self._state not in (_S.LOCALE_READY, _S.LOCALE_LOADING) or self._token is None:
            return self._invalid(
                ValidationReason.INVALID_TRANSITION,
                f"Cannot select a country while {self._state.value}",
            )
        if self._locale.countries and code not in self._locale.countries:
            return self._invalid(ValidationReason.INVALID_LOCALE, f"Unknown country {code}")
        log.info("country_selected", country=code)
        return await self._load_locale(
            country=code,
            region=None,
            keep_countries=bool(self._locale.countries),
        )

    async def select_region(self, code: str) -> LocaleResult:
        """Change shipping subdivision; reloads options."""
        if self._state not in (_S.LOCALE_READY, _S.LOCALE_LOADING) or self._token is None:
            return self._invalid(
                ValidationReason.INVALID_TRANSITION,
                f"Cannot select a region while {self._state.value}",
            )
        if code not in self._locale.subdivisions:
            return self._invalid(ValidationReason.INVALID_LOCALE, f"Unknown region {code}")
        log.info("region_selected", country=self._locale.country, region=code)
        return await self._load_locale(
            country=self._locale.country,
            region=code,
            keep_countries=True,
            keep_subdivisions=True,
        )

    def select_shipping_option(self, option_id: str) -> LocaleResult:
        if self._state is not _S.LOCALE_READY:
            return self._invalid(
                ValidationReason.INVALID_TRANSITION,
                f"Cannot select shipping while {self._state.value}",
            )
        if self._locale.option(option_id) is None:
            return self._invalid(
                ValidationReason.INVALID_SHIPPING_OPTION,
                f"Shipping option {option_id} is not available for "
                f"{self._locale.country}/{self._locale.region}",
            )
        self._locale = replace(self._locale, option_id=option_id)
        log.info("shipping_option_selected", option_id=option_id)
        return Ok(self._locale)

    # ─────────────────────────────────────────────────────────────────────────
    # Token staleness
    # ─────────────────────────────────────────────────────────────────────────

    async def resync(self) -> Result[ShippingLocale | None, CheckoutError]:
        """
        Regenerate the token if the cart changed since it was issued.

        Keeps the current country and region selection.
        """
        if not self.is_token_stale or self._state in (_S.SUBMITTING, _S.CAPTURED):
            return Ok(self._locale if self._token else None)
        match await self._regenerate():
            case Ok(locale):
                return Ok(locale)
            case Error(e):
                return Error(e)

    async def _regenerate(self) -> LocaleResult:
        country, region = self._locale.country, self._locale.region
        if self._token is not None:
            await self._lookups.forget_token(self._token.id)
        log.info("checkout_token_stale", token_id=self._token.id if self._token else None)
        return await self._issue_token(
            country or self._policy.default_country,
            region or self._policy.default_region,
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Submission
    # ─────────────────────────────────────────────────────────────────────────

    async def submit(self, form: CheckoutForm) -> Result[Order, CheckoutError]:
        """
        Validate the form and the selection, confirm the token still matches
        the cart, then capture.

        A token that no longer matches the cart is not captured: the token is
        regenerated and STALE_STATE is returned so the buyer can review.
        """
        if self._state is _S.SUBMITTING:
            return Error(Errors.busy("Order submission already in progress"))
        if self._state is not _S.LOCALE_READY or self._token is None:
            return self._invalid(
                ValidationReason.INVALID_TRANSITION,
                f"Cannot submit while {self._state.value}",
            )

        missing = list(form.missing_fields())
        if self._locale.country is None:
            missing.append("shipping.country")
        if self._locale.subdivisions and self._locale.region is None:
            missing.append("shipping.county_state")
        if missing:
            return self._invalid(
                ValidationReason.MISSING_FIELD,
                f"Missing required fields: {', '.join(missing)}",
                tuple(missing),
            )
        if self._locale.selected_option is None:
            return self._invalid(
                ValidationReason.INVALID_SHIPPING_OPTION,
                "Choose a shipping option from the current list",
                ("fulfillment.shipping_method",),
            )

        if self.is_token_stale:
            await self._regenerate()
            return Error(Errors.stale("Cart changed since checkout started; review and submit again"))

        self._last_form = form
        return await self._capture(form)

    async def _capture(self, form: CheckoutForm) -> Result[Order, CheckoutError]:
        """
        Capture, store the receipt and start a fresh cart.

        The cart stays held from capture to renewal: a cart change issued
        meanwhile waits and lands in the new cart, never in the ordered one.
        """
        token = self._token
        if token is None:
            return self._invalid(ValidationReason.INVALID_TRANSITION, "No checkout token")
        payload = form.to_payload(
            token,
            self._locale,
            payment_gateway=self._policy.payment_gateway,
        )
        self._next_epoch()
        self._to(_S.SUBMITTING)

        async with self._cart.hold():
            # A mutation queued ahead of the hold may have landed
            if self.is_token_stale:
                return self._fail(
                    _S.SUBMITTING,
                    Errors.stale("Cart changed while the order was being submitted"),
                )

            result = await gateway_call(
                "capture_order",
                lambda: self._gateway.capture_order(token.id, payload),
                timeout=self._policy.timeout_seconds,
            )
            match result:
                case Error(e):
                    return self._fail(_S.SUBMITTING, Errors.network(str(e), cause=e))
                case Ok(order):
                    pass

            self._order = order
            self._token = None
            self._to(_S.CAPTURED)
            log.info(
                "order_captured",
                order_id=order.id,
                customer_reference=order.customer_reference,
                total=order.order_value.formatted_with_symbol,
            )
            await self._lookups.forget_token(token.id)

            match await self._receipts.save(order):
                case Error(e):
                    self._receipt_error = e
                    log.error("receipt_save_failed", order_id=order.id, error=str(e))
                case Ok(_):
                    self._receipt_error = None

            await self.renew_cart()

        return Ok(order)

    async def renew_cart(self) -> Result[Cart, CheckoutError]:
        """
        Replace the ordered cart with a fresh one.

        Runs after every capture. When it fails, cart_error stays set and
        begin() tries again before issuing any token.
        """
        match await self._cart.renew():
            case Ok(cart):
                self._cart_error = None
                return Ok(cart)
            case Error(failed):
                self._cart_error = failed.cause
                log.error("cart_renew_failed", error=str(failed.cause))
                return Error(failed.cause)

    async def retry(self) -> Result[ShippingLocale | Order, CheckoutError]:
        """Re-run the step that failed. Never called automatically."""
        if self._state is not _S.FAILED or self._failure is None:
            return self._invalid(
                ValidationReason.INVALID_TRANSITION,
                f"Nothing to retry while {self._state.value}",
            )

        failed_at = self._failure.failed_at
        log.info("checkout_retry", failed_at=failed_at.value)

        if failed_at is _S.LOCALE_LOADING and self._token is not None and not self.is_token_stale:
            self._failure = None
            return await self._load_locale(
                country=self._locale.country or self._policy.default_country,
                region=self._locale.region or self._policy.default_region,
            )

        if (
            failed_at is _S.SUBMITTING
            and self._token is not None
            and self._last_form is not None
            and not self.is_token_stale
        ):
            self._failure = None
            return await self._capture(self._last_form)

        # Token step failed, or what it depended on is gone: start over
        country, region = self._locale.country, self._locale.region
        self._reset()
        return await self._issue_token(
            country or self._policy.default_country,
            region or self._policy.default_region,
        )


__all__ = ("CheckoutOrchestrator",)
