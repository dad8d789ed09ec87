"""
Checkout — token, shipping locale and capture as an explicit state machine.

    from storefront import checkout as K

    checkout = K.CheckoutOrchestrator(cart_sync, gateway, receipts, K.CheckoutPolicy())
    await checkout.begin()
    checkout.select_shipping_option("ship_us_standard")
    result = await checkout.submit(K.CheckoutForm.sample())
"""

from __future__ import annotations

from storefront.checkout._types import (
    CheckoutState,
    TRANSITIONS,
    can_transition,
    CheckoutFailure,
    CheckoutPolicy,
)
from storefront.checkout._locale import ShippingLocale, LocaleLookups
from storefront.checkout._form import (
    CustomerDetails,
    ShippingDetails,
    PaymentDetails,
    CheckoutForm,
)
from storefront.checkout._orchestrator import CheckoutOrchestrator

__all__ = (
    "CheckoutState",
    "TRANSITIONS",
    "can_transition",
    "CheckoutFailure",
    "CheckoutPolicy",
    "ShippingLocale",
    "LocaleLookups",
    "CustomerDetails",
    "ShippingDetails",
    "PaymentDetails",
    "CheckoutForm",
    "CheckoutOrchestrator",
)
