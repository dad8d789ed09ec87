"""
Checkout form — customer, shipping and payment input.

Country and subdivision are not form fields: they come from the
orchestrator's current locale selection, so a payload can never carry a
country that no longer matches the loaded shipping options.
"""

from __future__ import annotations

from dataclasses import dataclass, fields

from storefront.gateway import CheckoutToken, Json
from storefront.checkout._locale import ShippingLocale


@dataclass(frozen=True, slots=True)
class CustomerDetails:
    firstname: str = ""
    lastname: str = ""
    email: str = ""


@dataclass(frozen=True, slots=True)
class ShippingDetails:
    street: str = ""
    town_city: str = ""
    postal_zip_code: str = ""


@dataclass(frozen=True, slots=True)
class PaymentDetails:
    card_number: str = ""
    expiry_month: str = ""
    expiry_year: str = ""
    cvc: str = ""
    billing_postal_zip_code: str = ""


@dataclass(frozen=True, slots=True)
class CheckoutForm:
    customer: CustomerDetails = CustomerDetails()
    shipping: ShippingDetails = ShippingDetails()
    payment: PaymentDetails = PaymentDetails()

    @classmethod
    def sample(cls) -> CheckoutForm:
        """Prefilled sandbox values (test card)."""
        return cls(
            customer=CustomerDetails("Jane", "Doe", "janedoe@email.com"),
            shipping=ShippingDetails("123 Fake St", "San Francisco", "94107"),
            payment=PaymentDetails("4242 4242 4242 4242", "01", "2030", "123", "94107"),
        )

    def missing_fields(self) -> tuple[str, ...]:
        """Dotted names of required fields that are blank."""
        missing: list[str] = []
        for section in ("customer", "shipping", "payment"):
            part = getattr(self, section)
            for f in fields(part):
                if not str(getattr(part, f.name)).strip():
                    missing.append(f"{section}.{f.name}")
        return tuple(missing)

    def to_payload(
        self,
        token: CheckoutToken,
        locale: ShippingLocale,
        *,
        payment_gateway: str,
    ) -> Json:
        """Capture request body for the hosted checkout endpoint."""
        c, s, p = self.customer, self.shipping, self.payment
        return {
            "line_items": [li.to_json() for li in token.line_items],
            "customer": {
                "firstname": c.firstname.strip(),
                "lastname": c.lastname.strip(),
                "email": c.email.strip(),
            },
            "shipping": {
                "name": f"{c.firstname.strip()} {c.lastname.strip()}",
                "street": s.street.strip(),
                "town_city": s.town_city.strip(),
                "county_state": locale.region or "",
                "postal_zip_code": s.postal_zip_code.strip(),
                "country": locale.country or "",
            },
            "fulfillment": {"shipping_method": locale.option_id},
            "payment": {
                "gateway": payment_gateway,
                "card": {
                    "number": p.card_number,
                    "expiry_month": p.expiry_month,
                    "expiry_year": p.expiry_year,
                    "cvc": p.cvc,
                    "postal_zip_code": p.billing_postal_zip_code,
                },
            },
        }


__all__ = (
    "CustomerDetails",
    "ShippingDetails",
    "PaymentDetails",
    "CheckoutForm",
)
