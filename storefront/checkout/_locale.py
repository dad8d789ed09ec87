"""
Shipping locale — countries, subdivisions and options for one token.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace

from storefront import cache as C
from storefront.gateway import Gateway, ShippingOption
from storefront.lift import gateway_call


@dataclass(frozen=True, slots=True)
class ShippingLocale:
    """
    Snapshot of locale data and the current selection.

    Note: options always belong to (country, region). While a new selection
    loads, options is empty and option_id is None.
    """

    countries: dict[str, str] = field(default_factory=dict)
    subdivisions: dict[str, str] = field(default_factory=dict)
    options: tuple[ShippingOption, ...] = ()
    country: str | None = None
    region: str | None = None
    option_id: str | None = None
    epoch: int = 0

    @property
    def selected_option(self) -> ShippingOption | None:
        return self.option(self.option_id) if self.option_id else None

    def option(self, option_id: str) -> ShippingOption | None:
        for o in self.options:
            if o.id == option_id:
                return o
        return None

    def loading(self, epoch: int, **changes: object) -> ShippingLocale:
        """Selection changed: drop options until the new ones arrive."""
        return replace(self, options=(), option_id=None, epoch=epoch, **changes)


class LocaleLookups:
    """
    Cached reference lookups.

    Countries are keyed by token, subdivisions by country. Shipping options
    are fetched fresh every time.
    """

    def __init__(self, gateway: Gateway, *, timeout: float, max_size: int = 64) -> None:
        self.countries = (
            C.cache(
                lambda token_id: f"countries:{token_id}",
                lambda token_id: gateway_call(
                    "list_shipping_countries",
                    lambda: gateway.list_shipping_countries(token_id),
                    timeout=timeout,
                ),
            )
            .tier(C.LocalTier[dict[str, str]](max_size=max_size))
            .build()
        )
        self.subdivisions = (
            C.cache(
                lambda country: f"subdivisions:{country}",
                lambda country: gateway_call(
                    "list_subdivisions",
                    lambda: gateway.list_subdivisions(country),
                    timeout=timeout,
                ),
            )
            .tier(C.LocalTier[dict[str, str]](max_size=max_size))
            .build()
        )

    async def forget_token(self, token_id: str) -> None:
        await self.countries.invalidate(token_id)


__all__ = ("ShippingLocale", "LocaleLookups")
