"""
storefront — cart and checkout state synchronization for hosted commerce.

    from storefront import gateway as G    # Hosted API (HTTP + sandbox)
    from storefront import cart as Cs      # Server cart mirror
    from storefront import checkout as K   # Checkout state machine
    from storefront import receipt as R    # Durable order receipt

    shop = Storefront(G.MemoryGateway(), R.MemoryReceiptStore())
    await shop.start()
"""

from storefront import gateway
from storefront import cache
from storefront import cart
from storefront import checkout
from storefront import receipt
from storefront import lift
from storefront._types import (
    Lazy,
    LCR,
    NoError,
)
from storefront._errors import (
    ErrorKind,
    ValidationReason,
    StorefrontError,
    CheckoutError,
    Errors,
)
from storefront._logging import configure_logging
from storefront.config import StorefrontConfig
from storefront._session import Storefront, StorefrontState

__version__ = "0.1.0"

__all__ = (
    "gateway",
    "cache",
    "cart",
    "checkout",
    "receipt",
    "lift",
    "Lazy",
    "LCR",
    "NoError",
    "ErrorKind",
    "ValidationReason",
    "StorefrontError",
    "CheckoutError",
    "Errors",
    "configure_logging",
    "StorefrontConfig",
    "Storefront",
    "StorefrontState",
)
