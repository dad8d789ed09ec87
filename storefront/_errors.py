"""
Error taxonomy — errors are values.

Every fallible operation resolves to Ok(value) or Error(StorefrontError).
Nothing past the Cart Synchronizer or Checkout Orchestrator boundary raises.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto


# ═══════════════════════════════════════════════════════════════════════════════
# Kinds
# ═══════════════════════════════════════════════════════════════════════════════


class ErrorKind(Enum):
    """
    Top-level failure classes.

    NETWORK:     Gateway unreachable, timed out or rejected the exchange.
    VALIDATION:  Local precondition failed; no request was sent.
    STALE_STATE: Token or locale data refers to a cart/selection that changed.
    BUSY:        Overlapping mutation or submit already in flight.
    """

    NETWORK = auto()
    VALIDATION = auto()
    STALE_STATE = auto()
    BUSY = auto()


class ValidationReason(Enum):
    """Finer detail for VALIDATION errors."""

    EMPTY_CART = auto()
    MISSING_FIELD = auto()
    INVALID_SHIPPING_OPTION = auto()
    INVALID_LOCALE = auto()
    INVALID_QUANTITY = auto()
    UNKNOWN_LINE_ITEM = auto()
    INVALID_TRANSITION = auto()
    NO_CART = auto()


# ═══════════════════════════════════════════════════════════════════════════════
# Error Value
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class StorefrontError:
    """
    Storefront operation error.

    Note: cause holds the lower-level error (GatewayError, ReceiptError)
    when there is one.
    """

    kind: ErrorKind
    message: str
    reason: ValidationReason | None = None
    cause: object | None = None
    fields: tuple[str, ...] = ()

    def __str__(self) -> str:
        return f"[{self.kind.name}] {self.message}"


type CheckoutError = StorefrontError


# ═══════════════════════════════════════════════════════════════════════════════
# Factories
# ═══════════════════════════════════════════════════════════════════════════════


class Errors:
    @staticmethod
    def network(msg: str, cause: object | None = None) -> StorefrontError:
        return StorefrontError(ErrorKind.NETWORK, msg, cause=cause)

    @staticmethod
    def validation(
        reason: ValidationReason,
        msg: str,
        fields: tuple[str, ...] = (),
    ) -> StorefrontError:
        return StorefrontError(ErrorKind.VALIDATION, msg, reason=reason, fields=fields)

    @staticmethod
    def empty_cart() -> StorefrontError:
        return StorefrontError(
            ErrorKind.VALIDATION,
            "Cannot check out an empty cart",
            reason=ValidationReason.EMPTY_CART,
        )

    @staticmethod
    def stale(msg: str) -> StorefrontError:
        return StorefrontError(ErrorKind.STALE_STATE, msg)

    @staticmethod
    def busy(msg: str) -> StorefrontError:
        return StorefrontError(ErrorKind.BUSY, msg)


__all__ = (
    "ErrorKind",
    "ValidationReason",
    "StorefrontError",
    "CheckoutError",
    "Errors",
)
