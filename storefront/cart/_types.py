"""
Cart types.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from storefront._errors import ErrorKind, StorefrontError


class CartOperation(Enum):
    RETRIEVE_OR_CREATE = "retrieve_or_create"
    ADD = "add"
    SET_QUANTITY = "set_quantity"
    REMOVE = "remove"
    EMPTY = "empty"
    REFRESH = "refresh"
    RENEW = "renew"


@dataclass(frozen=True, slots=True)
class CartOperationFailed:
    """
    A cart operation that did not change the held cart.

    Note: the held cart is exactly what it was before the call.
    """

    operation: CartOperation
    cause: StorefrontError

    @property
    def kind(self) -> ErrorKind:
        return self.cause.kind

    def __str__(self) -> str:
        return f"{self.operation.value} failed: {self.cause}"


__all__ = ("CartOperation", "CartOperationFailed")
