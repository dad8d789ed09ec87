"""
Checkout types — states, transitions, policy.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum

from storefront._errors import StorefrontError


# ═══════════════════════════════════════════════════════════════════════════════
# State Machine
# ═══════════════════════════════════════════════════════════════════════════════


class CheckoutState(Enum):
    """
    Lifecycle:
        IDLE → TOKEN_PENDING → TOKEN_READY → LOCALE_LOADING → LOCALE_READY
             → SUBMITTING → CAPTURED

    FAILED is reachable from every step that talks to the gateway. Leaving
    FAILED or CAPTURED goes through IDLE with a fresh token request, except
    retry(), which re-enters the step that failed.
    """

    IDLE = "idle"
    TOKEN_PENDING = "token_pending"
    TOKEN_READY = "token_ready"
    LOCALE_LOADING = "locale_loading"
    LOCALE_READY = "locale_ready"
    SUBMITTING = "submitting"
    CAPTURED = "captured"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (CheckoutState.CAPTURED, CheckoutState.FAILED)


_S = CheckoutState

TRANSITIONS: dict[CheckoutState, frozenset[CheckoutState]] = {
    _S.IDLE: frozenset({_S.TOKEN_PENDING}),
    _S.TOKEN_PENDING: frozenset({_S.TOKEN_READY, _S.FAILED, _S.IDLE}),
    _S.TOKEN_READY: frozenset({_S.LOCALE_LOADING, _S.TOKEN_PENDING, _S.FAILED, _S.IDLE}),
    _S.LOCALE_LOADING: frozenset(
        {_S.LOCALE_LOADING, _S.LOCALE_READY, _S.TOKEN_PENDING, _S.FAILED, _S.IDLE}
    ),
    _S.LOCALE_READY: frozenset(
        {_S.LOCALE_LOADING, _S.SUBMITTING, _S.TOKEN_PENDING, _S.FAILED, _S.IDLE}
    ),
    _S.SUBMITTING: frozenset({_S.CAPTURED, _S.FAILED}),
    _S.CAPTURED: frozenset({_S.IDLE}),
    _S.FAILED: frozenset({_S.IDLE, _S.TOKEN_PENDING, _S.LOCALE_LOADING, _S.SUBMITTING}),
}


def can_transition(source: CheckoutState, target: CheckoutState) -> bool:
    return target in TRANSITIONS[source]


@dataclass(frozen=True, slots=True)
class CheckoutFailure:
    """Why and where checkout entered FAILED."""

    failed_at: CheckoutState
    error: StorefrontError
    at: datetime


# ═══════════════════════════════════════════════════════════════════════════════
# Policy
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CheckoutPolicy:
    """
    Checkout orchestrator policy.

    Example:
        policy = (
            CheckoutPolicy()
            .with_timeout(seconds=5)
            .with_default_country("US")
            .with_default_region("CA")
        )
    """

    call_timeout: timedelta = timedelta(seconds=10)
    default_country: str | None = "US"
    default_region: str | None = None
    payment_gateway: str = "test_gateway"
    locale_cache_size: int = 64

    def with_timeout(
        self,
        *,
        seconds: float | None = None,
        delta: timedelta | None = None,
    ) -> CheckoutPolicy:
        timeout = delta if delta is not None else timedelta(seconds=seconds or 0)
        if timeout <= timedelta(0):
            raise ValueError("timeout must be positive")
        return replace(self, call_timeout=timeout)

    def with_default_country(self, code: str | None) -> CheckoutPolicy:
        return replace(self, default_country=code)

    def with_default_region(self, code: str | None) -> CheckoutPolicy:
        return replace(self, default_region=code)

    def with_payment_gateway(self, name: str) -> CheckoutPolicy:
        return replace(self, payment_gateway=name)

    @property
    def timeout_seconds(self) -> float:
        return self.call_timeout.total_seconds()


__all__ = (
    "CheckoutState",
    "TRANSITIONS",
    "can_transition",
    "CheckoutFailure",
    "CheckoutPolicy",
)
