"""
Lift — Helpers for lifting gateway calls into storefront monads.

Wraps combinators.lift.catching_async with gateway error mapping and a timeout.
"""

from __future__ import annotations

from collections.abc import Callable, Awaitable

import combinators
from combinators import flow
from combinators.lift import catching_async
from kungfu import LazyCoroResult

from storefront.gateway import GatewayError, GatewayErrorKind, GatewayFailure

DEFAULT_TIMEOUT = 10.0


# ═══════════════════════════════════════════════════════════════════════════════
# Exception → GatewayError
# ═══════════════════════════════════════════════════════════════════════════════


def to_gateway_error(operation: str) -> Callable[[Exception], GatewayError]:
    """Build the on_error mapper for one gateway operation."""

    def convert(e: Exception) -> GatewayError:
        match e:
            case GatewayFailure(kind=kind, message=message, status=status):
                return GatewayError(kind, operation, message, status)
            case TimeoutError():
                return GatewayError(GatewayErrorKind.TIMEOUT, operation, str(e) or "timed out")
            case OSError():
                return GatewayError(GatewayErrorKind.UNREACHABLE, operation, str(e))
            case _:
                return GatewayError(GatewayErrorKind.SERVER, operation, f"{type(e).__name__}: {e}")

    return convert


def _widen_timeout(operation: str) -> Callable[[GatewayError | combinators.TimeoutError], GatewayError]:
    def convert(e: GatewayError | combinators.TimeoutError) -> GatewayError:
        if isinstance(e, combinators.TimeoutError):
            return GatewayError(GatewayErrorKind.TIMEOUT, operation, str(e))
        return e

    return convert


# ═══════════════════════════════════════════════════════════════════════════════
# gateway_call() — Bounded, Result-typed
# ═══════════════════════════════════════════════════════════════════════════════


def gateway_call[T](
    operation: str,
    fn: Callable[[], Awaitable[T]],
    *,
    timeout: float = DEFAULT_TIMEOUT,
) -> LazyCoroResult[T, GatewayError]:
    """
    Lift one gateway request into a lazy, bounded, non-raising computation.

    Expiry of `timeout` surfaces as GatewayError(TIMEOUT). Every await runs
    the request again.

    Example:
        result = await gateway_call(
            "add_line_item",
            lambda: gateway.add_line_item("prod_tee", 1),
            timeout=5,
        )
    """
    lifted = catching_async(fn, on_error=to_gateway_error(operation))
    return (
        flow(lifted)
        .timeout(seconds=timeout)
        .compile()
        .map_err(_widen_timeout(operation))
    )


__all__ = (
    "catching_async",
    "DEFAULT_TIMEOUT",
    "to_gateway_error",
    "gateway_call",
)
