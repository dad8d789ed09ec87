"""
Cart sync policy — behavior configuration.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import timedelta
from enum import Enum, auto


# ═══════════════════════════════════════════════════════════════════════════════
# On Busy — Overlapping Mutation Strategy
# ═══════════════════════════════════════════════════════════════════════════════


class OnBusy(Enum):
    """
    What to do when a cart mutation arrives while another is in flight.

    QUEUE:  Wait for the in-flight mutation, then run. Calls complete in
            arrival order.

    REJECT: Return a BUSY failure immediately. Nothing is sent.
    """

    QUEUE = auto()
    REJECT = auto()


QUEUE = OnBusy.QUEUE
REJECT = OnBusy.REJECT


# ═══════════════════════════════════════════════════════════════════════════════
# Sync Policy
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class SyncPolicy:
    """
    Cart synchronizer policy.

    Example:
        policy = (
            SyncPolicy()
            .with_on_busy(REJECT)
            .with_timeout(seconds=5)
        )
    """

    on_busy: OnBusy = OnBusy.QUEUE
    call_timeout: timedelta = timedelta(seconds=10)

    def with_on_busy(self, strategy: OnBusy) -> SyncPolicy:
        return replace(self, on_busy=strategy)

    def with_timeout(
        self,
        *,
        seconds: float | None = None,
        delta: timedelta | None = None,
    ) -> SyncPolicy:
        """Per gateway call. Expiry is a NETWORK failure."""
        timeout = delta if delta is not None else timedelta(seconds=seconds or 0)
        if timeout <= timedelta(0):
            raise ValueError("timeout must be positive")
        return replace(self, call_timeout=timeout)

    @property
    def timeout_seconds(self) -> float:
        return self.call_timeout.total_seconds()


__all__ = ("OnBusy", "QUEUE", "REJECT", "SyncPolicy")
