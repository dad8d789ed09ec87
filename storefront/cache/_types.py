"""
Cache types.

Reference data only (merchant, catalog, country and subdivision lists).
Shipping options depend on the live token and are never cached.
"""

from __future__ import annotations

import fnmatch
import time
from collections import OrderedDict
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum, auto
from typing import Protocol

# ═══════════════════════════════════════════════════════════════════════════════
# Tier Protocol
# ═══════════════════════════════════════════════════════════════════════════════

class Tier[T](Protocol):
    """
    Cache tier protocol.

    Implement this for a shared backend when several storefront processes
    should reuse one catalog fetch.
    """

    @property
    def name(self) -> str:
        """Tier name for debugging."""
        ...

    async def get(self, key: str) -> tuple[T, timedelta | None] | None:
        """Get (value, ttl remaining). Returns None on miss or expiry."""
        ...

    async def set(self, key: str, value: T) -> None: ...

    async def delete(self, key: str) -> bool:
        """Delete key. Returns True if existed."""
        ...

    async def delete_pattern(self, pattern: str) -> int:
        """Delete keys matching a glob pattern. Returns count."""
        ...


# ═══════════════════════════════════════════════════════════════════════════════
# Local Tier — In-Memory LRU with optional TTL
# ═══════════════════════════════════════════════════════════════════════════════

class LocalTier[T]:
    """
    In-memory LRU tier.

    Example:
        tier = LocalTier[list[Product]](max_size=16, ttl=timedelta(minutes=5))
    """

    def __init__(self, max_size: int = 256, ttl: timedelta | None = None) -> None:
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self._max_size = max_size
        self._ttl = ttl.total_seconds() if ttl else None
        self._entries: OrderedDict[str, tuple[T, float | None]] = OrderedDict()

    @property
    def name(self) -> str:
        return "local"

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> tuple[T, timedelta | None] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        remaining: timedelta | None = None
        if expires_at is not None:
            left = expires_at - time.monotonic()
            if left <= 0:
                del self._entries[key]
                return None
            remaining = timedelta(seconds=left)
        self._entries.move_to_end(key)
        return value, remaining

    async def set(self, key: str, value: T) -> None:
        expires_at = time.monotonic() + self._ttl if self._ttl is not None else None
        self._entries[key] = (value, expires_at)
        self._entries.move_to_end(key)
        while len(self._entries) > self._max_size:
            self._entries.popitem(last=False)

    async def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    async def delete_pattern(self, pattern: str) -> int:
        matched = [k for k in self._entries if fnmatch.fnmatch(k, pattern)]
        for key in matched:
            del self._entries[key]
        return len(matched)


# ═══════════════════════════════════════════════════════════════════════════════
# Cache Result
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, slots=True)
class CacheResult[T]:
    """Cache read with metadata."""
    value: T
    hit: bool
    tier: str | None
    ttl_remaining: timedelta | None


class CacheErrorKind(Enum):
    BACKEND = auto()


@dataclass(frozen=True, slots=True)
class CacheError:
    """Tier backend failure."""
    kind: CacheErrorKind
    message: str


__all__ = (
    "Tier",
    "LocalTier",
    "CacheResult",
    "CacheError",
    "CacheErrorKind",
)
