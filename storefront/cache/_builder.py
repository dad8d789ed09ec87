"""
Cache builder — fluent API.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

import structlog
from kungfu import LazyCoroResult, Result, Ok, Error

from storefront.cache._types import (
    Tier,
    CacheResult,
    CacheError,
    CacheErrorKind,
)

log = structlog.get_logger(__name__)

type KeyFn[K] = Callable[[K], str]


# ═══════════════════════════════════════════════════════════════════════════════
# Cache Builder
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(slots=True, frozen=True)
class Cache[K, T, E]:
    """
    Fluent cache builder.

    Type parameters:
        K: Key input type
        T: Value type
        E: Error type from fetch
    """

    _key_fn: KeyFn[K]
    _fetch: Callable[[K], LazyCoroResult[T, E]]
    _tiers: tuple[Tier[T], ...]

    def tier(self, t: Tier[T]) -> Cache[K, T, E]:
        return Cache(self._key_fn, self._fetch, (*self._tiers, t))

    def build(self) -> CacheExecutor[K, T, E]:
        if not self._tiers:
            raise ValueError("cache needs at least one tier")
        return CacheExecutor(key_fn=self._key_fn, tiers=self._tiers, fetch=self._fetch)


# ═══════════════════════════════════════════════════════════════════════════════
# Cache Executor
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(slots=True, frozen=True)
class CacheExecutor[K, T, E]:
    """Compiled cache: read-through over its tiers."""

    key_fn: KeyFn[K]
    tiers: tuple[Tier[T], ...]
    fetch: Callable[[K], LazyCoroResult[T, E]]

    def get(self, key: K) -> LazyCoroResult[CacheResult[T], E]:
        """
        Read through the tiers, falling back to fetch.

        A failing tier counts as a miss. Fetch errors are never cached.
        """
        cache_key = self.key_fn(key)
        tiers = self.tiers
        fetch_fn = self.fetch

        async def execute() -> Result[CacheResult[T], E]:
            for t in tiers:
                try:
                    found = await t.get(cache_key)
                except Exception as e:
                    log.warning("cache_tier_failed", tier=t.name, key=cache_key, error=str(e))
                    continue
                if found is not None:
                    value, remaining = found
                    return Ok(CacheResult(value, hit=True, tier=t.name, ttl_remaining=remaining))

            match await fetch_fn(key):
                case Ok(value):
                    for t in tiers:
                        try:
                            await t.set(cache_key, value)
                        except Exception as e:
                            log.warning("cache_tier_failed", tier=t.name, key=cache_key, error=str(e))
                    return Ok(CacheResult(value, hit=False, tier=None, ttl_remaining=None))
                case Error(e):
                    return Error(e)

        return LazyCoroResult(execute)

    async def invalidate(self, key: K) -> Result[bool, CacheError]:
        """Invalidate key in all tiers."""
        cache_key = self.key_fn(key)
        deleted = False
        for t in self.tiers:
            try:
                deleted = await t.delete(cache_key) or deleted
            except Exception as e:
                return Error(CacheError(CacheErrorKind.BACKEND, f"{t.name}: {e}"))
        return Ok(deleted)

    async def invalidate_pattern(self, pattern: str) -> Result[int, CacheError]:
        """Invalidate keys matching pattern in all tiers."""
        total = 0
        for t in self.tiers:
            try:
                total += await t.delete_pattern(pattern)
            except Exception as e:
                return Error(CacheError(CacheErrorKind.BACKEND, f"{t.name}: {e}"))
        return Ok(total)


# ═══════════════════════════════════════════════════════════════════════════════
# cache() — Entry Point
# ═══════════════════════════════════════════════════════════════════════════════


def cache[K, T, E](
    key: KeyFn[K],
    fetch: Callable[[K], LazyCoroResult[T, E]],
) -> Cache[K, T, E]:
    """
    Create cache builder with key function and fetch.

    Example:
        from storefront import cache as C

        subdivisions = (
            C.cache(
                lambda code: f"subdivisions:{code}",
                lambda code: gateway_call(
                    "list_subdivisions", lambda: gateway.list_subdivisions(code)
                ),
            )
            .tier(C.LocalTier(max_size=64))
            .build()
        )

        result = await subdivisions.get("US")
    """
    return Cache(_key_fn=key, _fetch=fetch, _tiers=())


__all__ = ("Cache", "CacheExecutor", "cache")
