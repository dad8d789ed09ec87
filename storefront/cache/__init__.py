"""
Cache — read-through reference-data caching.

    from storefront import cache as C

    catalog = C.cache(lambda _: "products", fetch_products).tier(C.LocalTier()).build()
    result = await catalog.get(None)
"""

from __future__ import annotations

from storefront.cache._types import (
    Tier,
    LocalTier,
    CacheResult,
    CacheError,
    CacheErrorKind,
)
from storefront.cache._builder import cache, Cache, CacheExecutor

__all__ = (
    "Tier",
    "LocalTier",
    "CacheResult",
    "CacheError",
    "CacheErrorKind",
    "cache",
    "Cache",
    "CacheExecutor",
)
