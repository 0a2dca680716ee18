"""
Per-brand product-name cache with single-flight population.

Concurrent extractions for answers of the same brand must trigger exactly
one provider lookup. Each key gets its own asyncio.Lock held around
check-then-fetch-then-populate; lookups for different brands never wait on
each other.
"""

import asyncio
from collections.abc import Awaitable, Callable


class ProductNameCache:
    """
    In-memory cache, brand id -> product names.

    Lives as long as the resolver that owns it (typically one batch). Every
    completed lookup is cached, including an empty result.

    Example:
        >>> cache = ProductNameCache()
        >>> await cache.get_or_fetch("brand-1", fetch_products)
        ['Air Max']
        >>> "brand-1" in cache
        True
    """

    def __init__(self):
        self._values: dict[str, list[str]] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._values)

    def get(self, key: str) -> list[str] | None:
        value = self._values.get(key)
        return list(value) if value is not None else None

    def clear(self) -> None:
        self._values.clear()
        self._locks.clear()

    async def get_or_fetch(
        self, key: str, fetch: Callable[[], Awaitable[list[str]]]
    ) -> list[str]:
        """
        Return the cached value for key, fetching it once if missing.

        Callers arriving while a fetch is in flight wait for it and reuse its
        result. If fetch raises, nothing is cached and the exception
        propagates to the caller that ran it; the next caller fetches again.

        Args:
            key: Cache key (brand id)
            fetch: Zero-argument coroutine factory producing the value

        Returns:
            A copy of the cached product names
        """
        if key in self._values:
            return list(self._values[key])

        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            if key not in self._values:
                self._values[key] = list(await fetch())
            return list(self._values[key])
