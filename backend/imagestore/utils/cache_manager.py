# backend/imagestore/utils/cache_manager.py

"""
Cache Manager - In-memory, namespaced TTL cache for memoized lookups.

Entries live under a namespace (for example ``camera_exists``) so a whole
family of lookups can be invalidated at once. Expired entries are logically
absent and are dropped on the next read.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from loguru import logger

from ..constants import DEFAULT_CACHE_TTL_SECONDS

_MISSING = object()


class CacheEntry:
    """Individual cache entry with TTL."""

    def __init__(self, data: Any, ttl_seconds: float):
        self.data = data
        self.created_at = time.monotonic()
        self.expires_at = self.created_at + ttl_seconds

    def is_expired(self) -> bool:
        """Check if cache entry has expired."""
        return time.monotonic() >= self.expires_at

    def get_age_seconds(self) -> float:
        """Get age of cache entry in seconds."""
        return time.monotonic() - self.created_at


class MemoryCache:
    """
    asyncio-safe in-memory cache with per-namespace TTLs.

    Lifecycle: one instance per process, created with the service container
    and cleared on shutdown.
    """

    def __init__(self, default_ttl: float = DEFAULT_CACHE_TTL_SECONDS):
        self.default_ttl = default_ttl
        self._namespaces: Dict[str, Dict[str, CacheEntry]] = {}
        self._lock = asyncio.Lock()
        self.hits = 0
        self.misses = 0

    def _lookup(self, namespace: str, key: str) -> Any:
        entries = self._namespaces.get(namespace)
        if not entries or key not in entries:
            return _MISSING
        entry = entries[key]
        if entry.is_expired():
            del entries[key]
            logger.debug(f"Cache expired and removed: {namespace}:{key}")
            return _MISSING
        return entry.data

    async def get(
        self,
        namespace: str,
        key: str,
        populate: Optional[Callable[[], Awaitable[Any]]] = None,
        ttl_seconds: Optional[float] = None,
    ) -> Any:
        """
        Get a cached value, optionally populating it on a miss.

        Args:
            namespace: Cache namespace
            key: Key within the namespace
            populate: Coroutine function producing the value on a miss. Its
                result is returned to the caller and written back for later hits.
                Concurrent misses each call it; population must be idempotent.
            ttl_seconds: TTL for the written-back entry (namespace default if None)

        Returns:
            The cached or populated value, or None on a miss without ``populate``
        """
        async with self._lock:
            value = self._lookup(namespace, key)

        if value is not _MISSING:
            self.hits += 1
            logger.debug(f"Cache hit: {namespace}:{key}")
            return value

        self.misses += 1
        logger.debug(f"Cache miss: {namespace}:{key}")
        if populate is None:
            return None

        value = await populate()
        try:
            await self.set(namespace, key, value, ttl_seconds)
        except Exception as e:
            # the caller already has its value; only future hits are lost
            logger.warning(f"Cache backfill failed for {namespace}:{key}: {e}")
        return value

    async def set(
        self,
        namespace: str,
        key: str,
        value: Any,
        ttl_seconds: Optional[float] = None,
    ) -> None:
        """Set a value with TTL (namespace default when ``ttl_seconds`` is None)."""
        ttl = self.default_ttl if ttl_seconds is None else ttl_seconds
        async with self._lock:
            self._namespaces.setdefault(namespace, {})[key] = CacheEntry(value, ttl)
        logger.debug(f"Cached: {namespace}:{key} (TTL: {ttl}s)")

    async def delete(self, namespace: str, key: str) -> bool:
        """Delete one entry. Returns True if it was present."""
        async with self._lock:
            entries = self._namespaces.get(namespace)
            if entries and key in entries:
                del entries[key]
                return True
        return False

    async def invalidate(self, namespace: str) -> int:
        """Clear a whole namespace. Returns the number of entries dropped."""
        async with self._lock:
            entries = self._namespaces.pop(namespace, {})
        if entries:
            logger.debug(f"Invalidated cache namespace '{namespace}' ({len(entries)} entries)")
        return len(entries)

    async def clear(self) -> None:
        """Clear all namespaces."""
        async with self._lock:
            count = sum(len(entries) for entries in self._namespaces.values())
            self._namespaces.clear()
        logger.info(f"Cache cleared: {count} entries removed")

    async def cleanup_expired(self) -> int:
        """
        Remove all expired cache entries.

        Returns:
            Number of entries removed
        """
        removed = 0
        async with self._lock:
            for entries in self._namespaces.values():
                expired_keys = [k for k, entry in entries.items() if entry.is_expired()]
                for k in expired_keys:
                    del entries[k]
                removed += len(expired_keys)

        if removed:
            logger.debug(f"Removed {removed} expired cache entries")
        return removed

    async def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics with a per-namespace breakdown."""
        async with self._lock:
            breakdown = {ns: len(entries) for ns, entries in self._namespaces.items()}
            expired = sum(
                1
                for entries in self._namespaces.values()
                for entry in entries.values()
                if entry.is_expired()
            )
        total = sum(breakdown.values())
        return {
            "total_entries": total,
            "active_entries": total - expired,
            "expired_entries": expired,
            "namespaces": breakdown,
            "hits": self.hits,
            "misses": self.misses,
        }
