"""
In-memory read cache with TTL expiration.

Used by the read side of the ledger (investment lists, per-vault summaries,
movement history) to avoid repeated database round-trips while a client is
refreshing its portfolio screen.

- Write-through invalidation: deposits, reward records and terminal writes by
  the confirmation poller invalidate the affected key prefixes.
- TTL expiry bounds staleness even when an invalidation is missed (e.g. a
  write made by another replica).
- Oldest-first eviction once ``max_size`` is reached.

The single-movement status lookup is deliberately not routed through here:
clients poll it to watch a confirmation land.

The event loop is single-threaded, so plain dict operations need no locking.
"""

import logging
import time
from typing import Any, Dict, Optional

from vaultflow.core.config import settings

logger = logging.getLogger(__name__)

INVESTMENTS_PREFIX = "investments:"
MOVEMENTS_PREFIX = "movements:"


class CacheEntry:
    """A single cached value with creation timestamp."""

    __slots__ = ("value", "created_at")

    def __init__(self, value: Any):
        self.value = value
        self.created_at = time.monotonic()

    def is_expired(self, ttl: float) -> bool:
        return (time.monotonic() - self.created_at) > ttl


class TTLCache:
    """
    Simple in-memory cache with TTL expiration and max-size eviction.

    Parameters
    ----------
    ttl : float
        Time-to-live in seconds for each cache entry.
    max_size : int
        Maximum number of entries. When exceeded, the oldest entry is evicted.
    enabled : bool
        When False, all operations are no-ops.
    """

    def __init__(
        self,
        ttl: float = 30.0,
        max_size: int = 1000,
        enabled: bool = True,
    ):
        self._store: Dict[str, CacheEntry] = {}
        self._ttl = ttl
        self._max_size = max_size
        self._enabled = enabled
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or ``None`` on miss / expiry."""
        if not self._enabled:
            return None

        entry = self._store.get(key)
        if entry is None:
            self._misses += 1
            return None

        if entry.is_expired(self._ttl):
            del self._store[key]
            self._misses += 1
            logger.debug("Cache EXPIRED: %s", key)
            return None

        self._hits += 1
        logger.debug("Cache HIT: %s", key)
        return entry.value

    def set(self, key: str, value: Any) -> None:
        """Store a value, evicting the oldest entry first when full."""
        if not self._enabled:
            return

        if len(self._store) >= self._max_size and key not in self._store:
            oldest_key = next(iter(self._store))
            del self._store[oldest_key]
            logger.debug("Cache EVICTED (max_size): %s", oldest_key)

        self._store[key] = CacheEntry(value)
        logger.debug("Cache SET: %s", key)

    def invalidate(self, *prefixes: str) -> int:
        """Remove all entries whose keys start with any of ``prefixes``."""
        if not self._enabled:
            return 0

        keys_to_remove = [k for k in self._store if any(k.startswith(p) for p in prefixes)]
        for k in keys_to_remove:
            del self._store[k]

        if keys_to_remove:
            logger.debug(
                "Cache INVALIDATED %d entries matching prefixes %s",
                len(keys_to_remove),
                prefixes,
            )
        return len(keys_to_remove)

    def clear(self) -> None:
        count = len(self._store)
        self._store.clear()
        if count:
            logger.debug("Cache CLEARED (%d entries)", count)

    def get_stats(self) -> dict:
        """Return cache statistics for the health endpoint."""
        total = self._hits + self._misses
        return {
            "enabled": self._enabled,
            "size": len(self._store),
            "max_size": self._max_size,
            "ttl_seconds": self._ttl,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": f"{(self._hits / total * 100):.1f}%" if total > 0 else "N/A",
        }


cache = TTLCache(
    ttl=settings.CACHE_TTL,
    max_size=settings.CACHE_MAX_SIZE,
    enabled=settings.CACHE_ENABLED,
)
