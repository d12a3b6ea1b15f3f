"""
In-memory TTL cache.

Entries expire at an absolute time. A background thread sweeps expired
entries; reads also treat expired entries as absent, so correctness does
not depend on the sweep.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..utils.locks import RWLock
from .base import Cache


logger = logging.getLogger(__name__)


@dataclass
class CacheItem:
    value: Any
    expires_at: float


@dataclass
class CacheStats:
    """Counters describing cache behaviour since creation."""

    size: int = 0
    max_items: int = 0
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expirations: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "size": self.size,
            "max_items": self.max_items,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "expirations": self.expirations,
            "hit_rate": round(self.hit_rate, 4),
        }


class InMemoryCache(Cache):
    """
    Thread-safe in-memory cache with per-entry TTL.

    When full, inserting a new key evicts the entry closest to expiry.
    This is expiry-order eviction, not LRU.

    Example:
        >>> cache = InMemoryCache(max_items=1000, default_ttl=300)
        >>> cache.set("balance:0xabc", 42)
        >>> cache.get("balance:0xabc")
        (42, True)
        >>> cache.close()
    """

    def __init__(
        self,
        max_items: int = 1000,
        default_ttl: float = 300.0,
        cleanup_interval: float = 600.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            max_items: Maximum number of entries
            default_ttl: Seconds to live when ``set`` is given ttl 0
            cleanup_interval: Seconds between sweeps; 0 disables the sweeper
            clock: Monotonic time source
        """
        if max_items < 1:
            raise ValueError(f"max_items must be at least 1, got {max_items}")
        if default_ttl <= 0:
            raise ValueError(f"default_ttl must be positive, got {default_ttl}")

        self.max_items = max_items
        self.default_ttl = default_ttl
        self.cleanup_interval = cleanup_interval
        self._clock = clock

        self._items: Dict[str, CacheItem] = {}
        self._lock = RWLock()

        # Counters are bumped under a shared read lock, so they get their own
        self._stats_lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

        self._stop = threading.Event()
        self._sweeper: Optional[threading.Thread] = None
        if cleanup_interval > 0:
            self._sweeper = threading.Thread(
                target=self._sweep_loop,
                name="evmql-cache-sweeper",
                daemon=True,
            )
            self._sweeper.start()

    # =========================================================================
    # CAPABILITIES
    # =========================================================================

    def get(self, key: str) -> Tuple[Any, bool]:
        with self._lock.read_locked():
            item = self._items.get(key)
            live = item is not None and self._clock() < item.expires_at

        with self._stats_lock:
            if live:
                self._hits += 1
            else:
                self._misses += 1

        if not live:
            return None, False
        return item.value, True

    def set(self, key: str, value: Any, ttl: Optional[float] = 0) -> None:
        if not ttl:
            ttl = self.default_ttl

        with self._lock.write_locked():
            if key not in self._items and len(self._items) >= self.max_items:
                self._evict_nearest_expiry()

            self._items[key] = CacheItem(value=value, expires_at=self._clock() + ttl)

    def delete(self, key: str) -> None:
        with self._lock.write_locked():
            self._items.pop(key, None)

    def clear(self) -> None:
        with self._lock.write_locked():
            self._items = {}

    def size(self) -> int:
        with self._lock.read_locked():
            return len(self._items)

    def keys(self) -> List[str]:
        with self._lock.read_locked():
            return list(self._items)

    # =========================================================================
    # MAINTENANCE
    # =========================================================================

    def sweep(self) -> int:
        """
        Remove every expired entry.

        Returns:
            Number of entries removed
        """
        with self._lock.write_locked():
            now = self._clock()
            expired = [key for key, item in self._items.items() if now >= item.expires_at]
            for key in expired:
                del self._items[key]

        if expired:
            with self._stats_lock:
                self._expirations += len(expired)
            logger.debug("swept %d expired cache entries", len(expired))

        return len(expired)

    def _evict_nearest_expiry(self) -> None:
        """Drop the entry that would expire first. Caller holds the write lock."""
        if not self._items:
            return

        victim = min(self._items, key=lambda k: self._items[k].expires_at)
        del self._items[victim]

        with self._stats_lock:
            self._evictions += 1

    def _sweep_loop(self) -> None:
        while not self._stop.wait(self.cleanup_interval):
            self.sweep()

    def stats(self) -> CacheStats:
        with self._stats_lock:
            hits, misses = self._hits, self._misses
            evictions, expirations = self._evictions, self._expirations

        return CacheStats(
            size=self.size(),
            max_items=self.max_items,
            hits=hits,
            misses=misses,
            evictions=evictions,
            expirations=expirations,
        )

    def stop(self) -> None:
        """Stop the background sweeper."""
        self._stop.set()
        if self._sweeper is not None and self._sweeper is not threading.current_thread():
            self._sweeper.join(timeout=1.0)
        self._sweeper = None

    def close(self) -> None:
        self.stop()

    def __enter__(self) -> "InMemoryCache":
        return self

    def __exit__(self, *args) -> None:
        self.close()
