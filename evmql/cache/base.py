"""
Cache capability set and key construction.

Every cache variant offers the same six operations so the executor does
not care which one is installed.
"""

from __future__ import annotations

import hashlib
from abc import ABC, abstractmethod
from typing import Any, List, Optional, Tuple

import msgpack


class Cache(ABC):
    """
    Abstract base class for caches.

    Implementations must be safe to call from several threads.
    """

    @abstractmethod
    def get(self, key: str) -> Tuple[Any, bool]:
        """
        Look up a key.

        Returns:
            ``(value, True)`` on a live hit, ``(None, False)`` otherwise
        """
        pass

    @abstractmethod
    def set(self, key: str, value: Any, ttl: Optional[float] = 0) -> None:
        """
        Store a value.

        Args:
            key: Cache key
            value: Opaque value
            ttl: Seconds to live; 0 or None uses the cache default
        """
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass

    @abstractmethod
    def clear(self) -> None:
        pass

    @abstractmethod
    def size(self) -> int:
        pass

    @abstractmethod
    def keys(self) -> List[str]:
        pass

    def close(self) -> None:
        """Release background resources, if any."""
        pass

    def __len__(self) -> int:
        return self.size()


class NoOpCache(Cache):
    """Cache that stores nothing. Installed when caching is disabled."""

    def get(self, key: str) -> Tuple[Any, bool]:
        return None, False

    def set(self, key: str, value: Any, ttl: Optional[float] = 0) -> None:
        pass

    def delete(self, key: str) -> None:
        pass

    def clear(self) -> None:
        pass

    def size(self) -> int:
        return 0

    def keys(self) -> List[str]:
        return []


def generate_key(prefix: str, *params: Any) -> str:
    """
    Build a cache key as ``prefix:sha256(params)``.

    Parameters are packed with msgpack, so equal parameter lists always
    produce the same key. Values msgpack cannot pack natively are packed
    by their ``str()``.
    """
    packed = msgpack.packb(list(params), default=str, use_bin_type=True)
    return f"{prefix}:{hashlib.sha256(packed).hexdigest()}"


def query_key(method: str, address: str, *params: Any) -> str:
    """
    Cache key for a query result.

    The address is part of the readable prefix so every entry for an
    address can be found with a prefix match.
    """
    return generate_key(f"{method.lower()}:{address.lower()}", *params)
