"""
Cache invalidation.

All data is read from the chain, so nothing in EVMQL writes through the
cache. Invalidation is an explicit operator action, built on top of the
cache capability set.
"""

from __future__ import annotations

import logging
from typing import Callable

from ..query.model import Method
from ..query.sanitize import normalize_address
from .base import Cache


logger = logging.getLogger(__name__)


def invalidate_matching(cache: Cache, predicate: Callable[[str], bool]) -> int:
    """
    Delete every key for which ``predicate`` is true.

    Returns:
        Number of keys deleted
    """
    count = 0
    for key in cache.keys():
        if predicate(key):
            cache.delete(key)
            count += 1
    return count


def invalidate_by_prefix(cache: Cache, prefix: str) -> int:
    """Delete every key starting with ``prefix``."""
    return invalidate_matching(cache, lambda key: key.startswith(prefix))


def invalidate_by_address(cache: Cache, address: str) -> int:
    """Delete the balance, logs and transactions entries of one address."""
    address = normalize_address(address)
    return sum(
        invalidate_by_prefix(cache, f"{method.cache_prefix}:{address}:")
        for method in Method
    )


class CacheInvalidator:
    """
    Operator-facing invalidation over one cache.

    Example:
        >>> invalidator = CacheInvalidator(cache)
        >>> invalidator.invalidate_address("0x742d35cc6634c0532925a3b844bc454e4438f44e")
        3
    """

    def __init__(self, cache: Cache):
        self.cache = cache

    def invalidate_method(self, method: Method) -> int:
        count = invalidate_by_prefix(self.cache, f"{method.cache_prefix}:")
        logger.info("invalidated %d %s cache entries", count, method.cache_prefix)
        return count

    def invalidate_balance(self) -> int:
        return self.invalidate_method(Method.BALANCE)

    def invalidate_logs(self) -> int:
        return self.invalidate_method(Method.LOGS)

    def invalidate_transactions(self) -> int:
        return self.invalidate_method(Method.TRANSACTIONS)

    def invalidate_address(self, address: str) -> int:
        count = invalidate_by_address(self.cache, address)
        logger.info("invalidated %d cache entries for %s", count, normalize_address(address))
        return count

    def invalidate_prefix(self, prefix: str) -> int:
        return invalidate_by_prefix(self.cache, prefix)

    def invalidate_all(self) -> None:
        self.cache.clear()
        logger.info("cache cleared")
