"""
Query result caching for EVMQL.

Provides:
- The cache capability set (``Cache``) with in-memory and no-op variants
- Stable key construction
- Prefix and address based invalidation
"""

from .base import Cache, NoOpCache, generate_key, query_key
from .memory import InMemoryCache, CacheStats
from .invalidation import (
    CacheInvalidator,
    invalidate_matching,
    invalidate_by_prefix,
    invalidate_by_address,
)

__all__ = [
    "Cache",
    "NoOpCache",
    "InMemoryCache",
    "CacheStats",
    "generate_key",
    "query_key",
    "CacheInvalidator",
    "invalidate_matching",
    "invalidate_by_prefix",
    "invalidate_by_address",
]
