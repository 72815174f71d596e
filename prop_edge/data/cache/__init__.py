"""
Caching layer for odds snapshots.

Provides storage backends and the quota-aware cache:
- InMemoryCache: Fast, ephemeral cache for testing
- SQLiteCache: Persistent local cache
- QuotaAwareCache: TTL records plus upstream quota tracking
"""
from .cache_manager import (
    CacheBackend,
    CacheRecord,
    CacheStats,
    InMemoryCache,
    QuotaAwareCache,
    QuotaState,
    SQLiteCache,
)

__all__ = [
    "CacheBackend",
    "CacheRecord",
    "CacheStats",
    "InMemoryCache",
    "QuotaAwareCache",
    "QuotaState",
    "SQLiteCache",
]
