from detective_d.cache.memory import InMemoryCacheBackend, InMemoryEntry
from detective_d.cache.result_cache import (
    CACHE_PREFIX,
    STATS_KEY,
    CacheStats,
    ResultCache,
    content_hash,
    make_cache_key,
)

__all__ = [
    "CACHE_PREFIX",
    "STATS_KEY",
    "CacheStats",
    "InMemoryCacheBackend",
    "InMemoryEntry",
    "ResultCache",
    "content_hash",
    "make_cache_key",
]
