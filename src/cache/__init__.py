"""Cache for generated workflows."""

from src.cache.keys import generate_key, input_hash, normalize_input
from src.cache.result_cache import CachedResult, ResultCache, build_result_cache
from src.cache.stores import CacheEntry, CacheStore, InMemoryCacheStore, SqlCacheStore

__all__ = [
    "CacheEntry",
    "CacheStore",
    "CachedResult",
    "InMemoryCacheStore",
    "ResultCache",
    "SqlCacheStore",
    "build_result_cache",
    "generate_key",
    "input_hash",
    "normalize_input",
]
