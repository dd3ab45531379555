"""Cache Module - Persistent, TTL-bounded device data cache.

Philosophy:
- Keyed by (device, data type), one live entry per key
- TTL follows data volatility, overridable from config
- Best-effort: failures degrade to "fetch from the device"

Public API (the "studs"):
    From store:
        CacheKey, CacheEntry: Key and immutable entry models
        CacheStore: Store protocol consumed by panels
        NullCacheStore: Caching disabled (always miss)
        MemoryCacheStore: In-process store
        make_cache_key: Build a key from strings

    From file_cache:
        FileCache: Persistent file-backed store
        FileCacheError: File cache failure

    From data_types:
        DataType: Cacheable data types
        TTLPolicy: TTL lookup with overrides

    From cached_fetch:
        cached_fetch: Cache-first fetch for one-shot commands
"""

from devdash.cache.cached_fetch import (
    CacheFlagConflictError,
    CachedFetchError,
    CachedResult,
    OfflineCacheMissError,
    cached_fetch,
)
from devdash.cache.codec import JSON_CODEC, JsonCodec, PayloadCodec, PayloadCodecError
from devdash.cache.data_types import DataType, TTLPolicy, data_type_for_resource
from devdash.cache.file_cache import CacheStats, FileCache, FileCacheError
from devdash.cache.store import (
    CacheEntry,
    CacheKey,
    CacheStore,
    MemoryCacheStore,
    NullCacheStore,
    make_cache_key,
)

__all__ = [
    "JSON_CODEC",
    "CacheEntry",
    "CacheFlagConflictError",
    "CacheKey",
    "CacheStats",
    "CacheStore",
    "CachedFetchError",
    "CachedResult",
    "DataType",
    "FileCache",
    "FileCacheError",
    "JsonCodec",
    "MemoryCacheStore",
    "NullCacheStore",
    "OfflineCacheMissError",
    "PayloadCodec",
    "PayloadCodecError",
    "TTLPolicy",
    "cached_fetch",
    "data_type_for_resource",
    "make_cache_key",
]
