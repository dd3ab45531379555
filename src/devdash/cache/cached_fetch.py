"""Cached Fetch Module - Cache-first reads for one-shot CLI commands.

Philosophy:
- Same store and TTLs as the dashboard panels
- ``--refresh`` bypasses the cache, ``--offline`` never touches the network
- Cache write failures never fail the command

Public API (the "studs"):
    cached_fetch: Serve from cache or fetch-and-cache
    CachedResult: Result with provenance (cache or network)
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from devdash.cache.codec import JSON_CODEC, PayloadCodec, PayloadCodecError
from devdash.cache.store import CacheKey, CacheStore

logger = logging.getLogger(__name__)


class CachedFetchError(Exception):
    """Base error for cached fetch operations."""

    pass


class CacheFlagConflictError(CachedFetchError):
    """Raised when refresh and offline modes are requested together."""

    pass


class OfflineCacheMissError(CachedFetchError):
    """Raised in offline mode when nothing is cached for the key."""

    pass


@dataclass
class CachedResult:
    """Result of a cached fetch.

    Attributes:
        data: Decoded payload
        from_cache: True if served from the cache
        captured_at: Capture time of the data (epoch seconds)
        stale: True if a cached payload was past its TTL (offline mode only)
    """

    data: Any
    from_cache: bool
    captured_at: float
    stale: bool = False


def check_cache_flags(refresh: bool, offline: bool) -> None:
    """Validate cache mode flags.

    Raises:
        CacheFlagConflictError: If both flags are set
    """
    if refresh and offline:
        raise CacheFlagConflictError("--refresh and --offline cannot be used together")


def cached_fetch(
    store: CacheStore,
    key: CacheKey,
    fetch: Callable[[], Any],
    ttl: float,
    codec: PayloadCodec = JSON_CODEC,
    refresh: bool = False,
    offline: bool = False,
    clock: Callable[[], float] = time.time,
) -> CachedResult:
    """Fetch data for a key, using the cache when allowed.

    Args:
        store: Cache store
        key: Cache key
        fetch: Callable performing the remote read
        ttl: TTL in seconds for newly fetched data
        codec: Payload codec for the data type
        refresh: Bypass the cache and always fetch
        offline: Only use the cache (stale data accepted)
        clock: Time source

    Returns:
        CachedResult

    Raises:
        CacheFlagConflictError: If refresh and offline are both set
        OfflineCacheMissError: If offline and nothing is cached
        Exception: Whatever ``fetch`` raises
    """
    check_cache_flags(refresh, offline)

    if not refresh:
        try:
            entry = store.get(key)
        except Exception as e:
            logger.warning(f"Cache lookup failed for '{key}': {e}")
            entry = None

        now = clock()
        if entry is not None and (offline or not entry.is_stale(now)):
            try:
                data = codec.decode(entry.payload)
            except PayloadCodecError as e:
                logger.warning(f"Ignoring undecodable cache entry for '{key}': {e}")
            else:
                return CachedResult(
                    data=data,
                    from_cache=True,
                    captured_at=entry.captured_at,
                    stale=entry.is_stale(now),
                )

    if offline:
        raise OfflineCacheMissError(f"No cached data for '{key}' (offline mode)")

    data = fetch()
    captured_at = clock()

    try:
        store.put(key, codec.encode(data), ttl)
    except Exception as e:
        logger.warning(f"Failed to cache '{key}': {e}")

    return CachedResult(data=data, from_cache=False, captured_at=captured_at)


__all__ = [
    "CacheFlagConflictError",
    "CachedFetchError",
    "CachedResult",
    "OfflineCacheMissError",
    "cached_fetch",
    "check_cache_flags",
]
