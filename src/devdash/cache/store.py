"""Cache Store Module - Keyed, TTL-bounded payload storage contract.

Philosophy:
- The store is injected, never a process-wide singleton
- Payloads are opaque bytes; each data type owns its serialization
- Entries are immutable; a refresh replaces an entry wholesale
- Best-effort: the store is never authoritative

Public API (the "studs"):
    CacheKey: (device, data type) identifying one cached artifact
    CacheEntry: Immutable payload + capture timestamp + TTL
    CacheStore: Protocol every backing store implements
    NullCacheStore: Store used when caching is disabled (always misses)
    MemoryCacheStore: In-process store (tests, ephemeral sessions)
    make_cache_key: Build a CacheKey from plain strings
"""

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from devdash.cache.data_types import DataType


@dataclass(frozen=True)
class CacheKey:
    """Key for one cached artifact.

    Attributes:
        device: Device identifier (alias or host)
        data_type: Cached data type
    """

    device: str
    data_type: DataType

    def __str__(self) -> str:
        return f"{self.device}:{self.data_type}"


def make_cache_key(device: str, data_type: DataType | str) -> CacheKey:
    """Create a cache key from a device and a data type (enum or value).

    Example:
        >>> str(make_cache_key("kitchen", "system"))
        'kitchen:system'
    """
    return CacheKey(device=device, data_type=DataType(data_type))


@dataclass(frozen=True)
class CacheEntry:
    """Cached payload with capture metadata.

    Attributes:
        payload: Serialized payload bytes
        captured_at: Capture time (epoch seconds)
        ttl: Time-to-live in seconds
    """

    payload: bytes
    captured_at: float
    ttl: float

    @property
    def expires_at(self) -> float:
        """Epoch time after which the entry is stale."""
        return self.captured_at + self.ttl

    def age(self, now: float | None = None) -> float:
        """Seconds since the entry was captured."""
        if now is None:
            now = time.time()
        return now - self.captured_at

    def is_stale(self, now: float | None = None) -> bool:
        """Check if the entry has outlived its TTL.

        Args:
            now: Current epoch time (default: time.time())

        Returns:
            True if age is strictly greater than the TTL
        """
        return self.age(now) > self.ttl


@runtime_checkable
class CacheStore(Protocol):
    """Storage contract consumed by the cache orchestrator.

    ``get`` returns stale entries too; staleness is the caller's decision.
    ``put`` and ``delete`` raise on failure, the orchestrator logs and moves on.
    """

    def get(self, key: CacheKey) -> CacheEntry | None: ...

    def put(self, key: CacheKey, payload: bytes, ttl: float) -> None: ...

    def delete(self, key: CacheKey) -> None: ...


class NullCacheStore:
    """Store used when caching is disabled: every lookup misses."""

    def get(self, key: CacheKey) -> CacheEntry | None:
        return None

    def put(self, key: CacheKey, payload: bytes, ttl: float) -> None:
        pass

    def delete(self, key: CacheKey) -> None:
        pass


class MemoryCacheStore:
    """Thread-safe in-process store.

    Example:
        >>> store = MemoryCacheStore()
        >>> key = make_cache_key("kitchen", "system")
        >>> store.put(key, b'{"name": "kitchen"}', ttl=60)
        >>> store.get(key).payload
        b'{"name": "kitchen"}'
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._entries: dict[CacheKey, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: CacheKey) -> CacheEntry | None:
        with self._lock:
            return self._entries.get(key)

    def put(self, key: CacheKey, payload: bytes, ttl: float) -> None:
        entry = CacheEntry(payload=bytes(payload), captured_at=self._clock(), ttl=ttl)
        with self._lock:
            self._entries[key] = entry

    def delete(self, key: CacheKey) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def seed(self, key: CacheKey, entry: CacheEntry) -> None:
        """Insert a prepared entry (keeps its capture time)."""
        with self._lock:
            self._entries[key] = entry

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries


__all__ = [
    "CacheEntry",
    "CacheKey",
    "CacheStore",
    "MemoryCacheStore",
    "NullCacheStore",
    "make_cache_key",
]
