"""File Cache Module - Persistent per-key cache for device data.

Philosophy:
- One JSON file per (data type, device) so keys never contend
- Atomic writes (temp file + rename), owner-only permissions
- Corrupt or old-format files are dropped and reported as misses
- Shared between the dashboard and one-shot CLI commands

Public API (the "studs"):
    FileCache: File-backed CacheStore with maintenance operations
    CacheStats: Cache statistics data model
    CacheMeta: Cache metadata (format version, last cleanup)
    sanitize_filename: Make a device name filesystem-safe

Architecture:
- Cache dir: ~/.devdash/cache
- Entry file: <cache dir>/<data type>/<device>.json
- Meta file: <cache dir>/meta.json
"""

import base64
import binascii
import json
import logging
import os
import shutil
import threading
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from devdash.cache.data_types import DataType
from devdash.cache.store import CacheEntry, CacheKey

logger = logging.getLogger(__name__)

# Increment when the entry format changes so old files are dropped
CURRENT_VERSION = 1

META_FILENAME = "meta.json"
_UNSAFE_CHARS = '/\\:*?"<>|'


class FileCacheError(Exception):
    """Raised when file cache operations fail."""

    pass


def sanitize_filename(name: str) -> str:
    """Replace characters that are unsafe in filenames with underscores.

    Example:
        >>> sanitize_filename("192.168.1.20:80")
        '192.168.1.20_80'
    """
    return "".join("_" if ch in _UNSAFE_CHARS else ch for ch in name)


@dataclass
class CacheStats:
    """Cache statistics.

    Attributes:
        total_entries: Number of entry files
        total_size: Total size of entry files in bytes
        stale_entries: Entries past their TTL
        device_count: Distinct devices with at least one entry
        oldest_entry: Oldest capture time (epoch) or None
        newest_entry: Newest capture time (epoch) or None
        type_counts: Entry count per data type value
    """

    total_entries: int = 0
    total_size: int = 0
    stale_entries: int = 0
    device_count: int = 0
    oldest_entry: float | None = None
    newest_entry: float | None = None
    type_counts: dict[str, int] = field(default_factory=dict)


@dataclass
class CacheMeta:
    """Cache metadata stored in meta.json."""

    version: int = CURRENT_VERSION
    last_cleanup: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {"version": self.version, "last_cleanup": self.last_cleanup}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CacheMeta":
        return cls(
            version=int(data.get("version", CURRENT_VERSION)),
            last_cleanup=float(data.get("last_cleanup", 0.0)),
        )


@dataclass(frozen=True)
class _Record:
    """Decoded entry file."""

    key: CacheKey
    entry: CacheEntry


class FileCache:
    """File-backed cache store.

    Implements the CacheStore contract (get/put/delete) plus maintenance
    operations used by the ``cache`` CLI commands.

    Example:
        >>> cache = FileCache(Path("/tmp/devdash-cache"))
        >>> key = make_cache_key("kitchen", DataType.SYSTEM)
        >>> cache.put(key, b'{"name": "kitchen"}', ttl=3600)
        >>> entry = cache.get(key)
        >>> entry.is_stale()
        False
    """

    DEFAULT_CACHE_DIR = Path.home() / ".devdash" / "cache"

    def __init__(self, cache_dir: Path | None = None, clock: Callable[[], float] = time.time):
        """Initialize file cache.

        Args:
            cache_dir: Cache directory (default: ~/.devdash/cache)
            clock: Time source returning epoch seconds

        Raises:
            FileCacheError: If the cache directory cannot be created
        """
        self.cache_dir = Path(cache_dir) if cache_dir else self.DEFAULT_CACHE_DIR
        self._clock = clock
        self._lock = threading.RLock()
        self._ensure_cache_dir()

    @property
    def path(self) -> Path:
        """Base cache directory."""
        return self.cache_dir

    def _ensure_cache_dir(self) -> None:
        """Ensure cache directory exists with secure permissions.

        Raises:
            FileCacheError: If directory creation fails
        """
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            # Owner only: rwx------
            os.chmod(self.cache_dir, 0o700)
            logger.debug(f"Cache directory ready: {self.cache_dir}")
        except Exception as e:
            raise FileCacheError(f"Failed to create cache directory: {e}") from e

    def _entry_path(self, key: CacheKey) -> Path:
        return self.cache_dir / key.data_type.value / f"{sanitize_filename(key.device)}.json"

    def _meta_path(self) -> Path:
        return self.cache_dir / META_FILENAME

    def _remove_quietly(self, path: Path, reason: str) -> None:
        try:
            path.unlink(missing_ok=True)
            logger.debug(f"Removed {reason}: {path}")
        except OSError as e:
            logger.debug(f"Failed to remove {reason} {path}: {e}")

    def _decode_record(self, raw: bytes) -> _Record | None:
        """Decode an entry file, returning None for corrupt or old-format data."""
        try:
            data = json.loads(raw)
            if data.get("version") != CURRENT_VERSION:
                return None
            encoding = data.get("encoding", "utf-8")
            if encoding == "base64":
                payload = base64.b64decode(data["data"], validate=True)
            else:
                payload = data["data"].encode("utf-8")
            key = CacheKey(device=data["device"], data_type=DataType(data["data_type"]))
            entry = CacheEntry(
                payload=payload,
                captured_at=float(data["cached_at"]),
                ttl=float(data["ttl"]),
            )
            return _Record(key=key, entry=entry)
        except (ValueError, KeyError, TypeError, AttributeError, binascii.Error):
            return None

    def _read_entry(self, key: CacheKey) -> CacheEntry | None:
        path = self._entry_path(key)
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            logger.debug(f"Cache miss: '{key}' not found")
            return None
        except OSError as e:
            raise FileCacheError(f"Failed to read cache file {path}: {e}") from e

        record = self._decode_record(raw)
        if record is None:
            self._remove_quietly(path, "corrupt or old-version cache file")
            return None
        if record.key != key:
            # Sanitized device names collide; the file belongs to another device
            logger.debug(f"Cache miss: {path} holds '{record.key}', not '{key}'")
            return None
        return record.entry

    def get(self, key: CacheKey) -> CacheEntry | None:
        """Get a cache entry, stale or fresh.

        Args:
            key: Cache key

        Returns:
            CacheEntry if present, None on miss

        Raises:
            FileCacheError: If the entry file exists but cannot be read
        """
        with self._lock:
            entry = self._read_entry(key)
        if entry is not None:
            logger.debug(f"Cache hit: '{key}' (stale={entry.is_stale(self._clock())})")
        return entry

    def get_fresh(self, key: CacheKey) -> CacheEntry | None:
        """Get a cache entry only if it is within its TTL."""
        entry = self.get(key)
        if entry is None or entry.is_stale(self._clock()):
            return None
        return entry

    def put(self, key: CacheKey, payload: bytes, ttl: float) -> None:
        """Store a payload, replacing any previous entry for the key.

        Args:
            key: Cache key
            payload: Serialized payload bytes
            ttl: Time-to-live in seconds

        Raises:
            FileCacheError: If writing fails
        """
        now = self._clock()
        try:
            text = payload.decode("utf-8")
            encoding = "utf-8"
        except UnicodeDecodeError:
            text = base64.b64encode(payload).decode("ascii")
            encoding = "base64"

        record = {
            "version": CURRENT_VERSION,
            "device": key.device,
            "data_type": key.data_type.value,
            "cached_at": now,
            "ttl": ttl,
            "expires_at": now + ttl,
            "encoding": encoding,
            "data": text,
        }

        path = self._entry_path(key)
        temp_path = path.with_suffix(".tmp")
        with self._lock:
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                with open(temp_path, "w") as f:
                    json.dump(record, f, indent=2)
                os.chmod(temp_path, 0o600)
                # Atomic rename
                temp_path.replace(path)
            except Exception as e:
                if temp_path.exists():
                    temp_path.unlink()
                raise FileCacheError(f"Failed to write cache entry '{key}': {e}") from e

        logger.debug(f"Cache set: '{key}' (TTL: {ttl:.0f}s)")

    def delete(self, key: CacheKey) -> None:
        """Remove the entry for a key. Missing entries are not an error.

        Raises:
            FileCacheError: If the file exists but cannot be removed
        """
        path = self._entry_path(key)
        with self._lock:
            try:
                raw = path.read_bytes()
            except FileNotFoundError:
                return
            except OSError as e:
                raise FileCacheError(f"Failed to read cache file {path}: {e}") from e

            record = self._decode_record(raw)
            if record is not None and record.key != key:
                logger.debug(f"Not deleting {path}: it holds '{record.key}', not '{key}'")
                return

            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                raise FileCacheError(f"Failed to remove cache entry '{key}': {e}") from e
        logger.debug(f"Cache deleted: '{key}'")

    def _walk_records(self) -> Iterator[tuple[Path, _Record]]:
        """Iterate decodable entry files, skipping meta, temp and corrupt files."""
        if not self.cache_dir.exists():
            return
        for path in sorted(self.cache_dir.rglob("*.json")):
            if path.name == META_FILENAME and path.parent == self.cache_dir:
                continue
            if not path.is_file():
                continue
            try:
                raw = path.read_bytes()
            except OSError as e:
                logger.debug(f"Skipping unreadable cache file {path}: {e}")
                continue
            record = self._decode_record(raw)
            if record is None:
                logger.debug(f"Skipping invalid cache file {path}")
                continue
            yield path, record

    def invalidate_device(self, device: str) -> int:
        """Remove every entry for a device.

        Returns:
            Number of entries removed

        Raises:
            FileCacheError: If an entry cannot be removed
        """
        removed = 0
        with self._lock:
            for path, record in list(self._walk_records()):
                if record.key.device != device:
                    continue
                try:
                    path.unlink(missing_ok=True)
                except OSError as e:
                    raise FileCacheError(f"Failed to remove {path}: {e}") from e
                removed += 1
        logger.debug(f"Invalidated {removed} cache entries for device '{device}'")
        return removed

    def invalidate_all(self) -> None:
        """Remove all cached data, keeping the base directory.

        Raises:
            FileCacheError: If removal fails
        """
        with self._lock:
            if not self.cache_dir.exists():
                return
            try:
                for child in self.cache_dir.iterdir():
                    if child.is_dir():
                        shutil.rmtree(child)
                    else:
                        child.unlink()
            except OSError as e:
                raise FileCacheError(f"Failed to clear cache: {e}") from e
        logger.debug("Cache cleared")

    def cleanup(self) -> int:
        """Remove all stale entries.

        Returns:
            Number of entries removed

        Raises:
            FileCacheError: If a stale entry cannot be removed
        """
        now = self._clock()
        removed = 0
        with self._lock:
            for path, record in list(self._walk_records()):
                if not record.entry.is_stale(now):
                    continue
                try:
                    path.unlink(missing_ok=True)
                except OSError as e:
                    raise FileCacheError(f"Failed to remove {path}: {e}") from e
                removed += 1

        if removed > 0:
            logger.debug(f"Cleaned up {removed} stale cache entries")
        return removed

    def stats(self) -> CacheStats:
        """Compute cache statistics."""
        now = self._clock()
        stats = CacheStats()
        devices: set[str] = set()

        with self._lock:
            for path, record in self._walk_records():
                try:
                    size = path.stat().st_size
                except OSError:
                    continue

                entry = record.entry
                stats.total_entries += 1
                stats.total_size += size
                data_type = record.key.data_type.value
                stats.type_counts[data_type] = stats.type_counts.get(data_type, 0) + 1
                devices.add(record.key.device)

                if entry.is_stale(now):
                    stats.stale_entries += 1
                if stats.oldest_entry is None or entry.captured_at < stats.oldest_entry:
                    stats.oldest_entry = entry.captured_at
                if stats.newest_entry is None or entry.captured_at > stats.newest_entry:
                    stats.newest_entry = entry.captured_at

        stats.device_count = len(devices)
        return stats

    def read_meta(self) -> CacheMeta:
        """Read cache metadata. Missing or corrupt meta yields defaults.

        Raises:
            FileCacheError: If the meta file exists but cannot be read
        """
        path = self._meta_path()
        with self._lock:
            try:
                raw = path.read_text()
            except FileNotFoundError:
                return CacheMeta()
            except OSError as e:
                raise FileCacheError(f"Failed to read meta file: {e}") from e

        try:
            return CacheMeta.from_dict(json.loads(raw))
        except (ValueError, TypeError, AttributeError):
            logger.debug("Cache meta file is corrupt, using defaults")
            return CacheMeta()

    def write_meta(self, meta: CacheMeta) -> None:
        """Write cache metadata.

        Raises:
            FileCacheError: If writing fails
        """
        with self._lock:
            try:
                self._meta_path().write_text(json.dumps(meta.to_dict(), indent=2))
            except OSError as e:
                raise FileCacheError(f"Failed to write meta file: {e}") from e

    def cleanup_if_needed(self, interval: float) -> int:
        """Run cleanup only if ``interval`` seconds passed since the last one.

        Returns:
            Number of entries removed (0 if cleanup was skipped)

        Raises:
            FileCacheError: If cleanup fails
        """
        try:
            meta = self.read_meta()
        except FileCacheError as e:
            logger.debug(f"Failed to read cache meta, cleaning up anyway: {e}")
            meta = CacheMeta()

        now = self._clock()
        if now - meta.last_cleanup < interval:
            return 0

        removed = self.cleanup()

        meta.last_cleanup = now
        try:
            self.write_meta(meta)
        except FileCacheError as e:
            logger.debug(f"Failed to record cleanup time: {e}")

        return removed


__all__ = [
    "CURRENT_VERSION",
    "CacheMeta",
    "CacheStats",
    "FileCache",
    "FileCacheError",
    "sanitize_filename",
]
