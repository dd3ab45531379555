"""Unit tests for the cache orchestrator.

Tests cover:
- Load emits exactly one Miss or Hit with the right needs_refresh
- Blocking fetch and background refresh cache on success only
- Invalidation ordering against a following fetch
- Best-effort store failures
"""

import threading
import time
from unittest.mock import Mock

import pytest

from devdash.cache.data_types import DataType
from devdash.cache.store import CacheEntry, CacheKey, MemoryCacheStore
from devdash.panels.events import CacheHit, CacheMiss, Loaded, RefreshComplete
from devdash.panels.orchestrator import CacheOrchestrator, FetchRequest

KEY = CacheKey(device="A", data_type=DataType.SYSTEM)


def encode(payload):
    return repr(payload).encode()


def request(fetcher, generation=0):
    return FetchRequest(key=KEY, fetcher=fetcher, encode=encode, generation=generation)


class RecordingStore(MemoryCacheStore):
    """Memory store recording operations; delete can be slowed down."""

    def __init__(self, clock, delete_delay=0.0):
        super().__init__(clock=clock)
        self.ops: list[str] = []
        self.delete_delay = delete_delay

    def get(self, key):
        self.ops.append("get")
        return super().get(key)

    def put(self, key, payload, ttl):
        self.ops.append("put")
        super().put(key, payload, ttl)

    def delete(self, key):
        time.sleep(self.delete_delay)
        self.ops.append("delete")
        super().delete(key)


class TestLoad:
    """Test cache lookup events."""

    @pytest.mark.asyncio
    async def test_fresh_hit(self, orchestrator, memory_store, bus, clock):
        memory_store.seed(KEY, CacheEntry(b"P", captured_at=clock.now - 1, ttl=60))

        orchestrator.load(KEY, generation=3)
        await orchestrator.drain()

        events = bus.drain()
        assert events == [
            CacheHit(key=KEY, generation=3, payload=b"P", captured_at=clock.now - 1, needs_refresh=False)
        ]

    @pytest.mark.asyncio
    async def test_stale_hit(self, orchestrator, memory_store, bus, clock):
        memory_store.seed(KEY, CacheEntry(b"P", captured_at=clock.now - 120, ttl=60))

        orchestrator.load(KEY)
        await orchestrator.drain()

        (event,) = bus.drain()
        assert isinstance(event, CacheHit)
        assert event.needs_refresh

    @pytest.mark.asyncio
    async def test_miss_emits_exactly_one_miss(self, orchestrator, bus):
        orchestrator.load(KEY, generation=5)
        await orchestrator.drain()

        assert bus.drain() == [CacheMiss(key=KEY, generation=5)]

    @pytest.mark.asyncio
    async def test_store_read_failure_is_a_miss(self, bus):
        store = Mock()
        store.get.side_effect = OSError("unreadable")
        orchestrator = CacheOrchestrator(store, post=bus.post)

        orchestrator.load(KEY)
        await orchestrator.drain()

        assert bus.drain() == [CacheMiss(key=KEY, generation=0)]

    @pytest.mark.asyncio
    async def test_no_store_always_misses(self, bus):
        orchestrator = CacheOrchestrator(None, post=bus.post)

        orchestrator.load(KEY)
        await orchestrator.drain()

        assert bus.drain() == [CacheMiss(key=KEY, generation=0)]


class TestFetch:
    """Test blocking fetch and background refresh."""

    @pytest.mark.asyncio
    async def test_fetch_blocking_caches_with_type_ttl(self, orchestrator, memory_store, bus, clock):
        async def fetcher():
            return {"name": "A"}

        orchestrator.fetch_blocking(request(fetcher, generation=9))
        await orchestrator.drain()

        assert bus.drain() == [
            Loaded(key=KEY, generation=9, payload={"name": "A"}, captured_at=clock.now)
        ]
        entry = memory_store.get(KEY)
        assert entry.payload == encode({"name": "A"})
        assert entry.ttl == 60

    @pytest.mark.asyncio
    async def test_fetch_error_keeps_existing_entry(self, orchestrator, memory_store, bus, clock):
        memory_store.seed(KEY, CacheEntry(b"old", captured_at=clock.now - 500, ttl=60))
        error = ConnectionError("unreachable")

        def fetcher():
            raise error

        orchestrator.fetch_blocking(request(fetcher))
        await orchestrator.drain()

        (event,) = bus.drain()
        assert isinstance(event, Loaded)
        assert event.error is error
        assert not event.ok
        assert memory_store.get(KEY).payload == b"old"

    @pytest.mark.asyncio
    async def test_refresh_background_emits_refresh_complete(self, orchestrator, bus):
        orchestrator.refresh_background(request(lambda: [1, 2, 3], generation=2))
        await orchestrator.drain()

        (event,) = bus.drain()
        assert isinstance(event, RefreshComplete)
        assert event.payload == [1, 2, 3]
        assert event.generation == 2

    @pytest.mark.asyncio
    async def test_sync_fetcher_runs_off_the_loop(self, orchestrator, bus):
        loop_thread = threading.current_thread()
        seen = []

        def fetcher():
            seen.append(threading.current_thread())
            return "ok"

        orchestrator.fetch_blocking(request(fetcher))
        await orchestrator.drain()

        assert seen and seen[0] is not loop_thread
        assert bus.drain()[0].payload == "ok"

    @pytest.mark.asyncio
    async def test_store_write_failure_still_delivers_payload(self, bus):
        store = Mock()
        store.put.side_effect = OSError("read-only")
        orchestrator = CacheOrchestrator(store, post=bus.post)

        orchestrator.fetch_blocking(request(lambda: "P"))
        await orchestrator.drain()

        (event,) = bus.drain()
        assert event.ok
        assert event.payload == "P"

    @pytest.mark.asyncio
    async def test_unencodable_payload_is_displayed_not_cached(self, memory_store, bus, clock):
        orchestrator = CacheOrchestrator(memory_store, post=bus.post, clock=clock)

        def bad_encode(payload):
            raise TypeError("not serializable")

        orchestrator.fetch_blocking(FetchRequest(key=KEY, fetcher=lambda: object, encode=bad_encode))
        await orchestrator.drain()

        (event,) = bus.drain()
        assert event.payload is object
        assert memory_store.get(KEY) is None


class TestInvalidate:
    """Test invalidation."""

    @pytest.mark.asyncio
    async def test_invalidate_deletes_without_event(self, orchestrator, memory_store, bus, clock):
        memory_store.seed(KEY, CacheEntry(b"P", captured_at=clock.now, ttl=60))

        orchestrator.invalidate(KEY)
        await orchestrator.drain()

        assert memory_store.get(KEY) is None
        assert bus.drain() == []

    @pytest.mark.asyncio
    async def test_fetch_after_invalidate_is_not_deleted(self, bus, clock):
        store = RecordingStore(clock, delete_delay=0.05)
        store.seed(KEY, CacheEntry(b"old", captured_at=clock.now, ttl=60))
        orchestrator = CacheOrchestrator(store, post=bus.post, clock=clock)

        async def fetcher():
            return "new"

        orchestrator.invalidate(KEY)
        orchestrator.fetch_blocking(request(fetcher))
        await orchestrator.drain()

        assert store.ops == ["delete", "put"]
        assert store.get(KEY).payload == encode("new")

    @pytest.mark.asyncio
    async def test_load_after_invalidate_misses(self, bus, clock):
        store = RecordingStore(clock, delete_delay=0.05)
        store.seed(KEY, CacheEntry(b"old", captured_at=clock.now, ttl=60))
        orchestrator = CacheOrchestrator(store, post=bus.post, clock=clock)

        orchestrator.invalidate(KEY)
        orchestrator.load(KEY)
        await orchestrator.drain()

        assert bus.drain() == [CacheMiss(key=KEY, generation=0)]

    @pytest.mark.asyncio
    async def test_store_delete_failure_is_logged(self, bus):
        store = Mock()
        store.delete.side_effect = OSError("locked")
        orchestrator = CacheOrchestrator(store, post=bus.post)

        orchestrator.invalidate(KEY)
        await orchestrator.drain()

        assert orchestrator.pending == 0
        assert bus.drain() == []
