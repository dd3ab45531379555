"""Cache Orchestrator Module - Cache-first loading with background revalidation.

Philosophy:
- Serve cached data instantly, fetch only on miss or staleness
- Every store call and fetch runs in its own asyncio task
- Results come back as events, never as callbacks into panel state
- The cache is best-effort: store failures are logged, never surfaced

Public API (the "studs"):
    CacheOrchestrator: Executes load / fetch / refresh / invalidate
    FetchRequest: One fetch attempt for a key
    Fetcher: Callable performing the remote read (sync or async)

Event flow:
    load(key)               -> CacheMiss | CacheHit(needs_refresh)
    fetch_blocking(req)     -> Loaded(payload | error)
    refresh_background(req) -> RefreshComplete(payload | error)
    invalidate(key)         -> (no event)
"""

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from devdash.cache.data_types import TTLPolicy
from devdash.cache.store import CacheEntry, CacheKey, CacheStore, NullCacheStore
from devdash.panels.events import CacheHit, CacheMiss, Loaded, PanelEvent, RefreshComplete

logger = logging.getLogger(__name__)

Fetcher = Callable[[], Any] | Callable[[], Awaitable[Any]]


@dataclass(frozen=True)
class FetchRequest:
    """One fetch attempt, owned by the task executing it.

    Attributes:
        key: Cache key being fetched
        fetcher: Performs the remote read; returns the payload or raises
        encode: Serializes the payload for the store
        generation: Generation of the panel request this answers
    """

    key: CacheKey
    fetcher: Fetcher
    encode: Callable[[Any], bytes]
    generation: int = 0


class CacheOrchestrator:
    """Decides between cache and device, and runs fetches as tasks.

    All public operations must be called from the running event loop; they
    return immediately with the scheduled task.

    Example:
        >>> bus = EventBus()
        >>> orchestrator = CacheOrchestrator(store, post=bus.post)
        >>> orchestrator.load(key, generation=7)
        >>> event = await bus.get()   # CacheMiss or CacheHit
    """

    def __init__(
        self,
        store: CacheStore | None,
        post: Callable[[PanelEvent], None],
        ttl_policy: TTLPolicy | None = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize orchestrator.

        Args:
            store: Cache store (None disables caching: always fetch)
            post: Delivers events to the panel loop
            ttl_policy: TTL per data type (default: built-in TTLs)
            clock: Time source used for staleness checks
        """
        self.store: CacheStore = store if store is not None else NullCacheStore()
        self.post = post
        self.ttl_policy = ttl_policy or TTLPolicy()
        self.clock = clock
        self._tasks: set[asyncio.Task] = set()
        self._invalidations: dict[CacheKey, asyncio.Task] = {}

    @property
    def pending(self) -> int:
        """Number of outstanding tasks."""
        return len(self._tasks)

    def _spawn(self, coro: Awaitable[None], name: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait until no task is outstanding (tasks may spawn tasks)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # -- store access (best-effort) ------------------------------------------

    async def _store_get(self, key: CacheKey) -> CacheEntry | None:
        try:
            return await asyncio.to_thread(self.store.get, key)
        except Exception as e:
            logger.warning(f"Cache read failed for '{key}', treating as miss: {e}")
            return None

    async def _store_put(self, key: CacheKey, payload: bytes, ttl: float) -> None:
        try:
            await asyncio.to_thread(self.store.put, key, payload, ttl)
        except Exception as e:
            logger.warning(f"Cache write failed for '{key}': {e}")

    async def _store_delete(self, key: CacheKey) -> None:
        try:
            await asyncio.to_thread(self.store.delete, key)
        except Exception as e:
            logger.warning(f"Cache invalidation failed for '{key}': {e}")

    # -- operations ------------------------------------------------------------

    def load(self, key: CacheKey, generation: int = 0) -> asyncio.Task:
        """Look the key up and emit CacheMiss or CacheHit.

        Args:
            key: Cache key
            generation: Generation tag copied onto the event
        """

        async def run() -> None:
            await self._settle_invalidation(key)
            entry = await self._store_get(key)
            if entry is None:
                self.post(CacheMiss(key=key, generation=generation))
                return
            needs_refresh = entry.is_stale(self.clock())
            self.post(
                CacheHit(
                    key=key,
                    generation=generation,
                    payload=entry.payload,
                    captured_at=entry.captured_at,
                    needs_refresh=needs_refresh,
                )
            )

        return self._spawn(run(), name=f"load:{key}")

    def fetch_blocking(self, request: FetchRequest) -> asyncio.Task:
        """Fetch, cache on success and emit Loaded."""
        return self._spawn(self._fetch(request, Loaded), name=f"fetch:{request.key}")

    def refresh_background(self, request: FetchRequest) -> asyncio.Task:
        """Fetch, cache on success and emit RefreshComplete."""
        return self._spawn(self._fetch(request, RefreshComplete), name=f"refresh:{request.key}")

    def invalidate(self, key: CacheKey) -> asyncio.Task:
        """Delete the cached entry for a key. Emits no event."""
        previous = self._invalidations.get(key)

        async def run() -> None:
            if previous is not None:
                await asyncio.gather(previous, return_exceptions=True)
            await self._store_delete(key)
            logger.debug(f"Invalidated '{key}'")

        task = self._spawn(run(), name=f"invalidate:{key}")
        self._invalidations[key] = task
        task.add_done_callback(lambda t: self._forget_invalidation(key, t))
        return task

    def _forget_invalidation(self, key: CacheKey, task: asyncio.Task) -> None:
        if self._invalidations.get(key) is task:
            del self._invalidations[key]

    async def _settle_invalidation(self, key: CacheKey) -> None:
        """Wait for an in-flight invalidation of the key, if any."""
        task = self._invalidations.get(key)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def _run_fetcher(self, fetcher: Fetcher) -> Any:
        if inspect.iscoroutinefunction(fetcher):
            return await fetcher()
        result = await asyncio.to_thread(fetcher)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def _fetch(self, request: FetchRequest, event_type: type[Loaded] | type[RefreshComplete]) -> None:
        key = request.key
        try:
            payload = await self._run_fetcher(request.fetcher)
        except Exception as e:
            logger.debug(f"Fetch failed for '{key}': {e}")
            self.post(event_type(key=key, generation=request.generation, error=e))
            return

        captured_at = self.clock()
        try:
            encoded = request.encode(payload)
        except Exception as e:
            logger.warning(f"Not caching '{key}', payload could not be encoded: {e}")
        else:
            # An invalidation issued before this fetch must not delete the new entry
            await self._settle_invalidation(key)
            await self._store_put(key, encoded, self.ttl_policy.ttl_for(key.data_type))

        self.post(
            event_type(
                key=key,
                generation=request.generation,
                payload=payload,
                captured_at=captured_at,
            )
        )


__all__ = ["CacheOrchestrator", "FetchRequest", "Fetcher"]
