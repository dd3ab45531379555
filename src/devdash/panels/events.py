"""Panel Events Module - Messages posted by cache tasks to the panel loop.

Philosophy:
- Tasks never touch panel state; they post events
- One consumer drains the bus, so panels need no locks
- Every event carries the key and the generation of the request it answers

Public API (the "studs"):
    CacheMiss, CacheHit, Loaded, RefreshComplete: Lifecycle events
    PanelEvent: Union of the four event types
    EventBus: Queue of pending events
    next_generation: Process-wide monotonic request counter
"""

import asyncio
import itertools
from dataclasses import dataclass
from typing import Any

from devdash.cache.store import CacheKey

_generations = itertools.count(1)


def next_generation() -> int:
    """Return a new generation number, unique across all panels."""
    return next(_generations)


@dataclass(frozen=True)
class CacheMiss:
    """Nothing cached for the key."""

    key: CacheKey
    generation: int


@dataclass(frozen=True)
class CacheHit:
    """Cached payload found.

    Attributes:
        payload: Raw cached bytes (decoded by the panel's codec)
        captured_at: Capture time of the entry
        needs_refresh: True if the entry is past its TTL
    """

    key: CacheKey
    generation: int
    payload: bytes
    captured_at: float
    needs_refresh: bool


@dataclass(frozen=True)
class Loaded:
    """Result of a blocking fetch: either ``payload`` or ``error`` is set."""

    key: CacheKey
    generation: int
    payload: Any = None
    error: BaseException | None = None
    captured_at: float | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class RefreshComplete:
    """Result of a background refresh: either ``payload`` or ``error`` is set."""

    key: CacheKey
    generation: int
    payload: Any = None
    error: BaseException | None = None
    captured_at: float | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


PanelEvent = CacheMiss | CacheHit | Loaded | RefreshComplete


class EventBus:
    """FIFO of events awaiting the panel loop.

    Events are delivered in the order their tasks completed.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[PanelEvent] = asyncio.Queue()

    def post(self, event: PanelEvent) -> None:
        """Enqueue an event (called from tasks on the loop)."""
        self._queue.put_nowait(event)

    async def get(self) -> PanelEvent:
        """Wait for the next event."""
        return await self._queue.get()

    def drain(self) -> list[PanelEvent]:
        """Remove and return every pending event without waiting."""
        events: list[PanelEvent] = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except asyncio.QueueEmpty:
                return events

    def __len__(self) -> int:
        return self._queue.qsize()


__all__ = [
    "CacheHit",
    "CacheMiss",
    "EventBus",
    "Loaded",
    "PanelEvent",
    "RefreshComplete",
    "next_generation",
]
