"""Panel Lifecycle Module - Per-panel state machine over the cache orchestrator.

Philosophy:
- The panel always shows something as soon as the cache has it
- The UI blocks only when there is nothing to show
- A failed background refresh never replaces good data with an error
- Late or superseded events are dropped by generation, not by cancellation

Public API (the "studs"):
    PanelLifecycle: State machine driving one panel
    PanelState: Lifecycle states
    PanelSnapshot: Immutable view of a panel for the renderer
    PanelSource: What a panel shows (data type, fetcher, codec)

State machine:
    IDLE --set_device--> AWAITING_CACHE
    AWAITING_CACHE --CacheMiss--> LOADING
    AWAITING_CACHE --CacheHit(fresh)--> READY
    AWAITING_CACHE --CacheHit(stale)--> REFRESHING
    LOADING --Loaded(ok)--> READY        LOADING --Loaded(error)--> ERROR
    REFRESHING --RefreshComplete--> READY (payload swapped only on success)
    any --refresh()/after_mutation()--> LOADING (invalidate + blocking fetch)
"""

import functools
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from devdash.cache.codec import JSON_CODEC, PayloadCodec, PayloadCodecError
from devdash.cache.data_types import DataType
from devdash.cache.store import CacheKey
from devdash.panels.events import (
    CacheHit,
    CacheMiss,
    Loaded,
    PanelEvent,
    RefreshComplete,
    next_generation,
)
from devdash.panels.orchestrator import CacheOrchestrator, FetchRequest

logger = logging.getLogger(__name__)


class PanelState(StrEnum):
    """Panel lifecycle states."""

    IDLE = "idle"
    AWAITING_CACHE = "awaiting_cache"
    LOADING = "loading"
    READY = "ready"
    REFRESHING = "refreshing"
    ERROR = "error"


@dataclass(frozen=True)
class PanelSource:
    """Definition of a panel's data.

    Attributes:
        name: Short identifier (CLI ``--panel`` value)
        title: Display title
        data_type: Cached data type
        fetch: Remote read for a device; sync or async, raises on failure
        codec: Payload serialization for the cache
    """

    name: str
    title: str
    data_type: DataType
    fetch: Callable[[str], Any]
    codec: PayloadCodec = field(default=JSON_CODEC)


@dataclass(frozen=True)
class PanelSnapshot:
    """What the renderer may read about a panel.

    ``loading`` and ``background_refreshing`` are derived from the state and
    are never both true.
    """

    title: str
    state: PanelState
    device: str | None
    displayed_payload: Any
    last_error: BaseException | None
    cached_at: float | None

    @property
    def loading(self) -> bool:
        """True while the panel has nothing to show and waits for data."""
        if self.state == PanelState.AWAITING_CACHE:
            return self.displayed_payload is None
        return self.state == PanelState.LOADING

    @property
    def background_refreshing(self) -> bool:
        return self.state == PanelState.REFRESHING


class PanelLifecycle:
    """Drives one panel from "nothing shown" to "fresh data shown".

    Must be used from the event loop thread; events are handed in one at a
    time through ``handle``.

    Example:
        >>> panel = PanelLifecycle(system_source(client), orchestrator)
        >>> panel.set_device("kitchen")        # issues a cache load
        >>> panel.handle(await bus.get())      # CacheHit / CacheMiss
        >>> panel.snapshot().displayed_payload
    """

    def __init__(
        self,
        source: PanelSource,
        orchestrator: CacheOrchestrator,
    ):
        self.source = source
        self.orchestrator = orchestrator
        self.state = PanelState.IDLE
        self.device: str | None = None
        self.generation = 0
        self.displayed_payload: Any = None
        self.last_error: BaseException | None = None
        self.cached_at: float | None = None

    @property
    def key(self) -> CacheKey | None:
        """Cache key for the current device, or None when idle."""
        if not self.device:
            return None
        return CacheKey(device=self.device, data_type=self.source.data_type)

    @property
    def loading(self) -> bool:
        return self.snapshot().loading

    @property
    def background_refreshing(self) -> bool:
        return self.snapshot().background_refreshing

    def snapshot(self) -> PanelSnapshot:
        return PanelSnapshot(
            title=self.source.title,
            state=self.state,
            device=self.device,
            displayed_payload=self.displayed_payload,
            last_error=self.last_error,
            cached_at=self.cached_at,
        )

    def _fetch_request(self) -> FetchRequest:
        key = self.key
        if key is None:
            raise RuntimeError(f"Panel '{self.source.name}' has no device to fetch for")
        return FetchRequest(
            key=key,
            fetcher=functools.partial(self.source.fetch, self.device),
            encode=self.source.codec.encode,
            generation=self.generation,
        )

    # -- user / host actions ---------------------------------------------------

    def set_device(self, device: str | None) -> None:
        """Switch the panel to a device and start loading from the cache.

        Any in-flight request for the previous device is orphaned: its
        events carry an old generation and are dropped on arrival.
        """
        self.generation = next_generation()
        self.device = device or None
        self.displayed_payload = None
        self.last_error = None
        self.cached_at = None

        if self.key is None:
            self.state = PanelState.IDLE
            return

        self.state = PanelState.AWAITING_CACHE
        self.orchestrator.load(self.key, self.generation)

    def refresh(self) -> None:
        """User-requested reload: invalidate, then fetch blocking.

        Bypasses the cache even when the entry is fresh.
        """
        if self.key is None:
            logger.debug(f"Ignoring refresh on idle panel '{self.source.name}'")
            return

        self.generation = next_generation()
        self.state = PanelState.LOADING
        self.displayed_payload = None
        self.last_error = None
        self.cached_at = None
        self.orchestrator.invalidate(self.key)
        self.orchestrator.fetch_blocking(self._fetch_request())

    def after_mutation(self) -> None:
        """Reload after a successful write to the device (e.g. settings edit)."""
        self.refresh()

    def focus(self) -> None:
        """Re-validate when the panel gains focus or the refresh tick fires.

        Only acts when no request is in flight; the displayed payload is kept
        while the cache is consulted again.
        """
        if self.key is None or self.state not in (PanelState.READY, PanelState.ERROR):
            return

        self.generation = next_generation()
        self.state = PanelState.AWAITING_CACHE
        self.orchestrator.load(self.key, self.generation)

    def teardown(self) -> None:
        """Detach from the device; late events will be dropped."""
        self.generation = next_generation()
        self.device = None
        self.state = PanelState.IDLE
        self.displayed_payload = None
        self.last_error = None
        self.cached_at = None

    # -- events ----------------------------------------------------------------

    def accepts(self, event: PanelEvent) -> bool:
        """True if the event answers this panel's current request."""
        return event.key == self.key and event.generation == self.generation

    def handle(self, event: PanelEvent) -> bool:
        """Apply an event.

        Returns:
            True if the event was applied, False if it was dropped
        """
        if not self.accepts(event):
            return False

        if isinstance(event, CacheMiss) and self.state == PanelState.AWAITING_CACHE:
            self._on_miss()
        elif isinstance(event, CacheHit) and self.state == PanelState.AWAITING_CACHE:
            self._on_hit(event)
        elif isinstance(event, Loaded) and self.state == PanelState.LOADING:
            self._on_loaded(event)
        elif isinstance(event, RefreshComplete) and self.state == PanelState.REFRESHING:
            self._on_refresh_complete(event)
        else:
            logger.debug(
                f"Panel '{self.source.name}' dropped {type(event).__name__} in state {self.state}"
            )
            return False
        return True

    def _on_miss(self) -> None:
        if self.displayed_payload is not None:
            # Already showing something: never block the panel again
            self.state = PanelState.REFRESHING
            self.orchestrator.refresh_background(self._fetch_request())
            return
        self.state = PanelState.LOADING
        self.orchestrator.fetch_blocking(self._fetch_request())

    def _on_hit(self, event: CacheHit) -> None:
        try:
            payload = self.source.codec.decode(event.payload)
        except PayloadCodecError as e:
            logger.warning(f"Undecodable cache entry for '{event.key}', refetching: {e}")
            self._on_miss()
            return

        self.displayed_payload = payload
        self.cached_at = event.captured_at
        self.last_error = None

        if event.needs_refresh:
            self.state = PanelState.REFRESHING
            self.orchestrator.refresh_background(self._fetch_request())
        else:
            self.state = PanelState.READY

    def _on_loaded(self, event: Loaded) -> None:
        if not event.ok:
            logger.debug(f"Panel '{self.source.name}' load failed for '{event.key}': {event.error}")
            self.state = PanelState.ERROR
            self.displayed_payload = None
            self.last_error = event.error
            return

        self.state = PanelState.READY
        self.displayed_payload = event.payload
        self.last_error = None
        self.cached_at = event.captured_at

    def _on_refresh_complete(self, event: RefreshComplete) -> None:
        self.state = PanelState.READY
        if not event.ok:
            # Keep the last-known-good payload on screen
            logger.debug(
                f"Panel '{self.source.name}' background refresh failed for '{event.key}': {event.error}"
            )
            return

        self.displayed_payload = event.payload
        self.cached_at = event.captured_at


__all__ = ["PanelLifecycle", "PanelSnapshot", "PanelSource", "PanelState"]
