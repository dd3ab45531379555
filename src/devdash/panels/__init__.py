"""Panels Module - Cache-backed data lifecycle for dashboard panels.

Public API (the "studs"):
    From events:
        CacheMiss, CacheHit, Loaded, RefreshComplete: Lifecycle events
        EventBus: Event queue consumed by the dashboard loop

    From orchestrator:
        CacheOrchestrator: Cache-first load, fetch, refresh, invalidate
        FetchRequest: One fetch attempt

    From lifecycle:
        PanelLifecycle: Per-panel state machine
        PanelState, PanelSnapshot, PanelSource
"""

from devdash.panels.events import (
    CacheHit,
    CacheMiss,
    EventBus,
    Loaded,
    PanelEvent,
    RefreshComplete,
    next_generation,
)
from devdash.panels.lifecycle import PanelLifecycle, PanelSnapshot, PanelSource, PanelState
from devdash.panels.orchestrator import CacheOrchestrator, FetchRequest

__all__ = [
    "CacheHit",
    "CacheMiss",
    "CacheOrchestrator",
    "EventBus",
    "FetchRequest",
    "Loaded",
    "PanelEvent",
    "PanelLifecycle",
    "PanelSnapshot",
    "PanelSource",
    "PanelState",
    "RefreshComplete",
    "next_generation",
]
