"""Live device dashboard module.

This module hosts the panel event loop and renders every panel in a
live-updating rich view. Panels show cached data immediately and refresh
in the background; the footer of each panel shows how old its data is.

Usage:
    from devdash.dashboard import Dashboard

    dashboard = Dashboard(sources, store=FileCache(), refresh_interval=30)
    asyncio.run(dashboard.run("kitchen"))
"""

import asyncio
import json
import logging
import time
from collections.abc import Callable, Iterable
from typing import Any

from rich.console import Console, Group, RenderableType
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from devdash.cache.data_types import TTLPolicy
from devdash.cache.store import CacheStore
from devdash.panels.cache_status import render_cache_status
from devdash.panels.events import EventBus, PanelEvent
from devdash.panels.lifecycle import PanelLifecycle, PanelSnapshot, PanelSource, PanelState
from devdash.panels.orchestrator import CacheOrchestrator

logger = logging.getLogger(__name__)


def _cell(value: Any) -> str:
    if value is None:
        return "—"
    if isinstance(value, dict | list):
        return json.dumps(value, sort_keys=True)
    return str(value)


def payload_renderable(payload: Any) -> RenderableType:
    """Render a panel payload.

    Lists of dicts become a table with one column per key, dicts a
    key/value table, anything else plain text.
    """
    if isinstance(payload, list):
        if not payload:
            return Text("(none)", style="dim")
        if all(isinstance(row, dict) for row in payload):
            columns: list[str] = []
            for row in payload:
                columns.extend(key for key in row if key not in columns)
            table = Table(show_header=True, box=None)
            for column in columns:
                table.add_column(column, style="cyan" if column == columns[0] else None)
            for row in payload:
                table.add_row(*(_cell(row.get(column)) for column in columns))
            return table
        return Text("\n".join(_cell(item) for item in payload))

    if isinstance(payload, dict):
        table = Table(show_header=False, box=None)
        table.add_column("Key", style="cyan", no_wrap=True)
        table.add_column("Value")
        for key in sorted(payload):
            table.add_row(str(key), _cell(payload[key]))
        return table

    return Text(_cell(payload))


def render_panel(snapshot: PanelSnapshot, clock: Callable[[], float] = time.time) -> Panel:
    """Render one panel with its cache status as subtitle."""
    if snapshot.state == PanelState.IDLE:
        body: RenderableType = Text("No device selected", style="dim")
    elif snapshot.loading:
        body = Text("Loading...", style="yellow")
    elif snapshot.state == PanelState.ERROR:
        body = Text(f"Error: {snapshot.last_error}", style="red")
    else:
        body = payload_renderable(snapshot.displayed_payload)

    status = render_cache_status(snapshot, clock)
    return Panel(
        body,
        title=snapshot.title,
        title_align="left",
        subtitle=status if status else None,
        subtitle_align="right",
        border_style="red" if snapshot.state == PanelState.ERROR else "blue",
    )


class Dashboard:
    """Panel host: owns the event bus, the orchestrator and the panels.

    This class provides:
    - Cache-first loading of every panel for the selected device
    - A single consumer of panel events (no locking in panels)
    - Periodic re-validation of ready panels
    - Live-updating rich rendering
    """

    def __init__(
        self,
        sources: Iterable[PanelSource],
        store: CacheStore | None = None,
        ttl_policy: TTLPolicy | None = None,
        console: Console | None = None,
        refresh_interval: float = 30,
        tick: float = 0.25,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize dashboard.

        Args:
            sources: Panel sources, rendered in order
            store: Cache store (None disables caching)
            ttl_policy: TTL per data type
            console: Rich console (default: new Console)
            refresh_interval: Seconds between re-validation of every panel
            tick: Maximum wait for an event before re-rendering
            clock: Wall-clock time source
        """
        self.bus = EventBus()
        self.orchestrator = CacheOrchestrator(
            store, post=self.bus.post, ttl_policy=ttl_policy, clock=clock
        )
        self.panels = [PanelLifecycle(source, self.orchestrator) for source in sources]
        self.console = console or Console()
        self.refresh_interval = refresh_interval
        self.tick = tick
        self.clock = clock
        self.device: str | None = None

    def panel(self, name: str) -> PanelLifecycle:
        """Look a panel up by source name.

        Raises:
            KeyError: If no panel has that name
        """
        for panel in self.panels:
            if panel.source.name == name:
                return panel
        raise KeyError(name)

    def switch_device(self, device: str | None) -> None:
        """Point every panel at a device (None clears the dashboard)."""
        logger.debug(f"Switching dashboard to device: {device}")
        self.device = device
        for panel in self.panels:
            panel.set_device(device)

    def refresh_all(self) -> None:
        """User-requested reload of every panel."""
        for panel in self.panels:
            panel.refresh()

    def focus_all(self) -> None:
        for panel in self.panels:
            panel.focus()

    def dispatch(self, event: PanelEvent) -> int:
        """Hand an event to the panels.

        Returns:
            Number of panels that applied it (0 for a stale event)
        """
        applied = sum(1 for panel in self.panels if panel.handle(event))
        if not applied:
            logger.debug(f"No panel accepted {type(event).__name__} for '{event.key}'")
        return applied

    async def settle(self) -> None:
        """Process events until no task is outstanding and the bus is empty."""
        while True:
            await self.orchestrator.drain()
            events = self.bus.drain()
            if not events and not self.orchestrator.pending:
                return
            for event in events:
                self.dispatch(event)

    def render(self) -> Group:
        """Render every panel."""
        header = Text(f"Device: {self.device or '—'}", style="bold")
        return Group(header, *(render_panel(p.snapshot(), self.clock) for p in self.panels))

    async def run(self, device: str, iterations: int | None = None) -> None:
        """Run the live dashboard for a device.

        Args:
            device: Device alias or address
            iterations: Number of render cycles (None = until cancelled)
        """
        self.switch_device(device)
        last_focus = time.monotonic()
        iteration = 0

        try:
            with Live(self.render(), console=self.console, refresh_per_second=4) as live:
                while iterations is None or iteration < iterations:
                    try:
                        event = await asyncio.wait_for(self.bus.get(), timeout=self.tick)
                    except TimeoutError:
                        pass
                    else:
                        self.dispatch(event)
                        for pending in self.bus.drain():
                            self.dispatch(pending)

                    if time.monotonic() - last_focus >= self.refresh_interval:
                        self.focus_all()
                        last_focus = time.monotonic()

                    live.update(self.render())
                    iteration += 1
        finally:
            for panel in self.panels:
                panel.teardown()


def run_dashboard(
    sources: Iterable[PanelSource],
    device: str,
    store: CacheStore | None = None,
    ttl_policy: TTLPolicy | None = None,
    refresh_interval: float = 30,
    console: Console | None = None,
) -> None:
    """Run the dashboard until Ctrl+C.

    Convenience function for running the dashboard from synchronous code.
    """
    dashboard = Dashboard(
        sources,
        store=store,
        ttl_policy=ttl_policy,
        console=console,
        refresh_interval=refresh_interval,
    )
    try:
        asyncio.run(dashboard.run(device))
    except KeyboardInterrupt:
        dashboard.console.print("\n[yellow]Dashboard stopped by user.[/yellow]")


__all__ = ["Dashboard", "payload_renderable", "render_panel", "run_dashboard"]
