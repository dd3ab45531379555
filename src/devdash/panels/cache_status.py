"""Cache status indicator shown under each panel."""

import time
from collections.abc import Callable

from rich.text import Text

from devdash.panels.lifecycle import PanelSnapshot


def format_age(seconds: float) -> str:
    """Format an age as a compact string.

    Example:
        >>> format_age(42)
        '42s'
        >>> format_age(3 * 3600 + 60)
        '3h1m'
    """
    seconds = max(0, int(seconds))
    if seconds < 60:
        return f"{seconds}s"
    minutes, seconds = divmod(seconds, 60)
    if minutes < 60:
        return f"{minutes}m"
    hours, minutes = divmod(minutes, 60)
    if hours < 24:
        return f"{hours}h{minutes}m" if minutes else f"{hours}h"
    days, hours = divmod(hours, 24)
    return f"{days}d{hours}h" if hours else f"{days}d"


def render_cache_status(snapshot: PanelSnapshot, clock: Callable[[], float] = time.time) -> Text:
    """Render "updated Xs ago" plus a refreshing marker."""
    text = Text(style="dim")
    if snapshot.cached_at is not None:
        text.append(f"updated {format_age(clock() - snapshot.cached_at)} ago")
    if snapshot.background_refreshing:
        if text:
            text.append(" ")
        text.append("↻ refreshing", style="yellow")
    return text


__all__ = ["format_age", "render_cache_status"]
