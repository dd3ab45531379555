"""devdash - Terminal dashboard for networked embedded devices

Philosophy:
- Show cached data instantly, refresh in the background
- Never block a panel that already has something to show
- The cache is best-effort: failures fall back to the device

Panels read device data over JSON-RPC, keep it in a TTL-bounded file cache
keyed by device and data type, and render it in a live terminal view.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
