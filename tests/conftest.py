"""
Shared test fixtures and configuration for devdash tests.

This module provides common fixtures used across all test types:
- Controllable clock
- Temporary directories for cache/config
- Sample device RPC payloads
- Cache stores
"""

from typing import Any

import pytest

from devdash.cache.store import MemoryCacheStore

# ============================================================================
# CLOCK
# ============================================================================


class FakeClock:
    """Manually advanced epoch clock."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    """Clock starting at a fixed epoch time."""
    return FakeClock()


# ============================================================================
# DIRECTORY FIXTURES
# ============================================================================


@pytest.fixture
def temp_cache_dir(tmp_path):
    """Temporary cache directory (not created)."""
    return tmp_path / "cache"


@pytest.fixture
def temp_config_dir(tmp_path):
    """Temporary .devdash directory for config file operations."""
    config_dir = tmp_path / ".devdash"
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def temp_home_dir(tmp_path, monkeypatch):
    """Temporary home directory.

    Sets HOME so nothing touches the real user home directory.
    """
    home_dir = tmp_path / "home"
    home_dir.mkdir()
    monkeypatch.setenv("HOME", str(home_dir))
    return home_dir


# ============================================================================
# STORES
# ============================================================================


@pytest.fixture
def memory_store(clock):
    """In-process cache store driven by the fake clock."""
    return MemoryCacheStore(clock=clock)


# ============================================================================
# SAMPLE DEVICE PAYLOADS
# ============================================================================


@pytest.fixture
def sample_status() -> dict[str, Any]:
    """Shelly.GetStatus result of a two-channel relay with sensors."""
    return {
        "sys": {"uptime": 3600, "ram_free": 120000},
        "switch:0": {"id": 0, "output": True, "apower": 12.5},
        "switch:1": {"id": 1, "output": True, "apower": 150.0},
        "pm1:0": {"id": 0, "apower": 0.0},
        "input:0": {"id": 0, "state": False},
        "temperature:100": {"id": 100, "tC": 21.4, "tF": 70.5},
        "humidity:100": {"id": 100, "rh": 48.2},
        "wifi": {"sta_ip": "192.168.1.40", "rssi": -61},
    }


@pytest.fixture
def sample_webhooks() -> list[dict[str, Any]]:
    """Webhook.List hooks."""
    return [
        {"id": 1, "event": "switch.on", "enable": True, "urls": ["http://hub/on"]},
        {"id": 2, "event": "switch.off", "enable": False, "urls": ["http://hub/off"]},
    ]
