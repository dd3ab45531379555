"""Built-in panel sources backed by the device RPC client.

Each source names a data type, a fetcher that performs the RPC read(s) and
shapes the result for display, and the codec used to cache it.
"""

import logging
from typing import Any

from devdash.cache.data_types import DataType
from devdash.devices.rpc_client import DeviceRpcClient
from devdash.panels.lifecycle import PanelSource

logger = logging.getLogger(__name__)

PANEL_NAMES = ("info", "system", "wifi", "webhooks", "kvs", "schedules", "power", "environment")
DEFAULT_PANELS = ("system", "webhooks", "power", "environment")

# Components reporting active power (W)
_POWER_COMPONENTS = ("switch", "pm1", "em1", "cover", "light")


def _component_type(key: str) -> str:
    return key.split(":", 1)[0]


def rank_power(status: dict[str, Any]) -> list[dict[str, Any]]:
    """Rank power-reporting components by active power, highest first.

    Args:
        status: ``Shelly.GetStatus`` result

    Returns:
        List of {"component", "apower", "output"} dicts
    """
    ranking = []
    for key, value in status.items():
        if _component_type(key) not in _POWER_COMPONENTS or not isinstance(value, dict):
            continue
        if "apower" not in value:
            continue
        ranking.append(
            {
                "component": key,
                "apower": float(value.get("apower") or 0.0),
                "output": value.get("output"),
            }
        )
    ranking.sort(key=lambda item: (-item["apower"], item["component"]))
    return ranking


def environment_readings(status: dict[str, Any]) -> list[dict[str, Any]]:
    """Extract temperature and humidity sensor readings.

    Args:
        status: ``Shelly.GetStatus`` result

    Returns:
        List of {"component", "temperature"} / {"component", "humidity"} dicts
    """
    readings = []
    for key in sorted(status):
        value = status[key]
        if not isinstance(value, dict):
            continue
        component_type = _component_type(key)
        if component_type == "temperature" and value.get("tC") is not None:
            readings.append({"component": key, "temperature": value["tC"]})
        elif component_type == "humidity" and value.get("rh") is not None:
            readings.append({"component": key, "humidity": value["rh"]})
    return readings


def normalize_kvs(result: dict[str, Any]) -> list[dict[str, Any]]:
    """Normalize ``KVS.GetMany`` output to a key-sorted list.

    Older firmware returns ``items`` as a mapping, newer as a list.
    """
    items = result.get("items") or []
    if isinstance(items, dict):
        items = [{"key": key, **value} for key, value in items.items()]
    return sorted(
        ({"key": item.get("key"), "value": item.get("value"), "etag": item.get("etag")} for item in items),
        key=lambda item: str(item["key"]),
    )


def build_sources(client: DeviceRpcClient) -> dict[str, PanelSource]:
    """Create the built-in panel sources for a client."""

    def device_info(device: str) -> dict[str, Any]:
        return client.call(device, "Shelly.GetDeviceInfo")

    def system(device: str) -> dict[str, Any]:
        return client.call(device, "Sys.GetConfig")

    def wifi(device: str) -> dict[str, Any]:
        return client.call(device, "WiFi.GetConfig")

    def webhooks(device: str) -> list[dict[str, Any]]:
        return client.call(device, "Webhook.List").get("hooks", [])

    def kvs(device: str) -> list[dict[str, Any]]:
        return normalize_kvs(client.call(device, "KVS.GetMany"))

    def schedules(device: str) -> list[dict[str, Any]]:
        return client.call(device, "Schedule.List").get("jobs", [])

    def power(device: str) -> list[dict[str, Any]]:
        return rank_power(client.call(device, "Shelly.GetStatus"))

    def environment(device: str) -> list[dict[str, Any]]:
        return environment_readings(client.call(device, "Shelly.GetStatus"))

    sources = [
        PanelSource("info", "Device Info", DataType.DEVICE_INFO, device_info),
        PanelSource("system", "System", DataType.SYSTEM, system),
        PanelSource("wifi", "WiFi", DataType.WIFI, wifi),
        PanelSource("webhooks", "Webhooks", DataType.WEBHOOKS, webhooks),
        PanelSource("kvs", "KVS", DataType.KVS, kvs),
        PanelSource("schedules", "Schedules", DataType.SCHEDULES, schedules),
        PanelSource("power", "Power Ranking", DataType.POWER_RANKING, power),
        PanelSource("environment", "Environment", DataType.ENVIRONMENT, environment),
    ]
    return {source.name: source for source in sources}


def source_for_data_type(sources: dict[str, PanelSource], data_type: DataType) -> PanelSource | None:
    """Find the source that produces a data type."""
    for source in sources.values():
        if source.data_type == data_type:
            return source
    return None


__all__ = [
    "DEFAULT_PANELS",
    "PANEL_NAMES",
    "build_sources",
    "environment_readings",
    "normalize_kvs",
    "rank_power",
    "source_for_data_type",
]
