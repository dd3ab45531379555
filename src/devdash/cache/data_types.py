"""Data Types Module - Cacheable device artifacts and their TTLs.

Philosophy:
- One enum value per cacheable artifact, doubling as its on-disk sub-path
- TTL follows volatility: hardware facts live long, automation state short
- Per-type overrides come from configuration, never from callers

Public API (the "studs"):
    DataType: Enum of cacheable device data types
    DEFAULT_TTLS: Default TTL (seconds) per data type
    TTLPolicy: Resolves the TTL for a data type with config overrides
    data_type_for_resource: Map a CLI resource word to a DataType
"""

import logging
from dataclasses import dataclass, field
from enum import StrEnum

logger = logging.getLogger(__name__)

MINUTE = 60
HOUR = 60 * MINUTE


class DataType(StrEnum):
    """Cacheable device data types."""

    DEVICE_INFO = "deviceinfo"
    COMPONENTS = "components"
    SYSTEM = "system"
    WIFI = "wifi"
    SECURITY = "security"
    CLOUD = "cloud"
    BLE = "ble"
    MQTT = "protocols/mqtt"
    MODBUS = "protocols/modbus"
    ETHERNET = "protocols/ethernet"
    MATTER = "smarthome/matter"
    ZIGBEE = "smarthome/zigbee"
    LORA = "smarthome/lora"
    ZWAVE = "smarthome/zwave"
    FIRMWARE = "firmware"
    SCHEDULES = "automation/schedules"
    WEBHOOKS = "automation/webhooks"
    VIRTUALS = "automation/virtuals"
    INPUTS = "automation/inputs"
    KVS = "automation/kvs"
    SCRIPTS = "automation/scripts"
    POWER_RANKING = "monitor/power"
    ENVIRONMENT = "monitor/environment"


# TTL by volatility:
# - Hardware info and component lists only change with a firmware update (24h)
# - Settings change occasionally through the dashboard or the device UI (30min-1h)
# - Automation objects are edited often and drive panels directly (5-10min)
# - Monitor panels show live readings (1min)
DEFAULT_TTLS: dict[DataType, int] = {
    DataType.DEVICE_INFO: 24 * HOUR,
    DataType.COMPONENTS: 24 * HOUR,
    DataType.SYSTEM: 1 * HOUR,
    DataType.WIFI: 30 * MINUTE,
    DataType.SECURITY: 1 * HOUR,
    DataType.CLOUD: 30 * MINUTE,
    DataType.BLE: 1 * HOUR,
    DataType.MQTT: 1 * HOUR,
    DataType.MODBUS: 1 * HOUR,
    DataType.ETHERNET: 1 * HOUR,
    DataType.MATTER: 30 * MINUTE,
    DataType.ZIGBEE: 30 * MINUTE,
    DataType.LORA: 30 * MINUTE,
    DataType.ZWAVE: 30 * MINUTE,
    DataType.FIRMWARE: 1 * HOUR,
    DataType.SCHEDULES: 5 * MINUTE,
    DataType.WEBHOOKS: 5 * MINUTE,
    DataType.VIRTUALS: 5 * MINUTE,
    DataType.INPUTS: 10 * MINUTE,
    DataType.KVS: 5 * MINUTE,
    DataType.SCRIPTS: 5 * MINUTE,
    DataType.POWER_RANKING: 1 * MINUTE,
    DataType.ENVIRONMENT: 1 * MINUTE,
}

FALLBACK_TTL = 5 * MINUTE

_RESOURCE_ALIASES: dict[str, DataType] = {
    "schedule": DataType.SCHEDULES,
    "webhook": DataType.WEBHOOKS,
    "virtual": DataType.VIRTUALS,
    "script": DataType.SCRIPTS,
    "input": DataType.INPUTS,
    "info": DataType.DEVICE_INFO,
    "component": DataType.COMPONENTS,
    "power": DataType.POWER_RANKING,
    "env": DataType.ENVIRONMENT,
}


def parse_data_type(name: str) -> DataType | None:
    """Resolve a data type from its enum name or its value.

    Args:
        name: Enum name (case-insensitive, e.g. "webhooks") or value
            (e.g. "automation/webhooks")

    Returns:
        DataType, or None if the name is unknown
    """
    normalized = name.strip().lower()
    for data_type in DataType:
        if normalized in (data_type.name.lower(), data_type.value):
            return data_type
    return None


def data_type_for_resource(resource: str) -> DataType | None:
    """Map a CLI resource word to its cached data type.

    Singular and plural forms are accepted.

    Example:
        >>> data_type_for_resource("webhook")
        <DataType.WEBHOOKS: 'automation/webhooks'>
        >>> data_type_for_resource("unknown") is None
        True
    """
    normalized = resource.strip().lower().replace("-", "_")
    if normalized in _RESOURCE_ALIASES:
        return _RESOURCE_ALIASES[normalized]
    return parse_data_type(normalized)


@dataclass
class TTLPolicy:
    """TTL lookup with per-type overrides.

    Attributes:
        overrides: TTL in seconds keyed by DataType
    """

    overrides: dict[DataType, int] = field(default_factory=dict)

    @classmethod
    def from_config(cls, ttl_config: dict[str, int] | None) -> "TTLPolicy":
        """Build a policy from the ``[cache.ttl]`` config table.

        Unknown type names and non-positive values are skipped with a warning.
        """
        overrides: dict[DataType, int] = {}
        for name, seconds in (ttl_config or {}).items():
            data_type = parse_data_type(name)
            if data_type is None:
                logger.warning(f"Ignoring TTL override for unknown data type '{name}'")
                continue
            if isinstance(seconds, bool) or not isinstance(seconds, int) or seconds <= 0:
                logger.warning(f"Ignoring invalid TTL override for '{name}': {seconds!r}")
                continue
            overrides[data_type] = seconds
        return cls(overrides=overrides)

    def ttl_for(self, data_type: DataType) -> int:
        """Get the TTL in seconds for a data type."""
        if data_type in self.overrides:
            return self.overrides[data_type]
        return DEFAULT_TTLS.get(data_type, FALLBACK_TTL)


__all__ = [
    "DEFAULT_TTLS",
    "DataType",
    "TTLPolicy",
    "data_type_for_resource",
    "parse_data_type",
]
