"""Device transport."""

from devdash.devices.rpc_client import DeviceRpcClient, DeviceRpcError

__all__ = ["DeviceRpcClient", "DeviceRpcError"]
