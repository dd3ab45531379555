"""Device RPC client - JSON-RPC over HTTP to networked devices.

Devices expose ``POST http://<host>/rpc`` taking ``{"id", "method", "params"}``
and answering ``{"id", "result"}`` or ``{"id", "error": {"code", "message"}}``.
Every call is bounded by a timeout so panel fetchers always resolve.
"""

import itertools
import logging
from typing import Any

import requests

logger = logging.getLogger(__name__)


class DeviceRpcError(Exception):
    """Raised when a device RPC call fails."""

    def __init__(self, message: str, code: int | None = None):
        super().__init__(message)
        self.code = code


class DeviceRpcClient:
    """Thin JSON-RPC client.

    Device identifiers are resolved through ``aliases`` (name -> host);
    anything not in the alias table is used as the host itself.
    """

    DEFAULT_TIMEOUT = 10

    def __init__(
        self,
        aliases: dict[str, str] | None = None,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ):
        self.aliases = dict(aliases or {})
        self.timeout = timeout or self.DEFAULT_TIMEOUT
        self.session = session
        self._ids = itertools.count(1)

    def resolve_host(self, device: str) -> str:
        """Resolve a device alias to a host."""
        return self.aliases.get(device, device)

    def url_for(self, device: str) -> str:
        host = self.resolve_host(device)
        if host.startswith(("http://", "https://")):
            return f"{host.rstrip('/')}/rpc"
        return f"http://{host}/rpc"

    def call(self, device: str, method: str, params: dict[str, Any] | None = None) -> Any:
        """Invoke an RPC method on a device.

        Args:
            device: Device alias or host
            method: RPC method (e.g. "Sys.GetConfig")
            params: Optional method parameters

        Returns:
            The ``result`` member of the response

        Raises:
            DeviceRpcError: On transport, HTTP or RPC-level errors
        """
        body: dict[str, Any] = {"id": next(self._ids), "method": method}
        if params:
            body["params"] = params

        url = self.url_for(device)
        post = self.session.post if self.session is not None else requests.post
        logger.debug(f"RPC {method} -> {url}")

        try:
            response = post(url, json=body, timeout=self.timeout)
        except requests.Timeout as e:
            raise DeviceRpcError(f"{device}: {method} timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            raise DeviceRpcError(f"{device}: {method} failed: {e}") from e

        if response.status_code != 200:
            raise DeviceRpcError(
                f"{device}: {method} returned HTTP {response.status_code}",
                code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise DeviceRpcError(f"{device}: {method} returned invalid JSON") from e

        error = data.get("error") if isinstance(data, dict) else None
        if error:
            code = error.get("code")
            message = error.get("message", "unknown error")
            raise DeviceRpcError(f"{device}: {method} failed ({code}): {message}", code=code)

        if not isinstance(data, dict) or "result" not in data:
            raise DeviceRpcError(f"{device}: {method} response has no result")

        return data["result"]


__all__ = ["DeviceRpcClient", "DeviceRpcError"]
