"""Payload codecs - how a data type turns its payload into cache bytes."""

import json
from typing import Any, Protocol


class PayloadCodecError(Exception):
    """Raised when a payload cannot be encoded or decoded."""

    pass


class PayloadCodec(Protocol):
    def encode(self, payload: Any) -> bytes: ...

    def decode(self, data: bytes) -> Any: ...


class JsonCodec:
    """UTF-8 JSON codec, the default for device RPC payloads."""

    def encode(self, payload: Any) -> bytes:
        try:
            return json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise PayloadCodecError(f"Failed to encode payload: {e}") from e

    def decode(self, data: bytes) -> Any:
        try:
            return json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise PayloadCodecError(f"Failed to decode payload: {e}") from e


JSON_CODEC = JsonCodec()

__all__ = ["JSON_CODEC", "JsonCodec", "PayloadCodec", "PayloadCodecError"]
