"""Fixtures for panel lifecycle tests."""

import asyncio
from typing import Any

import pytest

from devdash.cache.data_types import DataType, TTLPolicy
from devdash.panels.events import EventBus
from devdash.panels.lifecycle import PanelSource
from devdash.panels.orchestrator import CacheOrchestrator


class FakeDevice:
    """Scriptable remote read.

    Each call pops the next queued result for the device (the last one
    repeats). Exceptions are raised. ``gate`` holds the call until set.
    """

    def __init__(self, results: dict[str, list[Any]] | None = None):
        self.results = {device: list(values) for device, values in (results or {}).items()}
        self.calls: list[str] = []
        self.gate: asyncio.Event | None = None

    async def fetch(self, device: str) -> Any:
        self.calls.append(device)
        if self.gate is not None:
            await self.gate.wait()
        queued = self.results[device]
        result = queued.pop(0) if len(queued) > 1 else queued[0]
        if isinstance(result, BaseException):
            raise result
        return result


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def ttl_policy():
    return TTLPolicy(overrides={DataType.SYSTEM: 60})


@pytest.fixture
def orchestrator(memory_store, bus, ttl_policy, clock):
    return CacheOrchestrator(memory_store, post=bus.post, ttl_policy=ttl_policy, clock=clock)


@pytest.fixture
def device():
    return FakeDevice({"A": [{"name": "A1"}], "B": [{"name": "B1"}]})


@pytest.fixture
def source(device):
    return PanelSource(name="system", title="System", data_type=DataType.SYSTEM, fetch=device.fetch)


@pytest.fixture
def settle(orchestrator, bus):
    """Run tasks and deliver events to panels until nothing is pending."""

    async def run(*panels):
        applied = []
        while True:
            await orchestrator.drain()
            events = bus.drain()
            if not events and not orchestrator.pending:
                return applied
            for event in events:
                handled = [panel.handle(event) for panel in panels]
                if any(handled):
                    applied.append(event)

    return run
