"""
Shared fixtures for the monitor tests.

Everything here is deterministic: a manual clock that only moves when
told to, and a probe whose answers are scripted per node.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from anchorwatch.config import MonitorConfig, NodeSeed
from anchorwatch.systems.monitor.nodes import NodeHealthTracker
from anchorwatch.systems.monitor.types import HealthSample


class ManualClock:
    """Clock that advances only through advance() or sleep()."""

    def __init__(self) -> None:
        self._now = datetime(2026, 1, 1, tzinfo=timezone.utc)
        self._mono = 0.0
        self.sleeps: list[float] = []

    def now(self) -> datetime:
        return self._now

    def monotonic(self) -> float:
        return self._mono

    def advance(self, seconds: float) -> None:
        self._mono += seconds
        self._now += timedelta(seconds=seconds)

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds)
        await asyncio.sleep(0)


class ScriptedProbe:
    """
    Probe with per-node scripted outcomes.

    Nodes are reachable unless listed in `down`. Nodes in `raises` raise
    ConnectionError; nodes in `hangs` never answer.
    """

    def __init__(self, down: set[str] | None = None) -> None:
        self.down: set[str] = set(down or ())
        self.raises: set[str] = set()
        self.hangs: set[str] = set()
        self.calls: list[str] = []

    async def __call__(self, node_id: str) -> HealthSample:
        self.calls.append(node_id)
        if node_id in self.raises:
            raise ConnectionError(f"{node_id} refused connection")
        if node_id in self.hangs:
            await asyncio.Event().wait()
        if node_id in self.down:
            return HealthSample(reachable=False)
        return HealthSample(reachable=True, latency_ms=12.0, anchored=True)


def make_seeds(count: int = 4) -> list[NodeSeed]:
    return [NodeSeed(id=f"n{i}", location=f"site-{i}", region="test") for i in range(1, count + 1)]


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def probe() -> ScriptedProbe:
    return ScriptedProbe()


@pytest.fixture
def seeds() -> list[NodeSeed]:
    return make_seeds()


@pytest.fixture
def tracker(clock: ManualClock, seeds: list[NodeSeed]) -> NodeHealthTracker:
    t = NodeHealthTracker(MonitorConfig(), clock)
    t.register_nodes(seeds)
    return t


@pytest.fixture
def probe_factory() -> type[ScriptedProbe]:
    return ScriptedProbe
