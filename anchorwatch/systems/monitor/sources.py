"""
AnchorWatch — Measurement Sources

Production and simulated implementations of the collaborators the engine
consumes: the clock, node probes, the frequency source, and the random
source that drives probabilistic recovery.

The simulated sources stand in for real network probes and frequency
measurements when the engine runs without live infrastructure.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from datetime import datetime
import itertools
import random
import time

from anchorwatch.primitives.common import utc_now
from anchorwatch.systems.monitor.types import HealthSample, RandomSource

# Simulated round-trip latency range (ms)
_LATENCY_MIN_MS: float = 10.0
_LATENCY_SPAN_MS: float = 50.0


class SystemClock:
    """Wall-clock time and real asyncio sleeping."""

    def now(self) -> datetime:
        return utc_now()

    def monotonic(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


class SequenceRandom:
    """
    Deterministic RandomSource that cycles through fixed draws.

    SequenceRandom([0.0]) makes every probabilistic recovery succeed,
    SequenceRandom([0.99]) makes every one fail.
    """

    def __init__(self, values: Sequence[float]) -> None:
        if not values:
            raise ValueError("SequenceRandom needs at least one value")
        self._values = itertools.cycle(values)

    def random(self) -> float:
        return next(self._values)


class SimulatedNodeProbe:
    """
    Probe that answers from a random draw instead of the network.

    A node is reachable with `success_probability`; reachable nodes report
    10–60ms latency and are anchored.
    """

    def __init__(
        self,
        success_probability: float = 0.9,
        rng: RandomSource | None = None,
    ) -> None:
        self._p = success_probability
        self._rng: RandomSource = rng or random.Random()

    async def __call__(self, node_id: str) -> HealthSample:
        if self._rng.random() >= self._p:
            return HealthSample(reachable=False)
        latency = _LATENCY_MIN_MS + self._rng.random() * _LATENCY_SPAN_MS
        return HealthSample(reachable=True, latency_ms=round(latency, 1), anchored=True)


class SimulatedFrequencySource:
    """Target frequency plus uniform noise of ±variance_hz/2."""

    def __init__(
        self,
        target_hz: float,
        variance_hz: float = 0.0002,
        rng: RandomSource | None = None,
    ) -> None:
        self._target = target_hz
        self._variance = variance_hz
        self._rng: RandomSource = rng or random.Random()

    def __call__(self) -> float:
        return self._target + (self._rng.random() - 0.5) * self._variance
