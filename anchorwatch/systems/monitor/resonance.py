"""
AnchorWatch — Resonance Stability Tracker

Samples a frequency from an injected source every tick and classifies
its deviation from the target into a stability band:

  RESONANT     deviation < 0.00005 Hz
  STABLE       deviation < 0.0001 Hz
  FLUCTUATING  deviation < 0.0005 Hz
  UNSTABLE     otherwise

Bands are monotonic: a larger deviation never maps to a more stable band.

The tracker remembers the previous band so the engine can react to
transitions. The first sample only establishes a baseline.
"""

from __future__ import annotations

import math
from typing import Any

import structlog

from anchorwatch.systems.monitor.types import (
    FrequencySource,
    ResonanceStability,
    ResonanceState,
)

logger = structlog.get_logger("anchorwatch.systems.monitor.resonance")

# Upper bounds (exclusive) of each band, most stable first
_BANDS: tuple[tuple[float, ResonanceStability], ...] = (
    (0.00005, ResonanceStability.RESONANT),
    (0.0001, ResonanceStability.STABLE),
    (0.0005, ResonanceStability.FLUCTUATING),
)


def classify_deviation(deviation: float) -> ResonanceStability:
    if math.isnan(deviation):
        return ResonanceStability.UNSTABLE
    for upper, band in _BANDS:
        if deviation < upper:
            return band
    return ResonanceStability.UNSTABLE


class ResonanceStabilityTracker:
    def __init__(self, target_hz: float) -> None:
        self._target_hz = target_hz
        self._logger = logger.bind(component="resonance_tracker")

        self._latest: ResonanceState | None = None
        self._previous_stability: ResonanceStability | None = None

        # Metrics
        self._samples: int = 0
        self._source_failures: int = 0
        self._transitions: int = 0

    def sample(self, frequency_source: FrequencySource) -> ResonanceState:
        """Read the source once and classify. A failing source repeats the last reading."""
        try:
            current_hz = float(frequency_source())
        except Exception as exc:
            self._source_failures += 1
            current_hz = self._latest.current_hz if self._latest is not None else 0.0
            self._logger.warning(
                "frequency_source_error",
                error=str(exc),
                fallback_hz=current_hz,
            )

        deviation = abs(current_hz - self._target_hz)
        stability = classify_deviation(deviation)
        state = ResonanceState(
            current_hz=current_hz,
            target_hz=self._target_hz,
            deviation=deviation if not math.isnan(deviation) else math.inf,
            stability=stability,
        )

        self._previous_stability = self._latest.stability if self._latest is not None else None
        self._latest = state
        self._samples += 1

        if self.changed:
            self._transitions += 1
            self._logger.info(
                "resonance_stability_changed",
                previous=self._previous_stability.value if self._previous_stability else None,
                current=stability.value,
                deviation=deviation,
            )
        return state

    @property
    def latest(self) -> ResonanceState | None:
        return self._latest

    @property
    def previous_stability(self) -> ResonanceStability | None:
        return self._previous_stability

    @property
    def changed(self) -> bool:
        """Whether the latest sample left the previous sample's band."""
        if self._latest is None or self._previous_stability is None:
            return False
        return self._latest.stability != self._previous_stability

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "samples": self._samples,
            "source_failures": self._source_failures,
            "transitions": self._transitions,
            "stability": self._latest.stability.value if self._latest else None,
        }
