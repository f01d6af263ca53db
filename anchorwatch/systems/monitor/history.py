"""
AnchorWatch — Metric History

Rolling per-metric series recorded once per tick, for charting and
trend queries. At the default tick interval (5s) and size (300) each
series spans about 25 minutes.
"""

from __future__ import annotations

from collections import deque
from datetime import timedelta

from anchorwatch.systems.monitor.types import (
    Clock,
    CoherenceState,
    ConsensusState,
    MetricName,
    MetricPoint,
    ResonanceState,
)

_DEFAULT_HISTORY_SIZE: int = 300


class MetricHistory:
    def __init__(self, clock: Clock, history_size: int = _DEFAULT_HISTORY_SIZE) -> None:
        self._clock = clock
        self._series: dict[MetricName, deque[MetricPoint]] = {
            name: deque(maxlen=history_size) for name in MetricName
        }

    def record(
        self,
        coherence: CoherenceState,
        consensus: ConsensusState,
        resonance: ResonanceState | None,
    ) -> None:
        now = self._clock.now()
        self._series[MetricName.COHERENCE].append(MetricPoint(
            timestamp=now,
            values={"internal": coherence.internal, "distributed": coherence.distributed},
        ))
        self._series[MetricName.CONSENSUS].append(MetricPoint(
            timestamp=now,
            values={"percentage": consensus.current_pct},
        ))
        if resonance is not None:
            self._series[MetricName.RESONANCE].append(MetricPoint(
                timestamp=now,
                values={"value": resonance.current_hz, "stability": resonance.stability.value},
            ))

    def query(self, metric: str, duration_s: float = 60.0) -> tuple[MetricPoint, ...]:
        """Points newer than now - duration_s. Unknown metrics yield nothing."""
        try:
            name = MetricName(metric)
        except ValueError:
            return ()
        cutoff = self._clock.now() - timedelta(seconds=duration_s)
        return tuple(p for p in list(self._series[name]) if p.timestamp >= cutoff)

    def __len__(self) -> int:
        return max(len(s) for s in self._series.values())
