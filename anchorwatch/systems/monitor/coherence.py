"""
AnchorWatch — Coherence Evaluator

Two scores per tick:
  internal     fraction of nodes currently synchronized
  distributed  mean per-node coherence

Status buckets are fixed for compatibility with existing dashboards:
  OPTIMAL     internal >= 0.945 and distributed >= 0.95
  GOOD        internal >= 0.940 and distributed >= 0.90
  ACCEPTABLE  internal >= 0.900
  CRITICAL    otherwise
"""

from __future__ import annotations

from collections.abc import Sequence

from anchorwatch.primitives.common import clamp01
from anchorwatch.systems.monitor.types import CoherenceState, CoherenceStatus, Node

_OPTIMAL_INTERNAL: float = 0.945
_OPTIMAL_DISTRIBUTED: float = 0.95
_GOOD_INTERNAL: float = 0.940
_GOOD_DISTRIBUTED: float = 0.90
_ACCEPTABLE_INTERNAL: float = 0.900


def classify_coherence(internal: float, distributed: float) -> CoherenceStatus:
    if internal >= _OPTIMAL_INTERNAL and distributed >= _OPTIMAL_DISTRIBUTED:
        return CoherenceStatus.OPTIMAL
    if internal >= _GOOD_INTERNAL and distributed >= _GOOD_DISTRIBUTED:
        return CoherenceStatus.GOOD
    if internal >= _ACCEPTABLE_INTERNAL:
        return CoherenceStatus.ACCEPTABLE
    return CoherenceStatus.CRITICAL


class CoherenceEvaluator:
    """Pure function of the current node snapshot. No state, no side effects."""

    def compute(self, nodes: Sequence[Node]) -> CoherenceState:
        total = len(nodes)
        if total == 0:
            return CoherenceState(internal=0.0, distributed=0.0, status=CoherenceStatus.CRITICAL)

        synced = sum(1 for n in nodes if n.synchronized)
        internal = clamp01(synced / total)
        distributed = clamp01(sum(n.coherence for n in nodes) / total)

        return CoherenceState(
            internal=internal,
            distributed=distributed,
            status=classify_coherence(internal, distributed),
        )
