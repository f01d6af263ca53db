"""
AnchorWatch — Consensus Tracker

Percentage of nodes currently synchronized, and which ones. Consensus
is lost whenever the percentage falls below the configured requirement;
the DecisionEngine turns that into a CONSENSUS_LOSS condition.
"""

from __future__ import annotations

from collections.abc import Sequence

from anchorwatch.systems.monitor.types import ConsensusState, Node, SyncStatus

# Below this the cluster is considered degraded rather than partially synced
_PARTIAL_SYNC_PCT: float = 66.0


class ConsensusTracker:
    def compute(self, nodes: Sequence[Node], required_pct: float) -> ConsensusState:
        total = len(nodes)
        synced_ids = frozenset(n.id for n in nodes if n.synchronized)
        pct = 100.0 * len(synced_ids) / total if total else 0.0
        pct = max(0.0, min(100.0, pct))

        if total and len(synced_ids) == total:
            status = SyncStatus.FULL_SYNC
        elif pct >= _PARTIAL_SYNC_PCT:
            status = SyncStatus.PARTIAL_SYNC
        else:
            status = SyncStatus.DEGRADED

        return ConsensusState(
            current_pct=pct,
            required_pct=required_pct,
            synchronized_node_ids=synced_ids,
            status=status,
        )

    @staticmethod
    def is_lost(state: ConsensusState) -> bool:
        return state.current_pct < state.required_pct
