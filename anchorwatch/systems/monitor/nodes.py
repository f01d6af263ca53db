"""
AnchorWatch — Node Health Tracker

Owns the set of monitored nodes and their last-known health. Every tick
each node is probed once, concurrently, under a deadline. A probe that
reports unreachable, raises, or misses its deadline is a failed probe:
the node goes OFFLINE and its coherence decays. Failure is data here,
never control flow.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterator, Sequence
from typing import TYPE_CHECKING, Any

import structlog

from anchorwatch.systems.monitor.errors import InitError
from anchorwatch.systems.monitor.types import (
    Clock,
    HealthSample,
    Node,
    NodeHealthRecord,
    NodeProbe,
    NodeStatus,
)

if TYPE_CHECKING:
    from anchorwatch.config import MonitorConfig, NodeSeed

logger = structlog.get_logger("anchorwatch.systems.monitor.nodes")


class NodeHealthTracker:
    """
    Per-node health records, mutated only inside a tick.

    Readers get frozen Node snapshots from get_nodes(). Remediation
    handlers get the mutable records through records().
    """

    def __init__(self, config: MonitorConfig, clock: Clock) -> None:
        self._config = config
        self._clock = clock
        self._logger = logger.bind(component="node_tracker")

        # Insertion order is registration order
        self._records: dict[str, NodeHealthRecord] = {}
        self._registered: bool = False

        # Metrics
        self._total_probe_rounds: int = 0
        self._total_timeouts: int = 0
        self._total_probe_errors: int = 0

    # ─── Registration ────────────────────────────────────────────────

    def register_nodes(self, seeds: Sequence[NodeSeed]) -> None:
        """
        Initialize the node set. Allowed once.

        Validates the whole batch before touching state, so a bad seed
        leaves the tracker empty.
        """
        if self._registered:
            raise InitError("Nodes are already registered")
        if not seeds:
            raise InitError("At least one node seed is required")

        records: dict[str, NodeHealthRecord] = {}
        for seed in seeds:
            node_id = seed.id.strip()
            if not node_id:
                raise InitError("Node seed has a blank id")
            if node_id in records:
                raise InitError(f"Duplicate node id: {node_id}")
            records[node_id] = NodeHealthRecord(
                id=node_id,
                location=seed.location,
                region=seed.region,
                status=NodeStatus.INITIALIZING,
                coherence=seed.coherence,
                synchronized=False,
            )

        self._records = records
        self._registered = True
        self._logger.info("nodes_registered", count=len(records), node_ids=list(records))

    @property
    def is_registered(self) -> bool:
        return self._registered

    # ─── Probing ─────────────────────────────────────────────────────

    async def probe(self, probe_fn: NodeProbe) -> None:
        """Probe every node once, in parallel. Never raises for a node failure."""
        if not self._records:
            return

        self._total_probe_rounds += 1
        timeout_s = self._config.probe_timeout_ms / 1000.0
        await asyncio.gather(
            *(
                self._probe_node(record, probe_fn, timeout_s)
                for record in self._records.values()
            ),
            return_exceptions=True,
        )

    async def _probe_node(
        self,
        record: NodeHealthRecord,
        probe_fn: NodeProbe,
        timeout_s: float,
    ) -> None:
        was_synchronized = record.synchronized
        try:
            raw = await asyncio.wait_for(probe_fn(record.id), timeout=timeout_s)
            sample = raw if isinstance(raw, HealthSample) else HealthSample.model_validate(raw)
        except TimeoutError:
            self._total_timeouts += 1
            record.record_failure(self._config.coherence_decay_step)
            self._logger.warning(
                "node_probe_timeout",
                node_id=record.id,
                timeout_s=timeout_s,
                consecutive_failures=record.consecutive_failures,
            )
            return
        except Exception as exc:
            self._total_probe_errors += 1
            record.record_failure(self._config.coherence_decay_step)
            self._logger.warning(
                "node_probe_error",
                node_id=record.id,
                error=str(exc),
                consecutive_failures=record.consecutive_failures,
            )
            return

        if sample.reachable:
            record.record_success(
                sample,
                self._config.coherence_recovery_step,
                self._clock.now(),
            )
            if not was_synchronized:
                self._logger.info("node_synchronized", node_id=record.id, status=record.status.value)
        else:
            record.record_failure(self._config.coherence_decay_step)
            if was_synchronized:
                self._logger.warning("node_lost_sync", node_id=record.id)

    # ─── State ───────────────────────────────────────────────────────

    def get_nodes(self) -> tuple[Node, ...]:
        """Frozen snapshot of every node, in registration order."""
        return tuple(record.snapshot() for record in self._records.values())

    def records(self) -> Iterator[NodeHealthRecord]:
        """Mutable records. For remediation handlers inside a tick only."""
        return iter(list(self._records.values()))

    def get(self, node_id: str) -> NodeHealthRecord | None:
        return self._records.get(node_id)

    def unsynchronized(self) -> list[Node]:
        return [r.snapshot() for r in self._records.values() if not r.synchronized]

    def __len__(self) -> int:
        return len(self._records)

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "nodes": len(self._records),
            "probe_rounds": self._total_probe_rounds,
            "probe_timeouts": self._total_timeouts,
            "probe_errors": self._total_probe_errors,
            "per_node": {
                nid: {
                    "status": r.status.value,
                    "coherence": round(r.coherence, 4),
                    "latency_ms": r.latency_ms,
                    "consecutive_failures": r.consecutive_failures,
                    "total_failures": r.total_failures,
                }
                for nid, r in self._records.items()
            },
        }
