"""
AnchorWatch — Remediation Handlers

Concrete corrective actions, one per decision type:

  COHERENCE_DROP    coherence_remediation         lift low-coherence nodes
  CONSENSUS_LOSS    resynchronize                 retry unsynchronized nodes
  NODE_FAILURE      redistribute_load             hand failed ids to a load shedder
  STABILITY_CHANGE  adjust_stability_parameters   extension point, no-op

Handlers mutate NodeHealthTracker records directly; they run inside a
tick, so nothing else touches the records concurrently. Any exception
they raise is the DecisionEngine's to catch.

The dispatch table is checked for completeness at construction: adding
a DecisionType without a handler fails fast instead of at the first tick
that raises it.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
import random
from typing import TYPE_CHECKING, Any

import structlog

from anchorwatch.systems.monitor.types import (
    Clock,
    Decision,
    DecisionType,
    Node,
    RandomSource,
    RemediationAction,
    RemediationResult,
)

if TYPE_CHECKING:
    from anchorwatch.config import MonitorConfig
    from anchorwatch.systems.monitor.nodes import NodeHealthTracker

logger = structlog.get_logger("anchorwatch.systems.monitor.remediation")

RemediationHandler = Callable[[Decision, "NodeHealthTracker"], Awaitable[RemediationResult]]

# Action each decision type maps to, also used to label failed invocations
ACTIONS: dict[DecisionType, RemediationAction] = {
    DecisionType.COHERENCE_DROP: RemediationAction.COHERENCE_REMEDIATION,
    DecisionType.CONSENSUS_LOSS: RemediationAction.NODE_RESYNCHRONIZATION,
    DecisionType.NODE_FAILURE: RemediationAction.LOAD_REDISTRIBUTION,
    DecisionType.STABILITY_CHANGE: RemediationAction.STABILITY_ADJUSTMENT,
}


class RemediationHandlers:
    def __init__(
        self,
        config: MonitorConfig,
        clock: Clock,
        rng: RandomSource | None = None,
    ) -> None:
        self._config = config
        self._clock = clock
        self._rng: RandomSource = rng or random.Random()
        self._logger = logger.bind(component="remediation")

        self._handlers: dict[DecisionType, RemediationHandler] = {
            DecisionType.COHERENCE_DROP: self.coherence_remediation,
            DecisionType.CONSENSUS_LOSS: self.resynchronize,
            DecisionType.NODE_FAILURE: self.redistribute_load,
            DecisionType.STABILITY_CHANGE: self.adjust_stability_parameters,
        }
        missing = [t.value for t in DecisionType if t not in self._handlers]
        if missing:
            raise TypeError(f"No remediation handler for decision types: {missing}")

        # Failed node ids awaiting an external load shedder
        self._pending_redistribution: tuple[str, ...] = ()

        # Metrics
        self._invocations: dict[DecisionType, int] = {t: 0 for t in DecisionType}

    # ─── Dispatch ────────────────────────────────────────────────────

    def handler_for(self, decision_type: DecisionType) -> RemediationHandler:
        self._invocations[decision_type] += 1
        return self._handlers[decision_type]

    def handler_name(self, decision_type: DecisionType) -> str:
        handler = self._handlers[decision_type]
        return getattr(handler, "__name__", str(handler))

    # ─── Handlers ────────────────────────────────────────────────────

    async def coherence_remediation(
        self,
        decision: Decision,
        tracker: NodeHealthTracker,
    ) -> RemediationResult:
        """Every node below the coherence floor gains a fixed step, capped at 1.0."""
        floor = self._config.remediation_coherence_floor
        step = self._config.remediation_coherence_step
        now = self._clock.now()

        affected: list[str] = []
        for record in tracker.records():
            if record.coherence < floor:
                record.raise_coherence(step, now)
                affected.append(record.id)

        self._logger.info("coherence_remediated", nodes_affected=len(affected))
        return RemediationResult(
            action=RemediationAction.COHERENCE_REMEDIATION,
            affected=tuple(affected),
            success=True,
        )

    async def resynchronize(
        self,
        decision: Decision,
        tracker: NodeHealthTracker,
    ) -> RemediationResult:
        """Retry each unsynchronized node; each attempt succeeds with a configured probability."""
        p = self._config.resync_success_probability
        now = self._clock.now()

        attempted = 0
        recovered: list[str] = []
        for record in tracker.records():
            if record.synchronized:
                continue
            attempted += 1
            if self._rng.random() < p:
                record.mark_resynchronized(now)
                recovered.append(record.id)

        self._logger.info(
            "nodes_resynchronized",
            attempted=attempted,
            recovered=len(recovered),
        )
        return RemediationResult(
            action=RemediationAction.NODE_RESYNCHRONIZATION,
            affected=tuple(recovered),
            success=True,
        )

    async def redistribute_load(
        self,
        decision: Decision,
        tracker: NodeHealthTracker,
    ) -> RemediationResult:
        """
        Record the failed nodes for an external load shedder.

        Traffic is not moved here; that belongs to whatever consumes
        pending_redistribution.
        """
        failed = tuple(_node_ids(decision.context.get("nodes", [])))
        self._pending_redistribution = failed
        self._logger.info("load_redistribution_requested", failed_nodes=list(failed))
        return RemediationResult(
            action=RemediationAction.LOAD_REDISTRIBUTION,
            affected=failed,
            success=True,
        )

    async def adjust_stability_parameters(
        self,
        decision: Decision,
        tracker: NodeHealthTracker,
    ) -> RemediationResult:
        """No-op by default. Override to plug in control logic."""
        return RemediationResult(action=RemediationAction.STABILITY_ADJUSTMENT, success=True)

    # ─── State ───────────────────────────────────────────────────────

    @property
    def pending_redistribution(self) -> tuple[str, ...]:
        return self._pending_redistribution

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "invocations": {t.value: c for t, c in self._invocations.items()},
            "pending_redistribution": list(self._pending_redistribution),
        }


def _node_ids(nodes: Iterable[Node | str]) -> list[str]:
    return [n if isinstance(n, str) else n.id for n in nodes]
