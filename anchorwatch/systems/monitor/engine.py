"""
AnchorWatch — Decision Engine

Ties the monitor together. One tick:

  1. Probe every node (NodeHealthTracker)
  2. Sample coherence, consensus and resonance from the node snapshot
  3. Raise threshold alerts
  4. Detect conditions, all from the same tick-start snapshot:
       COHERENCE_DROP    internal coherence below threshold
       CONSENSUS_LOSS    synchronized percentage below requirement
       NODE_FAILURE      any node unsynchronized
       STABILITY_CHANGE  resonance band differs from the previous tick
  5. Decide each condition once:
       sovereign type    → L3_SOVEREIGN, logged, awaits external authorization
       auto_remediate    → L1_AUTONOMOUS, matching handler runs
       otherwise         → L2_ADVISORY, logged, nothing touched
  6. Record metric history

A handler that raises or overruns its deadline becomes a CRITICAL alert
and a failed RemediationResult. The tick always completes.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import structlog

from anchorwatch.systems.monitor.coherence import CoherenceEvaluator
from anchorwatch.systems.monitor.consensus import ConsensusTracker
from anchorwatch.systems.monitor.remediation import ACTIONS
from anchorwatch.systems.monitor.resonance import ResonanceStabilityTracker
from anchorwatch.systems.monitor.types import (
    AlertSeverity,
    Clock,
    CoherenceState,
    ConsensusState,
    Decision,
    DecisionLevel,
    DecisionType,
    FrequencySource,
    Node,
    NodeProbe,
    RemediationResult,
    ResonanceStability,
    ResonanceState,
    TickSummary,
)

if TYPE_CHECKING:
    from anchorwatch.config import MonitorConfig
    from anchorwatch.systems.monitor.alerts import AlertBus
    from anchorwatch.systems.monitor.decisions import DecisionLog
    from anchorwatch.systems.monitor.history import MetricHistory
    from anchorwatch.systems.monitor.nodes import NodeHealthTracker
    from anchorwatch.systems.monitor.remediation import RemediationHandlers

logger = structlog.get_logger("anchorwatch.systems.monitor.engine")

# Bands noisy enough to announce
_NOISY_BANDS: frozenset[ResonanceStability] = frozenset({
    ResonanceStability.FLUCTUATING,
    ResonanceStability.UNSTABLE,
})


class DecisionEngine:
    """
    Per-tick evaluation and dispatch.

    Owns no threads or tasks; the Scheduler decides when tick() runs
    and guarantees ticks never overlap.
    """

    def __init__(
        self,
        config: MonitorConfig,
        tracker: NodeHealthTracker,
        probe: NodeProbe,
        frequency_source: FrequencySource,
        alerts: AlertBus,
        decisions: DecisionLog,
        remediation: RemediationHandlers,
        history: MetricHistory,
        clock: Clock,
    ) -> None:
        self._config = config
        self._tracker = tracker
        self._probe = probe
        self._frequency_source = frequency_source
        self._alerts = alerts
        self._decisions = decisions
        self._remediation = remediation
        self._history = history
        self._clock = clock
        self._logger = logger.bind(component="decision_engine")

        self._coherence_evaluator = CoherenceEvaluator()
        self._consensus_tracker = ConsensusTracker()
        self._resonance_tracker = ResonanceStabilityTracker(config.target_frequency_hz)

        self._sovereign: frozenset[DecisionType] = frozenset(
            DecisionType(t) for t in config.sovereign_decisions
        )

        # Latest derived states (pre-first-tick values come from the seeds)
        nodes = tracker.get_nodes()
        self._coherence: CoherenceState = self._coherence_evaluator.compute(nodes)
        self._consensus: ConsensusState = self._consensus_tracker.compute(
            nodes, config.consensus_required_pct,
        )
        self._resonance: ResonanceState | None = None
        self._nodes: tuple[Node, ...] = nodes

        # Tick number at which each type last produced a decision
        self._last_decided: dict[DecisionType, int] = {}

        self._tick_count: int = 0
        self._alerts_this_tick: int = 0

        # Metrics
        self._total_suppressed: int = 0
        self._total_handler_failures: int = 0

    # ─── Tick ────────────────────────────────────────────────────────

    async def tick(self) -> TickSummary:
        """Probe every node, then evaluate."""
        t0 = self._clock.monotonic()
        await self._tracker.probe(self._probe)
        summary = await self.evaluate()
        elapsed_ms = (self._clock.monotonic() - t0) * 1000.0
        return summary.model_copy(update={"elapsed_ms": round(elapsed_ms, 3)})

    async def evaluate(self) -> TickSummary:
        """
        Sample, alert, detect and decide against the current node state.

        Does not probe. With auto_remediate off this never mutates a node.
        """
        self._tick_count += 1
        self._alerts_this_tick = 0

        nodes = self._tracker.get_nodes()
        coherence = self._coherence_evaluator.compute(nodes)
        consensus = self._consensus_tracker.compute(nodes, self._config.consensus_required_pct)
        resonance = self._resonance_tracker.sample(self._frequency_source)

        self._coherence = coherence
        self._consensus = consensus
        self._resonance = resonance
        self._nodes = nodes

        self._check_thresholds(coherence, consensus, resonance)

        conditions = self._detect_conditions(nodes, coherence, consensus, resonance)

        made: list[Decision] = []
        suppressed: list[DecisionType] = []
        for decision_type, context in conditions:
            if self._in_cooldown(decision_type):
                suppressed.append(decision_type)
                self._total_suppressed += 1
                self._logger.debug(
                    "decision_suppressed",
                    type=decision_type.value,
                    tick=self._tick_count,
                )
                continue
            made.append(await self._decide(decision_type, context))
            self._last_decided[decision_type] = self._tick_count

        self._history.record(coherence, consensus, resonance)

        self._logger.debug(
            "tick_evaluated",
            tick=self._tick_count,
            internal=round(coherence.internal, 4),
            consensus_pct=round(consensus.current_pct, 1),
            stability=resonance.stability.value,
            decisions=[d.type.value for d in made],
        )

        return TickSummary(
            tick_number=self._tick_count,
            decisions=tuple(made),
            suppressed=tuple(suppressed),
            alerts_raised=self._alerts_this_tick,
            timestamp=self._clock.now(),
        )

    # ─── Detection ───────────────────────────────────────────────────

    def _detect_conditions(
        self,
        nodes: tuple[Node, ...],
        coherence: CoherenceState,
        consensus: ConsensusState,
        resonance: ResonanceState,
    ) -> list[tuple[DecisionType, dict[str, Any]]]:
        conditions: list[tuple[DecisionType, dict[str, Any]]] = []

        if coherence.internal < self._config.coherence_threshold:
            conditions.append((DecisionType.COHERENCE_DROP, {
                "internal": coherence.internal,
                "distributed": coherence.distributed,
                "threshold": self._config.coherence_threshold,
            }))

        if self._consensus_tracker.is_lost(consensus):
            conditions.append((DecisionType.CONSENSUS_LOSS, {
                "current_pct": consensus.current_pct,
                "required_pct": consensus.required_pct,
            }))

        failed = [n for n in nodes if not n.synchronized]
        if failed:
            conditions.append((DecisionType.NODE_FAILURE, {"nodes": tuple(failed)}))

        if self._resonance_tracker.changed:
            previous = self._resonance_tracker.previous_stability
            conditions.append((DecisionType.STABILITY_CHANGE, {
                "previous": previous.value if previous else None,
                "current": resonance.stability.value,
                "deviation": resonance.deviation,
            }))

        return conditions

    def _in_cooldown(self, decision_type: DecisionType) -> bool:
        cooldown = self._config.decision_cooldown_ticks
        if cooldown <= 0:
            return False
        last = self._last_decided.get(decision_type)
        return last is not None and self._tick_count - last <= cooldown

    # ─── Decision ────────────────────────────────────────────────────

    async def _decide(self, decision_type: DecisionType, context: dict[str, Any]) -> Decision:
        now = self._clock.now()

        if decision_type in self._sovereign:
            decision = Decision(
                type=decision_type,
                level=DecisionLevel.L3_SOVEREIGN,
                timestamp=now,
                context=context,
                autonomous=False,
            )
            self._alert(
                AlertSeverity.INFO,
                f"{decision_type.value} requires external authorization",
                {"decision_id": decision.id, "type": decision_type.value},
            )
        elif self._config.auto_remediate:
            pending = Decision(
                type=decision_type,
                level=DecisionLevel.L1_AUTONOMOUS,
                timestamp=now,
                context=context,
                autonomous=True,
            )
            result = await self._run_handler(pending)
            decision = pending.model_copy(update={"result": result})
        else:
            decision = Decision(
                type=decision_type,
                level=DecisionLevel.L2_ADVISORY,
                timestamp=now,
                context=context,
                autonomous=False,
            )

        self._decisions.append(decision)
        return decision

    async def _run_handler(self, decision: Decision) -> RemediationResult:
        """Run the matching handler under a deadline. Failures become alerts, not exceptions."""
        handler = self._remediation.handler_for(decision.type)
        name = self._remediation.handler_name(decision.type)
        timeout_s = self._config.handler_timeout_ms / 1000.0

        try:
            return await asyncio.wait_for(
                handler(decision, self._tracker),
                timeout=timeout_s,
            )
        except TimeoutError:
            error = f"timed out after {timeout_s:.3f}s"
        except Exception as exc:
            error = f"{type(exc).__name__}: {exc}"

        self._total_handler_failures += 1
        self._logger.error(
            "handler_failed",
            handler=name,
            decision_type=decision.type.value,
            error=error,
        )
        self._alert(
            AlertSeverity.CRITICAL,
            f"Remediation handler {name} failed: {error}",
            {"handler": name, "decision_type": decision.type.value, "error": error},
        )
        return RemediationResult(action=ACTIONS[decision.type], success=False, error=error)

    # ─── Alerts ──────────────────────────────────────────────────────

    def _check_thresholds(
        self,
        coherence: CoherenceState,
        consensus: ConsensusState,
        resonance: ResonanceState,
    ) -> None:
        cfg = self._config

        if coherence.internal < cfg.coherence_threshold:
            self._alert(
                AlertSeverity.WARNING,
                f"Internal coherence {coherence.internal:.3f} below threshold {cfg.coherence_threshold}",
                {"internal": coherence.internal, "distributed": coherence.distributed},
            )

        if self._consensus_tracker.is_lost(consensus):
            self._alert(
                AlertSeverity.WARNING,
                f"Consensus {consensus.current_pct:.1f}% below required {consensus.required_pct:.1f}%",
                {
                    "current_pct": consensus.current_pct,
                    "synchronized": sorted(consensus.synchronized_node_ids),
                },
            )

        if consensus.current_pct < cfg.sync_alert_pct:
            self._alert(
                AlertSeverity.CRITICAL,
                f"Synchronization {consensus.current_pct:.1f}% below threshold",
                {"percentage": consensus.current_pct, "status": consensus.status.value},
            )

        if resonance.deviation > cfg.frequency_deviation_alert_hz:
            self._alert(
                AlertSeverity.WARNING,
                f"Frequency deviation {resonance.deviation * 1000:.4f}mHz exceeds threshold",
                {"deviation": resonance.deviation, "current_hz": resonance.current_hz},
            )

        if resonance.stability in _NOISY_BANDS:
            self._alert(
                AlertSeverity.INFO,
                f"Resonance {resonance.stability.value.lower()}: {resonance.current_hz:.6f} Hz",
                {"stability": resonance.stability.value, "deviation": resonance.deviation},
            )

    def _alert(self, severity: AlertSeverity, message: str, context: dict[str, Any]) -> None:
        self._alerts_this_tick += 1
        self._alerts.create(severity, message, context)

    # ─── State ───────────────────────────────────────────────────────

    @property
    def coherence(self) -> CoherenceState:
        return self._coherence

    @property
    def consensus(self) -> ConsensusState:
        return self._consensus

    @property
    def resonance(self) -> ResonanceState | None:
        return self._resonance

    @property
    def nodes(self) -> tuple[Node, ...]:
        """Node snapshot the latest coherence and consensus were computed from."""
        return self._nodes

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "ticks": self._tick_count,
            "suppressed_decisions": self._total_suppressed,
            "handler_failures": self._total_handler_failures,
            "sovereign_types": sorted(t.value for t in self._sovereign),
            "resonance": self._resonance_tracker.stats,
        }
