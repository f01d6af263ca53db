"""
AnchorWatch — Monitor Service

The exposed surface of the monitoring engine. Dashboards and transport
adapters talk to this and nothing else.

One service instance monitors one cluster. There is no process-wide
state: build as many side by side as there are clusters.

Lifecycle:
  initialize(config)  — validate seeds + config, build every component,
                        optionally start the scheduler. All-or-nothing.
  tick()              — run one tick now (tests, adapters, manual control)
  start()             — start the scheduler if initialize() didn't
  shutdown()          — stop the scheduler. Idempotent.
  health()            — self-health report

Readers (get_state, get_nodes, get_recent_*) receive frozen snapshots
published at the end of each tick and may call from any thread or task.
"""

from __future__ import annotations

import random
from collections.abc import Callable
from typing import Any

import structlog
from pydantic import ValidationError

from anchorwatch.config import AnchorWatchConfig
from anchorwatch.systems.monitor.alerts import AlertBus
from anchorwatch.systems.monitor.decisions import DecisionLog
from anchorwatch.systems.monitor.engine import DecisionEngine
from anchorwatch.systems.monitor.errors import InitError
from anchorwatch.systems.monitor.history import MetricHistory
from anchorwatch.systems.monitor.nodes import NodeHealthTracker
from anchorwatch.systems.monitor.remediation import RemediationHandlers
from anchorwatch.systems.monitor.scheduler import Scheduler
from anchorwatch.systems.monitor.sources import (
    SimulatedFrequencySource,
    SimulatedNodeProbe,
    SystemClock,
)
from anchorwatch.systems.monitor.types import (
    Alert,
    Clock,
    CoherenceState,
    ConsensusState,
    Decision,
    EngineState,
    FrequencySource,
    InitResult,
    MetricPoint,
    Node,
    NodeProbe,
    RandomSource,
    ResonanceState,
    TickSummary,
)

logger = structlog.get_logger("anchorwatch.systems.monitor")

ALERT_CHANNEL: str = "alert"
DECISION_CHANNEL: str = "decision"
_CHANNELS: frozenset[str] = frozenset({ALERT_CHANNEL, DECISION_CHANNEL})


class _Components:
    """Everything initialize() builds, held together so it lands atomically."""

    def __init__(
        self,
        tracker: NodeHealthTracker,
        alerts: AlertBus,
        decisions: DecisionLog,
        remediation: RemediationHandlers,
        history: MetricHistory,
        engine: DecisionEngine,
        scheduler: Scheduler,
    ) -> None:
        self.tracker = tracker
        self.alerts = alerts
        self.decisions = decisions
        self.remediation = remediation
        self.history = history
        self.engine = engine
        self.scheduler = scheduler


class MonitorService:
    """
    Coherence & resonance monitor for one cluster of nodes.

    Collaborators are injected; anything left out is simulated from the
    `simulation` section of the config.
    """

    system_id: str = "monitor"

    def __init__(
        self,
        probe: NodeProbe | None = None,
        frequency_source: FrequencySource | None = None,
        clock: Clock | None = None,
        rng: RandomSource | None = None,
        remediation_factory: Callable[..., RemediationHandlers] | None = None,
    ) -> None:
        self._probe = probe
        self._frequency_source = frequency_source
        self._clock: Clock = clock or SystemClock()
        self._rng = rng
        self._remediation_factory = remediation_factory or RemediationHandlers
        self._logger = logger.bind(system="monitor")

        self._config: AnchorWatchConfig | None = None
        self._components: _Components | None = None
        self._initialized: bool = False

        # Subscriptions made before initialize(), attached once buses exist
        self._pending: dict[str, list[Callable[[Any], None]]] = {c: [] for c in _CHANNELS}

        self._state: EngineState = EngineState()
        self._last_tick: TickSummary | None = None

    # ─── Lifecycle ───────────────────────────────────────────────────

    async def initialize(
        self,
        config: AnchorWatchConfig | dict[str, Any],
        *,
        autostart: bool = True,
    ) -> InitResult:
        """
        Build the engine from config. Never raises for bad input.

        On failure nothing is retained: the service stays uninitialized
        and a later call may retry with a corrected config.
        """
        if self._initialized:
            self._logger.warning("monitor_already_initialized")
            return InitResult(ok=True)

        try:
            cfg = config if isinstance(config, AnchorWatchConfig) else AnchorWatchConfig(**config)
            components = self._build(cfg)
        except (InitError, ValidationError, ValueError, TypeError) as exc:
            self._logger.error("monitor_init_failed", error=str(exc))
            return InitResult(ok=False, error=str(exc))

        self._config = cfg
        self._components = components
        self._initialized = True
        for callback in self._pending[ALERT_CHANNEL]:
            components.alerts.subscribe(callback)
        for callback in self._pending[DECISION_CHANNEL]:
            components.decisions.subscribe(callback)
        self._publish_state()

        self._logger.info(
            "monitor_initialized",
            instance_id=cfg.instance_id,
            nodes=len(components.tracker),
            auto_remediate=cfg.monitor.auto_remediate,
            tick_interval_ms=cfg.monitor.tick_interval_ms,
        )

        if autostart:
            await self.start()
        return InitResult(ok=True)

    def _build(self, cfg: AnchorWatchConfig) -> _Components:
        mon = cfg.monitor
        sim = cfg.simulation
        rng: RandomSource = self._rng or random.Random(sim.seed)

        tracker = NodeHealthTracker(mon, self._clock)
        tracker.register_nodes(cfg.nodes)

        alerts = AlertBus(self._clock, max_alerts=mon.max_alerts)
        decisions = DecisionLog(max_decisions=mon.max_decisions)
        remediation = self._remediation_factory(mon, self._clock, rng)
        history = MetricHistory(self._clock, history_size=mon.history_size)

        probe = self._probe or SimulatedNodeProbe(sim.probe_success_probability, rng)
        frequency_source = self._frequency_source or SimulatedFrequencySource(
            mon.target_frequency_hz, sim.frequency_variance_hz, rng,
        )

        engine = DecisionEngine(
            config=mon,
            tracker=tracker,
            probe=probe,
            frequency_source=frequency_source,
            alerts=alerts,
            decisions=decisions,
            remediation=remediation,
            history=history,
            clock=self._clock,
        )
        scheduler = Scheduler(
            callback=self._on_tick,
            interval_ms=mon.tick_interval_ms,
            clock=self._clock,
            name=f"monitor_scheduler_{cfg.instance_id}",
        )
        return _Components(tracker, alerts, decisions, remediation, history, engine, scheduler)

    async def start(self) -> None:
        """Start the scheduler. No-op when already running."""
        c = self._require()
        if c.scheduler.is_running:
            return
        c.scheduler.start()
        self._publish_state()

    async def tick(self) -> bool:
        """Run one tick now. Returns False if a tick was already in flight."""
        return await self._require().scheduler.trigger()

    async def shutdown(self) -> None:
        """Stop the scheduler. Safe to call repeatedly and before initialize()."""
        c = self._components
        if c is None:
            self._logger.debug("monitor_shutdown_before_init")
            return

        was_running = c.scheduler.is_running
        await c.scheduler.stop()
        self._publish_state()
        if was_running:
            self._logger.info(
                "monitor_shutdown",
                ticks=c.engine.tick_count,
                decisions=len(c.decisions),
                alerts=len(c.alerts),
            )

    async def _on_tick(self) -> None:
        c = self._require()
        self._last_tick = await c.engine.tick()
        self._publish_state()

    def _publish_state(self) -> None:
        c = self._components
        if c is None:
            return
        self._state = EngineState(
            coherence=c.engine.coherence,
            consensus=c.engine.consensus,
            resonance=c.engine.resonance,
            nodes=c.engine.nodes,
            tick_count=c.engine.tick_count,
            initialized=self._initialized,
            running=c.scheduler.is_running,
            timestamp=self._clock.now(),
        )

    def _require(self) -> _Components:
        if self._components is None:
            raise RuntimeError("MonitorService.initialize() must succeed first")
        return self._components

    # ─── Subscriptions ───────────────────────────────────────────────

    def subscribe(self, channel: str, handler: Callable[[Any], None]) -> None:
        """Subscribe to "alert" (Alert) or "decision" (Decision) events."""
        if channel not in _CHANNELS:
            raise ValueError(f"Unknown channel {channel!r}; expected one of {sorted(_CHANNELS)}")
        c = self._components
        if c is None:
            self._pending[channel].append(handler)
        elif channel == ALERT_CHANNEL:
            c.alerts.subscribe(handler)
        else:
            c.decisions.subscribe(handler)

    def unsubscribe(self, channel: str, handler: Callable[[Any], None]) -> None:
        if channel not in _CHANNELS:
            raise ValueError(f"Unknown channel {channel!r}; expected one of {sorted(_CHANNELS)}")
        pending = self._pending[channel]
        if handler in pending:
            pending.remove(handler)
        c = self._components
        if c is None:
            return
        if channel == ALERT_CHANNEL:
            c.alerts.unsubscribe(handler)
        else:
            c.decisions.unsubscribe(handler)

    # ─── Accessors ───────────────────────────────────────────────────

    def get_state(self) -> EngineState:
        return self._state

    def get_coherence(self) -> CoherenceState:
        return self._state.coherence

    def get_consensus(self) -> ConsensusState:
        return self._state.consensus

    def get_resonance(self) -> ResonanceState | None:
        return self._state.resonance

    def get_nodes(self) -> tuple[Node, ...]:
        return self._state.nodes

    def get_recent_decisions(self, n: int = 10) -> tuple[Decision, ...]:
        c = self._components
        return c.decisions.recent(n) if c is not None else ()

    def get_recent_alerts(self, n: int = 10) -> tuple[Alert, ...]:
        c = self._components
        return c.alerts.recent(n) if c is not None else ()

    def get_history(self, metric: str, duration_s: float = 60.0) -> tuple[MetricPoint, ...]:
        c = self._components
        return c.history.query(metric, duration_s) if c is not None else ()

    @property
    def last_tick(self) -> TickSummary | None:
        return self._last_tick

    @property
    def pending_redistribution(self) -> tuple[str, ...]:
        c = self._components
        return c.remediation.pending_redistribution if c is not None else ()

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def is_running(self) -> bool:
        c = self._components
        return c is not None and c.scheduler.is_running

    # ─── Health ──────────────────────────────────────────────────────

    async def health(self) -> dict[str, Any]:
        """Self-health report."""
        state = self._state
        return {
            "status": "healthy" if self._initialized else "starting",
            "running": self.is_running,
            "tick_count": state.tick_count,
            "coherence_status": state.coherence.status.value,
            "consensus_pct": round(state.consensus.current_pct, 1),
            "stability": state.resonance.stability.value if state.resonance else None,
        }

    @property
    def stats(self) -> dict[str, Any]:
        c = self._components
        if c is None:
            return {"initialized": False}
        return {
            "initialized": True,
            "engine": c.engine.stats,
            "scheduler": c.scheduler.stats,
            "nodes": c.tracker.stats,
            "alerts": c.alerts.stats,
            "decisions": c.decisions.stats,
            "remediation": c.remediation.stats,
        }
