"""
AnchorWatch — Monitor Type Definitions

All data types for the monitoring engine: node health, derived
coherence / consensus / resonance states, decisions, alerts, and the
collaborator protocols (probe, frequency source, clock, randomness).

Snapshot types are frozen. Readers on other threads or tasks can hold
them without coordinating with the tick that produced them.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from datetime import datetime
import enum
from types import MappingProxyType
from typing import Any, Protocol

from pydantic import Field, field_serializer, field_validator, model_validator

from anchorwatch.primitives.common import (
    AWBaseModel,
    FrozenModel,
    clamp01,
    new_id,
    utc_now,
)


# ─── Enums ────────────────────────────────────────────────────────────


class NodeStatus(enum.StrEnum):
    INITIALIZING = "INITIALIZING"
    ONLINE = "ONLINE"
    ANCHORED = "ANCHORED"
    SYNCING = "SYNCING"          # Reserved for external adapters; the engine never sets it
    OFFLINE = "OFFLINE"


# Statuses a synchronized node may hold
SYNCED_STATUSES: frozenset[NodeStatus] = frozenset({NodeStatus.ONLINE, NodeStatus.ANCHORED})


class CoherenceStatus(enum.StrEnum):
    OPTIMAL = "OPTIMAL"
    GOOD = "GOOD"
    ACCEPTABLE = "ACCEPTABLE"
    CRITICAL = "CRITICAL"


class SyncStatus(enum.StrEnum):
    FULL_SYNC = "FULL_SYNC"
    PARTIAL_SYNC = "PARTIAL_SYNC"
    DEGRADED = "DEGRADED"


class ResonanceStability(enum.StrEnum):
    """Stability band of the sampled frequency, most stable first."""

    RESONANT = "RESONANT"
    STABLE = "STABLE"
    FLUCTUATING = "FLUCTUATING"
    UNSTABLE = "UNSTABLE"

    @property
    def rank(self) -> int:
        """Higher rank = more stable."""
        return _STABILITY_RANK[self]


_STABILITY_RANK: dict[ResonanceStability, int] = {
    ResonanceStability.RESONANT: 3,
    ResonanceStability.STABLE: 2,
    ResonanceStability.FLUCTUATING: 1,
    ResonanceStability.UNSTABLE: 0,
}


class DecisionType(enum.StrEnum):
    COHERENCE_DROP = "COHERENCE_DROP"
    CONSENSUS_LOSS = "CONSENSUS_LOSS"
    NODE_FAILURE = "NODE_FAILURE"
    STABILITY_CHANGE = "STABILITY_CHANGE"


class DecisionLevel(enum.StrEnum):
    L1_AUTONOMOUS = "L1_AUTONOMOUS"    # Engine acts alone
    L2_ADVISORY = "L2_ADVISORY"        # Logged, no action
    L3_SOVEREIGN = "L3_SOVEREIGN"      # Needs external authorization


class AlertSeverity(enum.StrEnum):
    INFO = "INFO"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


class RemediationAction(enum.StrEnum):
    COHERENCE_REMEDIATION = "COHERENCE_REMEDIATION"
    NODE_RESYNCHRONIZATION = "NODE_RESYNCHRONIZATION"
    LOAD_REDISTRIBUTION = "LOAD_REDISTRIBUTION"
    STABILITY_ADJUSTMENT = "STABILITY_ADJUSTMENT"


class MetricName(enum.StrEnum):
    RESONANCE = "resonance"
    COHERENCE = "coherence"
    CONSENSUS = "consensus"


# ─── Nodes ────────────────────────────────────────────────────────────


class HealthSample(FrozenModel):
    """Result of probing one node."""

    reachable: bool
    latency_ms: float = Field(0.0, ge=0.0)
    # Reachable and holding its anchor (vs. merely online)
    anchored: bool = True


class Node(FrozenModel):
    """Read-only view of a monitored node."""

    id: str
    location: str = ""
    region: str = ""
    status: NodeStatus = NodeStatus.INITIALIZING
    coherence: float = Field(1.0, ge=0.0, le=1.0)
    latency_ms: float = Field(0.0, ge=0.0)
    last_sync: datetime | None = None
    synchronized: bool = False

    @model_validator(mode="after")
    def _synchronized_implies_online(self) -> Node:
        if self.synchronized and self.status not in SYNCED_STATUSES:
            raise ValueError(
                f"Node {self.id} is synchronized but has status {self.status.value}"
            )
        return self


class NodeHealthRecord(AWBaseModel):
    """
    The tracker's mutable per-node state.

    Mutated only during a tick: by probe results, or by remediation
    handlers. Everyone else sees Node snapshots.
    """

    id: str
    location: str = ""
    region: str = ""
    status: NodeStatus = NodeStatus.INITIALIZING
    coherence: float = 1.0
    latency_ms: float = 0.0
    last_sync: datetime | None = None
    synchronized: bool = False
    consecutive_failures: int = 0
    total_probes: int = 0
    total_failures: int = 0

    def record_success(self, sample: HealthSample, recovery_step: float, now: datetime) -> None:
        """Record a reachable probe: node is synchronized and recovers a little."""
        self.status = NodeStatus.ANCHORED if sample.anchored else NodeStatus.ONLINE
        self.synchronized = True
        self.latency_ms = max(0.0, sample.latency_ms)
        self.last_sync = now
        self.coherence = clamp01(self.coherence + recovery_step)
        self.consecutive_failures = 0
        self.total_probes += 1

    def record_failure(self, decay_step: float) -> None:
        """Record an unreachable, failed or timed-out probe."""
        self.status = NodeStatus.OFFLINE
        self.synchronized = False
        self.latency_ms = 0.0
        self.coherence = clamp01(self.coherence - decay_step)
        self.consecutive_failures += 1
        self.total_probes += 1
        self.total_failures += 1

    def mark_resynchronized(self, now: datetime) -> None:
        """Recovery by remediation. Keeps an anchored node anchored."""
        if self.status not in SYNCED_STATUSES:
            self.status = NodeStatus.ONLINE
        self.synchronized = True
        self.last_sync = now

    def raise_coherence(self, step: float, now: datetime) -> None:
        self.coherence = clamp01(self.coherence + step)
        self.last_sync = now

    def snapshot(self) -> Node:
        return Node(
            id=self.id,
            location=self.location,
            region=self.region,
            status=self.status,
            coherence=clamp01(self.coherence),
            latency_ms=self.latency_ms,
            last_sync=self.last_sync,
            synchronized=self.synchronized,
        )


# ─── Derived States ───────────────────────────────────────────────────


class CoherenceState(FrozenModel):
    """Aggregate health: sync ratio (internal) and mean node health (distributed)."""

    internal: float = Field(0.0, ge=0.0, le=1.0)
    distributed: float = Field(0.0, ge=0.0, le=1.0)
    status: CoherenceStatus = CoherenceStatus.CRITICAL


class ConsensusState(FrozenModel):
    current_pct: float = Field(0.0, ge=0.0, le=100.0)
    required_pct: float = Field(100.0, ge=0.0, le=100.0)
    synchronized_node_ids: frozenset[str] = Field(default_factory=frozenset)
    status: SyncStatus = SyncStatus.DEGRADED


class ResonanceState(FrozenModel):
    current_hz: float = 0.0
    target_hz: float = 0.043
    deviation: float = Field(0.0, ge=0.0)
    stability: ResonanceStability = ResonanceStability.UNSTABLE


# ─── Decisions & Alerts ───────────────────────────────────────────────


class RemediationResult(FrozenModel):
    """Outcome of one remediation handler invocation."""

    action: RemediationAction
    affected: tuple[str, ...] = ()
    success: bool = True
    error: str = ""


def freeze_context(value: Any) -> Any:
    """Read-only copy: mappings become mapping proxies, lists and tuples become tuples."""
    if isinstance(value, Mapping):
        return MappingProxyType({k: freeze_context(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze_context(v) for v in value)
    if isinstance(value, (set, frozenset)):
        return frozenset(freeze_context(v) for v in value)
    return value


def thaw_context(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: thaw_context(v) for k, v in value.items()}
    if isinstance(value, (tuple, frozenset)):
        return [thaw_context(v) for v in value]
    return value


class _ContextRecord(FrozenModel):
    """Frozen record whose context is read-only all the way down."""

    context: Mapping[str, Any] = Field(default_factory=dict, validate_default=True)

    @field_validator("context", mode="after")
    @classmethod
    def _freeze_context(cls, v: Mapping[str, Any]) -> Mapping[str, Any]:
        return freeze_context(v)

    @field_serializer("context")
    def _serialize_context(self, v: Mapping[str, Any]) -> dict[str, Any]:
        return thaw_context(v)


class Decision(_ContextRecord):
    """One autonomous (or advisory, or escalated) decision. Immutable once made."""

    id: str = Field(default_factory=new_id)
    type: DecisionType
    level: DecisionLevel
    timestamp: datetime = Field(default_factory=utc_now)
    result: RemediationResult | None = None
    autonomous: bool = False


class Alert(_ContextRecord):
    id: str = Field(default_factory=new_id)
    severity: AlertSeverity
    message: str
    timestamp: datetime = Field(default_factory=utc_now)


# ─── Engine Snapshots ─────────────────────────────────────────────────


class EngineState(FrozenModel):
    """Full point-in-time snapshot served to dashboards and transports."""

    coherence: CoherenceState = Field(default_factory=CoherenceState)
    consensus: ConsensusState = Field(default_factory=ConsensusState)
    resonance: ResonanceState | None = None
    nodes: tuple[Node, ...] = ()
    tick_count: int = 0
    initialized: bool = False
    running: bool = False
    timestamp: datetime = Field(default_factory=utc_now)


class MetricPoint(FrozenModel):
    timestamp: datetime
    values: dict[str, float | str] = Field(default_factory=dict)


class InitResult(FrozenModel):
    """Outcome of MonitorService.initialize(). Never partially successful."""

    ok: bool
    error: str = ""

    def __bool__(self) -> bool:
        return self.ok


class TickSummary(FrozenModel):
    """What one tick did. Returned by DecisionEngine.tick()."""

    tick_number: int
    elapsed_ms: float = 0.0
    decisions: tuple[Decision, ...] = ()
    suppressed: tuple[DecisionType, ...] = ()
    alerts_raised: int = 0
    timestamp: datetime = Field(default_factory=utc_now)


# ─── Collaborator Protocols ───────────────────────────────────────────


# async def probe(node_id) -> HealthSample. Timeouts are applied by the tracker.
NodeProbe = Callable[[str], Awaitable[HealthSample]]

# () -> Hz
FrequencySource = Callable[[], float]

# Subscriber callbacks are synchronous and run in registration order
AlertCallback = Callable[[Alert], None]
DecisionCallback = Callable[[Decision], None]


class RandomSource(Protocol):
    """Uniform [0, 1) draws. random.Random satisfies this."""

    def random(self) -> float:
        ...


class Clock(Protocol):
    """Tick timing. Substituted by a manual clock in tests."""

    def now(self) -> datetime:
        ...

    def monotonic(self) -> float:
        ...

    async def sleep(self, seconds: float) -> None:
        ...
