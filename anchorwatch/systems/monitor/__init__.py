"""
AnchorWatch — Monitor

Watches a cluster of anchor nodes, derives coherence, consensus and
resonance stability every tick, and decides (autonomously, advisorily,
or by escalation) what to do about each degraded condition.
"""

from anchorwatch.systems.monitor.alerts import AlertBus
from anchorwatch.systems.monitor.coherence import CoherenceEvaluator, classify_coherence
from anchorwatch.systems.monitor.consensus import ConsensusTracker
from anchorwatch.systems.monitor.decisions import DecisionLog
from anchorwatch.systems.monitor.engine import DecisionEngine
from anchorwatch.systems.monitor.errors import InitError, MonitorError, SchedulerError
from anchorwatch.systems.monitor.history import MetricHistory
from anchorwatch.systems.monitor.nodes import NodeHealthTracker
from anchorwatch.systems.monitor.remediation import RemediationHandlers
from anchorwatch.systems.monitor.resonance import ResonanceStabilityTracker, classify_deviation
from anchorwatch.systems.monitor.scheduler import Scheduler
from anchorwatch.systems.monitor.service import MonitorService
from anchorwatch.systems.monitor.sources import (
    SequenceRandom,
    SimulatedFrequencySource,
    SimulatedNodeProbe,
    SystemClock,
)
from anchorwatch.systems.monitor.types import (
    Alert,
    AlertSeverity,
    CoherenceState,
    CoherenceStatus,
    ConsensusState,
    Decision,
    DecisionLevel,
    DecisionType,
    EngineState,
    HealthSample,
    InitResult,
    MetricName,
    MetricPoint,
    Node,
    NodeStatus,
    RemediationAction,
    RemediationResult,
    ResonanceStability,
    ResonanceState,
    SyncStatus,
    TickSummary,
)

__all__ = [
    # Service
    "MonitorService",
    # Sub-systems
    "AlertBus",
    "CoherenceEvaluator",
    "ConsensusTracker",
    "DecisionEngine",
    "DecisionLog",
    "MetricHistory",
    "NodeHealthTracker",
    "RemediationHandlers",
    "ResonanceStabilityTracker",
    "Scheduler",
    "classify_coherence",
    "classify_deviation",
    # Sources
    "SequenceRandom",
    "SimulatedFrequencySource",
    "SimulatedNodeProbe",
    "SystemClock",
    # Errors
    "InitError",
    "MonitorError",
    "SchedulerError",
    # Types
    "Alert",
    "AlertSeverity",
    "CoherenceState",
    "CoherenceStatus",
    "ConsensusState",
    "Decision",
    "DecisionLevel",
    "DecisionType",
    "EngineState",
    "HealthSample",
    "InitResult",
    "MetricName",
    "MetricPoint",
    "Node",
    "NodeStatus",
    "RemediationAction",
    "RemediationResult",
    "ResonanceStability",
    "ResonanceState",
    "SyncStatus",
    "TickSummary",
]
