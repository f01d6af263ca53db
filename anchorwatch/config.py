"""
AnchorWatch — Configuration System

All configuration is Pydantic-validated and loaded from:
1. A YAML file (defaults, node seeds)
2. Environment variables (overrides)

Every tunable parameter of the monitor lives here.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ─── Sub-configs ──────────────────────────────────────────────────


class NodeSeed(BaseModel):
    """Initial identity of a monitored node."""

    id: str = Field(min_length=1)
    location: str = ""
    region: str = ""
    # Starting health score before the first probe lands
    coherence: float = Field(1.0, ge=0.0, le=1.0)


class MonitorConfig(BaseModel):
    # Decision thresholds
    coherence_threshold: float = Field(0.945, ge=0.0, le=1.0)
    consensus_required_pct: float = Field(100.0, ge=0.0, le=100.0)
    auto_remediate: bool = True
    # Condition types that need external authorization (L3) instead of acting
    sovereign_decisions: list[str] = Field(default_factory=list)
    # 0 = re-raise an unresolved condition on every tick
    decision_cooldown_ticks: int = Field(0, ge=0)

    # Scheduling
    tick_interval_ms: int = Field(5000, gt=0)
    probe_timeout_ms: int = Field(2000, gt=0)
    handler_timeout_ms: int = Field(2000, gt=0)

    # Resonance
    target_frequency_hz: float = Field(0.043, gt=0.0)
    frequency_deviation_alert_hz: float = Field(0.001, gt=0.0)

    # Node health dynamics
    coherence_recovery_step: float = Field(0.01, ge=0.0, le=1.0)
    coherence_decay_step: float = Field(0.01, ge=0.0, le=1.0)
    remediation_coherence_floor: float = Field(0.9, ge=0.0, le=1.0)
    remediation_coherence_step: float = Field(0.1, ge=0.0, le=1.0)
    resync_success_probability: float = Field(0.7, ge=0.0, le=1.0)

    # Alerting
    sync_alert_pct: float = Field(95.0, ge=0.0, le=100.0)

    # Bounded buffers
    max_decisions: int = Field(100, gt=0)
    max_alerts: int = Field(50, gt=0)
    history_size: int = Field(300, gt=0)

    @model_validator(mode="after")
    def _check_sovereign_types(self) -> MonitorConfig:
        # Imported here to keep config free of a hard dependency on the systems tree
        from anchorwatch.systems.monitor.types import DecisionType

        known = {t.value for t in DecisionType}
        unknown = [t for t in self.sovereign_decisions if t not in known]
        if unknown:
            raise ValueError(f"Unknown decision types for sovereign escalation: {unknown}")
        return self


class SimulationConfig(BaseModel):
    """Parameters for the simulated probe and frequency sources."""

    probe_success_probability: float = Field(0.9, ge=0.0, le=1.0)
    frequency_variance_hz: float = Field(0.0002, ge=0.0)
    seed: int | None = None


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "console"  # "console" | "json"


# ─── Root Configuration ──────────────────────────────────────────


class AnchorWatchConfig(BaseSettings):
    """
    Root configuration. Loads from YAML, overridable by env vars.
    """

    model_config = SettingsConfigDict(
        env_prefix="ANCHORWATCH_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    instance_id: str = "anchorwatch-default"

    monitor: MonitorConfig = Field(default_factory=MonitorConfig)
    nodes: list[NodeSeed] = Field(default_factory=list)
    simulation: SimulationConfig = Field(default_factory=SimulationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(config_path: str | Path | None = None) -> AnchorWatchConfig:
    """
    Load configuration from YAML file, then apply environment variable overrides.
    """
    raw: dict[str, Any] = {}

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                raw = yaml.safe_load(f) or {}

    if instance_id := os.environ.get("ANCHORWATCH_INSTANCE_ID"):
        raw["instance_id"] = instance_id
    if auto := os.environ.get("ANCHORWATCH_AUTO_REMEDIATE"):
        raw.setdefault("monitor", {})["auto_remediate"] = auto.lower() in ("true", "1", "yes")
    if interval := os.environ.get("ANCHORWATCH_TICK_INTERVAL_MS"):
        raw.setdefault("monitor", {})["tick_interval_ms"] = int(interval)
    if log_level := os.environ.get("ANCHORWATCH_LOG_LEVEL"):
        raw.setdefault("logging", {})["level"] = log_level

    return AnchorWatchConfig(**raw)
