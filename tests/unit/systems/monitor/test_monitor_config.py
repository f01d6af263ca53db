"""
Tests for configuration loading.
"""

from __future__ import annotations

import logging
from pathlib import Path

import pytest
from pydantic import ValidationError

from anchorwatch.config import (
    AnchorWatchConfig,
    LoggingConfig,
    MonitorConfig,
    NodeSeed,
    load_config,
)
from anchorwatch.telemetry.logging import setup_logging

REPO_ROOT = Path(__file__).resolve().parents[4]


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (
        "ANCHORWATCH_INSTANCE_ID",
        "ANCHORWATCH_AUTO_REMEDIATE",
        "ANCHORWATCH_TICK_INTERVAL_MS",
        "ANCHORWATCH_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


class TestDefaults:
    def test_monitor_defaults(self):
        config = MonitorConfig()
        assert config.coherence_threshold == 0.945
        assert config.consensus_required_pct == 100.0
        assert config.auto_remediate is True
        assert config.tick_interval_ms == 5000
        assert config.target_frequency_hz == 0.043
        assert config.max_decisions == 100
        assert config.max_alerts == 50
        assert config.sovereign_decisions == []

    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_config(tmp_path / "absent.yaml")
        assert config.instance_id == "anchorwatch-default"
        assert config.nodes == []


class TestValidation:
    def test_unknown_sovereign_type_rejected(self):
        with pytest.raises(ValidationError, match="REBOOT"):
            MonitorConfig(sovereign_decisions=["REBOOT"])

    def test_known_sovereign_types_accepted(self):
        config = MonitorConfig(sovereign_decisions=["NODE_FAILURE", "CONSENSUS_LOSS"])
        assert config.sovereign_decisions == ["NODE_FAILURE", "CONSENSUS_LOSS"]

    @pytest.mark.parametrize(
        "overrides",
        [
            {"coherence_threshold": -0.1},
            {"consensus_required_pct": 101.0},
            {"tick_interval_ms": 0},
            {"decision_cooldown_ticks": -1},
            {"resync_success_probability": 1.5},
        ],
    )
    def test_out_of_range_values_rejected(self, overrides):
        with pytest.raises(ValidationError):
            MonitorConfig(**overrides)

    def test_empty_node_id_rejected(self):
        with pytest.raises(ValidationError):
            NodeSeed(id="")


class TestLoading:
    def test_yaml_file(self, tmp_path):
        path = tmp_path / "cluster.yaml"
        path.write_text(
            "instance_id: edge-1\n"
            "monitor:\n"
            "  auto_remediate: false\n"
            "  decision_cooldown_ticks: 3\n"
            "nodes:\n"
            "  - id: a\n"
            "    region: eu\n"
            "  - id: b\n"
        )
        config = load_config(path)
        assert config.instance_id == "edge-1"
        assert config.monitor.auto_remediate is False
        assert config.monitor.decision_cooldown_ticks == 3
        assert [n.id for n in config.nodes] == ["a", "b"]
        assert config.nodes[0].region == "eu"

    def test_env_overrides(self, tmp_path, monkeypatch):
        path = tmp_path / "cluster.yaml"
        path.write_text("monitor:\n  auto_remediate: true\n")
        monkeypatch.setenv("ANCHORWATCH_AUTO_REMEDIATE", "false")
        monkeypatch.setenv("ANCHORWATCH_TICK_INTERVAL_MS", "250")
        monkeypatch.setenv("ANCHORWATCH_INSTANCE_ID", "from-env")
        monkeypatch.setenv("ANCHORWATCH_LOG_LEVEL", "DEBUG")

        config = load_config(path)
        assert config.monitor.auto_remediate is False
        assert config.monitor.tick_interval_ms == 250
        assert config.instance_id == "from-env"
        assert config.logging.level == "DEBUG"

    def test_shipped_default_config(self):
        config = load_config(REPO_ROOT / "config" / "default.yaml")
        assert isinstance(config, AnchorWatchConfig)
        assert len(config.nodes) == 4
        assert config.monitor.coherence_threshold == 0.945
        assert config.simulation.probe_success_probability == 0.9


class TestLoggingSetup:
    def test_level_and_single_handler(self):
        setup_logging(LoggingConfig(level="debug", format="json"), instance_id="cluster-a")
        setup_logging(LoggingConfig(level="warning"), instance_id="cluster-a")

        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1
