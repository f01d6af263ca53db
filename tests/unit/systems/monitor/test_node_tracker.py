"""
Tests for the Node Health Tracker.

Covers:
  - Registration (once, atomic, rejects bad seeds)
  - Probe outcomes: success, unreachable, raised, timed out
  - Coherence recovery / decay bounds
  - Snapshot immutability
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from anchorwatch.config import MonitorConfig, NodeSeed
from anchorwatch.systems.monitor.errors import InitError
from anchorwatch.systems.monitor.nodes import NodeHealthTracker
from anchorwatch.systems.monitor.types import NodeStatus


class TestRegistration:
    def test_seeds_start_initializing_and_unsynchronized(self, tracker):
        nodes = tracker.get_nodes()
        assert [n.id for n in nodes] == ["n1", "n2", "n3", "n4"]
        assert all(n.status == NodeStatus.INITIALIZING for n in nodes)
        assert not any(n.synchronized for n in nodes)
        assert all(n.coherence == 1.0 for n in nodes)

    def test_seed_coherence_is_kept(self, clock):
        tracker = NodeHealthTracker(MonitorConfig(), clock)
        tracker.register_nodes([NodeSeed(id="a", coherence=0.7)])
        assert tracker.get_nodes()[0].coherence == 0.7

    def test_register_twice_rejected(self, tracker, seeds):
        with pytest.raises(InitError):
            tracker.register_nodes(seeds)

    def test_empty_seed_list_rejected(self, clock):
        tracker = NodeHealthTracker(MonitorConfig(), clock)
        with pytest.raises(InitError):
            tracker.register_nodes([])
        assert not tracker.is_registered

    def test_duplicate_id_leaves_tracker_empty(self, clock):
        tracker = NodeHealthTracker(MonitorConfig(), clock)
        with pytest.raises(InitError, match="Duplicate"):
            tracker.register_nodes([NodeSeed(id="a"), NodeSeed(id="b"), NodeSeed(id="a")])
        assert len(tracker) == 0
        assert not tracker.is_registered

    def test_blank_id_rejected(self, clock):
        tracker = NodeHealthTracker(MonitorConfig(), clock)
        with pytest.raises(InitError, match="blank"):
            tracker.register_nodes([NodeSeed(id="   ")])


class TestProbing:
    @pytest.mark.asyncio
    async def test_every_node_probed_once(self, tracker, probe):
        await tracker.probe(probe)
        assert sorted(probe.calls) == ["n1", "n2", "n3", "n4"]

    @pytest.mark.asyncio
    async def test_success_synchronizes(self, tracker, probe, clock):
        await tracker.probe(probe)
        node = tracker.get_nodes()[0]
        assert node.synchronized
        assert node.status == NodeStatus.ANCHORED
        assert node.latency_ms == 12.0
        assert node.last_sync == clock.now()

    @pytest.mark.asyncio
    async def test_unreachable_goes_offline_and_decays(self, tracker, probe):
        probe.down.add("n2")
        await tracker.probe(probe)
        record = tracker.get("n2")
        assert record.status == NodeStatus.OFFLINE
        assert not record.synchronized
        assert record.coherence == pytest.approx(0.99)
        assert record.consecutive_failures == 1

    @pytest.mark.asyncio
    async def test_raising_probe_is_a_failure(self, tracker, probe):
        probe.raises.add("n3")
        await tracker.probe(probe)
        assert tracker.get("n3").status == NodeStatus.OFFLINE
        assert tracker.get("n1").synchronized
        assert tracker.stats["probe_errors"] == 1

    @pytest.mark.asyncio
    async def test_hung_probe_times_out(self, clock, seeds, probe):
        tracker = NodeHealthTracker(MonitorConfig(probe_timeout_ms=20), clock)
        tracker.register_nodes(seeds)
        probe.hangs.add("n4")
        await tracker.probe(probe)
        assert tracker.get("n4").status == NodeStatus.OFFLINE
        assert tracker.get("n1").synchronized
        assert tracker.stats["probe_timeouts"] == 1

    @pytest.mark.asyncio
    async def test_recovery_after_failure(self, tracker, probe):
        probe.down.add("n1")
        await tracker.probe(probe)
        probe.down.clear()
        await tracker.probe(probe)
        record = tracker.get("n1")
        assert record.synchronized
        assert record.consecutive_failures == 0
        assert record.total_failures == 1
        assert record.coherence == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_coherence_stays_in_unit_interval(self, clock, probe):
        tracker = NodeHealthTracker(MonitorConfig(coherence_decay_step=0.5), clock)
        tracker.register_nodes([NodeSeed(id="a", coherence=0.2), NodeSeed(id="b", coherence=0.995)])
        probe.down.add("a")
        for _ in range(3):
            await tracker.probe(probe)
        assert tracker.get("a").coherence == 0.0
        assert tracker.get("b").coherence == 1.0

    @pytest.mark.asyncio
    async def test_unsynchronized_lists_failed_nodes(self, tracker, probe):
        probe.down.update({"n2", "n4"})
        await tracker.probe(probe)
        assert [n.id for n in tracker.unsynchronized()] == ["n2", "n4"]


class TestSnapshots:
    def test_snapshot_is_frozen(self, tracker):
        node = tracker.get_nodes()[0]
        with pytest.raises(ValidationError):
            node.coherence = 0.1

    @pytest.mark.asyncio
    async def test_snapshot_unaffected_by_later_ticks(self, tracker, probe):
        await tracker.probe(probe)
        before = tracker.get_nodes()
        probe.down.add("n1")
        await tracker.probe(probe)
        assert before[0].synchronized
        assert not tracker.get_nodes()[0].synchronized
