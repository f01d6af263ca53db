"""
Tests for the tick Scheduler.

Covers:
  - Manual triggering and overlap skipping
  - Loop survival when a tick raises
  - Overrun accounting
  - start/stop lifecycle
"""

from __future__ import annotations

import asyncio

import pytest

from anchorwatch.systems.monitor.errors import SchedulerError
from anchorwatch.systems.monitor.scheduler import Scheduler


async def _spin(times: int = 10) -> None:
    for _ in range(times):
        await asyncio.sleep(0)


class TestTrigger:
    @pytest.mark.asyncio
    async def test_trigger_runs_callback(self, clock):
        calls: list[int] = []

        async def tick():
            calls.append(1)

        scheduler = Scheduler(tick, interval_ms=1000, clock=clock)
        assert await scheduler.trigger()
        assert calls == [1]
        assert scheduler.tick_count == 1

    @pytest.mark.asyncio
    async def test_overlapping_trigger_is_skipped(self, clock):
        release = asyncio.Event()
        entered = asyncio.Event()

        async def slow_tick():
            entered.set()
            await release.wait()

        scheduler = Scheduler(slow_tick, interval_ms=1000, clock=clock)
        first = asyncio.create_task(scheduler.trigger())
        await entered.wait()

        assert await scheduler.trigger() is False
        release.set()
        assert await first is True
        assert scheduler.tick_count == 1
        assert scheduler.stats["skipped"] == 1

    @pytest.mark.asyncio
    async def test_raising_tick_is_contained(self, clock):
        attempts: list[int] = []

        async def flaky():
            attempts.append(1)
            if len(attempts) == 1:
                raise RuntimeError("boom")

        scheduler = Scheduler(flaky, interval_ms=1000, clock=clock)
        assert await scheduler.trigger()
        assert await scheduler.trigger()
        assert scheduler.stats["errors"] == 1
        assert scheduler.tick_count == 1

    def test_non_positive_interval_rejected(self, clock):
        async def tick():
            pass

        with pytest.raises(ValueError):
            Scheduler(tick, interval_ms=0, clock=clock)


class TestLoop:
    @pytest.mark.asyncio
    async def test_loop_ticks_at_interval(self, clock):
        calls: list[int] = []

        async def tick():
            calls.append(1)

        scheduler = Scheduler(tick, interval_ms=5000, clock=clock)
        scheduler.start()
        await _spin()
        await scheduler.stop()

        assert len(calls) >= 2
        assert clock.sleeps[0] == pytest.approx(5.0)

    @pytest.mark.asyncio
    async def test_loop_survives_raising_ticks(self, clock):
        async def always_fails():
            raise RuntimeError("probe layer down")

        scheduler = Scheduler(always_fails, interval_ms=1000, clock=clock)
        scheduler.start()
        await _spin()
        assert scheduler.is_running
        assert scheduler.stats["errors"] >= 2
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_overrun_sleeps_to_next_boundary(self, clock):
        async def long_tick():
            clock.advance(2.5)

        scheduler = Scheduler(long_tick, interval_ms=1000, clock=clock)
        scheduler.start()
        await _spin(3)
        await scheduler.stop()

        assert scheduler.stats["overruns"] >= 1
        assert scheduler.stats["skipped"] >= 2
        assert clock.sleeps[0] == pytest.approx(0.5)

    @pytest.mark.asyncio
    async def test_start_twice_rejected(self, clock):
        async def tick():
            pass

        scheduler = Scheduler(tick, interval_ms=1000, clock=clock)
        scheduler.start()
        with pytest.raises(SchedulerError):
            scheduler.start()
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, clock):
        async def tick():
            pass

        scheduler = Scheduler(tick, interval_ms=1000, clock=clock)
        await scheduler.stop()
        scheduler.start()
        await scheduler.stop()
        assert not scheduler.is_running
        await scheduler.stop()
        assert not scheduler.is_running

    @pytest.mark.asyncio
    async def test_stop_lets_in_flight_tick_finish(self, clock):
        release = asyncio.Event()
        entered = asyncio.Event()
        finished: list[bool] = []

        async def slow_tick():
            entered.set()
            await release.wait()
            finished.append(True)

        scheduler = Scheduler(slow_tick, interval_ms=1000, clock=clock)
        scheduler.start()
        await entered.wait()

        stopping = asyncio.create_task(scheduler.stop())
        await _spin(3)
        release.set()
        await stopping

        assert finished == [True]
        assert not scheduler.is_running

    @pytest.mark.asyncio
    async def test_restart_after_stop(self, clock):
        calls: list[int] = []

        async def tick():
            calls.append(1)

        scheduler = Scheduler(tick, interval_ms=1000, clock=clock)
        scheduler.start()
        await _spin(2)
        await scheduler.stop()
        scheduler.start()
        await _spin(2)
        await scheduler.stop()
        assert len(calls) >= 2
