"""
AnchorWatch — Tick Scheduler

Drives the engine at a fixed interval on the asyncio loop.

Rules:
  - Ticks never overlap. A trigger that arrives while a tick is still
    running is skipped, not queued.
  - A tick that overruns its interval forfeits the slots it covered; the
    next tick starts on the following interval boundary.
  - The loop never dies. A tick that raises is logged and the loop
    carries on at the next boundary.
  - stop() is idempotent and waits briefly for an in-flight tick to
    finish before cancelling.

All timing goes through an injected Clock, so tests can drive the loop
without sleeping.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from anchorwatch.systems.monitor.errors import SchedulerError
from anchorwatch.systems.monitor.types import Clock

logger = structlog.get_logger("anchorwatch.systems.monitor.scheduler")

TickCallback = Callable[[], Awaitable[Any]]

# How long stop() waits for an in-flight tick before cancelling it
_STOP_GRACE_S: float = 5.0

# Overrun warnings are rate-limited to one per this many overruns
_OVERRUN_LOG_EVERY: int = 100


class Scheduler:
    def __init__(
        self,
        callback: TickCallback,
        interval_ms: float,
        clock: Clock,
        name: str = "monitor_scheduler",
    ) -> None:
        if interval_ms <= 0:
            raise ValueError("interval_ms must be positive")
        self._callback = callback
        self._interval_s = interval_ms / 1000.0
        self._clock = clock
        self._name = name
        self._logger = logger.bind(component="scheduler", scheduler=name)

        # Control
        self._running: bool = False
        self._task: asyncio.Task[None] | None = None
        self._in_tick: bool = False
        self._idle = asyncio.Event()
        self._idle.set()

        # Counters
        self._tick_count: int = 0
        self._skipped: int = 0
        self._overruns: int = 0
        self._errors: int = 0

    # ─── Control ─────────────────────────────────────────────────────

    def start(self) -> asyncio.Task[None]:
        """Start the loop. Returns the background task handle."""
        if self._running:
            raise SchedulerError(f"Scheduler {self._name} is already running")

        self._running = True
        self._task = asyncio.create_task(self._run_loop(), name=self._name)
        self._logger.info("scheduler_started", interval_s=self._interval_s)
        return self._task

    async def stop(self) -> None:
        """Stop the loop. Safe to call repeatedly, or before start()."""
        was_running = self._running
        self._running = False

        task = self._task
        self._task = None
        if task is not None and not task.done():
            if self._in_tick:
                with contextlib.suppress(TimeoutError):
                    await asyncio.wait_for(self._idle.wait(), timeout=_STOP_GRACE_S)
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        if was_running:
            self._logger.info(
                "scheduler_stopped",
                ticks=self._tick_count,
                skipped=self._skipped,
                overruns=self._overruns,
                errors=self._errors,
            )

    @property
    def is_running(self) -> bool:
        return self._running

    # ─── Ticking ─────────────────────────────────────────────────────

    async def trigger(self) -> bool:
        """
        Run one tick now, unless one is already in flight.

        Returns False when skipped. Exceptions from the tick are logged,
        never raised.
        """
        if self._in_tick:
            self._skipped += 1
            self._logger.warning("tick_skipped_overlap", tick=self._tick_count)
            return False

        self._in_tick = True
        self._idle.clear()
        try:
            await self._callback()
            self._tick_count += 1
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._errors += 1
            self._logger.error(
                "tick_error",
                tick=self._tick_count,
                error=str(exc),
                error_count=self._errors,
            )
        finally:
            self._in_tick = False
            self._idle.set()
        return True

    async def _run_loop(self) -> None:
        while self._running:
            t0 = self._clock.monotonic()
            try:
                await self.trigger()

                elapsed = self._clock.monotonic() - t0
                if elapsed > self._interval_s:
                    missed = int(elapsed // self._interval_s)
                    self._overruns += 1
                    self._skipped += missed
                    if self._overruns % _OVERRUN_LOG_EVERY == 1:
                        self._logger.warning(
                            "tick_overrun",
                            elapsed_s=round(elapsed, 3),
                            interval_s=self._interval_s,
                            missed_slots=missed,
                        )
                    sleep_s = self._interval_s - (elapsed % self._interval_s)
                else:
                    sleep_s = self._interval_s - elapsed

                if self._running and sleep_s > 0:
                    await self._clock.sleep(sleep_s)
            except asyncio.CancelledError:
                self._logger.info("scheduler_loop_cancelled")
                return

    # ─── State ───────────────────────────────────────────────────────

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "in_tick": self._in_tick,
            "interval_s": self._interval_s,
            "ticks": self._tick_count,
            "skipped": self._skipped,
            "overruns": self._overruns,
            "errors": self._errors,
        }
