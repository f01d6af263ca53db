"""
AnchorWatch — Runner

Runs the monitor against simulated probes and a simulated frequency
source, logging every decision and alert as it happens.

Usage:
    python -m anchorwatch.main --config config/default.yaml --ticks 20
    python -m anchorwatch.main --config config/default.yaml          # until Ctrl-C

With --ticks, ticks are driven manually (spaced by the configured
interval unless --no-wait); without it the built-in scheduler runs.
"""

from __future__ import annotations

import argparse
import asyncio
import sys

import structlog
from dotenv import load_dotenv

from anchorwatch.config import load_config
from anchorwatch.systems.monitor.service import MonitorService
from anchorwatch.systems.monitor.types import Alert, Decision
from anchorwatch.telemetry.logging import setup_logging

logger = structlog.get_logger("anchorwatch.main")


def _on_alert(alert: Alert) -> None:
    logger.debug("alert_received", alert_id=alert.id, severity=alert.severity.value)


def _on_decision(decision: Decision) -> None:
    logger.debug(
        "decision_received",
        decision_id=decision.id,
        type=decision.type.value,
        level=decision.level.value,
    )


async def main(config_path: str, ticks: int | None, wait: bool) -> int:
    config = load_config(config_path)
    setup_logging(config.logging, instance_id=config.instance_id)

    service = MonitorService()
    service.subscribe("alert", _on_alert)
    service.subscribe("decision", _on_decision)

    result = await service.initialize(config, autostart=ticks is None)
    if not result:
        logger.error("startup_failed", error=result.error)
        return 1

    interval_s = config.monitor.tick_interval_ms / 1000.0
    try:
        if ticks is None:
            # Scheduler runs in the background until interrupted
            await asyncio.Event().wait()
        for i in range(ticks or 0):
            await service.tick()
            state = service.get_state()
            logger.info(
                "tick_completed",
                tick=state.tick_count,
                coherence=state.coherence.status.value,
                internal=round(state.coherence.internal, 3),
                distributed=round(state.coherence.distributed, 3),
                consensus_pct=round(state.consensus.current_pct, 1),
                sync=state.consensus.status.value,
                stability=state.resonance.stability.value if state.resonance else None,
            )
            if wait and i < ticks - 1:
                await asyncio.sleep(interval_s)
    except asyncio.CancelledError:
        pass
    finally:
        await service.shutdown()

    decisions = service.get_recent_decisions(config.monitor.max_decisions)
    logger.info(
        "run_summary",
        ticks=service.get_state().tick_count,
        decisions=len(decisions),
        autonomous=sum(1 for d in decisions if d.autonomous),
        alerts=len(service.get_recent_alerts(config.monitor.max_alerts)),
    )
    return 0


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="AnchorWatch coherence & resonance monitor")
    parser.add_argument(
        "--config",
        default="config/default.yaml",
        help="Path to the YAML configuration file",
    )
    parser.add_argument(
        "--ticks",
        type=int,
        default=None,
        help="Run this many ticks and exit (default: run until interrupted)",
    )
    parser.add_argument(
        "--no-wait",
        action="store_true",
        help="With --ticks, do not sleep between ticks",
    )
    return parser.parse_args()


if __name__ == "__main__":
    load_dotenv()
    args = _parse_args()
    if args.ticks is not None and args.ticks < 0:
        print("[ERROR] --ticks must be zero or positive", file=sys.stderr)
        sys.exit(1)
    try:
        sys.exit(asyncio.run(main(args.config, args.ticks, wait=not args.no_wait)))
    except KeyboardInterrupt:
        sys.exit(130)
