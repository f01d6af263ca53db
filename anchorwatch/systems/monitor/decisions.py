"""
AnchorWatch — Decision Log

Append-only, bounded record of every decision the engine takes,
autonomous or not. Oldest entries fall off first. Readers get immutable
tuples; nothing they do can alter the log.
"""

from __future__ import annotations

from typing import Any

import structlog

from anchorwatch.systems.monitor.types import Decision, DecisionCallback, DecisionType

logger = structlog.get_logger("anchorwatch.systems.monitor.decisions")

_DEFAULT_MAX_DECISIONS: int = 100


class DecisionLog:
    def __init__(self, max_decisions: int = _DEFAULT_MAX_DECISIONS) -> None:
        if max_decisions <= 0:
            raise ValueError("max_decisions must be positive")
        self._max = max_decisions
        self._logger = logger.bind(component="decision_log")

        self._decisions: tuple[Decision, ...] = ()
        self._subscribers: list[DecisionCallback] = []

        # Lifetime counts survive truncation
        self._total_appended: int = 0
        self._by_type: dict[DecisionType, int] = {t: 0 for t in DecisionType}

    def subscribe(self, callback: DecisionCallback) -> None:
        self._subscribers.append(callback)

    def unsubscribe(self, callback: DecisionCallback) -> None:
        try:
            self._subscribers.remove(callback)
        except ValueError:
            pass

    def append(self, decision: Decision) -> None:
        decisions = (*self._decisions, decision)
        if len(decisions) > self._max:
            decisions = decisions[-self._max:]
        self._decisions = decisions

        self._total_appended += 1
        self._by_type[decision.type] += 1

        self._logger.info(
            "decision_logged",
            type=decision.type.value,
            level=decision.level.value,
            autonomous=decision.autonomous,
            success=decision.result.success if decision.result else None,
        )

        for callback in list(self._subscribers):
            try:
                callback(decision)
            except Exception as exc:
                self._logger.error(
                    "decision_callback_error",
                    callback=getattr(callback, "__name__", str(callback)),
                    error=str(exc),
                )

    def recent(self, n: int = 10) -> tuple[Decision, ...]:
        """Last n decisions, newest last."""
        if n <= 0:
            return ()
        return self._decisions[-n:]

    def count(self, decision_type: DecisionType) -> int:
        """Lifetime count for a type, including entries already truncated."""
        return self._by_type[decision_type]

    def __len__(self) -> int:
        return len(self._decisions)

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "total_appended": self._total_appended,
            "buffered": len(self._decisions),
            "by_type": {t.value: c for t, c in self._by_type.items()},
        }
