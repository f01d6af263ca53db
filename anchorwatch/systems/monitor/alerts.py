"""
AnchorWatch — Alert Bus

Bounded ring of threshold-crossing alerts with synchronous pub/sub.

Storage is copy-on-write: each append publishes a new tuple, so a
reader holding recent() never sees it change underneath them and never
needs a lock.
"""

from __future__ import annotations

from typing import Any

import structlog

from anchorwatch.systems.monitor.types import Alert, AlertCallback, AlertSeverity, Clock

logger = structlog.get_logger("anchorwatch.systems.monitor.alerts")

_DEFAULT_MAX_ALERTS: int = 50

_LOG_METHOD: dict[AlertSeverity, str] = {
    AlertSeverity.INFO: "info",
    AlertSeverity.WARNING: "warning",
    AlertSeverity.CRITICAL: "error",
}


class AlertBus:
    def __init__(self, clock: Clock, max_alerts: int = _DEFAULT_MAX_ALERTS) -> None:
        if max_alerts <= 0:
            raise ValueError("max_alerts must be positive")
        self._clock = clock
        self._max = max_alerts
        self._logger = logger.bind(component="alert_bus")

        self._alerts: tuple[Alert, ...] = ()
        self._subscribers: list[AlertCallback] = []

        # Metrics
        self._total_created: int = 0
        self._total_dropped: int = 0
        self._total_callback_errors: int = 0
        self._by_severity: dict[AlertSeverity, int] = {s: 0 for s in AlertSeverity}

    # ─── Subscription ────────────────────────────────────────────────

    def subscribe(self, callback: AlertCallback) -> None:
        self._subscribers.append(callback)

    def unsubscribe(self, callback: AlertCallback) -> None:
        """Remove a callback. Unknown callbacks are ignored."""
        try:
            self._subscribers.remove(callback)
        except ValueError:
            pass

    # ─── Emission ────────────────────────────────────────────────────

    def create(
        self,
        severity: AlertSeverity,
        message: str,
        context: dict[str, Any] | None = None,
    ) -> Alert:
        alert = Alert(
            severity=severity,
            message=message,
            context=context or {},
            timestamp=self._clock.now(),
        )

        alerts = (*self._alerts, alert)
        if len(alerts) > self._max:
            self._total_dropped += len(alerts) - self._max
            alerts = alerts[-self._max:]
        self._alerts = alerts

        self._total_created += 1
        self._by_severity[severity] += 1

        getattr(self._logger, _LOG_METHOD[severity])(
            "alert_created",
            severity=severity.value,
            message=message,
        )

        self._publish(alert)
        return alert

    def _publish(self, alert: Alert) -> None:
        """Deliver in registration order. A failing subscriber never blocks the others."""
        for callback in list(self._subscribers):
            try:
                callback(alert)
            except Exception as exc:
                self._total_callback_errors += 1
                self._logger.error(
                    "alert_callback_error",
                    callback=getattr(callback, "__name__", str(callback)),
                    error=str(exc),
                )

    # ─── Query ───────────────────────────────────────────────────────

    def recent(self, n: int = 10) -> tuple[Alert, ...]:
        """Last n alerts, newest last."""
        if n <= 0:
            return ()
        return self._alerts[-n:]

    def __len__(self) -> int:
        return len(self._alerts)

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "total_created": self._total_created,
            "dropped": self._total_dropped,
            "buffered": len(self._alerts),
            "callback_errors": self._total_callback_errors,
            "subscriber_count": len(self._subscribers),
            "by_severity": {s.value: c for s, c in self._by_severity.items()},
        }
