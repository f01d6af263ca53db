"""
AnchorWatch — Monitor Error Hierarchy

Only structural failures are exceptions. Probe timeouts, low coherence,
consensus loss and resonance instability are data: they become Alerts
and Decisions, never raised errors.

Severity guide:
  InitError         FATAL    -- node seeds or configuration unusable; no engine built
  SchedulerError    HIGH     -- scheduler driven out of order (double start)
"""

from __future__ import annotations


class MonitorError(RuntimeError):
    """Base for all monitor errors."""


class InitError(MonitorError):
    """
    The engine could not be initialized.

    Raised inside the build path and converted by MonitorService.initialize()
    into a failed InitResult. No partial engine state survives it.
    """


class SchedulerError(MonitorError):
    """The scheduler was started while already running."""
