"""
AnchorWatch — Common Primitives

Shared base classes and utilities used across all systems.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel
from ulid import ULID


def new_id() -> str:
    """Generate a new ULID string. Time-sortable, globally unique."""
    return str(ULID())


def utc_now() -> datetime:
    """Current UTC time, timezone-aware."""
    return datetime.now(timezone.utc)


def clamp01(value: float) -> float:
    """Clamp a score into the closed unit interval."""
    return max(0.0, min(1.0, value))


# ─── Base Models ──────────────────────────────────────────────────


class AWBaseModel(BaseModel):
    """Base model for all AnchorWatch records. Uses ULID IDs and UTC timestamps."""

    model_config = {"populate_by_name": True, "from_attributes": True}


class FrozenModel(AWBaseModel):
    """Immutable record. Safe to hand to readers on other threads or tasks."""

    model_config = {"populate_by_name": True, "from_attributes": True, "frozen": True}
