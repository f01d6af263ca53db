"""
AnchorWatch — Shared Primitives
"""

from anchorwatch.primitives.common import (
    AWBaseModel,
    FrozenModel,
    clamp01,
    new_id,
    utc_now,
)

__all__ = [
    "AWBaseModel",
    "FrozenModel",
    "clamp01",
    "new_id",
    "utc_now",
]
