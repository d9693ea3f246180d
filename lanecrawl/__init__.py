"""lanecrawl - market-diverse pickup/delivery alternatives for freight lanes."""

from lanecrawl.engine import PairingEngine
from lanecrawl.models import (
    City,
    LaneRequest,
    LaneResult,
    LocationRef,
    Pair,
    ShortfallPolicy,
    ShortfallReason,
)

__all__ = [
    "City",
    "LaneRequest",
    "LaneResult",
    "LocationRef",
    "Pair",
    "PairingEngine",
    "ShortfallPolicy",
    "ShortfallReason",
]
