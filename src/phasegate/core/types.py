from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Literal


JSON = Dict[str, Any]

SubsystemStatus = Literal["DRAFT", "ACTIVE", "RETIRED"]

# Hard ceiling on tasks per phase; configuration may only lower it.
MAX_TASKS_PER_PHASE = 8


class ReviewTier(str, Enum):
    """Level of human scrutiny required at a phase checkpoint."""

    GATE_ONLY = "gate-only"
    SPOT_CHECK = "spot-check"
    FULL_REVIEW = "full-review"

    @classmethod
    def values(cls) -> tuple[str, ...]:
        return tuple(t.value for t in cls)


class PhaseStatus(str, Enum):
    """Execution status of one phase.

    NOT_STARTED -> IN_PROGRESS -> AWAITING_REVIEW -> COMPLETED
    AWAITING_REVIEW -> IN_PROGRESS is the only backward move (review rejected).
    """

    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    AWAITING_REVIEW = "AWAITING_REVIEW"
    COMPLETED = "COMPLETED"


@dataclass(frozen=True)
class ResourceRef:
    """
    Reference to an exact resolved resource used for a run.
    sha256 is computed from the raw bytes so provenance is stable.
    """
    id: str            # e.g., "phasegate"
    version: int       # e.g., 1
    sha256: str        # hash of resolved resource content
    source: str = "package"  # package | user | repo | explicit path
