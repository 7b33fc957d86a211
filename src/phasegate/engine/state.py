from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional

from phasegate.core.types import PhaseStatus
from phasegate.errors import InvalidDocumentError
from phasegate.gates.models import GateRequest

# Allowed moves. COMPLETED is terminal; AWAITING_REVIEW -> IN_PROGRESS is the
# only backward edge (review rejected, phase goes back for rework).
TRANSITIONS: Dict[PhaseStatus, FrozenSet[PhaseStatus]] = {
    PhaseStatus.NOT_STARTED: frozenset({PhaseStatus.IN_PROGRESS}),
    PhaseStatus.IN_PROGRESS: frozenset({PhaseStatus.AWAITING_REVIEW}),
    PhaseStatus.AWAITING_REVIEW: frozenset({PhaseStatus.COMPLETED, PhaseStatus.IN_PROGRESS}),
    PhaseStatus.COMPLETED: frozenset(),
}


def can_transition(current: PhaseStatus, target: PhaseStatus) -> bool:
    return target in TRANSITIONS[current]


@dataclass(frozen=True, slots=True)
class PhaseState:
    """Persisted execution state of one phase.

    - attempts: number of review submissions so far (drives gate ids)
    - pending_gate: the open review gate while AWAITING_REVIEW
    - last_rejection: reason from the latest REJECT, kept for the rework
    """

    phase_id: str
    status: PhaseStatus = PhaseStatus.NOT_STARTED
    attempts: int = 0
    pending_gate: Optional[GateRequest] = None
    last_rejection: Optional[str] = None

    def to_dict(self) -> dict[str, object]:
        out: dict[str, object] = {
            "phase_id": self.phase_id,
            "status": self.status.value,
            "attempts": int(self.attempts),
        }
        if self.pending_gate is not None:
            out["pending_gate"] = self.pending_gate.to_dict()
        if self.last_rejection is not None:
            out["last_rejection"] = self.last_rejection
        return out

    @staticmethod
    def from_dict(d: Mapping[str, object]) -> "PhaseState":
        """Parses a PhaseState; strict on core fields.

        Raises:
            InvalidDocumentError: If required fields are missing or invalid.
        """
        phase_id = d.get("phase_id")
        if not isinstance(phase_id, str) or not phase_id.strip():
            raise InvalidDocumentError("phase_state.phase_id must be a non-empty string", field="phase_id")

        raw_status = d.get("status")
        if not isinstance(raw_status, str):
            raise InvalidDocumentError("phase_state.status must be a string", field="status")
        try:
            status = PhaseStatus(raw_status.strip())
        except ValueError as e:
            raise InvalidDocumentError(f"phase_state.status is invalid: {raw_status!r}", field="status") from e

        attempts = d.get("attempts", 0)
        if isinstance(attempts, bool) or not isinstance(attempts, int) or attempts < 0:
            raise InvalidDocumentError("phase_state.attempts must be an int >= 0", field="attempts")

        raw_gate = d.get("pending_gate")
        pending_gate = GateRequest.from_dict(raw_gate) if isinstance(raw_gate, Mapping) else None
        if status == PhaseStatus.AWAITING_REVIEW and pending_gate is None:
            raise InvalidDocumentError("phase_state.pending_gate is required while AWAITING_REVIEW", field="pending_gate")

        last_rejection = d.get("last_rejection")
        if last_rejection is not None and not isinstance(last_rejection, str):
            raise InvalidDocumentError("phase_state.last_rejection must be a string or null", field="last_rejection")

        return PhaseState(
            phase_id=phase_id.strip(),
            status=status,
            attempts=attempts,
            pending_gate=pending_gate,
            last_rejection=last_rejection,
        )
