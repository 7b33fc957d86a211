from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Mapping, Optional

from phasegate.core.types import ReviewTier
from phasegate.errors import InvalidDocumentError

Decision = Literal["ACK", "APPROVE", "REJECT"]
GateMode = Literal["AUTO", "ACK", "APPROVE"]

# gate-only: the gate command result is the signal (reported by the runner)
# spot-check: a human acknowledges
# full-review: a human approves
GATE_MODE_BY_TIER: Mapping[str, GateMode] = {
    ReviewTier.GATE_ONLY.value: "AUTO",
    ReviewTier.SPOT_CHECK.value: "ACK",
    ReviewTier.FULL_REVIEW.value: "APPROVE",
}


def gate_mode_for(review_tier: str, fallback_mode: GateMode = "APPROVE") -> GateMode:
    return GATE_MODE_BY_TIER.get(review_tier, fallback_mode)


@dataclass(frozen=True)
class GateRequest:
    gate_id: str
    subsystem: str
    phase_id: str
    mode: GateMode
    review_tier: str
    gate_command: str
    summary: str

    required_contracts: tuple[str, ...] = ()  # exposed contracts the reviewer should check

    def to_dict(self) -> dict[str, object]:
        return {
            "gate_id": self.gate_id,
            "subsystem": self.subsystem,
            "phase_id": self.phase_id,
            "mode": self.mode,
            "review_tier": self.review_tier,
            "gate_command": self.gate_command,
            "summary": self.summary,
            "required_contracts": list(self.required_contracts),
        }

    @staticmethod
    def from_dict(d: Mapping[str, object]) -> "GateRequest":
        for key in ("gate_id", "subsystem", "phase_id"):
            v = d.get(key)
            if not isinstance(v, str) or not v.strip():
                raise InvalidDocumentError(f"gate_request.{key} must be a non-empty string", field=key)

        contracts = d.get("required_contracts")
        return GateRequest(
            gate_id=str(d["gate_id"]),
            subsystem=str(d["subsystem"]),
            phase_id=str(d["phase_id"]),
            mode=str(d.get("mode") or "APPROVE"),  # type: ignore[arg-type]
            review_tier=str(d.get("review_tier") or ""),
            gate_command=str(d.get("gate_command") or ""),
            summary=str(d.get("summary") or ""),
            required_contracts=tuple(str(c) for c in contracts) if isinstance(contracts, list) else (),
        )


@dataclass(frozen=True)
class GateDecision:
    gate_id: str
    decision: Decision
    human_actor: str
    reason: Optional[str] = None
