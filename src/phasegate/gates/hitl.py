from __future__ import annotations

from typing import Optional, Protocol

from phasegate.gates.models import GateDecision, GateRequest


class HumanGateManager(Protocol):
    def request_gate(self, phase_id: str) -> GateRequest:
        """Open a review gate for a finished phase + emit events; the phase waits on it."""
        ...

    def decide(self, decision: GateDecision) -> None:
        """Apply an external review signal; completes the phase or sends it back for rework."""
        ...

    def get_pending_gate(self, phase_id: str) -> Optional[GateRequest]:
        """If the phase is awaiting review, return the open gate request."""
        ...
