from __future__ import annotations

from collections.abc import Mapping
from dataclasses import replace
from typing import Optional

import structlog

from phasegate.core.types import PhaseStatus
from phasegate.data.event_log import EventLog
from phasegate.engine.state import PhaseState, can_transition
from phasegate.errors import (
    DependenciesIncompleteError,
    InvalidTransitionError,
    UnknownGateError,
)
from phasegate.events import EventType
from phasegate.gates.hitl import HumanGateManager
from phasegate.gates.models import GateDecision, GateRequest, gate_mode_for
from phasegate.graph.subsystem import Subsystem

logger = structlog.get_logger()


class PhaseTracker(HumanGateManager):
    """
    Drives the per-phase execution state machine for one subsystem.

    Review tiers are human-in-the-loop checkpoints: a submitted phase waits in
    AWAITING_REVIEW on an open GateRequest until an external GateDecision
    arrives. Nothing here runs gate commands or waits on anything.

    State is held in memory; snapshot()/restore() hand it to a store.
    """

    def __init__(
        self,
        subsystem: Subsystem,
        *,
        events: EventLog | None = None,
        states: Mapping[str, PhaseState] | None = None,
    ) -> None:
        self.subsystem = subsystem
        self.events = events if events is not None else subsystem.events
        self._states: dict[str, PhaseState] = {}
        for pid, st in (states or {}).items():
            self.subsystem.phase(pid)
            self._states[pid] = st

    # --------------------
    # Queries
    # --------------------
    def state(self, phase_id: str) -> PhaseState:
        self.subsystem.phase(phase_id)
        return self._states.get(phase_id) or PhaseState(phase_id=phase_id)

    def status(self, phase_id: str) -> PhaseStatus:
        return self.state(phase_id).status

    def statuses(self) -> dict[str, PhaseStatus]:
        return {p.phase_id: self.status(p.phase_id) for p in self.subsystem.phases}

    def pending_dependencies(self, phase_id: str) -> list[str]:
        deps = self.subsystem.graph.dependencies(phase_id)
        return sorted(d for d in deps if self.status(d) != PhaseStatus.COMPLETED)

    def ready(self) -> list[str]:
        """Phases that could start now: not started, every dependency completed."""
        return sorted(
            p.phase_id
            for p in self.subsystem.phases
            if self.status(p.phase_id) == PhaseStatus.NOT_STARTED and not self.pending_dependencies(p.phase_id)
        )

    def is_done(self) -> bool:
        return all(s == PhaseStatus.COMPLETED for s in self.statuses().values())

    def get_pending_gate(self, phase_id: str) -> Optional[GateRequest]:
        return self.state(phase_id).pending_gate

    # --------------------
    # Transitions
    # --------------------
    def start(self, phase_id: str) -> PhaseState:
        current = self.state(phase_id)
        if current.status != PhaseStatus.NOT_STARTED:
            # rework re-enters IN_PROGRESS only through a rejected review
            raise InvalidTransitionError(phase_id, current.status.value, PhaseStatus.IN_PROGRESS.value)
        pending = self.pending_dependencies(phase_id)
        if pending:
            raise DependenciesIncompleteError(phase_id, pending)

        new = replace(current, status=PhaseStatus.IN_PROGRESS)
        self._states[phase_id] = new
        self._emit(EventType.phase_started, {"subsystem": self.subsystem.name, "phase_id": phase_id})
        return new

    def request_gate(self, phase_id: str) -> GateRequest:
        """IN_PROGRESS -> AWAITING_REVIEW; opens the review gate for the phase's tier."""
        current = self.state(phase_id)
        self._check_move(current, PhaseStatus.AWAITING_REVIEW)

        phase = self.subsystem.phase(phase_id)
        attempt = current.attempts + 1
        req = GateRequest(
            gate_id=f"{self.subsystem.name}:{phase_id}:{attempt}",
            subsystem=self.subsystem.name,
            phase_id=phase_id,
            mode=gate_mode_for(phase.review_tier),
            review_tier=phase.review_tier,
            gate_command=phase.gate,
            summary=f"Review {phase_id} {phase.name}".strip(),
            required_contracts=tuple(sorted(phase.contracts_exposed)),
        )
        self._states[phase_id] = replace(
            current, status=PhaseStatus.AWAITING_REVIEW, attempts=attempt, pending_gate=req
        )

        self._emit(
            EventType.phase_submitted,
            {"subsystem": self.subsystem.name, "phase_id": phase_id, "gate_id": req.gate_id, "mode": req.mode},
        )
        self._emit(
            EventType.gate_requested,
            {
                "subsystem": self.subsystem.name,
                "phase_id": phase_id,
                "gate_id": req.gate_id,
                "mode": req.mode,
                "review_tier": req.review_tier,
            },
        )
        return req

    submit = request_gate

    def decide(self, decision: GateDecision) -> None:
        phase_id, req = self._pending_for_gate(decision.gate_id)
        current = self._states[phase_id]

        payload = {"subsystem": self.subsystem.name, "gate_id": req.gate_id, "human_actor": decision.human_actor}

        if decision.decision == "REJECT":
            reason = (decision.reason or "").strip()
            if not reason:
                raise InvalidTransitionError(
                    phase_id, current.status.value, PhaseStatus.IN_PROGRESS.value, reason="a rejection needs a reason"
                )
            self._states[phase_id] = replace(
                current, status=PhaseStatus.IN_PROGRESS, pending_gate=None, last_rejection=reason
            )
            self._emit(EventType.gate_rejected, {**payload, "reason": reason}, actor_type="human", severity="warn")
            self._emit(
                EventType.phase_reworked,
                {"subsystem": self.subsystem.name, "phase_id": phase_id, "reason": reason},
            )
            return

        if decision.decision == "ACK" and req.mode == "APPROVE":
            raise InvalidTransitionError(
                phase_id,
                current.status.value,
                PhaseStatus.COMPLETED.value,
                reason=f"gate {req.gate_id} requires APPROVE ({req.review_tier})",
            )
        if decision.decision not in ("ACK", "APPROVE"):
            raise InvalidTransitionError(
                phase_id, current.status.value, PhaseStatus.COMPLETED.value, reason=f"unknown decision {decision.decision!r}"
            )

        self._states[phase_id] = replace(current, status=PhaseStatus.COMPLETED, pending_gate=None)
        actor = "gate" if req.mode == "AUTO" else "human"
        et = EventType.gate_acknowledged if decision.decision == "ACK" else EventType.gate_approved
        self._emit(et, payload, actor_type=actor)
        self._emit(EventType.phase_completed, {"subsystem": self.subsystem.name, "phase_id": phase_id})

    # --------------------
    # Persistence hooks
    # --------------------
    def snapshot(self) -> dict[str, object]:
        return {
            "subsystem": self.subsystem.name,
            "phases": [self.state(p.phase_id).to_dict() for p in self.subsystem.phases],
        }

    @classmethod
    def restore(
        cls,
        subsystem: Subsystem,
        snapshot: Mapping[str, object],
        *,
        events: EventLog | None = None,
    ) -> "PhaseTracker":
        raw = snapshot.get("phases")
        states: dict[str, PhaseState] = {}
        if isinstance(raw, list):
            for item in raw:
                if isinstance(item, Mapping):
                    st = PhaseState.from_dict(item)
                    if st.phase_id in subsystem:
                        states[st.phase_id] = st
                    else:
                        logger.warning("tracker.restore_dropped", subsystem=subsystem.name, phase_id=st.phase_id)
        return cls(subsystem, events=events, states=states)

    # --------------------
    # Internals
    # --------------------
    def _check_move(self, current: PhaseState, target: PhaseStatus) -> None:
        if not can_transition(current.status, target):
            raise InvalidTransitionError(current.phase_id, current.status.value, target.value)

    def _pending_for_gate(self, gate_id: str) -> tuple[str, GateRequest]:
        for pid, st in self._states.items():
            if st.pending_gate is not None and st.pending_gate.gate_id == gate_id:
                return pid, st.pending_gate
        raise UnknownGateError(gate_id)

    def _emit(
        self,
        event_type: EventType,
        payload: dict[str, object],
        *,
        actor_type: str = "system",
        severity: str = "info",
    ) -> None:
        if self.events is not None:
            self.events.append(event_type=event_type.value, payload=payload, actor_type=actor_type, severity=severity)
        else:
            logger.debug(event_type.value, actor=actor_type, **payload)
