"""Tests for the phase execution state machine and review gates."""
from __future__ import annotations

from dataclasses import replace

import pytest

from phasegate.core.types import PhaseStatus
from phasegate.engine.state import PhaseState, can_transition
from phasegate.engine.tracker import PhaseTracker
from phasegate.errors import (
    DependenciesIncompleteError,
    InvalidDocumentError,
    InvalidTransitionError,
    UnknownGateError,
    UnknownPhaseError,
)
from phasegate.events import EventType
from phasegate.gates.models import GateDecision
from phasegate.graph.subsystem import Subsystem


@pytest.fixture
def tiered(abc_phases) -> Subsystem:
    """B needs a full review, C a spot check."""
    a, b, c = abc_phases
    return Subsystem.from_phases(
        "orders",
        [a, replace(b, review_tier="full-review"), replace(c, review_tier="spot-check")],
    )


@pytest.fixture
def tracker(tiered, event_log) -> PhaseTracker:
    return PhaseTracker(tiered, events=event_log)


def _complete(tracker: PhaseTracker, phase_id: str) -> None:
    tracker.start(phase_id)
    req = tracker.submit(phase_id)
    tracker.decide(GateDecision(gate_id=req.gate_id, decision="APPROVE", human_actor="alice"))


class TestTransitionTable:
    @pytest.mark.parametrize(
        "current,target,allowed",
        [
            (PhaseStatus.NOT_STARTED, PhaseStatus.IN_PROGRESS, True),
            (PhaseStatus.IN_PROGRESS, PhaseStatus.AWAITING_REVIEW, True),
            (PhaseStatus.AWAITING_REVIEW, PhaseStatus.COMPLETED, True),
            (PhaseStatus.AWAITING_REVIEW, PhaseStatus.IN_PROGRESS, True),
            (PhaseStatus.IN_PROGRESS, PhaseStatus.NOT_STARTED, False),
            (PhaseStatus.IN_PROGRESS, PhaseStatus.COMPLETED, False),
            (PhaseStatus.COMPLETED, PhaseStatus.IN_PROGRESS, False),
            (PhaseStatus.NOT_STARTED, PhaseStatus.COMPLETED, False),
        ],
    )
    def test_table(self, current, target, allowed):
        assert can_transition(current, target) is allowed


class TestTracker:
    def test_initial_state(self, tracker):
        assert set(tracker.statuses().values()) == {PhaseStatus.NOT_STARTED}
        assert tracker.ready() == ["A"]
        assert not tracker.is_done()

    def test_dependencies_must_be_completed(self, tracker):
        with pytest.raises(DependenciesIncompleteError) as exc_info:
            tracker.start("B")
        assert exc_info.value.pending == ["A"]

        tracker.start("A")
        with pytest.raises(DependenciesIncompleteError):
            tracker.start("B")

    def test_full_cycle(self, tracker, event_log):
        _complete(tracker, "A")
        assert tracker.status("A") == PhaseStatus.COMPLETED
        assert tracker.ready() == ["B", "C"]

        _complete(tracker, "B")
        _complete(tracker, "C")
        assert tracker.is_done()

        types = [e.event_type for e in event_log]
        assert types[:5] == [
            EventType.phase_started.value,
            EventType.phase_submitted.value,
            EventType.gate_requested.value,
            EventType.gate_approved.value,
            EventType.phase_completed.value,
        ]

    def test_gate_request_from_tier(self, tracker):
        _complete(tracker, "A")
        tracker.start("C")
        req = tracker.submit("C")

        assert req.mode == "ACK"  # spot-check
        assert req.gate_id == "orders:C:1"
        assert req.gate_command == "./gradlew test"
        assert req.required_contracts == ("Z",)
        assert tracker.status("C") == PhaseStatus.AWAITING_REVIEW
        assert tracker.get_pending_gate("C") == req

    def test_reject_sends_back_for_rework(self, tracker, event_log):
        tracker.start("A")
        req = tracker.submit("A")
        tracker.decide(GateDecision(gate_id=req.gate_id, decision="REJECT", human_actor="bob", reason="flaky test"))

        st = tracker.state("A")
        assert st.status == PhaseStatus.IN_PROGRESS
        assert st.last_rejection == "flaky test"
        assert st.pending_gate is None

        req2 = tracker.submit("A")
        assert req2.gate_id == "orders:A:2"
        assert event_log.of_type(EventType.gate_rejected.value)[0].actor_type == "human"

    def test_reject_needs_reason(self, tracker):
        tracker.start("A")
        req = tracker.submit("A")
        with pytest.raises(InvalidTransitionError):
            tracker.decide(GateDecision(gate_id=req.gate_id, decision="REJECT", human_actor="bob"))
        assert tracker.status("A") == PhaseStatus.AWAITING_REVIEW

    def test_ack_cannot_pass_full_review(self, tracker):
        _complete(tracker, "A")
        tracker.start("B")
        req = tracker.submit("B")
        assert req.mode == "APPROVE"

        with pytest.raises(InvalidTransitionError):
            tracker.decide(GateDecision(gate_id=req.gate_id, decision="ACK", human_actor="bob"))

        tracker.decide(GateDecision(gate_id=req.gate_id, decision="APPROVE", human_actor="bob"))
        assert tracker.status("B") == PhaseStatus.COMPLETED

    def test_gate_only_signal_comes_from_gate(self, tracker, event_log):
        tracker.start("A")
        req = tracker.submit("A")
        assert req.mode == "AUTO"

        tracker.decide(GateDecision(gate_id=req.gate_id, decision="ACK", human_actor="ci"))
        assert event_log.of_type(EventType.gate_acknowledged.value)[0].actor_type == "gate"

    def test_completed_is_terminal(self, tracker):
        _complete(tracker, "A")
        with pytest.raises(InvalidTransitionError):
            tracker.start("A")
        with pytest.raises(InvalidTransitionError):
            tracker.submit("A")

    def test_cannot_restart_while_awaiting_review(self, tracker):
        tracker.start("A")
        tracker.submit("A")
        with pytest.raises(InvalidTransitionError):
            tracker.start("A")

    def test_submit_requires_in_progress(self, tracker):
        with pytest.raises(InvalidTransitionError):
            tracker.submit("A")

    def test_unknown_gate_and_phase(self, tracker):
        with pytest.raises(UnknownGateError):
            tracker.decide(GateDecision(gate_id="orders:A:9", decision="APPROVE", human_actor="x"))
        with pytest.raises(UnknownPhaseError):
            tracker.start("Q")

    def test_gate_closes_after_one_decision(self, tracker):
        _complete(tracker, "A")
        with pytest.raises(UnknownGateError):
            tracker.decide(GateDecision(gate_id="orders:A:1", decision="APPROVE", human_actor="alice"))
        assert tracker.status("A") == PhaseStatus.COMPLETED


class TestPersistence:
    def test_snapshot_restore(self, tiered, tracker):
        _complete(tracker, "A")
        tracker.start("B")
        tracker.submit("B")

        restored = PhaseTracker.restore(tiered, tracker.snapshot())

        assert restored.statuses() == tracker.statuses()
        assert restored.get_pending_gate("B") == tracker.get_pending_gate("B")

    def test_restore_drops_unknown_phases(self, tiered):
        snap = {"phases": [{"phase_id": "Q", "status": "COMPLETED", "attempts": 1}]}
        restored = PhaseTracker.restore(tiered, snap)
        assert restored.status("A") == PhaseStatus.NOT_STARTED

    @pytest.mark.parametrize(
        "raw",
        [
            {"status": "COMPLETED"},
            {"phase_id": "A", "status": "DONE"},
            {"phase_id": "A", "status": "NOT_STARTED", "attempts": -1},
            {"phase_id": "A", "status": "AWAITING_REVIEW"},
            {"phase_id": "A", "status": "AWAITING_REVIEW", "pending_gate": {"gate_id": "orders:A:1"}},
        ],
    )
    def test_phase_state_parse_is_strict(self, raw):
        with pytest.raises(InvalidDocumentError):
            PhaseState.from_dict(raw)
