from __future__ import annotations

import pytest

from phasegate.data.event_log import Event, EventLog
from phasegate.errors import PhaseGraphError
from phasegate.events import EVENT_SPECS, EventType, is_known_event_type
from phasegate.validators import EventValidationError, validate_event_envelope


def test_every_event_type_has_a_payload_shape():
    assert set(EVENT_SPECS) == set(EventType)


def test_known_event_type():
    assert is_known_event_type("gate.approved")
    assert not is_known_event_type("gate.exploded")


class TestEnvelope:
    def test_valid(self):
        validate_event_envelope(
            event_type="phase.started",
            actor_type="system",
            severity="info",
            payload={"subsystem": "orders", "phase_id": "A"},
        )

    def test_collects_all_problems(self):
        with pytest.raises(EventValidationError) as exc_info:
            validate_event_envelope(
                event_type="phase.started",
                actor_type="robot",
                severity="loud",
                payload={"subsystem": "orders"},
            )
        msg = str(exc_info.value)
        assert "actor_type='robot'" in msg
        assert "severity='loud'" in msg
        assert "['phase_id']" in msg

        err = exc_info.value
        assert isinstance(err, PhaseGraphError)
        assert err.to_dict()["code"] == "InvalidEvent"
        assert err.to_dict()["data"]["problems"] == err.problems

    def test_review_decisions_need_a_reviewer(self):
        payload = {"subsystem": "orders", "gate_id": "orders:A:1", "human_actor": "bob"}
        with pytest.raises(EventValidationError) as exc_info:
            validate_event_envelope(event_type="gate.approved", actor_type="system", severity="info", payload=payload)
        assert "may not emit" in str(exc_info.value)

        validate_event_envelope(event_type="gate.approved", actor_type="gate", severity="info", payload=payload)

    @pytest.mark.parametrize(
        "payload",
        [
            {"subsystem": "", "level_count": 1, "width": 1},
            {"subsystem": "orders", "level_count": -1, "width": 1},
            {"subsystem": "orders", "level_count": True, "width": 1},
            {"subsystem": 7, "level_count": 1, "width": 1},
        ],
    )
    def test_payload_values(self, payload):
        with pytest.raises(EventValidationError) as exc_info:
            validate_event_envelope(event_type="plan.computed", actor_type="system", severity="info", payload=payload)
        assert len(exc_info.value.problems) == 1

    def test_unknown_type_only_when_strict(self):
        with pytest.raises(EventValidationError):
            validate_event_envelope(event_type="x.y", actor_type="system", severity="info", payload={})
        validate_event_envelope(
            event_type="x.y", actor_type="system", severity="info", payload={}, strict_event_types=False
        )


class TestEventLog:
    def test_append_numbers_events(self):
        log = EventLog()
        e1 = log.append(event_type="subsystem.created", payload={"subsystem": "orders"})
        e2 = log.append(
            event_type="gate.rejected",
            payload={"subsystem": "orders", "gate_id": "orders:A:1", "human_actor": "bob", "reason": "no"},
            actor_type="human",
            severity="warn",
        )

        assert (e1.seq, e2.seq) == (1, 2)
        assert len(log) == 2
        assert log.of_type("gate.rejected") == [e2]

    def test_invalid_append_is_not_recorded(self):
        log = EventLog()
        with pytest.raises(EventValidationError):
            log.append(event_type="phase.started", payload={})
        assert len(log) == 0

    def test_event_from_dict_defaults(self):
        e = Event.from_dict({"seq": 3, "event_type": "plan.computed", "payload": "junk"})
        assert e.actor_type == "system"
        assert e.severity == "info"
        assert e.payload == {}
