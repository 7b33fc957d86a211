from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Mapping, Tuple


class ActorType(str, Enum):
    system = "system"
    human = "human"
    gate = "gate"  # the gate command result, reported by whoever ran it


class Severity(str, Enum):
    debug = "debug"
    info = "info"
    warn = "warn"
    error = "error"


class EventType(str, Enum):
    """
    Lifecycle events recorded for a subsystem.

    Values are persisted in events.jsonl; never rename one, add a new member.
    """

    # Subsystem lifecycle
    subsystem_created = "subsystem.created"
    subsystem_retired = "subsystem.retired"
    phase_added = "subsystem.phase_added"
    phase_updated = "subsystem.phase_updated"

    # Phase execution
    phase_started = "phase.started"
    phase_submitted = "phase.submitted"
    phase_completed = "phase.completed"
    phase_reworked = "phase.reworked"

    # Review gates
    gate_requested = "gate.requested"
    gate_acknowledged = "gate.acknowledged"
    gate_approved = "gate.approved"
    gate_rejected = "gate.rejected"

    # Validation / planning
    validation_passed = "validation.passed"
    validation_failed = "validation.failed"
    plan_computed = "plan.computed"


_ANY_ACTOR: FrozenSet[str] = frozenset(a.value for a in ActorType)
_REVIEWERS: FrozenSet[str] = frozenset({ActorType.human.value, ActorType.gate.value})


@dataclass(frozen=True)
class EventSpec:
    """Payload shape for one event type.

    id_keys must hold non-empty strings (subsystem names, phase and gate ids).
    count_keys must hold ints >= 0. actors limits who may emit the event.
    """

    id_keys: Tuple[str, ...]
    count_keys: Tuple[str, ...] = ()
    actors: FrozenSet[str] = _ANY_ACTOR

    @property
    def required_keys(self) -> Tuple[str, ...]:
        return (*self.id_keys, *self.count_keys)


_SUB = ("subsystem",)
_PHASE = ("subsystem", "phase_id")
_GATE = ("subsystem", "gate_id", "human_actor")

EVENT_SPECS: Mapping[EventType, EventSpec] = {
    EventType.subsystem_created: EventSpec(id_keys=_SUB),
    EventType.subsystem_retired: EventSpec(id_keys=_SUB, count_keys=("phase_count",)),
    EventType.phase_added: EventSpec(id_keys=_PHASE),
    EventType.phase_updated: EventSpec(id_keys=_PHASE),

    EventType.phase_started: EventSpec(id_keys=_PHASE),
    EventType.phase_submitted: EventSpec(id_keys=(*_PHASE, "gate_id", "mode")),
    EventType.phase_completed: EventSpec(id_keys=_PHASE),
    EventType.phase_reworked: EventSpec(id_keys=(*_PHASE, "reason")),

    EventType.gate_requested: EventSpec(id_keys=(*_PHASE, "gate_id", "mode", "review_tier")),
    EventType.gate_acknowledged: EventSpec(id_keys=_GATE, actors=_REVIEWERS),
    EventType.gate_approved: EventSpec(id_keys=_GATE, actors=_REVIEWERS),
    EventType.gate_rejected: EventSpec(id_keys=(*_GATE, "reason"), actors=_REVIEWERS),

    EventType.validation_passed: EventSpec(id_keys=_SUB, count_keys=("phase_count",)),
    EventType.validation_failed: EventSpec(id_keys=_SUB, count_keys=("phase_count", "issue_count")),
    EventType.plan_computed: EventSpec(id_keys=_SUB, count_keys=("level_count", "width")),
}


def is_known_event_type(value: str) -> bool:
    return value in EventType._value2member_map_
