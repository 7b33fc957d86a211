"""Envelope checks for lifecycle events before they enter an EventLog."""
from __future__ import annotations

from typing import Any, Mapping

from phasegate.errors import PhaseGraphError
from phasegate.events import EVENT_SPECS, ActorType, EventSpec, EventType, Severity


class EventValidationError(PhaseGraphError):
    code = "InvalidEvent"

    def __init__(self, event_type: str, problems: list[str]) -> None:
        self.event_type = event_type
        self.problems = list(problems)
        super().__init__(
            f"Invalid '{event_type}' event: " + "; ".join(self.problems),
            data={"event_type": event_type, "problems": list(self.problems)},
        )


def _payload_problems(spec: EventSpec, payload: Mapping[str, Any]) -> list[str]:
    problems: list[str] = []
    missing = [k for k in spec.required_keys if k not in payload]
    if missing:
        problems.append(f"payload missing required keys: {missing}")

    for k in spec.id_keys:
        v = payload.get(k)
        if k in payload and (not isinstance(v, str) or not v.strip()):
            problems.append(f"payload.{k} must be a non-empty string")
    for k in spec.count_keys:
        v = payload.get(k)
        if k in payload and (isinstance(v, bool) or not isinstance(v, int) or v < 0):
            problems.append(f"payload.{k} must be an int >= 0")
    return problems


def validate_event_envelope(
    *,
    event_type: str,
    actor_type: str,
    severity: str,
    payload: Mapping[str, Any],
    strict_event_types: bool = True,
) -> None:
    """Checks one event before it is recorded.

    Every problem is reported at once: unknown event type (when strict),
    actor or severity outside their enums, an actor the event does not allow,
    and payload keys that are missing or hold the wrong kind of value.

    Raises:
        EventValidationError: If anything is wrong.
    """
    problems: list[str] = []

    if actor_type not in ActorType._value2member_map_:
        problems.append(f"actor_type={actor_type!r} not in {[a.value for a in ActorType]}")
    if severity not in Severity._value2member_map_:
        problems.append(f"severity={severity!r} not in {[s.value for s in Severity]}")

    et = EventType._value2member_map_.get(event_type)
    if et is None:
        if strict_event_types:
            problems.append("unknown event_type")
    else:
        spec = EVENT_SPECS[et]  # type: ignore[index]
        if actor_type in ActorType._value2member_map_ and actor_type not in spec.actors:
            problems.append(f"actor_type={actor_type!r} may not emit this event")
        problems.extend(_payload_problems(spec, payload))

    if problems:
        raise EventValidationError(event_type, problems)
