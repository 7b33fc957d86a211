from __future__ import annotations

import time
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

import structlog

from phasegate.validators import validate_event_envelope

logger = structlog.get_logger()

_LOG_METHODS = {"debug": "debug", "info": "info", "warn": "warning", "error": "error"}


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True, slots=True)
class Event:
    seq: int
    ts_ms: int
    event_type: str
    actor_type: str
    severity: str
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        return {
            "seq": self.seq,
            "ts_ms": self.ts_ms,
            "event_type": self.event_type,
            "actor_type": self.actor_type,
            "severity": self.severity,
            "payload": dict(self.payload),
        }

    @staticmethod
    def from_dict(d: Mapping[str, object]) -> "Event":
        payload = d.get("payload")
        return Event(
            seq=int(d.get("seq") or 0),  # type: ignore[arg-type]
            ts_ms=int(d.get("ts_ms") or 0),  # type: ignore[arg-type]
            event_type=str(d.get("event_type") or ""),
            actor_type=str(d.get("actor_type") or "system"),
            severity=str(d.get("severity") or "info"),
            payload=dict(payload) if isinstance(payload, Mapping) else {},
        )


class EventLog:
    """
    Append-only lifecycle event log.

    Every append is validated against the event taxonomy and mirrored to the
    structured logger. Persistence is the caller's concern (see status_store).
    """

    def __init__(self, events: list[Event] | None = None) -> None:
        self._events: list[Event] = list(events or [])

    def append(
        self,
        *,
        event_type: str,
        payload: Mapping[str, Any],
        actor_type: str = "system",
        severity: str = "info",
    ) -> Event:
        validate_event_envelope(
            event_type=event_type,
            actor_type=actor_type,
            severity=severity,
            payload=payload,
            strict_event_types=True,
        )
        event = Event(
            seq=len(self._events) + 1,
            ts_ms=_now_ms(),
            event_type=event_type,
            actor_type=actor_type,
            severity=severity,
            payload=dict(payload),
        )
        self._events.append(event)
        getattr(logger, _LOG_METHODS[severity])(event_type, actor=actor_type, **event.payload)
        return event

    def of_type(self, event_type: str) -> list[Event]:
        return [e for e in self._events if e.event_type == event_type]

    def __iter__(self) -> Iterator[Event]:
        return iter(self._events)

    def __len__(self) -> int:
        return len(self._events)
