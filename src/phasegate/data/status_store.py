# status_store.py
from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path

from ..errors import InvalidDocumentError
from .event_log import Event, EventLog

SUBSYSTEMS_DIR_NAME = "subsystems"
STATUS_FILE_NAME = "status.json"
EVENTS_FILE_NAME = "events.jsonl"


@dataclass(frozen=True, slots=True)
class StatusStorePaths:
    """Defines the file layout for a single subsystem (paths only)."""

    project_root: Path
    subsystem: str
    root_dir: str = ".phasegate"

    @property
    def subsystem_root(self) -> Path:
        return self.project_root / self.root_dir / SUBSYSTEMS_DIR_NAME / self.subsystem

    @property
    def status_json(self) -> Path:
        return self.subsystem_root / STATUS_FILE_NAME

    @property
    def events_jsonl(self) -> Path:
        return self.subsystem_root / EVENTS_FILE_NAME


class StatusStore:
    """Defines the persistence contract for tracker state and the event log."""

    def read_status(self) -> dict[str, object] | None: ...
    def write_status(self, snapshot: dict[str, object]) -> None: ...

    def read_events(self) -> EventLog: ...
    def write_events(self, log: EventLog) -> None: ...


class FileStatusStore:
    """Persists tracker snapshots and lifecycle events to disk.

    Layout:
      <project_root>/.phasegate/subsystems/<name>/
        status.json
        events.jsonl
    """

    def __init__(self, *, project_root: str | Path, subsystem: str, root_dir: str = ".phasegate") -> None:
        self.paths = StatusStorePaths(project_root=Path(project_root).resolve(), subsystem=subsystem, root_dir=root_dir)

    def _ensure_dirs(self) -> None:
        self.paths.subsystem_root.mkdir(parents=True, exist_ok=True)

    # --------------------
    # Tracker state
    # --------------------
    def read_status(self) -> dict[str, object] | None:
        p = self.paths.status_json
        if not p.exists():
            return None
        try:
            raw = json.loads(p.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise InvalidDocumentError(f"Corrupt status file {p}: {e}") from e
        if not isinstance(raw, dict):
            raise InvalidDocumentError(f"Status file {p} must hold a mapping")
        return raw

    def write_status(self, snapshot: dict[str, object]) -> None:
        self._ensure_dirs()
        self.paths.status_json.write_text(
            json.dumps(snapshot, ensure_ascii=False, indent=2),
            encoding="utf-8",
        )

    # --------------------
    # Events
    # --------------------
    def read_events(self) -> EventLog:
        p = self.paths.events_jsonl
        if not p.exists():
            return EventLog()
        events: list[Event] = []
        for lineno, line in enumerate(p.read_text(encoding="utf-8").splitlines(), start=1):
            if not line.strip():
                continue
            try:
                raw = json.loads(line)
            except json.JSONDecodeError as e:
                raise InvalidDocumentError(f"Corrupt event at {p}:{lineno}: {e}") from e
            if not isinstance(raw, dict):
                continue
            try:
                events.append(Event.from_dict(raw))
            except (TypeError, ValueError) as e:
                raise InvalidDocumentError(f"Corrupt event at {p}:{lineno}: {e}") from e
        return EventLog(events)

    def write_events(self, log: EventLog) -> None:
        self._ensure_dirs()
        lines = [json.dumps(e.to_dict(), ensure_ascii=False, sort_keys=True) for e in log]
        self.paths.events_jsonl.write_text("\n".join(lines) + ("\n" if lines else ""), encoding="utf-8")


class MemoryStatusStore:
    """Stores tracker state and events in memory for unit tests."""

    def __init__(self) -> None:
        self._status: dict[str, object] | None = None
        self._events: list[Event] = []

    def read_status(self) -> dict[str, object] | None:
        return dict(self._status) if self._status is not None else None

    def write_status(self, snapshot: dict[str, object]) -> None:
        self._status = dict(snapshot)

    def read_events(self) -> EventLog:
        return EventLog(list(self._events))

    def write_events(self, log: EventLog) -> None:
        self._events = list(log)
