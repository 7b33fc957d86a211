# src/phasegate/config/memory.py
"""Cross-session memory: discipline notes carried between authoring sessions.

The memory is an explicit value with a load -> update -> save lifecycle.
Callers load it once, pass it where needed, and save the updated value;
there is no module-level instance.
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

import yaml

from phasegate.errors import ConfigError


@dataclass(frozen=True, slots=True)
class SessionMemory:
    notes: tuple[str, ...] = ()
    updated_at: str | None = None
    meta: dict[str, object] = field(default_factory=dict)

    def with_note(self, note: str) -> "SessionMemory":
        """Returns a new memory with the note appended (blank and duplicate notes are ignored)."""
        n = note.strip()
        if not n or n in self.notes:
            return self
        return SessionMemory(
            notes=(*self.notes, n),
            updated_at=datetime.now(timezone.utc).isoformat(timespec="seconds"),
            meta=dict(self.meta),
        )

    def without_note(self, note: str) -> "SessionMemory":
        n = note.strip()
        if n not in self.notes:
            return self
        return SessionMemory(
            notes=tuple(x for x in self.notes if x != n),
            updated_at=datetime.now(timezone.utc).isoformat(timespec="seconds"),
            meta=dict(self.meta),
        )

    def to_dict(self) -> dict[str, object]:
        out: dict[str, object] = {"notes": list(self.notes)}
        if self.updated_at is not None:
            out["updated_at"] = self.updated_at
        if self.meta:
            out["meta"] = dict(self.meta)
        return out

    @staticmethod
    def from_dict(d: Mapping[str, object] | None) -> "SessionMemory":
        d2 = dict(d or {})
        raw_notes = d2.get("notes")
        notes: list[str] = []
        if isinstance(raw_notes, list):
            for item in raw_notes:
                s = str(item).strip() if item is not None else ""
                if s and s not in notes:
                    notes.append(s)
        updated_at = d2.get("updated_at")
        meta = d2.get("meta")
        return SessionMemory(
            notes=tuple(notes),
            updated_at=str(updated_at) if updated_at is not None else None,
            meta=dict(meta) if isinstance(meta, Mapping) else {},
        )


class SessionMemoryStore:
    """Defines the persistence contract for session memory."""

    def load(self) -> SessionMemory: ...
    def save(self, memory: SessionMemory) -> None: ...


class FileSessionMemoryStore:
    """Persists session memory as YAML (default: <project_root>/.phasegate/memory.yaml)."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> SessionMemory:
        if not self.path.exists():
            return SessionMemory()
        try:
            raw = yaml.safe_load(self.path.read_text(encoding="utf-8"))
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid memory file {self.path}: {e}", data={"source": str(self.path)}) from e
        if raw is not None and not isinstance(raw, dict):
            raise ConfigError(f"Memory file {self.path} must hold a mapping", data={"source": str(self.path)})
        return SessionMemory.from_dict(raw)

    def save(self, memory: SessionMemory) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        text = yaml.safe_dump(memory.to_dict(), sort_keys=False, allow_unicode=True)
        self.path.write_text(text, encoding="utf-8")


class MemorySessionMemoryStore:
    """Keeps session memory in process for unit tests."""

    def __init__(self, memory: SessionMemory | None = None) -> None:
        self._memory = memory or SessionMemory()

    def load(self) -> SessionMemory:
        return self._memory

    def save(self, memory: SessionMemory) -> None:
        self._memory = memory
