# src/phasegate/data/document.py
"""Subsystem documents: already-structured YAML/JSON phase lists.

Layout:

    subsystem:
      name: orders
    phases:
      - id: A
        name: Domain types
        tasks: [t1, t2]
        exposes: {X: "data class X"}
        gate: "./gradlew test"
        review_tier: gate-only
      - id: B
        depends_on: [A]
        consumes: [X]

"phases" may also be a mapping of id -> phase body. Turning the Markdown
phase template into this shape happens elsewhere.
"""
from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from pathlib import Path

import yaml

from ..errors import InvalidDocumentError, PhaseGraphError
from .event_log import EventLog
from .phase_types import Phase
from ..graph.subsystem import Subsystem


def parse_phases(raw: object) -> list[Phase]:
    if raw is None:
        return []
    if isinstance(raw, Mapping):
        items: list[Mapping[str, object]] = []
        for pid, body in raw.items():
            if body is None:
                body = {}
            if not isinstance(body, Mapping):
                raise InvalidDocumentError(f"phases.{pid} must be a mapping", field="phases")
            items.append({**body, "id": body.get("id", pid)})
        return [Phase.from_dict(i) for i in items]
    if isinstance(raw, list):
        out: list[Phase] = []
        for i, item in enumerate(raw):
            if not isinstance(item, Mapping):
                raise InvalidDocumentError(f"phases[{i}] must be a mapping", field="phases")
            out.append(Phase.from_dict(item))
        return out
    raise InvalidDocumentError("phases must be a list or a mapping", field="phases")


def subsystem_name(raw: Mapping[str, object], default: str = "") -> str:
    header = raw.get("subsystem")
    if isinstance(header, Mapping):
        name = header.get("name")
    elif isinstance(header, str):
        name = header
    else:
        name = raw.get("name")
    name = str(name).strip() if name is not None else ""
    name = name or default
    if not name:
        raise InvalidDocumentError("subsystem.name must be a non-empty string", field="subsystem.name")
    return name


def subsystem_from_dict(
    raw: Mapping[str, object],
    *,
    default_name: str = "",
    events: EventLog | None = None,
    on_error: Callable[[str, PhaseGraphError], None] | None = None,
) -> Subsystem:
    """Builds a Subsystem.

    Structural errors (cycles, duplicates, unknown deps) propagate unless
    on_error is given; see Subsystem.from_phases.
    """
    if not isinstance(raw, Mapping):
        raise InvalidDocumentError("document must be a mapping")
    name = subsystem_name(raw, default=default_name)
    phases = parse_phases(raw.get("phases"))
    return Subsystem.from_phases(name, phases, events=events, on_error=on_error)


def subsystem_to_dict(subsystem: Subsystem) -> dict[str, object]:
    return {
        "subsystem": {"name": subsystem.name, "status": subsystem.status},
        "phases": [p.to_dict() for p in subsystem.phases],
    }


def read_document(path: str | Path) -> dict[str, object]:
    p = Path(path)
    if not p.is_file():
        raise InvalidDocumentError(f"Document not found: {p}")
    text = p.read_text(encoding="utf-8")
    try:
        raw = json.loads(text) if p.suffix.lower() == ".json" else yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise InvalidDocumentError(f"Cannot parse {p}: {e}") from e
    if not isinstance(raw, dict):
        raise InvalidDocumentError(f"{p} must contain a mapping at the top level")
    return raw


def load_subsystem(
    path: str | Path,
    *,
    events: EventLog | None = None,
    on_error: Callable[[str, PhaseGraphError], None] | None = None,
) -> Subsystem:
    """Reads a YAML (or .json) document; the file stem is the fallback subsystem name."""
    raw = read_document(path)
    return subsystem_from_dict(raw, default_name=Path(path).stem, events=events, on_error=on_error)
