"""Shared fixtures for phasegate tests."""
from __future__ import annotations

from pathlib import Path

import pytest
import structlog
import yaml

from phasegate.data.event_log import EventLog
from phasegate.data.phase_types import Phase
from phasegate.graph.subsystem import Subsystem


def make_phase(
    phase_id: str,
    *,
    depends_on: tuple[str, ...] = (),
    consumes: tuple[str, ...] = (),
    exposes: dict[str, str] | None = None,
    tasks: int = 2,
    gate: str = "./gradlew test",
    review_tier: str = "gate-only",
) -> Phase:
    return Phase(
        phase_id=phase_id,
        name=f"phase {phase_id}",
        tasks=tuple(f"{phase_id}.t{i}" for i in range(1, tasks + 1)),
        contracts_consumed=frozenset(consumes),
        contracts_exposed=dict(exposes or {}),
        gate=gate,
        review_tier=review_tier,
        depends_on=frozenset(depends_on),
    )


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    # the CLI binds structlog to the captured stderr of the test that ran it
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


@pytest.fixture
def abc_phases() -> list[Phase]:
    """A exposes X; B depends on A, consumes X, exposes Y; C depends on A, exposes Z."""
    return [
        make_phase("A", exposes={"X": "data class X"}),
        make_phase("B", depends_on=("A",), consumes=("X",), exposes={"Y": "fun y(x: X)"}),
        make_phase("C", depends_on=("A",), exposes={"Z": "interface Z"}),
    ]


@pytest.fixture
def abc_subsystem(abc_phases) -> Subsystem:
    return Subsystem.from_phases("orders", abc_phases)


@pytest.fixture
def event_log() -> EventLog:
    return EventLog()


@pytest.fixture
def abc_document(tmp_path: Path) -> Path:
    doc = {
        "subsystem": {"name": "orders"},
        "phases": [
            {
                "id": "A",
                "name": "Domain types",
                "tasks": ["t1", "t2"],
                "exposes": {"X": "data class X"},
                "gate": "./gradlew test",
                "review_tier": "gate-only",
            },
            {
                "id": "B",
                "name": "Topology",
                "tasks": ["t1"],
                "depends_on": ["A"],
                "consumes": ["X"],
                "exposes": ["Y"],
                "gate": "./gradlew test",
                "review_tier": "full-review",
            },
            {
                "id": "C",
                "name": "Serdes",
                "tasks": ["t1"],
                "depends_on": ["A"],
                "exposes": [{"name": "Z", "signature": "interface Z"}],
                "gate": "./gradlew test",
                "review_tier": "spot-check",
            },
        ],
    }
    path = tmp_path / "orders.yaml"
    path.write_text(yaml.safe_dump(doc, sort_keys=False), encoding="utf-8")
    return path
