"""Tests for Subsystem construction, edits and lifecycle."""
from __future__ import annotations

from dataclasses import replace

import pytest
from conftest import make_phase

from phasegate.errors import (
    CycleDetectedError,
    DuplicateContractError,
    DuplicatePhaseError,
    SubsystemRetiredError,
    UnknownPhaseError,
)
from phasegate.events import EventType
from phasegate.graph.subsystem import Subsystem


class TestAddPhase:
    def test_add_in_order(self):
        sub = Subsystem("orders")
        assert sub.status == "DRAFT"

        sub.add_phase(make_phase("A", exposes={"X": ""}))
        sub.add_phase(make_phase("B", depends_on=("A",), consumes=("X",)))

        assert sub.status == "ACTIVE"
        assert [p.phase_id for p in sub.phases] == ["A", "B"]
        assert sub.graph.dependencies("B") == {"A"}
        assert sub.registry.lookup("X").phase_id == "A"

    def test_unknown_dependency_rolls_back(self):
        sub = Subsystem("orders")
        with pytest.raises(UnknownPhaseError):
            sub.add_phase(make_phase("B", depends_on=("A",), exposes={"Y": ""}))

        assert "B" not in sub
        assert not sub.graph.has_node("B")
        assert "Y" not in sub.registry

    def test_duplicate_phase(self):
        sub = Subsystem("orders")
        sub.add_phase(make_phase("A"))
        with pytest.raises(DuplicatePhaseError):
            sub.add_phase(make_phase("A"))

    def test_duplicate_contract_rolls_back(self):
        sub = Subsystem("orders")
        sub.add_phase(make_phase("A", exposes={"X": ""}))

        with pytest.raises(DuplicateContractError):
            sub.add_phase(make_phase("B", depends_on=("A",), exposes={"W": "", "X": ""}))

        assert "B" not in sub
        assert sub.registry.names() == ["X"]
        assert sub.graph.dependents("A") == frozenset()


class TestFromPhases:
    def test_forward_references_allowed(self):
        sub = Subsystem.from_phases(
            "orders",
            [make_phase("B", depends_on=("A",), consumes=("X",)), make_phase("A", exposes={"X": ""})],
        )
        assert sub.graph.topological_order() == ["A", "B"]

    def test_cycle_in_document(self):
        with pytest.raises(CycleDetectedError):
            Subsystem.from_phases(
                "orders",
                [make_phase("A", depends_on=("B",)), make_phase("B", depends_on=("A",))],
            )

    def test_duplicate_ids_in_document(self):
        with pytest.raises(DuplicatePhaseError):
            Subsystem.from_phases("orders", [make_phase("A"), make_phase("A")])

    def test_contract_exposed_twice(self):
        with pytest.raises(DuplicateContractError):
            Subsystem.from_phases("orders", [make_phase("A", exposes={"X": ""}), make_phase("B", exposes={"X": ""})])

    def test_on_error_collects_and_skips(self):
        seen: list[tuple[str, str]] = []
        sub = Subsystem.from_phases(
            "orders",
            [
                make_phase("A", exposes={"X": ""}),
                make_phase("A", gate="make other"),
                make_phase("B", depends_on=("A", "Q")),
                make_phase("C", exposes={"X": ""}),
                make_phase("D", depends_on=("E",)),
                make_phase("E", depends_on=("D",)),
            ],
            on_error=lambda pid, err: seen.append((pid, err.code)),
        )

        assert seen == [
            ("A", "DuplicatePhase"),
            ("B", "UnknownPhase"),
            ("E", "CycleDetected"),
            ("C", "DuplicateContract"),
        ]
        # first record wins; rejected edges and contracts are left out
        assert sub.phase("A").gate == "./gradlew test"
        assert sub.graph.dependencies("B") == {"A"}
        assert sub.registry.lookup("X").phase_id == "A"
        assert sub.graph.topological_order() == ["A", "B", "C", "E", "D"]

    def test_emits_phase_added_per_phase(self, event_log):
        Subsystem.from_phases(
            "orders",
            [make_phase("B", depends_on=("A",)), make_phase("A", exposes={"X": ""})],
            events=event_log,
        )

        assert [e.event_type for e in event_log] == [
            EventType.subsystem_created.value,
            EventType.phase_added.value,
            EventType.phase_added.value,
        ]
        added = event_log.of_type(EventType.phase_added.value)
        assert [e.payload["phase_id"] for e in added] == ["B", "A"]
        assert added[1].payload["exposes"] == ["X"]


class TestUpdatePhase:
    def test_rewire_dependencies(self, abc_subsystem):
        c = abc_subsystem.phase("C")
        abc_subsystem.update_phase(replace(c, depends_on=frozenset({"B"})))

        assert abc_subsystem.graph.dependencies("C") == {"B"}
        assert abc_subsystem.graph.ancestors("C") == {"A", "B"}

    def test_cycle_restores_edges(self, abc_subsystem):
        a = abc_subsystem.phase("A")
        with pytest.raises(CycleDetectedError):
            abc_subsystem.update_phase(replace(a, depends_on=frozenset({"C"})))

        assert abc_subsystem.graph.dependencies("A") == frozenset()
        assert abc_subsystem.phase("A") is a

    def test_contract_signature_is_immutable(self, abc_subsystem):
        a = abc_subsystem.phase("A")
        with pytest.raises(DuplicateContractError):
            abc_subsystem.update_phase(replace(a, contracts_exposed={"X": "data class X2"}))

        assert abc_subsystem.registry.lookup("X").signature == "data class X"

    def test_same_signature_is_kept_and_new_names_added(self, abc_subsystem):
        a = abc_subsystem.phase("A")
        abc_subsystem.update_phase(replace(a, contracts_exposed={"X": "data class X", "X@2": "data class X2"}))

        assert abc_subsystem.registry.lookup("X@2").phase_id == "A"
        assert abc_subsystem.registry.lookup("X").signature == "data class X"

    def test_dropped_contract_is_released(self, abc_subsystem):
        c = abc_subsystem.phase("C")
        abc_subsystem.update_phase(replace(c, contracts_exposed={}))
        assert "Z" not in abc_subsystem.registry

    def test_unknown_phase(self, abc_subsystem):
        with pytest.raises(UnknownPhaseError):
            abc_subsystem.update_phase(make_phase("Q"))


class TestLifecycle:
    def test_retired_subsystem_is_frozen(self, abc_subsystem):
        abc_subsystem.retire()
        assert abc_subsystem.status == "RETIRED"

        with pytest.raises(SubsystemRetiredError):
            abc_subsystem.add_phase(make_phase("D"))
        with pytest.raises(SubsystemRetiredError):
            abc_subsystem.update_phase(abc_subsystem.phase("A"))
        with pytest.raises(SubsystemRetiredError):
            abc_subsystem.retire()

    def test_events_emitted(self, event_log):
        sub = Subsystem("orders", events=event_log)
        sub.add_phase(make_phase("A", exposes={"X": ""}))
        sub.retire()

        assert [e.event_type for e in event_log] == [
            EventType.subsystem_created.value,
            EventType.phase_added.value,
            EventType.subsystem_retired.value,
        ]
        assert event_log.of_type(EventType.phase_added.value)[0].payload["exposes"] == ["X"]
