"""Subsystem: the phases of one coherent piece of work and their dependency graph.

A Subsystem owns its phases, its ContractRegistry and its DependencyGraph.
Phases reference each other by identifier only.

Lifecycle:
- DRAFT: created, nothing declared yet
- ACTIVE: entered on the first mutation (add_phase / update_phase)
- RETIRED: fully implemented and archived; further mutation raises SubsystemRetiredError

Every mutation is all-or-nothing: if any step fails, the graph and registry
are restored to their previous contents before the error propagates.
"""
from __future__ import annotations

from collections.abc import Callable, Iterable

import structlog

from phasegate.core.types import SubsystemStatus
from phasegate.data.event_log import EventLog
from phasegate.data.phase_types import Phase
from phasegate.errors import (
    DuplicateContractError,
    DuplicatePhaseError,
    PhaseGraphError,
    SubsystemRetiredError,
    UnknownPhaseError,
)
from phasegate.events import EventType
from phasegate.graph.contracts import ContractRegistry
from phasegate.graph.dependency import DependencyGraph

logger = structlog.get_logger()


class Subsystem:
    def __init__(self, name: str, *, events: EventLog | None = None) -> None:
        self.name = name
        self.status: SubsystemStatus = "DRAFT"
        self.registry = ContractRegistry()
        self.graph = DependencyGraph()
        self.events = events
        self._phases: dict[str, Phase] = {}
        self._emit(EventType.subsystem_created, {"subsystem": name})

    # --------------------
    # Read access
    # --------------------
    @property
    def phases(self) -> list[Phase]:
        """Phases in declaration order."""
        return [self._phases[pid] for pid in self.graph.nodes]

    def phase(self, phase_id: str) -> Phase:
        p = self._phases.get(phase_id)
        if p is None:
            raise UnknownPhaseError([phase_id])
        return p

    def __contains__(self, phase_id: object) -> bool:
        return phase_id in self._phases

    def __len__(self) -> int:
        return len(self._phases)

    # --------------------
    # Mutations
    # --------------------
    def add_phase(self, phase: Phase) -> None:
        """Declares a phase whose dependencies are already declared.

        Raises:
            DuplicatePhaseError, UnknownPhaseError, CycleDetectedError, DuplicateContractError
        """
        self._require_mutable()
        pid = phase.phase_id

        self.graph.add_node(pid)
        try:
            for dep in sorted(phase.depends_on):
                self.graph.add_edge(pid, dep)
            for name in sorted(phase.contracts_exposed):
                self.registry.register(pid, name, phase.contracts_exposed[name])
        except Exception:
            self.registry.unregister_phase(pid)
            self.graph.remove_node(pid)
            raise

        self._phases[pid] = phase
        self.status = "ACTIVE"
        self._emit(
            EventType.phase_added,
            {"subsystem": self.name, "phase_id": pid, "exposes": sorted(phase.contracts_exposed)},
        )

    def update_phase(self, phase: Phase) -> None:
        """Replaces an existing phase record.

        Contract names are immutable: the owning phase may keep exposing a name
        with the identical signature, but a changed signature raises
        DuplicateContractError. Names no longer exposed are released.
        """
        self._require_mutable()
        pid = phase.phase_id
        old = self.phase(pid)

        for name in sorted(phase.contracts_exposed):
            if name not in self.registry:
                continue
            existing = self.registry.lookup(name)
            if existing.phase_id != pid or existing.signature != phase.contracts_exposed[name]:
                raise DuplicateContractError(name, existing.phase_id, pid)

        old_deps = self.graph.dependencies(pid)
        try:
            for dep in sorted(old_deps - phase.depends_on):
                self.graph.remove_edge(pid, dep)
            for dep in sorted(phase.depends_on - old_deps):
                self.graph.add_edge(pid, dep)
        except Exception:
            self._restore_edges(pid, old_deps)
            raise

        for name in sorted(set(old.contracts_exposed) - set(phase.contracts_exposed)):
            self.registry.unregister(name)
        for name in sorted(set(phase.contracts_exposed) - set(old.contracts_exposed)):
            self.registry.register(pid, name, phase.contracts_exposed[name])

        self._phases[pid] = phase
        self.status = "ACTIVE"
        self._emit(EventType.phase_updated, {"subsystem": self.name, "phase_id": pid})

    def retire(self) -> None:
        self._require_mutable()
        self.status = "RETIRED"
        self._emit(EventType.subsystem_retired, {"subsystem": self.name, "phase_count": len(self._phases)})

    # --------------------
    # Construction
    # --------------------
    @classmethod
    def from_phases(
        cls,
        name: str,
        phases: Iterable[Phase],
        *,
        events: EventLog | None = None,
        on_error: Callable[[str, PhaseGraphError], None] | None = None,
    ) -> "Subsystem":
        """Builds a subsystem from an ordered list; forward references are allowed.

        All nodes are declared first, then dependency edges, then contracts.

        By default the first structural error propagates. With on_error, each
        error is handed over with the id of the phase that caused it and the
        offending piece is skipped: a repeated phase id drops the later record,
        a rejected edge or contract is left out. The result is still a DAG, so
        a batch lint can report everything in one pass.
        """
        sub = cls(name, events=events)

        def failed(phase_id: str, err: PhaseGraphError) -> None:
            if on_error is None:
                raise err
            logger.debug("subsystem.build_error", subsystem=name, phase_id=phase_id, code=err.code)
            on_error(phase_id, err)

        ordered: list[Phase] = []
        for p in phases:
            if p.phase_id in sub._phases:
                failed(p.phase_id, DuplicatePhaseError(p.phase_id))
                continue
            sub.graph.add_node(p.phase_id)
            sub._phases[p.phase_id] = p
            ordered.append(p)

        for p in ordered:
            for dep in sorted(p.depends_on):
                try:
                    sub.graph.add_edge(p.phase_id, dep)
                except PhaseGraphError as e:
                    failed(p.phase_id, e)

        for p in ordered:
            for contract_name in sorted(p.contracts_exposed):
                try:
                    sub.registry.register(p.phase_id, contract_name, p.contracts_exposed[contract_name])
                except PhaseGraphError as e:
                    failed(p.phase_id, e)

        if ordered:
            sub.status = "ACTIVE"
        for p in ordered:
            sub._emit(
                EventType.phase_added,
                {"subsystem": name, "phase_id": p.phase_id, "exposes": sorted(p.contracts_exposed)},
            )
        logger.debug("subsystem.built", subsystem=name, phase_count=len(ordered), contract_count=len(sub.registry))
        return sub

    # --------------------
    # Internals
    # --------------------
    def _require_mutable(self) -> None:
        if self.status == "RETIRED":
            raise SubsystemRetiredError(self.name)

    def _restore_edges(self, pid: str, deps: frozenset[str]) -> None:
        for dep in self.graph.dependencies(pid) - deps:
            self.graph.remove_edge(pid, dep)
        for dep in deps:
            self.graph.add_edge(pid, dep)

    def _emit(self, event_type: EventType, payload: dict[str, object]) -> None:
        if self.events is not None:
            self.events.append(event_type=event_type.value, payload=payload)
