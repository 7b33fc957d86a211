"""
Sequencer - turns a subsystem's dependency graph into an execution plan.

The plan is an ordered list of execution levels:
1. Each level is a set of phases with no dependency edges between them,
   so the phases of one level can be worked on in parallel.
2. Every phase's dependencies sit in a strictly earlier level.

Layered Kahn's algorithm: repeatedly take every phase with zero unresolved
dependencies, emit them as one level, then release their dependents.

The parallelism described here is for the people or agents doing the work;
the sequencer itself is synchronous and keeps no state between calls.
"""
from __future__ import annotations

from dataclasses import dataclass

import structlog

from phasegate.errors import CycleDetectedError, UnknownPhaseError
from phasegate.events import EventType
from phasegate.graph.dependency import DependencyGraph
from phasegate.graph.subsystem import Subsystem

logger = structlog.get_logger()


@dataclass(frozen=True, slots=True)
class ExecutionPlan:
    subsystem: str
    levels: tuple[frozenset[str], ...] = ()

    def order(self) -> list[str]:
        """Concatenation of the levels (each level sorted): a valid topological order."""
        return [pid for level in self.levels for pid in sorted(level)]

    def level_of(self, phase_id: str) -> int:
        for i, level in enumerate(self.levels):
            if phase_id in level:
                return i
        raise UnknownPhaseError([phase_id])

    @property
    def width(self) -> int:
        """Largest number of phases that can run side by side."""
        return max((len(level) for level in self.levels), default=0)

    def to_dict(self) -> dict[str, object]:
        return {
            "subsystem": self.subsystem,
            "width": self.width,
            "levels": [sorted(level) for level in self.levels],
        }


class Sequencer:
    def plan(self, subsystem: Subsystem) -> ExecutionPlan:
        """
        Raises:
            CycleDetectedError: If phases remain but none has zero unresolved dependencies.
        """
        levels = self.levels(subsystem.graph)
        plan = ExecutionPlan(subsystem=subsystem.name, levels=tuple(levels))

        if subsystem.events is not None:
            subsystem.events.append(
                event_type=EventType.plan_computed.value,
                payload={"subsystem": subsystem.name, "level_count": len(levels), "width": plan.width},
            )
        else:
            logger.info("sequencer.plan", subsystem=subsystem.name, level_count=len(levels), width=plan.width)
        return plan

    @staticmethod
    def levels(graph: DependencyGraph) -> list[frozenset[str]]:
        remaining = {pid: len(graph.dependencies(pid)) for pid in graph.nodes}
        current = {pid for pid, count in remaining.items() if count == 0}

        levels: list[frozenset[str]] = []
        while current:
            levels.append(frozenset(current))
            for pid in current:
                del remaining[pid]

            released: set[str] = set()
            for pid in current:
                for dependent in graph.dependents(pid):
                    remaining[dependent] -= 1
                    if remaining[dependent] == 0:
                        released.add(dependent)
            current = released

        if remaining:
            cycle = graph.find_cycle() or sorted(remaining)
            logger.warning("sequencer.cycle", remaining=sorted(remaining), cycle=cycle)
            raise CycleDetectedError(cycle)
        return levels
