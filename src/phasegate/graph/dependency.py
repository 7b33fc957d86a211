"""
Dependency graph between phases.

An edge (from, to) means "from depends on to's contracts", so dependencies
come first in every order this module produces.

The graph is kept acyclic at all times: add_edge refuses an edge that would
close a cycle before inserting it. topological_order() still re-checks and
reports the cycle path if one is ever found.
"""
from __future__ import annotations

import heapq
from collections.abc import Iterable

import structlog

from phasegate.errors import CycleDetectedError, DuplicatePhaseError, UnknownPhaseError

logger = structlog.get_logger()


class DependencyGraph:
    def __init__(self) -> None:
        # node -> phases it depends on
        self._deps: dict[str, set[str]] = {}
        # node -> phases depending on it
        self._dependents: dict[str, set[str]] = {}
        self._order: list[str] = []  # declaration order

    # --------------------
    # Nodes
    # --------------------
    def add_node(self, phase_id: str) -> None:
        if phase_id in self._deps:
            raise DuplicatePhaseError(phase_id)
        self._deps[phase_id] = set()
        self._dependents[phase_id] = set()
        self._order.append(phase_id)

    def remove_node(self, phase_id: str) -> None:
        """Removes a node and every edge touching it."""
        self._require(phase_id)
        for dep in self._deps.pop(phase_id):
            self._dependents[dep].discard(phase_id)
        for dependent in self._dependents.pop(phase_id):
            self._deps[dependent].discard(phase_id)
        self._order.remove(phase_id)

    def has_node(self, phase_id: str) -> bool:
        return phase_id in self._deps

    @property
    def nodes(self) -> list[str]:
        return list(self._order)

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, phase_id: object) -> bool:
        return phase_id in self._deps

    # --------------------
    # Edges
    # --------------------
    def add_edge(self, from_phase: str, to_phase: str) -> None:
        self._require(from_phase, to_phase)

        if to_phase in self._deps[from_phase]:
            return

        if from_phase == to_phase:
            cycle = [from_phase, from_phase]
        else:
            path = self._find_path(to_phase, from_phase)
            cycle = [from_phase, *path] if path else []

        if cycle:
            logger.debug("graph.edge_rejected", from_phase=from_phase, to_phase=to_phase, cycle=cycle)
            raise CycleDetectedError(cycle)

        self._deps[from_phase].add(to_phase)
        self._dependents[to_phase].add(from_phase)

    def remove_edge(self, from_phase: str, to_phase: str) -> None:
        self._require(from_phase, to_phase)
        self._deps[from_phase].discard(to_phase)
        self._dependents[to_phase].discard(from_phase)

    def has_edge(self, from_phase: str, to_phase: str) -> bool:
        return to_phase in self._deps.get(from_phase, ())

    def edges(self) -> list[tuple[str, str]]:
        return sorted((f, t) for f, deps in self._deps.items() for t in deps)

    # --------------------
    # Queries
    # --------------------
    def dependencies(self, phase_id: str) -> frozenset[str]:
        self._require(phase_id)
        return frozenset(self._deps[phase_id])

    def dependents(self, phase_id: str) -> frozenset[str]:
        self._require(phase_id)
        return frozenset(self._dependents[phase_id])

    def ancestors(self, phase_id: str) -> frozenset[str]:
        """Transitive dependencies of a phase (the phase itself excluded)."""
        self._require(phase_id)
        seen: set[str] = set()
        stack = list(self._deps[phase_id])
        while stack:
            node = stack.pop()
            if node in seen:
                continue
            seen.add(node)
            stack.extend(self._deps[node] - seen)
        return frozenset(seen)

    def topological_order(self) -> list[str]:
        """
        Kahn's algorithm over a min-heap so ties resolve by phase id.

        Raises:
            CycleDetectedError: If the graph is not a DAG.
        """
        remaining = {n: len(deps) for n, deps in self._deps.items()}
        ready = [n for n, count in remaining.items() if count == 0]
        heapq.heapify(ready)

        result: list[str] = []
        while ready:
            node = heapq.heappop(ready)
            result.append(node)
            for dependent in self._dependents[node]:
                remaining[dependent] -= 1
                if remaining[dependent] == 0:
                    heapq.heappush(ready, dependent)

        if len(result) != len(self._deps):
            raise CycleDetectedError(self.find_cycle() or sorted(set(self._deps) - set(result)))
        return result

    def find_cycle(self) -> list[str] | None:
        """
        Depth-first search with three-color marking:
        - WHITE (0): unvisited
        - GRAY (1): on the current path
        - BLACK (2): finished

        Reaching a GRAY node means the current path closes a cycle.
        """
        WHITE, GRAY, BLACK = 0, 1, 2
        color = {n: WHITE for n in self._deps}
        path: list[str] = []

        def dfs(node: str) -> list[str] | None:
            color[node] = GRAY
            path.append(node)
            for neighbor in sorted(self._deps[node]):
                if color[neighbor] == GRAY:
                    start = path.index(neighbor)
                    return path[start:] + [neighbor]
                if color[neighbor] == WHITE:
                    found = dfs(neighbor)
                    if found:
                        return found
            color[node] = BLACK
            path.pop()
            return None

        for node in sorted(self._deps):
            if color[node] == WHITE:
                cycle = dfs(node)
                if cycle:
                    return cycle
        return None

    # --------------------
    # Internals
    # --------------------
    def _require(self, *phase_ids: str) -> None:
        missing = [p for p in phase_ids if p not in self._deps]
        if missing:
            raise UnknownPhaseError(missing)

    def _find_path(self, start: str, goal: str) -> list[str]:
        """Returns a dependency path start -> ... -> goal, or [] if goal is unreachable."""
        parents: dict[str, str | None] = {start: None}
        stack = [start]
        while stack:
            node = stack.pop()
            if node == goal:
                path = [node]
                while parents[path[-1]] is not None:
                    path.append(parents[path[-1]])  # type: ignore[arg-type]
                return list(reversed(path))
            for nxt in sorted(self._deps[node], reverse=True):
                if nxt not in parents:
                    parents[nxt] = node
                    stack.append(nxt)
        return []

    @classmethod
    def from_edges(cls, nodes: Iterable[str], edges: Iterable[tuple[str, str]]) -> "DependencyGraph":
        graph = cls()
        for n in nodes:
            graph.add_node(n)
        for f, t in edges:
            graph.add_edge(f, t)
        return graph
