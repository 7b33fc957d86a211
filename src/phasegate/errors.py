"""Structural error taxonomy.

Every error is a validation/structure failure, never transient, so nothing is
retried. Each carries:
- code: the taxonomy name used in reports (e.g. "CycleDetected")
- message: human-readable text
- data: machine-readable context (ids, missing names, cycle path)

Hierarchy::

    PhaseGraphError (ValueError)
      ├── DuplicateContractError
      ├── UnknownContractError
      ├── UnknownPhaseError
      ├── DuplicatePhaseError
      ├── CycleDetectedError
      ├── TooManyTasksError
      ├── MissingGateError
      ├── UnsatisfiedContractError
      ├── InvalidReviewTierError
      ├── SubsystemRetiredError
      ├── InvalidTransitionError
      ├── UnknownGateError
      ├── DependenciesIncompleteError
      ├── InvalidDocumentError
      ├── ConfigError
      └── EventValidationError (phasegate.validators)
"""
from __future__ import annotations

from collections.abc import Iterable, Sequence


class PhaseGraphError(ValueError):
    """Base class; catch this to handle the whole family."""

    code: str = "PhaseGraphError"

    def __init__(self, message: str, *, data: dict[str, object] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.data: dict[str, object] = dict(data or {})

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict[str, object]:
        return {"code": self.code, "message": self.message, "data": dict(self.data)}


# --------------------
# Registry / graph
# --------------------
class DuplicateContractError(PhaseGraphError):
    code = "DuplicateContract"

    def __init__(self, contract_name: str, existing_phase: str, phase_id: str) -> None:
        self.contract_name = contract_name
        self.existing_phase = existing_phase
        self.phase_id = phase_id
        super().__init__(
            f"Contract '{contract_name}' is already exposed by phase '{existing_phase}' "
            f"(attempted by '{phase_id}')",
            data={"contract": contract_name, "existing_phase": existing_phase, "phase_id": phase_id},
        )


class UnknownContractError(PhaseGraphError):
    code = "UnknownContract"

    def __init__(self, contract_name: str) -> None:
        self.contract_name = contract_name
        super().__init__(f"Contract not registered: {contract_name}", data={"contract": contract_name})


class UnknownPhaseError(PhaseGraphError):
    code = "UnknownPhase"

    def __init__(self, phase_ids: Iterable[str]) -> None:
        self.phase_ids = sorted(set(phase_ids))
        super().__init__(
            f"Phase not declared: {', '.join(self.phase_ids)}",
            data={"phase_ids": list(self.phase_ids)},
        )


class DuplicatePhaseError(PhaseGraphError):
    code = "DuplicatePhase"

    def __init__(self, phase_id: str) -> None:
        self.phase_id = phase_id
        super().__init__(f"Phase already declared: {phase_id}", data={"phase_id": phase_id})


class CycleDetectedError(PhaseGraphError):
    code = "CycleDetected"

    def __init__(self, cycle: Sequence[str]) -> None:
        self.cycle = list(cycle)
        cycle_str = " -> ".join(self.cycle)
        super().__init__(f"Cycle detected in dependency graph: {cycle_str}", data={"cycle": list(self.cycle)})


# --------------------
# Phase validation
# --------------------
class TooManyTasksError(PhaseGraphError):
    code = "TooManyTasks"

    def __init__(self, phase_id: str, task_count: int, limit: int) -> None:
        self.phase_id = phase_id
        self.task_count = task_count
        self.limit = limit
        super().__init__(
            f"Phase '{phase_id}' has {task_count} tasks (limit {limit})",
            data={"phase_id": phase_id, "task_count": task_count, "limit": limit},
        )


class MissingGateError(PhaseGraphError):
    code = "MissingGate"

    def __init__(self, phase_id: str) -> None:
        self.phase_id = phase_id
        super().__init__(f"Phase '{phase_id}' has no gate command", data={"phase_id": phase_id})


class UnsatisfiedContractError(PhaseGraphError):
    code = "UnsatisfiedContract"

    def __init__(self, phase_id: str, contract_name: str, exposed_by: str | None = None) -> None:
        self.phase_id = phase_id
        self.contract_name = contract_name
        self.exposed_by = exposed_by
        if exposed_by is None:
            msg = f"Phase '{phase_id}' consumes '{contract_name}', which no phase exposes"
        else:
            msg = (
                f"Phase '{phase_id}' consumes '{contract_name}' exposed by '{exposed_by}', "
                f"which is not among its dependencies"
            )
        super().__init__(
            msg,
            data={"phase_id": phase_id, "contract": contract_name, "exposed_by": exposed_by},
        )


class InvalidReviewTierError(PhaseGraphError):
    code = "InvalidReviewTier"

    def __init__(self, phase_id: str, review_tier: str, allowed: Sequence[str]) -> None:
        self.phase_id = phase_id
        self.review_tier = review_tier
        self.allowed = list(allowed)
        super().__init__(
            f"Phase '{phase_id}' has invalid review tier {review_tier!r}. Allowed: {self.allowed}",
            data={"phase_id": phase_id, "review_tier": review_tier, "allowed": list(self.allowed)},
        )


# --------------------
# Lifecycle
# --------------------
class SubsystemRetiredError(PhaseGraphError):
    code = "SubsystemRetired"

    def __init__(self, subsystem: str) -> None:
        self.subsystem = subsystem
        super().__init__(f"Subsystem '{subsystem}' is retired and cannot be modified", data={"subsystem": subsystem})


class InvalidTransitionError(PhaseGraphError):
    code = "InvalidTransition"

    def __init__(self, phase_id: str, current: str, target: str, reason: str | None = None) -> None:
        self.phase_id = phase_id
        self.current = current
        self.target = target
        msg = f"Phase '{phase_id}' cannot move {current} -> {target}"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg, data={"phase_id": phase_id, "current": current, "target": target})


class UnknownGateError(PhaseGraphError):
    code = "UnknownGate"

    def __init__(self, gate_id: str) -> None:
        self.gate_id = gate_id
        super().__init__(f"No open review gate with id: {gate_id}", data={"gate_id": gate_id})


class DependenciesIncompleteError(PhaseGraphError):
    code = "DependenciesIncomplete"

    def __init__(self, phase_id: str, pending: Iterable[str]) -> None:
        self.phase_id = phase_id
        self.pending = sorted(pending)
        super().__init__(
            f"Phase '{phase_id}' cannot start; dependencies not completed: {', '.join(self.pending)}",
            data={"phase_id": phase_id, "pending": list(self.pending)},
        )


# --------------------
# Inputs
# --------------------
class InvalidDocumentError(PhaseGraphError):
    code = "InvalidDocument"

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message, data={"field": field} if field else None)


class ConfigError(PhaseGraphError):
    code = "ConfigError"
