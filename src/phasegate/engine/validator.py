from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

import structlog

from phasegate.core.types import MAX_TASKS_PER_PHASE, ReviewTier
from phasegate.data.event_log import EventLog
from phasegate.data.phase_types import Phase
from phasegate.errors import (
    ConfigError,
    InvalidReviewTierError,
    MissingGateError,
    PhaseGraphError,
    TooManyTasksError,
    UnknownContractError,
    UnknownPhaseError,
    UnsatisfiedContractError,
)
from phasegate.events import EventType
from phasegate.graph.contracts import ContractRegistry
from phasegate.graph.dependency import DependencyGraph
from phasegate.graph.subsystem import Subsystem

logger = structlog.get_logger()

DEFAULT_MAX_TASKS = MAX_TASKS_PER_PHASE


@dataclass(frozen=True, slots=True)
class ValidationIssue:
    """One structural failure, carried as plain data plus the typed error."""

    code: str
    message: str
    phase_id: str
    error: PhaseGraphError = field(compare=False, repr=False)

    @staticmethod
    def of(phase_id: str, error: PhaseGraphError) -> "ValidationIssue":
        return ValidationIssue(code=error.code, message=error.message, phase_id=phase_id, error=error)

    def to_dict(self) -> dict[str, object]:
        return {"code": self.code, "phase_id": self.phase_id, "message": self.message, "data": dict(self.error.data)}


@dataclass(frozen=True, slots=True)
class ValidationResult:
    phase_id: str
    errors: tuple[ValidationIssue, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def codes(self) -> list[str]:
        return [e.code for e in self.errors]

    def raise_for_errors(self) -> None:
        """Raises the first failure as its typed exception."""
        if self.errors:
            raise self.errors[0].error

    def to_dict(self) -> dict[str, object]:
        return {"phase_id": self.phase_id, "ok": self.ok, "errors": [e.to_dict() for e in self.errors]}


@dataclass(frozen=True, slots=True)
class ValidationReport:
    """Aggregate of every failure for one subsystem (batch lint).

    structural holds the errors met while building the subsystem itself
    (duplicate ids, unknown dependencies, cycles, duplicate contracts); they
    come first in issues, followed by the per-phase results.
    """

    subsystem: str
    results: tuple[ValidationResult, ...] = ()
    structural: tuple[ValidationIssue, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.structural and all(r.ok for r in self.results)

    @property
    def issues(self) -> list[ValidationIssue]:
        return [*self.structural, *(issue for r in self.results for issue in r.errors)]

    def result_for(self, phase_id: str) -> ValidationResult:
        for r in self.results:
            if r.phase_id == phase_id:
                return r
        raise UnknownPhaseError([phase_id])

    def to_dict(self) -> dict[str, object]:
        return {
            "subsystem": self.subsystem,
            "ok": self.ok,
            "phase_count": len(self.results),
            "issue_count": len(self.issues),
            "issues": [i.to_dict() for i in self.issues],
        }


class PhaseValidator:
    """Per-phase structural checks against one subsystem's registry and graph.

    Checks run in a fixed order:
      (a) task count within the ceiling        -> TooManyTasks
      (b) gate command non-empty               -> MissingGate
      (c) every consumed contract is exposed
          by a transitive dependency           -> UnsatisfiedContract
      (d) review tier is an allowed value      -> InvalidReviewTier

    validate() is pure: it reads the registry and graph and never mutates them,
    so repeated calls on an unchanged phase give the same result.
    """

    def __init__(
        self,
        registry: ContractRegistry,
        graph: DependencyGraph,
        *,
        max_tasks: int = DEFAULT_MAX_TASKS,
        review_tiers: Sequence[str] = ReviewTier.values(),
    ) -> None:
        if not 1 <= int(max_tasks) <= MAX_TASKS_PER_PHASE:
            raise ConfigError(f"max_tasks must be between 1 and {MAX_TASKS_PER_PHASE}", data={"value": max_tasks})
        unknown = sorted(set(review_tiers) - set(ReviewTier.values()))
        if unknown or not review_tiers:
            raise ConfigError(f"review_tiers must be a non-empty subset of {list(ReviewTier.values())}")

        self.registry = registry
        self.graph = graph
        self.max_tasks = int(max_tasks)
        self.review_tiers = tuple(review_tiers)

    @classmethod
    def for_subsystem(cls, subsystem: Subsystem, **kwargs: object) -> "PhaseValidator":
        return cls(subsystem.registry, subsystem.graph, **kwargs)  # type: ignore[arg-type]

    def validate(self, phase: Phase, *, collect_all: bool = False) -> ValidationResult:
        issues: list[ValidationIssue] = []
        for check in (self._check_tasks, self._check_gate, self._check_contracts, self._check_review_tier):
            for err in check(phase):
                issues.append(ValidationIssue.of(phase.phase_id, err))
                if not collect_all:
                    return ValidationResult(phase_id=phase.phase_id, errors=tuple(issues))
        return ValidationResult(phase_id=phase.phase_id, errors=tuple(issues))

    def validate_subsystem(
        self,
        subsystem: Subsystem,
        *,
        events: EventLog | None = None,
        structural: Iterable[tuple[str, PhaseGraphError]] = (),
    ) -> ValidationReport:
        """Runs collect-all over every phase.

        structural takes the (phase_id, error) pairs gathered by
        Subsystem.from_phases(on_error=...) so one report covers both.
        """
        results = tuple(self.validate(p, collect_all=True) for p in subsystem.phases)
        report = ValidationReport(
            subsystem=subsystem.name,
            results=results,
            structural=tuple(ValidationIssue.of(pid, err) for pid, err in structural),
        )

        events = events if events is not None else subsystem.events
        if events is not None:
            if report.ok:
                events.append(
                    event_type=EventType.validation_passed.value,
                    payload={"subsystem": subsystem.name, "phase_count": len(results)},
                )
            else:
                events.append(
                    event_type=EventType.validation_failed.value,
                    severity="warn",
                    payload={
                        "subsystem": subsystem.name,
                        "phase_count": len(results),
                        "issue_count": len(report.issues),
                        "codes": sorted({i.code for i in report.issues}),
                    },
                )
        else:
            logger.info(
                "validator.subsystem",
                subsystem=subsystem.name,
                ok=report.ok,
                issue_count=len(report.issues),
            )
        return report

    # --------------------
    # Checks
    # --------------------
    def _check_tasks(self, phase: Phase) -> list[PhaseGraphError]:
        if phase.task_count > self.max_tasks:
            return [TooManyTasksError(phase.phase_id, phase.task_count, self.max_tasks)]
        return []

    def _check_gate(self, phase: Phase) -> list[PhaseGraphError]:
        if not phase.gate.strip():
            return [MissingGateError(phase.phase_id)]
        return []

    def _check_contracts(self, phase: Phase) -> list[PhaseGraphError]:
        if not phase.contracts_consumed:
            return []

        if phase.phase_id in self.graph:
            ancestors = self.graph.ancestors(phase.phase_id)
        else:
            # Not declared yet: judge against the dependencies it claims.
            ancestors = set()
            for dep in phase.depends_on:
                if dep in self.graph:
                    ancestors.add(dep)
                    ancestors.update(self.graph.ancestors(dep))

        errors: list[PhaseGraphError] = []
        for name in sorted(phase.contracts_consumed):
            try:
                contract = self.registry.lookup(name)
            except UnknownContractError:
                errors.append(UnsatisfiedContractError(phase.phase_id, name))
                continue
            if contract.phase_id not in ancestors:
                errors.append(UnsatisfiedContractError(phase.phase_id, name, exposed_by=contract.phase_id))
        return errors

    def _check_review_tier(self, phase: Phase) -> list[PhaseGraphError]:
        if phase.review_tier not in self.review_tiers:
            return [InvalidReviewTierError(phase.phase_id, phase.review_tier, self.review_tiers)]
        return []
