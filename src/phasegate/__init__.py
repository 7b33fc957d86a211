"""phasegate: validation and sequencing for phase-based change plans.

A subsystem is a set of phases, each exposing and consuming named contracts
and depending on other phases. This package checks the structure (acyclic
dependencies, contract closure, task ceilings, gates, review tiers), computes
parallelizable execution levels, and tracks each phase through review.
"""

from .data.phase_types import Contract, Phase
from .engine.sequencer import ExecutionPlan, Sequencer
from .engine.tracker import PhaseTracker
from .engine.validator import PhaseValidator, ValidationIssue, ValidationReport, ValidationResult
from .graph.contracts import ContractRegistry
from .graph.dependency import DependencyGraph
from .graph.subsystem import Subsystem

__all__ = [
    "Contract",
    "Phase",
    "ContractRegistry",
    "DependencyGraph",
    "Subsystem",
    "PhaseValidator",
    "ValidationIssue",
    "ValidationResult",
    "ValidationReport",
    "Sequencer",
    "ExecutionPlan",
    "PhaseTracker",
]
