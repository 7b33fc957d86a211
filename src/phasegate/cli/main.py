from __future__ import annotations

import argparse
import sys
from collections.abc import Mapping
from dataclasses import dataclass, fields, is_dataclass
from enum import Enum
from pathlib import Path
from typing import TextIO

import structlog
import yaml

from phasegate.config.memory import FileSessionMemoryStore
from phasegate.config.models import ResolvedConfig
from phasegate.config.resolver import DefaultConfigResolver, OverrideSources
from phasegate.core.logging import bind_context, configure_logging
from phasegate.data.document import load_subsystem
from phasegate.data.event_log import EventLog
from phasegate.data.status_store import FileStatusStore
from phasegate.engine.sequencer import Sequencer
from phasegate.engine.tracker import PhaseTracker
from phasegate.engine.validator import PhaseValidator, ValidationIssue
from phasegate.errors import PhaseGraphError
from phasegate.gates.models import GateDecision
from phasegate.graph.subsystem import Subsystem

logger = structlog.get_logger()


def _to_primitive(x: object) -> object:
    """Converts objects into YAML/JSON-safe primitives.

    - objects with to_dict() -> their mapping
    - dataclasses -> dict of field values (recursively converted)
    - Enum -> its .value
    - Path -> str(path)
    - Mapping -> dict with string keys
    - list/tuple/set/frozenset -> list (sets sorted)
    """
    to_dict = getattr(x, "to_dict", None)
    if callable(to_dict):
        return _to_primitive(to_dict())

    if is_dataclass(x) and not isinstance(x, type):
        return {f.name: _to_primitive(getattr(x, f.name)) for f in fields(x)}

    if isinstance(x, Enum):
        return x.value

    if isinstance(x, Path):
        return str(x)

    if isinstance(x, Mapping):
        return {str(k): _to_primitive(v) for k, v in x.items()}

    if isinstance(x, (set, frozenset)):
        return sorted(_to_primitive(v) for v in x)  # type: ignore[type-var]

    if isinstance(x, (list, tuple)):
        return [_to_primitive(v) for v in x]

    return x


def _print_yaml(title: str, payload: object, *, stream: TextIO | None = None) -> None:
    """Prints a human-readable YAML view of structured data."""
    out = stream or sys.stdout
    print(f"\n=== {title} ===\n", file=out)
    print(yaml.safe_dump(_to_primitive(payload), sort_keys=False, allow_unicode=True), file=out)


# --------------------
# Session helpers
# --------------------
@dataclass
class _Session:
    config: ResolvedConfig
    subsystem: Subsystem
    store: FileStatusStore
    events: EventLog
    tracker: PhaseTracker

    def save(self) -> None:
        self.store.write_status(self.tracker.snapshot())
        self.store.write_events(self.events)


def _resolve_config(args: argparse.Namespace) -> ResolvedConfig:
    overrides = OverrideSources.standard(args.project_root, explicit_files=args.config or ())
    return DefaultConfigResolver().resolve(overrides=overrides)


def _validator(cfg: ResolvedConfig, subsystem: Subsystem) -> PhaseValidator:
    return PhaseValidator.for_subsystem(
        subsystem,
        max_tasks=cfg.limits.max_tasks_per_phase,
        review_tiers=cfg.review_tiers,
    )


def _open_session(args: argparse.Namespace, cfg: ResolvedConfig) -> _Session:
    """Loads the document, then the persisted tracker state and events for it."""
    subsystem = load_subsystem(args.document)
    bind_context(subsystem=subsystem.name)
    store = FileStatusStore(project_root=args.project_root, subsystem=subsystem.name, root_dir=cfg.storage.root_dir)
    events = store.read_events()
    snapshot = store.read_status()
    if snapshot is None:
        tracker = PhaseTracker(subsystem, events=events)
    else:
        tracker = PhaseTracker.restore(subsystem, snapshot, events=events)
    return _Session(config=cfg, subsystem=subsystem, store=store, events=events, tracker=tracker)


def _status_view(session: _Session) -> dict[str, object]:
    tracker = session.tracker
    pending = {}
    for p in session.subsystem.phases:
        gate = tracker.get_pending_gate(p.phase_id)
        if gate is not None:
            pending[p.phase_id] = gate.to_dict()
    return {
        "subsystem": session.subsystem.name,
        "phases": {pid: st.value for pid, st in tracker.statuses().items()},
        "ready": tracker.ready(),
        "pending_gates": pending,
        "done": tracker.is_done(),
    }


# --------------------
# Commands
# --------------------
def cmd_validate(args: argparse.Namespace, cfg: ResolvedConfig) -> int:
    """Lints a document; exit status 1 on any failure.

    Structural errors (duplicate ids, unknown dependencies, cycles, duplicate
    contracts) are collected while loading and reported with the per-phase
    checks instead of aborting the run.
    """
    structural: list[tuple[str, PhaseGraphError]] = []
    subsystem = load_subsystem(args.document, on_error=lambda pid, err: structural.append((pid, err)))
    validator = _validator(cfg, subsystem)

    if args.fail_fast or not cfg.validation.collect_all:
        results = [validator.validate(p) for p in subsystem.phases]
        ok = not structural and all(r.ok for r in results)
        payload: object = {
            "subsystem": subsystem.name,
            "ok": ok,
            "structural": [ValidationIssue.of(pid, err) for pid, err in structural],
            "results": [r.to_dict() for r in results if not r.ok],
        }
    else:
        report = validator.validate_subsystem(subsystem, structural=structural)
        payload = report
        ok = report.ok

    _print_yaml("VALIDATION", payload)
    return 0 if ok else 1


def cmd_order(args: argparse.Namespace, cfg: ResolvedConfig) -> int:
    subsystem = load_subsystem(args.document)
    _print_yaml("TOPOLOGICAL ORDER", {"subsystem": subsystem.name, "order": subsystem.graph.topological_order()})
    return 0


def cmd_plan(args: argparse.Namespace, cfg: ResolvedConfig) -> int:
    subsystem = load_subsystem(args.document)
    plan = Sequencer().plan(subsystem)
    _print_yaml("EXECUTION PLAN", plan)
    return 0


def cmd_status(args: argparse.Namespace, cfg: ResolvedConfig) -> int:
    session = _open_session(args, cfg)
    _print_yaml("STATUS", _status_view(session))
    return 0


def cmd_start(args: argparse.Namespace, cfg: ResolvedConfig) -> int:
    """Starts a phase; refuses phases that fail validation."""
    session = _open_session(args, cfg)
    phase = session.subsystem.phase(args.phase_id)
    result = _validator(cfg, session.subsystem).validate(phase, collect_all=True)
    if not result.ok:
        _print_yaml("VALIDATION", result, stream=sys.stderr)
        return 1

    state = session.tracker.start(args.phase_id)
    session.save()
    _print_yaml("PHASE", state)
    return 0


def cmd_submit(args: argparse.Namespace, cfg: ResolvedConfig) -> int:
    session = _open_session(args, cfg)
    req = session.tracker.request_gate(args.phase_id)
    session.save()
    _print_yaml("REVIEW GATE", req)
    print("\n=== NEXT ACTION ===\n")
    if req.mode == "AUTO":
        print(f"Run the gate command, then: phasegate ack {args.document} {req.gate_id}")
    else:
        verb = "approve" if req.mode == "APPROVE" else "ack"
        print(f"Review, then: phasegate {verb} {args.document} {req.gate_id}  (or reject --reason ...)")
    return 0


def _cmd_decide(args: argparse.Namespace, cfg: ResolvedConfig, decision: str) -> int:
    session = _open_session(args, cfg)
    session.tracker.decide(
        GateDecision(
            gate_id=args.gate_id,
            decision=decision,  # type: ignore[arg-type]
            human_actor=args.actor,
            reason=getattr(args, "reason", None),
        )
    )
    session.save()
    _print_yaml("STATUS", _status_view(session))
    return 0


def cmd_approve(args: argparse.Namespace, cfg: ResolvedConfig) -> int:
    return _cmd_decide(args, cfg, "APPROVE")


def cmd_ack(args: argparse.Namespace, cfg: ResolvedConfig) -> int:
    return _cmd_decide(args, cfg, "ACK")


def cmd_reject(args: argparse.Namespace, cfg: ResolvedConfig) -> int:
    return _cmd_decide(args, cfg, "REJECT")


def _memory_store(args: argparse.Namespace, cfg: ResolvedConfig) -> FileSessionMemoryStore:
    return FileSessionMemoryStore(Path(args.project_root) / cfg.storage.root_dir / cfg.storage.memory_file)


def cmd_memory_show(args: argparse.Namespace, cfg: ResolvedConfig) -> int:
    store = _memory_store(args, cfg)
    _print_yaml("SESSION MEMORY", store.load())
    return 0


def cmd_memory_add(args: argparse.Namespace, cfg: ResolvedConfig) -> int:
    store = _memory_store(args, cfg)
    memory = store.load().with_note(args.note)
    store.save(memory)
    _print_yaml("SESSION MEMORY", memory)
    return 0


def cmd_memory_remove(args: argparse.Namespace, cfg: ResolvedConfig) -> int:
    store = _memory_store(args, cfg)
    memory = store.load().without_note(args.note)
    store.save(memory)
    _print_yaml("SESSION MEMORY", memory)
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Builds the CLI parser."""
    p = argparse.ArgumentParser(prog="phasegate", description="Validate and sequence phase-based change plans")
    p.add_argument("--project-root", default=".", help="Project root (where .phasegate lives)")
    p.add_argument("--config", action="append", default=None, help="Extra config YAML (repeatable, highest precedence)")
    p.add_argument("--log-level", default=None, help="Override logging.level (DEBUG, INFO, WARNING, ERROR)")
    sub = p.add_subparsers(dest="cmd", required=True)

    def add_document(sp: argparse.ArgumentParser) -> None:
        sp.add_argument("document", help="Subsystem document (YAML or JSON)")

    sp = sub.add_parser("validate", help="Check every phase; exit 1 on failures")
    add_document(sp)
    sp.add_argument("--fail-fast", action="store_true", help="Report only the first failure per phase")
    sp.set_defaults(func=cmd_validate)

    sp = sub.add_parser("order", help="Print a deterministic topological order")
    add_document(sp)
    sp.set_defaults(func=cmd_order)

    sp = sub.add_parser("plan", help="Print parallelizable execution levels")
    add_document(sp)
    sp.set_defaults(func=cmd_plan)

    sp = sub.add_parser("status", help="Show phase status, ready phases and open gates")
    add_document(sp)
    sp.set_defaults(func=cmd_status)

    sp = sub.add_parser("start", help="Move a phase to IN_PROGRESS")
    add_document(sp)
    sp.add_argument("phase_id")
    sp.set_defaults(func=cmd_start)

    sp = sub.add_parser("submit", help="Submit a phase for review (opens its gate)")
    add_document(sp)
    sp.add_argument("phase_id")
    sp.set_defaults(func=cmd_submit)

    for name, func, help_text in (
        ("approve", cmd_approve, "Approve an open review gate"),
        ("ack", cmd_ack, "Acknowledge an open review gate (spot-check / gate-only)"),
        ("reject", cmd_reject, "Reject an open review gate; the phase returns to IN_PROGRESS"),
    ):
        sp = sub.add_parser(name, help=help_text)
        add_document(sp)
        sp.add_argument("gate_id")
        sp.add_argument("--actor", default="cli", help="Who is deciding")
        if name == "reject":
            sp.add_argument("--reason", required=True, help="Why the phase goes back for rework")
        sp.set_defaults(func=func)

    sp_mem = sub.add_parser("memory", help="Cross-session memory notes")
    mem_sub = sp_mem.add_subparsers(dest="memory_cmd", required=True)
    sp = mem_sub.add_parser("show", help="Print the memory file")
    sp.set_defaults(func=cmd_memory_show)
    sp = mem_sub.add_parser("add", help="Append a note")
    sp.add_argument("note")
    sp.set_defaults(func=cmd_memory_add)
    sp = mem_sub.add_parser("remove", help="Remove a note")
    sp.add_argument("note")
    sp.set_defaults(func=cmd_memory_remove)

    return p


def main(argv: list[str] | None = None) -> int:
    """Runs the CLI entrypoint."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        cfg = _resolve_config(args)
        configure_logging(level=args.log_level or cfg.logging.level, json_format=cfg.logging.json)
        return int(args.func(args, cfg))
    except PhaseGraphError as e:
        logger.debug("cli.failed", cmd=args.cmd, code=e.code)
        _print_yaml("ERROR", e, stream=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
