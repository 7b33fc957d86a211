# apps/phasegate_ui.py
# Read-only dashboard: streamlit run apps/phasegate_ui.py
from __future__ import annotations

from pathlib import Path

import streamlit as st
import yaml

from phasegate.config.resolver import DefaultConfigResolver, OverrideSources
from phasegate.data.document import subsystem_from_dict
from phasegate.data.status_store import FileStatusStore
from phasegate.engine.sequencer import Sequencer
from phasegate.engine.tracker import PhaseTracker
from phasegate.engine.validator import PhaseValidator
from phasegate.errors import PhaseGraphError


STATUS_BADGE = {
    "NOT_STARTED": "⚪",
    "IN_PROGRESS": "🔵",
    "AWAITING_REVIEW": "🟡",
    "COMPLETED": "🟢",
}


def _list_documents(project_root: Path, root_dir: str) -> list[Path]:
    docs_dir = project_root / root_dir / "docs"
    if not docs_dir.is_dir():
        return []
    return sorted(p for p in docs_dir.iterdir() if p.suffix.lower() in (".yaml", ".yml", ".json"))


def _load_raw(uploaded, picked: Path | None) -> dict:
    if uploaded is not None:
        obj = yaml.safe_load(uploaded.getvalue().decode("utf-8"))
    elif picked is not None:
        obj = yaml.safe_load(picked.read_text(encoding="utf-8"))
    else:
        return {}
    return obj if isinstance(obj, dict) else {}


def main() -> None:
    st.set_page_config(page_title="phasegate", layout="wide")
    st.title("phasegate")

    project_root = Path(st.sidebar.text_input("Project root", value=".")).resolve()
    cfg = DefaultConfigResolver().resolve(overrides=OverrideSources.standard(project_root))

    docs = _list_documents(project_root, cfg.storage.root_dir)
    picked_name = st.sidebar.selectbox("Document", ["(upload)"] + [d.name for d in docs])
    picked = next((d for d in docs if d.name == picked_name), None)
    uploaded = st.sidebar.file_uploader("Subsystem document", type=["yaml", "yml", "json"]) if picked is None else None

    raw = _load_raw(uploaded, picked)
    if not raw:
        st.info("Pick or upload a subsystem document.")
        return

    try:
        subsystem = subsystem_from_dict(raw, default_name=picked.stem if picked else "uploaded")
    except PhaseGraphError as e:
        st.error(f"{e.code}: {e.message}")
        st.json(e.data)
        return

    st.subheader(f"Subsystem: {subsystem.name}")
    st.caption(f"{len(subsystem)} phases · {len(subsystem.registry)} contracts")

    report = PhaseValidator.for_subsystem(
        subsystem,
        max_tasks=cfg.limits.max_tasks_per_phase,
        review_tiers=cfg.review_tiers,
    ).validate_subsystem(subsystem)

    st.markdown("### Validation")
    if report.ok:
        st.success("All phases pass.")
    else:
        for issue in report.issues:
            st.error(f"[{issue.phase_id}] {issue.code}: {issue.message}")

    store = FileStatusStore(project_root=project_root, subsystem=subsystem.name, root_dir=cfg.storage.root_dir)
    snapshot = store.read_status()
    tracker = PhaseTracker.restore(subsystem, snapshot) if snapshot else PhaseTracker(subsystem)

    st.markdown("### Plan")
    try:
        plan = Sequencer().plan(subsystem)
    except PhaseGraphError as e:
        st.error(f"{e.code}: {e.message}")
        return

    cols = st.columns(max(len(plan.levels), 1))
    for i, level in enumerate(plan.levels):
        with cols[i]:
            st.markdown(f"**Level {i}**")
            for pid in sorted(level):
                phase = subsystem.phase(pid)
                badge = STATUS_BADGE.get(tracker.status(pid).value, "")
                with st.expander(f"{badge} {pid} {phase.name}"):
                    st.code(phase.gate or "(no gate)")
                    st.json(phase.to_dict())

    with st.expander("Open review gates"):
        gates = [g.to_dict() for p in subsystem.phases if (g := tracker.get_pending_gate(p.phase_id))]
        st.json(gates)


main()
