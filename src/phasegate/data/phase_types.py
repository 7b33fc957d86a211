# src/phasegate/data/phase_types.py
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

from ..errors import InvalidDocumentError


@dataclass(frozen=True, slots=True)
class Contract:
    """A named interface exposed by exactly one phase. The signature is opaque."""

    name: str
    phase_id: str
    signature: str = ""

    def to_dict(self) -> dict[str, object]:
        return {"name": self.name, "phase_id": self.phase_id, "signature": self.signature}


@dataclass(frozen=True, slots=True)
class Phase:
    """A bounded, independently reviewable unit of implementation work.

    The review tier is kept as the raw authored string (empty when absent) so
    the validator reports a missing or unknown tier instead of the parser.
    """

    phase_id: str
    name: str = ""
    scope: str = ""
    tasks: tuple[str, ...] = ()
    contracts_consumed: frozenset[str] = frozenset()
    contracts_exposed: Mapping[str, str] = field(default_factory=dict)
    gate: str = ""
    depends_on: frozenset[str] = frozenset()
    # no default: a forgotten tier must surface as InvalidReviewTier
    review_tier: str = field(kw_only=True)

    @property
    def task_count(self) -> int:
        return len(self.tasks)

    def to_dict(self) -> dict[str, object]:
        """Converts the phase into a JSON/YAML-serializable mapping."""
        return {
            "id": self.phase_id,
            "name": self.name,
            "scope": self.scope,
            "tasks": list(self.tasks),
            "depends_on": sorted(self.depends_on),
            "consumes": sorted(self.contracts_consumed),
            "exposes": {k: self.contracts_exposed[k] for k in sorted(self.contracts_exposed)},
            "gate": self.gate,
            "review_tier": self.review_tier,
        }

    @staticmethod
    def from_dict(d: Mapping[str, object]) -> "Phase":
        """Parses a Phase from a dict-like mapping.

        Tolerant on shapes:
        - "exposes" may be a list of names, a list of {name, signature} objects,
          or a mapping name -> signature
        - list fields drop blank items

        Strict on identity: "id" (or "phase_id") must be a non-empty string.

        Raises:
            InvalidDocumentError: If the phase id is missing or a field has the wrong type.
        """
        raw_id = d.get("id", d.get("phase_id"))
        if not isinstance(raw_id, (str, int, float)) or isinstance(raw_id, bool) or not str(raw_id).strip():
            raise InvalidDocumentError("phase.id must be a non-empty string", field="id")
        phase_id = str(raw_id).strip()

        def as_str(key: str) -> str:
            x = d.get(key)
            if x is None:
                return ""
            if isinstance(x, (dict, list, tuple)):
                raise InvalidDocumentError(f"phase '{phase_id}': {key} must be a string", field=key)
            return str(x).strip()

        def as_list(key: str) -> list[str]:
            x = d.get(key)
            if x is None:
                return []
            if isinstance(x, str):
                x = [x]
            if not isinstance(x, (list, tuple, set, frozenset)):
                raise InvalidDocumentError(f"phase '{phase_id}': {key} must be a list", field=key)
            out: list[str] = []
            for item in x:
                if item is None:
                    continue
                s = str(item).strip()
                if s:
                    out.append(s)
            return out

        return Phase(
            phase_id=phase_id,
            name=as_str("name"),
            scope=as_str("scope"),
            tasks=tuple(as_list("tasks")),
            contracts_consumed=frozenset(as_list("consumes")),
            contracts_exposed=_parse_exposes(phase_id, d.get("exposes")),
            gate=as_str("gate"),
            review_tier=as_str("review_tier"),
            depends_on=frozenset(as_list("depends_on")),
        )


def _parse_exposes(phase_id: str, x: object) -> dict[str, str]:
    if x is None:
        return {}
    if isinstance(x, str):
        x = [x]
    if isinstance(x, Mapping):
        return {str(k).strip(): "" if v is None else str(v) for k, v in x.items() if str(k).strip()}
    if not isinstance(x, (list, tuple)):
        raise InvalidDocumentError(f"phase '{phase_id}': exposes must be a list or mapping", field="exposes")

    out: dict[str, str] = {}
    for item in x:
        if isinstance(item, Mapping):
            name = str(item.get("name") or "").strip()
            sig = item.get("signature")
        else:
            name = str(item or "").strip()
            sig = None
        if not name:
            continue
        if name in out:
            raise InvalidDocumentError(
                f"phase '{phase_id}': contract '{name}' listed twice in exposes", field="exposes"
            )
        out[name] = "" if sig is None else str(sig)
    return out
