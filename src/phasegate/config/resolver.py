from __future__ import annotations

import hashlib
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Any, Mapping, Optional, Protocol, Sequence, Tuple

import structlog
import yaml  # PyYAML

from phasegate.config.models import (
    LimitsConfig,
    LoggingConfig,
    ResolvedConfig,
    StorageConfig,
    ValidationConfig,
)
from phasegate.core.types import JSON, MAX_TASKS_PER_PHASE, ResourceRef, ReviewTier
from phasegate.errors import ConfigError

logger = structlog.get_logger()

CONFIG_FILE_NAME = "config.yaml"
DEFAULTS_RELPATH = "resources/config/phasegate_v1.yaml"


@dataclass(frozen=True)
class OverrideSources:
    """
    Precedence (lowest to highest), each merged over the shipped defaults:
    - user_dir: ~/.config/phasegate/config.yaml
    - repo_dir: <repo>/.phasegate/config.yaml
    - explicit_files: CLI-provided override YAML files, in order
    """

    user_dir: Optional[str] = None
    repo_dir: Optional[str] = None
    explicit_files: Sequence[str] = ()

    @staticmethod
    def standard(repo_root: str | Path, explicit_files: Sequence[str] = ()) -> "OverrideSources":
        return OverrideSources(
            user_dir=str(Path.home() / ".config" / "phasegate"),
            repo_dir=str(Path(repo_root) / ".phasegate"),
            explicit_files=tuple(explicit_files),
        )


class ConfigResolver(Protocol):
    def resolve(self, *, overrides: Optional[OverrideSources] = None) -> ResolvedConfig: ...


def _sha256_bytes(b: bytes) -> str:
    return hashlib.sha256(b).hexdigest()


def _deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> JSON:
    """Mappings merge key by key; any other value (lists included) replaces."""
    out: JSON = dict(base)
    for k, v in override.items():
        if isinstance(v, Mapping) and isinstance(out.get(k), Mapping):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _parse_yaml(data: bytes, source: str) -> JSON:
    try:
        parsed = yaml.safe_load(data.decode("utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {source}: {e}", data={"source": source}) from e
    if parsed is None:
        return {}
    if not isinstance(parsed, dict):
        raise ConfigError(f"Config in {source} must be a mapping", data={"source": source})
    return parsed


@dataclass
class DefaultConfigResolver:
    """
    Loads the *shipped defaults* from package resources, then applies overrides.

    importlib.resources keeps this working when installed from wheels/zips.
    """

    package: str = "phasegate"

    def resolve(self, *, overrides: Optional[OverrideSources] = None) -> ResolvedConfig:
        merged, ref = self._load_package_defaults()
        refs = [ref]

        for path, source in self._override_paths(overrides):
            if not path.is_file():
                if source == "explicit":
                    raise ConfigError(f"Config file not found: {path}", data={"source": str(path)})
                continue
            data = path.read_bytes()
            layer = _parse_yaml(data, str(path))
            # override files may omit the top-level "phasegate:" key
            body = layer.get("phasegate", layer)
            if not isinstance(body, Mapping):
                raise ConfigError(f"'phasegate' in {path} must be a mapping", data={"source": str(path)})
            merged = _deep_merge(merged, {"phasegate": body})
            refs.append(ResourceRef(id="phasegate", version=1, sha256=_sha256_bytes(data), source=str(path)))
            logger.debug("config.override_applied", source=source, path=str(path))

        return self._build(merged, refs)

    def _load_package_defaults(self) -> Tuple[JSON, ResourceRef]:
        """
        Read resource bytes from the installed package and compute hash for provenance.
        """
        data = resources.files(self.package).joinpath(DEFAULTS_RELPATH).read_bytes()
        return _parse_yaml(data, DEFAULTS_RELPATH), ResourceRef(id="phasegate", version=1, sha256=_sha256_bytes(data))

    @staticmethod
    def _override_paths(overrides: Optional[OverrideSources]) -> list[tuple[Path, str]]:
        if overrides is None:
            return []
        out: list[tuple[Path, str]] = []
        if overrides.user_dir:
            out.append((Path(overrides.user_dir).expanduser() / CONFIG_FILE_NAME, "user"))
        if overrides.repo_dir:
            out.append((Path(overrides.repo_dir) / CONFIG_FILE_NAME, "repo"))
        for f in overrides.explicit_files:
            out.append((Path(f).expanduser(), "explicit"))
        return out

    @staticmethod
    def _build(raw: JSON, refs: list[ResourceRef]) -> ResolvedConfig:
        root = raw.get("phasegate")
        if not isinstance(root, Mapping):
            raise ConfigError("Config is missing the 'phasegate' section")

        def section(name: str) -> Mapping[str, Any]:
            value = root.get(name) or {}
            if not isinstance(value, Mapping):
                raise ConfigError(f"phasegate.{name} must be a mapping", data={"section": name})
            return value

        limits = section("limits")
        try:
            max_tasks = int(limits.get("max_tasks_per_phase", MAX_TASKS_PER_PHASE))
        except (TypeError, ValueError) as e:
            raise ConfigError("phasegate.limits.max_tasks_per_phase must be an int") from e
        if not 1 <= max_tasks <= MAX_TASKS_PER_PHASE:
            raise ConfigError(
                f"phasegate.limits.max_tasks_per_phase must be between 1 and {MAX_TASKS_PER_PHASE}",
                data={"value": max_tasks},
            )

        tiers = root.get("review_tiers") or []
        if not isinstance(tiers, list) or not tiers or not all(isinstance(t, str) and t.strip() for t in tiers):
            raise ConfigError("phasegate.review_tiers must be a non-empty list of strings")
        unknown = sorted({t.strip() for t in tiers} - set(ReviewTier.values()))
        if unknown:
            raise ConfigError(
                f"phasegate.review_tiers may only narrow {list(ReviewTier.values())}; unknown: {unknown}",
                data={"unknown": unknown},
            )

        validation = section("validation")
        log = section("logging")
        storage = section("storage")

        json_flag = log.get("json")
        if json_flag is not None and not isinstance(json_flag, bool):
            raise ConfigError("phasegate.logging.json must be true, false or null")

        return ResolvedConfig(
            version=int(root.get("version", 1)),
            raw=raw,
            limits=LimitsConfig(max_tasks_per_phase=max_tasks),
            review_tiers=[t.strip() for t in tiers],
            validation=ValidationConfig(collect_all=bool(validation.get("collect_all", True))),
            logging=LoggingConfig(level=str(log.get("level", "WARNING")).upper(), json=json_flag),
            storage=StorageConfig(
                root_dir=str(storage.get("root_dir", ".phasegate")),
                memory_file=str(storage.get("memory_file", "memory.yaml")),
            ),
            refs=refs,
        )
