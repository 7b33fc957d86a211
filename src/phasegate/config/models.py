from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from phasegate.core.types import JSON, ResourceRef


@dataclass(frozen=True)
class LimitsConfig:
    max_tasks_per_phase: int = 8


@dataclass(frozen=True)
class ValidationConfig:
    collect_all: bool = True


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "WARNING"
    json: Optional[bool] = None  # None = auto (JSON if not a TTY)


@dataclass(frozen=True)
class StorageConfig:
    root_dir: str = ".phasegate"
    memory_file: str = "memory.yaml"


@dataclass(frozen=True)
class ResolvedConfig:
    """
    Fully resolved configuration: shipped defaults merged with every override
    source, plus the provenance refs of what was read (in precedence order).
    """

    version: int
    raw: JSON

    limits: LimitsConfig
    review_tiers: List[str]
    validation: ValidationConfig
    logging: LoggingConfig
    storage: StorageConfig

    refs: List[ResourceRef]
