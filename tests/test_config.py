from __future__ import annotations

import pytest

from phasegate.config.resolver import DefaultConfigResolver, OverrideSources, _deep_merge
from phasegate.errors import ConfigError


def _write(path, text: str):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def test_shipped_defaults():
    cfg = DefaultConfigResolver().resolve()

    assert cfg.version == 1
    assert cfg.limits.max_tasks_per_phase == 8
    assert cfg.review_tiers == ["gate-only", "spot-check", "full-review"]
    assert cfg.validation.collect_all is True
    assert cfg.logging.level == "WARNING"
    assert cfg.logging.json is None
    assert cfg.storage.root_dir == ".phasegate"

    assert len(cfg.refs) == 1
    assert cfg.refs[0].source == "package"
    assert len(cfg.refs[0].sha256) == 64


def test_repo_then_explicit_precedence(tmp_path):
    repo = tmp_path / ".phasegate"
    _write(repo / "config.yaml", "phasegate:\n  limits:\n    max_tasks_per_phase: 5\n  logging:\n    level: info\n")
    explicit = _write(tmp_path / "ci.yaml", "limits:\n  max_tasks_per_phase: 3\n")

    cfg = DefaultConfigResolver().resolve(
        overrides=OverrideSources(repo_dir=str(repo), explicit_files=[str(explicit)])
    )

    assert cfg.limits.max_tasks_per_phase == 3
    assert cfg.logging.level == "INFO"
    # untouched sections keep their defaults
    assert cfg.review_tiers == ["gate-only", "spot-check", "full-review"]
    assert [r.source for r in cfg.refs][1:] == [str(repo / "config.yaml"), str(explicit)]


def test_missing_repo_file_is_skipped(tmp_path):
    cfg = DefaultConfigResolver().resolve(overrides=OverrideSources(repo_dir=str(tmp_path / "nope")))
    assert len(cfg.refs) == 1


def test_missing_explicit_file_fails(tmp_path):
    with pytest.raises(ConfigError):
        DefaultConfigResolver().resolve(overrides=OverrideSources(explicit_files=[str(tmp_path / "nope.yaml")]))


@pytest.mark.parametrize(
    "text",
    [
        "limits: [1, 2",
        "- just\n- a list\n",
        "limits:\n  max_tasks_per_phase: lots\n",
        "limits:\n  max_tasks_per_phase: 0\n",
        "limits:\n  max_tasks_per_phase: 50\n",
        "review_tiers: []\n",
        "review_tiers: [rubber-stamp]\n",
        "review_tiers: [full-review, rubber-stamp]\n",
        "logging:\n  json: sometimes\n",
        "storage: nope\n",
    ],
)
def test_bad_override(tmp_path, text):
    f = _write(tmp_path / "bad.yaml", text)
    with pytest.raises(ConfigError):
        DefaultConfigResolver().resolve(overrides=OverrideSources(explicit_files=[str(f)]))


def test_tiers_may_only_narrow(tmp_path):
    f = _write(tmp_path / "strict.yaml", "review_tiers: [full-review]\nlimits:\n  max_tasks_per_phase: 8\n")
    cfg = DefaultConfigResolver().resolve(overrides=OverrideSources(explicit_files=[str(f)]))

    assert cfg.review_tiers == ["full-review"]
    assert cfg.limits.max_tasks_per_phase == 8


def test_deep_merge_replaces_lists():
    base = {"a": {"b": 1, "c": [1, 2]}, "d": 1}
    merged = _deep_merge(base, {"a": {"c": [3]}})
    assert merged == {"a": {"b": 1, "c": [3]}, "d": 1}
    assert base["a"]["c"] == [1, 2]


def test_standard_sources(tmp_path):
    src = OverrideSources.standard(tmp_path, ["x.yaml"])
    assert src.repo_dir == str(tmp_path / ".phasegate")
    assert src.user_dir.endswith("phasegate")
    assert src.explicit_files == ("x.yaml",)
