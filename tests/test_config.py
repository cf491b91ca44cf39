"""
Tests for Config Persistence (TOML) and Policy construction.

Verifies that:
1. RuntimeConfig.load() picks up [tool.exhaustive_deps] from pyproject.toml.
2. Keyword overrides take precedence over TOML settings.
3. File traversal finds toml in parent directories.
4. Invalid settings are rejected with a ValueError.
5. to_policy() carries every setting into the analysis Policy.
"""

import pytest

from exhaustive_deps.config import RuntimeConfig
from exhaustive_deps.enums import AsyncHandling, PrimitiveKind


@pytest.fixture
def toml_file(tmp_path):
  """Creates a dummy pyproject.toml in the temp dir."""
  fpath = tmp_path / "pyproject.toml"
  content = """
[tool.exhaustive_deps]
additional_hooks = "use_.*_effect"
require_explicit_deps = true
stable_names = ["dispatch"]
max_nodes = 500
"""
  fpath.write_text(content, encoding="utf-8")
  return fpath


def test_load_defaults_from_toml(tmp_path, toml_file):
  config = RuntimeConfig.load(search_path=tmp_path)

  assert config.additional_hooks == "use_.*_effect"
  assert config.require_explicit_deps is True
  assert config.stable_names == ["dispatch"]
  assert config.max_nodes == 500


def test_overrides_win(tmp_path, toml_file):
  config = RuntimeConfig.load(search_path=tmp_path, max_nodes=10, require_explicit_deps=None)

  assert config.max_nodes == 10  # override wins
  assert config.require_explicit_deps is True  # None falls back to TOML


def test_hierarchical_search(tmp_path, toml_file):
  subdir = tmp_path / "src" / "pkg"
  subdir.mkdir(parents=True)

  assert RuntimeConfig.load(search_path=subdir).max_nodes == 500


def test_no_toml_fallback(tmp_path):
  config = RuntimeConfig.load(search_path=tmp_path)

  assert config.additional_hooks is None
  assert config.require_explicit_deps is False
  assert config.max_ms == 500.0
  assert "append" in config.mutation_methods


def test_malformed_toml_raises(tmp_path):
  (tmp_path / "pyproject.toml").write_text("[tool.exhaustive_deps\nbad", encoding="utf-8")

  with pytest.raises(ValueError, match="Could not parse"):
    RuntimeConfig.load(search_path=tmp_path)


def test_unknown_keys_rejected(tmp_path):
  (tmp_path / "pyproject.toml").write_text("[tool.exhaustive_deps]\nmax_node = 3\n", encoding="utf-8")

  with pytest.raises(ValueError, match="max_node"):
    RuntimeConfig.load(search_path=tmp_path)


@pytest.mark.parametrize(
  "overrides",
  [
    {"additional_hooks": "use_(unclosed"},
    {"signal_accessor": "not an identifier"},
    {"max_nodes": 0},
    {"async_memoization": "sometimes"},
  ],
)
def test_invalid_values_rejected(tmp_path, overrides):
  with pytest.raises(ValueError, match="Configuration validation failed"):
    RuntimeConfig.load(search_path=tmp_path, **overrides)


def test_to_policy():
  config = RuntimeConfig(
    additional_hooks="use_my_",
    auto_dependency_hooks=["use_tracked"],
    stable_names=["dispatch"],
    mutation_methods=["push"],
    signal_accessor="get",
    max_nodes=42,
    async_memoization=AsyncHandling.PARTIAL,
  )
  policy = config.to_policy()

  assert policy.stable_overrides == frozenset({"dispatch"})
  assert policy.mutation_methods == frozenset({"push"})
  assert policy.budget.max_nodes == 42
  assert policy.cell_predicate.accessor == "get"
  assert policy.additional_hooks.search("use_my_thing")
  assert policy.memoization_async is AsyncHandling.PARTIAL
  assert policy.require_array is None
  tracked = [p for p in policy.primitives if p.name == "use_tracked"]
  assert tracked[0].kind is PrimitiveKind.AUTO_ARRAY


def test_require_explicit_deps_sets_policy():
  assert RuntimeConfig(require_explicit_deps=True).to_policy().require_array is True
