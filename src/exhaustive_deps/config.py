"""
Runtime Configuration Store.

Settings are read from the ``[tool.exhaustive_deps]`` table of the nearest
``pyproject.toml`` and may be overridden by keyword arguments. The resulting
``RuntimeConfig`` builds the base ``Policy`` every analysis starts from.
"""

import logging
import re
import tomllib
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, ValidationError, field_validator

from exhaustive_deps.enums import AsyncHandling, PrimitiveKind
from exhaustive_deps.policy import (
  DEFAULT_MUTATION_METHODS,
  DEFAULT_PRIMITIVES,
  DEFAULT_SIGNAL_FACTORIES,
  Budget,
  Policy,
  PrimitiveSpec,
  SignalCellPredicate,
)

logger = logging.getLogger(__name__)

TOOL_KEY = "exhaustive_deps"


class RuntimeConfig(BaseModel):
  """
  User-facing configuration of the dependency checker.
  """

  additional_hooks: Optional[str] = Field(
    None, description="Regex of extra hook names treated as fixed-array effects (e.g. 'use_my_effect|use_.*_effect')."
  )
  auto_dependency_hooks: List[str] = Field(
    default_factory=list, description="Extra hook names whose dependencies are tracked automatically."
  )
  require_explicit_deps: bool = Field(False, description="If True, every primitive must declare an array.")
  stable_names: List[str] = Field(default_factory=list, description="Names always treated as stable.")
  mutation_methods: List[str] = Field(
    default_factory=lambda: sorted(DEFAULT_MUTATION_METHODS), description="Methods that mutate their receiver."
  )
  signal_factories: List[str] = Field(
    default_factory=lambda: sorted(DEFAULT_SIGNAL_FACTORIES), description="Callees constructing reactive cells."
  )
  signal_accessor: str = Field("value", description="Attribute through which a cell's value is read.")
  signal_name_suffixes: List[str] = Field(
    default_factory=lambda: ["_signal"], description="Naming conventions hinting at a reactive cell."
  )
  max_nodes: int = Field(20_000, ge=1, description="Node budget per callback.")
  max_ms: float = Field(500.0, gt=0, description="Time budget per callback in milliseconds.")
  async_memoization: AsyncHandling = Field(
    AsyncHandling.IGNORE, description="Treatment of coroutine callbacks passed to memoization hooks."
  )

  @field_validator("additional_hooks")
  @classmethod
  def validate_pattern(cls, v: Optional[str]) -> Optional[str]:
    """
    Ensures the hook pattern compiles.

    Args:
        v (Optional[str]): The raw regular expression.

    Returns:
        Optional[str]: The pattern, or None when empty.

    Raises:
        ValueError: If the pattern is not a valid regular expression.
    """
    if not v:
      return None
    try:
      re.compile(v)
    except re.error as e:
      raise ValueError(f"Invalid additional_hooks pattern '{v}': {e}")
    return v

  @field_validator("signal_accessor")
  @classmethod
  def validate_accessor(cls, v: str) -> str:
    v_clean = v.strip()
    if not v_clean.isidentifier():
      raise ValueError(f"signal_accessor must be an identifier, got '{v}'")
    return v_clean

  def primitives(self) -> Tuple[PrimitiveSpec, ...]:
    extra = tuple(
      PrimitiveSpec(name=name, kind=PrimitiveKind.AUTO_ARRAY)
      for name in self.auto_dependency_hooks
      if all(spec.name != name for spec in DEFAULT_PRIMITIVES)
    )
    return DEFAULT_PRIMITIVES + extra

  def to_policy(self) -> Policy:
    """
    Builds the base analysis policy described by this configuration.

    Returns:
        Policy: A fixedArray policy; ``Policy.for_primitive`` specialises it per hook.
    """
    return Policy(
      cell_predicate=SignalCellPredicate(
        factories=self.signal_factories,
        accessor=self.signal_accessor,
        name_suffixes=self.signal_name_suffixes,
      ),
      stable_overrides=frozenset(self.stable_names),
      mutation_methods=frozenset(self.mutation_methods),
      budget=Budget(max_nodes=self.max_nodes, max_ms=self.max_ms),
      require_array=True if self.require_explicit_deps else None,
      primitives=self.primitives(),
      additional_hooks=re.compile(self.additional_hooks) if self.additional_hooks else None,
      memoization_async=self.async_memoization,
    )

  @classmethod
  def load(cls, search_path: Optional[Path] = None, **overrides: Any) -> "RuntimeConfig":
    """
    Loads configuration from pyproject.toml and applies keyword overrides.

    Args:
        search_path (Optional[Path]): Directory to start searching for TOML config.
        **overrides: Field values taking precedence over the file (None is ignored).

    Returns:
        RuntimeConfig: The fully resolved configuration object.

    Raises:
        ValueError: If the merged settings fail validation.
    """
    start_dir = search_path or Path.cwd()
    toml_config, toml_dir = _load_toml_settings(start_dir)
    if toml_dir is not None:
      logger.debug("Loaded [tool.%s] from %s", TOOL_KEY, toml_dir / "pyproject.toml")

    merged: Dict[str, Any] = {**toml_config, **{k: v for k, v in overrides.items() if v is not None}}
    unknown = sorted(set(merged) - set(cls.model_fields))
    if unknown:
      raise ValueError(f"Unknown [tool.{TOOL_KEY}] settings: {unknown}")
    try:
      return cls.model_validate(merged)
    except ValidationError as e:
      raise ValueError(f"Configuration validation failed: {e}")


def _load_toml_settings(start_path: Path) -> Tuple[Dict[str, Any], Optional[Path]]:
  """
  Searches parents for 'pyproject.toml' and extracts the tool table.

  Args:
      start_path (Path): Directory to start search from.

  Returns:
      Tuple[Dict, Optional[Path]]: The config dict and the directory it was found in.

  Raises:
      ValueError: If the nearest pyproject.toml is not valid TOML.
  """
  current = start_path.resolve()

  for parent in [current, *current.parents]:
    toml_path = parent / "pyproject.toml"
    if toml_path.exists() and toml_path.is_file():
      try:
        with open(toml_path, "rb") as f:
          data = tomllib.load(f)
      except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Could not parse {toml_path}: {e}")
      return data.get("tool", {}).get(TOOL_KEY, {}), parent

  return {}, None
