"""
Policy Engine.

A ``Policy`` carries everything an analysis needs to know about the primitive it is
checking: its kind, how reactive cells are recognised, which bindings are stable
by decree, which method calls mutate their receiver, and the resource budget.
Policies are immutable pydantic models injected into ``analyze``; nothing here is
global, so independent analyses can run side by side.

The hook registry also lives on the policy so that nested primitives inside a
callback can be recognised and skipped.
"""

from typing import Callable, FrozenSet, Optional, Pattern, Sequence, Tuple

import libcst as cst
from pydantic import BaseModel, ConfigDict, Field

from exhaustive_deps.analysis.scopes import Declaration
from exhaustive_deps.enums import AsyncHandling, CellVerdict, DeclarationKind, PrimitiveKind
from exhaustive_deps.utils.cst_utils import callee_name

DEFAULT_MUTATION_METHODS: FrozenSet[str] = frozenset(
  {
    "append",
    "extend",
    "insert",
    "remove",
    "pop",
    "clear",
    "sort",
    "reverse",
    "update",
    "add",
    "discard",
    "setdefault",
    "popitem",
  }
)

DEFAULT_SIGNAL_FACTORIES: FrozenSet[str] = frozenset({"signal", "use_signal", "computed", "use_computed"})


class CellMatch(BaseModel):
  """
  Outcome of the reactive-cell predicate for one binding.
  """

  model_config = ConfigDict(frozen=True)

  verdict: CellVerdict = CellVerdict.NOT_CELL
  suffix: Optional[str] = Field(None, description="Value-accessor attribute, e.g. 'value'.")

  @property
  def is_cell(self) -> bool:
    return self.verdict is CellVerdict.DEFINITELY_CELL

  @property
  def is_probable(self) -> bool:
    return self.verdict is CellVerdict.PROBABLY_CELL


NOT_CELL = CellMatch()


class SignalCellPredicate:
  """
  Default reactive-cell recognition.

  1.  ``definitelyCell``: the name is bound exactly once, by a plain assignment
      whose value is a call to one of the signal factories.
  2.  ``probablyCell``: the name ends with one of the configured suffixes.
  3.  ``notCell`` otherwise.
  """

  def __init__(
    self,
    factories: Sequence[str] = tuple(DEFAULT_SIGNAL_FACTORIES),
    accessor: str = "value",
    name_suffixes: Sequence[str] = ("_signal",),
  ):
    """
    Initializes the predicate.

    Args:
        factories: Callee names that construct a cell.
        accessor: Attribute through which a cell's held value is read.
        name_suffixes: Naming conventions that hint at a cell.
    """
    self.factories = frozenset(factories)
    self.accessor = accessor
    self.name_suffixes = tuple(name_suffixes)

  def __call__(self, name: str, declarations: Sequence[Declaration]) -> CellMatch:
    if len(declarations) == 1:
      decl = declarations[0]
      if (
        decl.kind is DeclarationKind.ASSIGNMENT
        and decl.unpack_index is None
        and callee_name(decl.value) in self.factories
      ):
        return CellMatch(verdict=CellVerdict.DEFINITELY_CELL, suffix=self.accessor)
    if any(name.endswith(suffix) for suffix in self.name_suffixes):
      return CellMatch(verdict=CellVerdict.PROBABLY_CELL, suffix=self.accessor)
    return NOT_CELL


CellPredicate = Callable[[str, Sequence[Declaration]], CellMatch]


class Budget(BaseModel):
  """
  Resource limits checked at analysis checkpoints.
  """

  model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

  max_nodes: int = Field(20_000, ge=1, description="Maximum syntax nodes visited per callback.")
  max_ms: float = Field(500.0, gt=0, description="Maximum wall-clock milliseconds per callback.")
  cancel: Optional[Callable[[], bool]] = Field(None, exclude=True, description="Cooperative cancellation probe.")


class PrimitiveSpec(BaseModel):
  """
  Where a hook expects its callback and dependency array.
  """

  model_config = ConfigDict(frozen=True)

  name: str
  kind: PrimitiveKind
  callback_index: int = 0
  deps_index: int = 1
  callback_keyword: str = "function"
  deps_keyword: str = "dependencies"

  def callback_arg(self, call: cst.Call) -> Optional[cst.BaseExpression]:
    return _argument(call, self.callback_index, self.callback_keyword)

  def deps_arg(self, call: cst.Call) -> Optional[cst.BaseExpression]:
    return _argument(call, self.deps_index, self.deps_keyword)

  def decorator_deps_arg(self, call: cst.Call) -> Optional[cst.BaseExpression]:
    """Finds the dependency argument of the decorator form, which omits the callback."""
    index = self.deps_index - 1 if self.callback_index < self.deps_index else self.deps_index
    return _argument(call, index, self.deps_keyword)


def _argument(call: cst.Call, index: int, keyword: str) -> Optional[cst.BaseExpression]:
  positional = [a for a in call.args if a.keyword is None and not a.star]
  for arg in call.args:
    if arg.keyword is not None and arg.keyword.value == keyword:
      return arg.value
  if index < len(positional):
    return positional[index].value
  return None


DEFAULT_PRIMITIVES: Tuple[PrimitiveSpec, ...] = (
  PrimitiveSpec(name="use_effect", kind=PrimitiveKind.FIXED_ARRAY),
  PrimitiveSpec(name="use_layout_effect", kind=PrimitiveKind.FIXED_ARRAY),
  PrimitiveSpec(
    name="use_imperative_handle",
    kind=PrimitiveKind.FIXED_ARRAY,
    callback_index=1,
    deps_index=2,
    callback_keyword="init",
  ),
  PrimitiveSpec(name="use_memo", kind=PrimitiveKind.MEMOIZATION),
  PrimitiveSpec(name="use_callback", kind=PrimitiveKind.MEMOIZATION),
  PrimitiveSpec(name="use_computed", kind=PrimitiveKind.AUTO_ARRAY),
  PrimitiveSpec(name="use_signal_effect", kind=PrimitiveKind.AUTO_ARRAY),
)


class Policy(BaseModel):
  """
  Per-primitive behaviour and limits for one analysis.
  """

  model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

  kind: PrimitiveKind = Field(PrimitiveKind.FIXED_ARRAY, description="Kind of the primitive being analysed.")
  cell_predicate: Callable[..., CellMatch] = Field(
    default_factory=SignalCellPredicate, description="Reactive-cell recognition capability."
  )
  stable_overrides: FrozenSet[str] = Field(frozenset(), description="Names always treated as stable.")
  mutation_methods: FrozenSet[str] = Field(DEFAULT_MUTATION_METHODS, description="Receiver-mutating methods.")
  budget: Budget = Field(default_factory=Budget)
  async_handling: Optional[AsyncHandling] = Field(
    None, description="Coroutine callbacks; defaults to IGNORE for memoization, PARTIAL otherwise."
  )
  memoization_async: AsyncHandling = Field(AsyncHandling.IGNORE, description="Coroutine handling default for memoization.")
  require_array: Optional[bool] = Field(
    None, description="Report an absent array; defaults to True for memoization only."
  )
  primitives: Tuple[PrimitiveSpec, ...] = DEFAULT_PRIMITIVES
  additional_hooks: Optional[Pattern] = Field(None, description="Extra fixedArray hooks by name.")
  state_factories: FrozenSet[str] = frozenset({"use_state", "use_reducer"})
  ref_factories: FrozenSet[str] = frozenset({"use_ref"})
  effect_event_factories: FrozenSet[str] = frozenset({"use_effect_event"})

  @property
  def effective_async_handling(self) -> AsyncHandling:
    if self.async_handling is not None:
      return self.async_handling
    if self.kind is PrimitiveKind.MEMOIZATION:
      return self.memoization_async
    return AsyncHandling.PARTIAL

  @property
  def needs_array(self) -> bool:
    if self.require_array is not None:
      return self.require_array and self.kind is not PrimitiveKind.AUTO_ARRAY
    return self.kind is PrimitiveKind.MEMOIZATION

  def match_primitive(self, call: cst.Call) -> Optional[PrimitiveSpec]:
    """
    Identifies a hook call handled by this policy's registry.

    Args:
        call: Any call expression.

    Returns:
        The matching PrimitiveSpec, or None if the call is not a primitive.
    """
    name = callee_name(call)
    if not name:
      return None
    for spec in self.primitives:
      if spec.name == name:
        return spec
    if self.additional_hooks is not None and self.additional_hooks.search(name):
      return PrimitiveSpec(name=name, kind=PrimitiveKind.FIXED_ARRAY)
    return None

  def for_primitive(self, spec: PrimitiveSpec) -> "Policy":
    """Returns a copy of this policy configured for ``spec``'s kind."""
    return self.model_copy(update={"kind": spec.kind})
