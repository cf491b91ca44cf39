"""
Declared-Dependency Comparator.

Normalizes the dependency array a primitive was given and diffs it against the
required set. The array has three states:

*   **absent**: no argument, or ``None``. Nothing is diffed unless the policy
    requires an array, in which case every required path is missing.
*   **literal**: a ``list``/``tuple`` display. Each element is normalized; spreads,
    slices, calls and dynamic keys are ``unsupported`` and preserved verbatim.
*   **non-literal**: any other expression. Per-element diffing is skipped.
"""

from dataclasses import dataclass
from typing import FrozenSet, List, Optional, Sequence, Tuple

import libcst as cst

from exhaustive_deps.analysis.bindings import Binding, BindingResolver
from exhaustive_deps.analysis.paths import AccessPath, match_path
from exhaustive_deps.analysis.requirements import Requirements
from exhaustive_deps.enums import ArrayState, BindingKind, DeclarationKind, ScopeKind
from exhaustive_deps.utils.cst_utils import render_node

_CONSTRUCTIONS = (
  cst.List,
  cst.Tuple,
  cst.Dict,
  cst.Set,
  cst.ListComp,
  cst.SetComp,
  cst.DictComp,
  cst.GeneratorExp,
  cst.Lambda,
)


@dataclass(frozen=True)
class DeclaredEntry:
  """
  One element of a literal dependency array.

  Attributes:
      path: Normalized path, or None when the element is unsupported.
      node: The element's expression node.
      source_order: Index of the element in the array.
      text: Verbatim source of the element, without its separator.
      unsupported_reason: Why the element could not be normalized.
  """

  path: Optional[AccessPath]
  node: cst.BaseExpression
  source_order: int
  text: str = ""
  unsupported_reason: Optional[str] = None

  @property
  def is_supported(self) -> bool:
    return self.path is not None


@dataclass(frozen=True)
class DeclaredArray:
  """
  The parsed dependency argument of a primitive call.
  """

  state: ArrayState
  node: Optional[cst.BaseExpression] = None
  entries: Tuple[DeclaredEntry, ...] = ()

  @property
  def unsupported(self) -> Tuple[DeclaredEntry, ...]:
    return tuple(e for e in self.entries if not e.is_supported)

  @property
  def element_count(self) -> int:
    return len(self.entries)


def parse_declared(node: Optional[cst.BaseExpression]) -> DeclaredArray:
  """
  Classifies and normalizes a declared dependency argument.

  Args:
      node: The argument expression, or None when it was not passed.

  Returns:
      DeclaredArray: State plus one entry per literal element.
  """
  if node is None or (isinstance(node, cst.Name) and node.value == "None"):
    return DeclaredArray(ArrayState.ABSENT, node)
  if not isinstance(node, (cst.List, cst.Tuple)):
    return DeclaredArray(ArrayState.NON_LITERAL, node)

  entries: List[DeclaredEntry] = []
  for idx, element in enumerate(node.elements):
    text = render_node(element.value)
    if isinstance(element, cst.StarredElement):
      entries.append(DeclaredEntry(None, element.value, idx, "*" + text, "spread element"))
      continue
    match = match_path(element.value)
    if match is None or not match.exact:
      entries.append(DeclaredEntry(None, element.value, idx, text, "not a static path"))
    elif match.path.is_opaque:
      entries.append(DeclaredEntry(None, element.value, idx, text, "dynamic key"))
    else:
      entries.append(DeclaredEntry(match.path, element.value, idx, text))
  return DeclaredArray(ArrayState.LITERAL, node, tuple(entries))


@dataclass(frozen=True)
class Comparison:
  """
  Diff between a declared array and the required set.

  Attributes:
      missing: Required paths no declared element satisfies, in first-usage order.
      unnecessary: Declared paths nothing needs, in source order.
      duplicates: Needed paths declared more than once.
      removals: Element indexes a fix deletes (unnecessary and repeated entries).
  """

  missing: Tuple[AccessPath, ...] = ()
  unnecessary: Tuple[AccessPath, ...] = ()
  duplicates: Tuple[AccessPath, ...] = ()
  removals: FrozenSet[int] = frozenset()


class DependencyComparator:
  """
  Diffs declared entries against ``Requirements``.
  """

  def __init__(self, requirements: Requirements):
    self.requirements = requirements

  def satisfies(self, declared: AccessPath, required: AccessPath) -> bool:
    """
    Checks whether declaring ``declared`` covers ``required``.

    A path covers itself and its descendants, except that the bare root of a
    reactive cell does not cover the cell's accessor paths: the cell's identity
    never changes while its value does.
    """
    if declared == required:
      return True
    if declared.depth == 0 and declared.root in self.requirements.cell_roots:
      return False
    return declared.is_ancestor_of(required)

  def is_needed(self, declared: AccessPath) -> bool:
    """
    Decides whether a declared path must stay.

    Args:
        declared: A normalized, finite declared path.

    Returns:
        bool: True when it is required, covers a required path, was collapsed
        into an ancestor, or prefixes an unknown path.
    """
    req = self.requirements
    if declared in req.collapsed:
      return True
    if any(self.satisfies(declared, r) for r in req.required):
      return True
    return any(u.finite_prefix().has_prefix(declared) for u in req.unknown)

  def missing(self, declared: Sequence[AccessPath]) -> Tuple[AccessPath, ...]:
    return tuple(r for r in self.requirements.required if not any(self.satisfies(d, r) for d in declared))

  def compare(self, array: DeclaredArray, require_array: bool = False) -> Comparison:
    """
    Produces the missing/unnecessary/duplicate diff.

    Args:
        array: The parsed declared array.
        require_array: Whether an absent array must be created.

    Returns:
        Comparison: The three mutually exclusive collections plus removals.
    """
    if array.state is ArrayState.NON_LITERAL:
      return Comparison()
    if array.state is ArrayState.ABSENT:
      return Comparison(missing=self.requirements.required) if require_array else Comparison()

    seen: List[AccessPath] = []
    unnecessary: List[AccessPath] = []
    duplicates: List[AccessPath] = []
    removals = set()

    for entry in array.entries:
      if not entry.is_supported:
        continue
      path = entry.path
      needed = self.is_needed(path)
      if path in seen:
        removals.add(entry.source_order)
        if needed and path not in duplicates:
          duplicates.append(path)
        continue
      seen.append(path)
      if not needed:
        unnecessary.append(path)
        removals.add(entry.source_order)

    return Comparison(
      missing=self.missing(seen),
      unnecessary=tuple(unnecessary),
      duplicates=tuple(duplicates),
      removals=frozenset(removals),
    )


def _is_construction(binding: Binding, resolver: BindingResolver) -> bool:
  if binding.kind is not BindingKind.LOCAL or len(binding.declarations) != 1:
    return False
  if resolver.tree.scopes[binding.scope_id].kind is not ScopeKind.FUNCTION:
    return False
  decl = binding.declarations[0]
  if decl.kind in (DeclarationKind.FUNCTION, DeclarationKind.CLASS):
    return True
  return (
    decl.kind is DeclarationKind.ASSIGNMENT and decl.unpack_index is None and isinstance(decl.value, _CONSTRUCTIONS)
  )


def find_constructions(array: DeclaredArray, resolver: BindingResolver) -> Tuple[AccessPath, ...]:
  """
  Lists declared entries rooted in a value rebuilt on every render.

  A component-local name bound once to a display, comprehension, lambda, ``def``
  or ``class`` has a new identity each time the component runs, so a primitive
  depending on it re-runs every time.

  Args:
      array: The parsed declared array.
      resolver: Resolver of the analysis, used from the scope enclosing the callback.

  Returns:
      Tuple of the offending declared paths, in source order.
  """
  found: List[AccessPath] = []
  for entry in array.entries:
    if not entry.is_supported:
      continue
    binding = resolver.resolve_outer(entry.path.root)
    if isinstance(binding, Binding) and _is_construction(binding, resolver) and entry.path not in found:
      found.append(entry.path)
  return tuple(found)
