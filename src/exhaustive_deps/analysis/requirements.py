"""
Dependency Set Builder.

Reduces the merged usages of a callback to the minimal set of paths that must be
declared. The rules run in a fixed order:

1.  **Stable bindings** (and external names) are dropped. Only identity matters for
    them and identity never changes. Write-only usages of unstable bindings are
    dropped as well; any read of the same path makes it required.
2.  **Reactive cells** require their value-accessor path when it is read, and the
    bare cell only when the cell itself is used by identity (passed whole, stored,
    compared). Calling a method on the cell is not an identity use.
3.  **Ancestor collapse**: a required path is folded into a required strict
    ancestor unless a sibling of that ancestor is read somewhere in the callback.
    The bare root of a cell never absorbs its accessor paths.
4.  **Opaque paths** (and paths rooted in probable cells) go to ``unknown``.
"""

from dataclasses import dataclass
from typing import FrozenSet, List, Sequence, Tuple

from exhaustive_deps.analysis.paths import AccessPath, Segment
from exhaustive_deps.analysis.usages import Usage
from exhaustive_deps.enums import SegmentKind


@dataclass(frozen=True)
class Requirements:
  """
  Output of the Dependency Set Builder.

  Attributes:
      required: Paths that must be declared, in first-usage order.
      collapsed: Required paths folded into an ancestor by rule 3. Declaring one
          of them is never reported as unnecessary.
      unknown: Paths excluded from classification (opaque or low-confidence).
      cell_roots: Roots bound to definite reactive cells.
  """

  required: Tuple[AccessPath, ...]
  collapsed: FrozenSet[AccessPath]
  unknown: Tuple[AccessPath, ...]
  cell_roots: FrozenSet[str]


def _accessor_path(usage: Usage) -> AccessPath:
  return AccessPath(usage.path.root, (Segment(SegmentKind.ATTR, usage.binding.accessor),))


def has_read_sibling(ancestor: AccessPath, read_paths: Sequence[AccessPath]) -> bool:
  """
  Checks whether a path sharing ``ancestor``'s parent but diverging at its last
  segment is read.

  Args:
      ancestor: The candidate ancestor. A bare root has no siblings.
      read_paths: Every path read in the callback (opaque ones included).

  Returns:
      bool: True when such a sibling read exists.
  """
  if ancestor.depth == 0:
    return False
  last = ancestor.depth - 1
  parent = ancestor.segments[:last]
  for path in read_paths:
    if path.root != ancestor.root or path.depth < ancestor.depth:
      continue
    if path.segments[:last] == parent and path.segments[last] != ancestor.segments[last]:
      return True
  return False


def build_requirements(usages: Sequence[Usage]) -> Requirements:
  """
  Computes the required dependency set of a callback.

  Args:
      usages: Merged usages from the ``UsageCollector``, in first-use order.

  Returns:
      Requirements: Required, collapsed and unknown paths.
  """
  candidates: List[Usage] = []
  unknown: List[AccessPath] = []
  cell_roots = set()

  for usage in usages:
    binding = usage.binding
    # Rule 1: external names are always stable; write-only paths need no entry.
    if binding is None or not usage.kind.reads:
      continue

    if binding.is_probable_cell:
      if not (usage.path.depth == 0 and usage.receiver_only):
        unknown.append(usage.path)
      continue

    if binding.is_cell:
      cell_roots.add(binding.name)
      accessor = _accessor_path(usage)
      # Rule 2.
      if usage.path.depth == 0:
        if usage.identity:
          candidates.append(usage)
      elif usage.path.has_prefix(accessor):
        if usage.path.is_opaque:
          unknown.append(usage.path)
        else:
          candidates.append(usage)
      continue

    if binding.is_stable:
      continue

    # Rule 4.
    if usage.path.is_opaque:
      unknown.append(usage.path)
      continue
    candidates.append(usage)

  read_paths = [u.path for u in usages if u.kind.reads]
  required_set = {u.path for u in candidates}
  collapsed = set()

  # Rule 3.
  for usage in candidates:
    for ancestor in usage.path.ancestors():
      if ancestor not in required_set:
        continue
      if ancestor.depth == 0 and ancestor.root in cell_roots:
        continue
      if has_read_sibling(ancestor, read_paths):
        continue
      collapsed.add(usage.path)
      break

  return Requirements(
    required=tuple(u.path for u in candidates if u.path not in collapsed),
    collapsed=frozenset(collapsed),
    unknown=tuple(unknown),
    cell_roots=frozenset(cell_roots),
  )
