"""
Access Path Normalization.

This module canonicalizes static member-access expressions into comparable
``AccessPath`` values. A path is a root identifier followed by a chain of
segments:

1.  **Attributes**: ``a.b`` appends ``ATTR("b")``.
2.  **Literal keys**: ``a["k"]``, ``a[0]``, ``a[-1]`` append ``KEY(...)``.
3.  **getattr**: ``getattr(a, "b")`` appends ``ATTR("b")``; the three-argument
    form is the safe-navigation spelling and adds the same segment, marked as
    guarded so that it is rendered back in the same form.
4.  **Dynamic keys**: ``a[expr]`` appends ``OPAQUE`` and truncates the path.

Calls, slices and operators end the path at the sub-expression feeding them. The
sub-expressions that must be walked on their own (dynamic keys, slice bounds,
getattr defaults) are returned alongside the path as ``detached`` nodes.
"""

import keyword
from dataclasses import dataclass, field, replace
from typing import AbstractSet, List, Optional, Sequence, Tuple, Union

import libcst as cst

from exhaustive_deps.enums import SegmentKind


@dataclass(frozen=True)
class Segment:
  """
  A single static step of an access path.

  ``guarded`` marks an attribute step reached through the three-argument
  ``getattr``. It only affects how the step is spelled, never equality.
  """

  kind: SegmentKind
  value: Union[str, bytes, int, None] = None
  guarded: bool = field(default=False, compare=False)

  def apply(self, prefix: str) -> str:
    """Returns the Python source spelling of this step taken from ``prefix``."""
    if self.kind is SegmentKind.KEY:
      return f"{prefix}[{self.value!r}]"
    if self.kind is SegmentKind.OPAQUE:
      return f"{prefix}[?]"
    if self.guarded:
      return f"getattr({prefix}, {self.value!r}, None)"
    if is_attribute_name(self.value):
      return f"{prefix}.{self.value}"
    return f"getattr({prefix}, {self.value!r})"


def is_attribute_name(name: object) -> bool:
  """Checks whether ``name`` can be written after a dot."""
  return isinstance(name, str) and name.isidentifier() and not keyword.iskeyword(name)


OPAQUE = Segment(SegmentKind.OPAQUE)


@dataclass(frozen=True, eq=False)
class AccessPath:
  """
  Canonical root-plus-segments form of a static member access.

  Two paths are equal iff their segment sequences are identical. A path that ends
  in ``OPAQUE`` is only ever equal to itself, so two dynamic accesses with the
  same static prefix never merge.
  """

  root: str
  segments: Tuple[Segment, ...] = ()

  @property
  def is_opaque(self) -> bool:
    return bool(self.segments) and self.segments[-1].kind is SegmentKind.OPAQUE

  @property
  def depth(self) -> int:
    return len(self.segments)

  def finite_prefix(self) -> "AccessPath":
    """
    Returns the static part of this path (itself when not opaque).
    """
    if not self.is_opaque:
      return self
    return AccessPath(self.root, self.segments[:-1])

  def parent(self) -> Optional["AccessPath"]:
    """
    Returns the path one segment shorter, or None for a bare root.
    """
    if not self.segments:
      return None
    return AccessPath(self.root, self.segments[:-1])

  def ancestors(self) -> List["AccessPath"]:
    """
    Lists the strict ancestors of this path, shallowest first.
    """
    return [AccessPath(self.root, self.segments[:i]) for i in range(len(self.segments))]

  def is_ancestor_of(self, other: "AccessPath") -> bool:
    """
    Checks whether ``other`` extends this path by at least one segment.

    An opaque ``other`` is compared through its finite prefix plus the opaque
    step, so ``cfg`` is an ancestor of ``cfg[?]``. An opaque self is never an
    ancestor of anything.

    Args:
        other: The candidate descendant.

    Returns:
        bool: True for a strict ancestor relationship.
    """
    if self.is_opaque or self.root != other.root:
      return False
    if len(self.segments) >= len(other.segments):
      return False
    return other.segments[: len(self.segments)] == self.segments

  def has_prefix(self, prefix: "AccessPath") -> bool:
    """Checks whether ``prefix`` is equal to or an ancestor of this path."""
    return prefix == self or prefix.is_ancestor_of(self)

  def render(self) -> str:
    """Returns the printable / insertable Python spelling of the path."""
    text = self.root
    for seg in self.segments:
      text = seg.apply(text)
    return text

  def plain_steps(self) -> List["AccessPath"]:
    """Lists the prefixes of this path whose last step is an unguarded attribute."""
    return [
      AccessPath(self.root, self.segments[: i + 1])
      for i, seg in enumerate(self.segments)
      if seg.kind is SegmentKind.ATTR and not seg.guarded
    ]

  def drop_guards(self, plain: AbstractSet["AccessPath"]) -> "AccessPath":
    """
    Clears the guard on every step whose prefix is in ``plain``.

    Returns self when nothing changes, so opaque paths keep their identity.
    """
    segments = tuple(
      replace(seg, guarded=False) if seg.guarded and AccessPath(self.root, self.segments[: i + 1]) in plain else seg
      for i, seg in enumerate(self.segments)
    )
    if all(a.guarded == b.guarded for a, b in zip(segments, self.segments)):
      return self
    return AccessPath(self.root, segments)

  def __str__(self) -> str:
    return self.render()

  def __repr__(self) -> str:
    return f"AccessPath({self.render()})"

  def __eq__(self, other: object) -> bool:
    if not isinstance(other, AccessPath):
      return NotImplemented
    if self.is_opaque or other.is_opaque:
      return self is other
    return self.root == other.root and self.segments == other.segments

  def __hash__(self) -> int:
    if self.is_opaque:
      return id(self)
    return hash((self.root, self.segments))


@dataclass
class PathMatch:
  """
  Result of normalizing one expression.

  Attributes:
      path: The canonical path.
      root: The ``Name`` node the path is rooted at.
      detached: Sub-expressions that are not part of the path and must be
          walked independently (dynamic keys, slice bounds, getattr defaults).
      exact: True when the whole expression is represented by ``path``.
  """

  path: AccessPath
  root: cst.Name
  detached: List[cst.BaseExpression] = field(default_factory=list)
  exact: bool = True


def literal_key(node: cst.BaseExpression) -> Union[str, bytes, int, None]:
  """
  Evaluates a subscript key that is a plain string, bytes or integer literal.

  Args:
      node: The index expression.

  Returns:
      The literal value, or None when the key is not a static literal.
  """
  if isinstance(node, (cst.SimpleString, cst.ConcatenatedString)):
    value = node.evaluated_value
    return value if isinstance(value, (str, bytes)) else None
  if isinstance(node, cst.Integer):
    return node.evaluated_value
  if isinstance(node, cst.UnaryOperation) and isinstance(node.expression, cst.Integer):
    if isinstance(node.operator, cst.Minus):
      return -node.expression.evaluated_value
    if isinstance(node.operator, cst.Plus):
      return node.expression.evaluated_value
  return None


def _getattr_parts(node: cst.Call) -> Optional[Tuple[cst.BaseExpression, cst.BaseExpression, Optional[cst.BaseExpression]]]:
  """
  Splits ``getattr(obj, name[, default])`` into its operands.
  """
  if not (isinstance(node.func, cst.Name) and node.func.value == "getattr"):
    return None
  args = node.args
  if len(args) not in (2, 3) or any(a.keyword is not None or a.star for a in args):
    return None
  default = args[2].value if len(args) == 3 else None
  return args[0].value, args[1].value, default


def is_getattr_call(node: cst.CSTNode) -> bool:
  return isinstance(node, cst.Call) and _getattr_parts(node) is not None


def match_path(node: cst.BaseExpression) -> Optional[PathMatch]:
  """
  Normalizes a member-access expression into an ``AccessPath``.

  The chain is unwrapped from the outermost access inwards. Reaching a dynamic
  key discards every step collected so far (those lie beyond the first OPAQUE
  counted from the root) and records a single ``OPAQUE`` step instead. Reaching a
  slice or multi-element subscript discards the collected steps without adding
  one, ending the path at the sliced value.

  Args:
      node: The expression to normalize.

  Returns:
      PathMatch when the innermost base is a plain name, else None.
  """
  outer: List[Segment] = []
  detached: List[cst.BaseExpression] = []
  exact = True
  curr = node

  while True:
    if isinstance(curr, cst.Name):
      segments = tuple(reversed(outer))
      return PathMatch(
        path=AccessPath(curr.value, segments),
        root=curr,
        detached=list(reversed(detached)),
        exact=exact,
      )

    if isinstance(curr, cst.Attribute):
      outer.append(Segment(SegmentKind.ATTR, curr.attr.value))
      curr = curr.value
      continue

    if isinstance(curr, cst.Subscript):
      elements = curr.slice
      if len(elements) == 1 and isinstance(elements[0].slice, cst.Index) and not getattr(elements[0].slice, "star", None):
        index_value = elements[0].slice.value
        key = literal_key(index_value)
        if key is not None:
          outer.append(Segment(SegmentKind.KEY, key))
        else:
          outer = [OPAQUE]
          detached.append(index_value)
      else:
        # Slices and tuple indexes behave like operators.
        outer = []
        exact = False
        detached.extend(_subscript_operands(elements))
      curr = curr.value
      continue

    if isinstance(curr, cst.Call):
      parts = _getattr_parts(curr)
      if parts is None:
        return None
      target, name_node, default = parts
      if default is not None:
        detached.append(default)
      if isinstance(name_node, (cst.SimpleString, cst.ConcatenatedString)) and isinstance(
        name_node.evaluated_value, str
      ):
        outer.append(Segment(SegmentKind.ATTR, name_node.evaluated_value, guarded=default is not None))
      else:
        outer = [OPAQUE]
        detached.append(name_node)
      curr = target
      continue

    return None


def _subscript_operands(elements: Sequence[cst.SubscriptElement]) -> List[cst.BaseExpression]:
  operands: List[cst.BaseExpression] = []
  for element in elements:
    inner = element.slice
    if isinstance(inner, cst.Index):
      operands.append(inner.value)
    elif isinstance(inner, cst.Slice):
      for bound in (inner.lower, inner.upper, inner.step):
        if bound is not None:
          operands.append(bound)
  return operands


def normalize(node: cst.BaseExpression) -> Optional[AccessPath]:
  """
  Convenience wrapper returning only the path of ``match_path``.
  """
  match = match_path(node)
  return match.path if match else None
