"""
Recommendation Synthesizer.

Turns a comparison into the recommended dependency array and a diff-minimizing
edit plan. Surviving declared elements keep their original order and source text;
missing paths are appended in first-usage order.

``apply_edit_plan`` materialises a plan on the LibCST array node so a fixer can
rewrite the source without touching the elements it keeps.
"""

from typing import List, Optional, Sequence, Tuple

import libcst as cst

from exhaustive_deps.analysis.declared import Comparison, DeclaredArray
from exhaustive_deps.core.results import EditOperation, EditPlan
from exhaustive_deps.enums import ArrayState, EditMode
from exhaustive_deps.utils.cst_utils import contains_comment


def _ranges(indexes: Sequence[int]) -> List[Tuple[int, int]]:
  """Groups sorted indexes into half-open contiguous ranges."""
  ranges: List[Tuple[int, int]] = []
  for idx in sorted(indexes):
    if ranges and ranges[-1][1] == idx:
      ranges[-1] = (ranges[-1][0], idx + 1)
    else:
      ranges.append((idx, idx + 1))
  return ranges


def recommend(array: DeclaredArray, comparison: Comparison) -> Tuple[str, ...]:
  """
  Builds the recommended element list.

  Args:
      array: The parsed declared array.
      comparison: Its diff against the required set.

  Returns:
      Tuple[str, ...]: Source text of every recommended element.
  """
  kept = [e.text for e in array.entries if e.source_order not in comparison.removals]
  return tuple(kept + [p.render() for p in comparison.missing])


def synthesize(array: DeclaredArray, comparison: Comparison, require_array: bool = False) -> EditPlan:
  """
  Produces the edit plan for a literal or absent array.

  Args:
      array: The parsed declared array.
      comparison: Its diff against the required set.
      require_array: Whether an absent array is to be created.

  Returns:
      EditPlan: Structural edits when every deleted element can be dropped without
      losing a comment, otherwise a full rebuild.
  """
  recommendation = recommend(array, comparison)

  if array.state is ArrayState.ABSENT:
    if not (require_array and comparison.missing):
      return EditPlan(recommendation=recommendation)
    literal = "[" + ", ".join(recommendation) + "]"
    return EditPlan(
      operations=(EditOperation(insert_at=0, text=literal),),
      creates_array=True,
      recommendation=recommendation,
    )

  if array.state is not ArrayState.LITERAL:
    return EditPlan()

  count = array.element_count
  elements = array.node.elements
  if any(contains_comment(elements[i]) for i in comparison.removals):
    operations: List[EditOperation] = []
    if count:
      operations.append(EditOperation(delete_range=(0, count)))
    if recommendation:
      operations.append(EditOperation(insert_at=0, text=", ".join(recommendation)))
    return EditPlan(operations=tuple(operations), mode=EditMode.REBUILD, recommendation=recommendation)

  operations = [EditOperation(delete_range=r) for r in _ranges(list(comparison.removals))]
  operations.extend(EditOperation(insert_at=count, text=p.render()) for p in comparison.missing)
  return EditPlan(operations=tuple(operations), recommendation=recommendation)


def _parse_elements(text: str) -> List[cst.Element]:
  return list(cst.parse_expression(f"[{text}]").elements)


def apply_edit_plan(array: Optional[cst.BaseExpression], plan: EditPlan) -> cst.BaseExpression:
  """
  Applies an edit plan to a dependency array node.

  Kept elements are reused as-is, including their trailing whitespace and
  comments. Inserted elements take the default ``", "`` separator.

  Args:
      array: The original ``List``/``Tuple`` node, or None / ``None`` literal when
          the plan creates the array.
      plan: A plan produced by ``synthesize`` for this node.

  Returns:
      cst.BaseExpression: The rewritten array.
  """
  if plan.creates_array or not isinstance(array, (cst.List, cst.Tuple)):
    return cst.parse_expression(plan.literal)

  original = list(array.elements)
  deleted = set()
  inserts: List[Tuple[int, List[cst.Element]]] = []
  for op in plan.operations:
    if op.delete_range is not None:
      deleted.update(range(*op.delete_range))
    if op.insert_at is not None and op.text:
      inserts.append((op.insert_at, _parse_elements(op.text)))

  result: List[cst.BaseElement] = []
  for idx in range(len(original) + 1):
    for at, new_elements in inserts:
      if at == idx:
        result.extend(new_elements)
    if idx < len(original) and idx not in deleted:
      result.append(original[idx])

  trailing = bool(original) and isinstance(original[-1].comma, cst.Comma)
  if result and not trailing and isinstance(result[-1].comma, cst.Comma) and not contains_comment(result[-1].comma):
    result[-1] = result[-1].with_changes(comma=cst.MaybeSentinel.DEFAULT)
  # A one-element tuple needs its comma.
  if isinstance(array, cst.Tuple) and len(result) == 1 and not isinstance(result[0].comma, cst.Comma):
    result[0] = result[0].with_changes(comma=cst.Comma())
  return array.with_changes(elements=result)
