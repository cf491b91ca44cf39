"""
Analysis Result Types.

``analyze`` always returns one of three typed results; it never raises for a
condition in the error taxonomy:

*   ``Verdict``: the terminal ``Synthesized`` state. Carries the diff sets and a
    recommendation with its edit plan.
*   ``PartialVerdict``: findings for whatever was inspectable, the ambiguities
    that prevented a full analysis, and no edit plan.
*   ``BudgetExceeded``: the analysis aborted. Means "no recommendation, no
    diagnostic", never "dependencies are correct".
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Union

from exhaustive_deps.analysis.paths import AccessPath
from exhaustive_deps.enums import AmbiguityKind, BudgetReason, EditMode


class AnalysisError(ValueError):
  """
  Raised when ``analyze`` is called with inputs it cannot interpret at all.
  """


@dataclass(frozen=True)
class Ambiguity:
  """A recoverable finding that downgraded an analysis to partial."""

  kind: AmbiguityKind
  detail: str

  def __str__(self) -> str:
    return f"{self.kind.value}: {self.detail}"


@dataclass(frozen=True)
class EditOperation:
  """
  One structural change to a dependency array.

  Attributes:
      insert_at: Original element index before which ``text`` is inserted
          (``len(elements)`` appends). None for a pure deletion.
      delete_range: Half-open range of original element indexes to delete.
      text: Source text to insert.
  """

  insert_at: Optional[int] = None
  delete_range: Optional[Tuple[int, int]] = None
  text: str = ""


@dataclass(frozen=True)
class EditPlan:
  """
  Ordered edits turning the declared array into the recommended one.

  Attributes:
      operations: Deletions (ascending) followed by insertions.
      mode: ``structural`` keeps surviving elements verbatim; ``rebuild``
          re-emits the whole literal.
      creates_array: The primitive had no array; the single insertion is a
          complete literal.
      recommendation: Source text of every element of the recommended array.
  """

  operations: Tuple[EditOperation, ...] = ()
  mode: EditMode = EditMode.STRUCTURAL
  creates_array: bool = False
  recommendation: Tuple[str, ...] = ()

  @property
  def has_changes(self) -> bool:
    return bool(self.operations)

  @property
  def literal(self) -> str:
    return "[" + ", ".join(self.recommendation) + "]"


def _printable(paths: Tuple[AccessPath, ...]) -> List[str]:
  return [p.render() for p in paths]


@dataclass(frozen=True)
class Verdict:
  """
  Result of a fully synthesized analysis.
  """

  missing: Tuple[AccessPath, ...] = ()
  unnecessary: Tuple[AccessPath, ...] = ()
  duplicates: Tuple[AccessPath, ...] = ()
  unknown: Tuple[AccessPath, ...] = ()
  recommendation: Tuple[str, ...] = ()
  edit_plan: EditPlan = EditPlan()
  required: Tuple[AccessPath, ...] = ()
  constructions: Tuple[AccessPath, ...] = ()

  @property
  def is_clean(self) -> bool:
    return not (self.missing or self.unnecessary or self.duplicates)

  def printable(self) -> Dict[str, List[str]]:
    """
    Renders the classification sets as Python source strings.

    Returns:
        Dict[str, List[str]]: Keys ``missing``, ``unnecessary``, ``duplicates``
        and ``unknown``.
    """
    return {
      "missing": _printable(self.missing),
      "unnecessary": _printable(self.unnecessary),
      "duplicates": _printable(self.duplicates),
      "unknown": _printable(self.unknown),
    }


@dataclass(frozen=True)
class PartialVerdict:
  """
  Result of an analysis that could not offer automated edits.
  """

  missing: Tuple[AccessPath, ...] = ()
  unnecessary: Tuple[AccessPath, ...] = ()
  duplicates: Tuple[AccessPath, ...] = ()
  unknown: Tuple[AccessPath, ...] = ()
  ambiguities: Tuple[Ambiguity, ...] = ()
  required: Tuple[AccessPath, ...] = ()
  constructions: Tuple[AccessPath, ...] = ()

  def printable(self) -> Dict[str, List[str]]:
    return {
      "missing": _printable(self.missing),
      "unnecessary": _printable(self.unnecessary),
      "duplicates": _printable(self.duplicates),
      "unknown": _printable(self.unknown),
    }

  def has(self, kind: AmbiguityKind) -> bool:
    return any(a.kind is kind for a in self.ambiguities)


@dataclass(frozen=True)
class BudgetExceeded:
  """
  The analysis was aborted at a checkpoint.
  """

  reason: BudgetReason
  nodes_visited: int
  elapsed_ms: float


AnalysisResult = Union[Verdict, PartialVerdict, BudgetExceeded]
