"""
Enumerations for exhaustive-deps.

This module defines the vocabularies shared by the analysis passes: primitive
kinds, binding classes, usage kinds, the reactive-cell confidence scale and the
error taxonomy reported on partial verdicts.
"""

from enum import Enum


class PrimitiveKind(str, Enum):
  """
  Behavioural family of a hook that receives a callback plus dependency array.
  """

  FIXED_ARRAY = "fixedArray"  # use_effect: array decides when the callback re-runs
  AUTO_ARRAY = "autoArray"  # use_computed: dependencies are tracked automatically
  MEMOIZATION = "memoization"  # use_memo / use_callback


class BindingKind(str, Enum):
  """
  How a name referenced from a callback was declared.
  """

  PARAMETER = "parameter"
  LOCAL = "local"
  MODULE_CONST = "moduleConst"
  IMPORT = "import"
  LOOP_VAR = "loopVar"
  STATE_SETTER = "stateSetter"
  REF_CONTAINER = "refContainer"
  REACTIVE_CELL = "reactiveCell"
  EFFECT_EVENT = "effectEvent"


class Stability(str, Enum):
  """
  Whether callers may rely on the identity of a binding across renders.
  """

  STABLE = "stable"
  UNSTABLE = "unstable"


class UsageKind(str, Enum):
  """
  Read/write classification of an access path inside a callback.
  """

  READ = "read"
  WRITE = "write"
  READWRITE = "readwrite"

  def merge(self, other: "UsageKind") -> "UsageKind":
    """
    Unions two usage kinds.

    Args:
        other: The kind observed at another occurrence of the same path.

    Returns:
        UsageKind: ``READWRITE`` when the kinds differ, else the shared kind.
    """
    if self is other:
      return self
    return UsageKind.READWRITE

  @property
  def reads(self) -> bool:
    return self is not UsageKind.WRITE

  @property
  def writes(self) -> bool:
    return self is not UsageKind.READ


class CellVerdict(str, Enum):
  """
  Confidence outcome of the reactive-cell recognition predicate.
  """

  DEFINITELY_CELL = "definitelyCell"  # traced to a recognised construction site
  PROBABLY_CELL = "probablyCell"  # naming heuristic only
  NOT_CELL = "notCell"


class SegmentKind(str, Enum):
  """
  Kind of a single step in an access path.
  """

  ATTR = "attr"
  KEY = "key"
  OPAQUE = "opaque"


class ScopeKind(str, Enum):
  """
  Python block types that introduce a name scope.
  """

  MODULE = "module"
  CLASS = "class"
  FUNCTION = "function"
  LAMBDA = "lambda"
  COMPREHENSION = "comprehension"


class DeclarationKind(str, Enum):
  """
  Syntactic origin of a name binding inside a scope.
  """

  PARAMETER = "parameter"
  ASSIGNMENT = "assignment"
  AUGMENTED = "augmented"
  ANNOTATION = "annotation"
  IMPORT = "import"
  LOOP = "loop"
  FUNCTION = "function"
  CLASS = "class"
  WITH = "with"
  EXCEPT = "except"
  WALRUS = "walrus"
  DELETE = "delete"
  MATCH = "match"


class ArrayState(str, Enum):
  """
  Shape of the dependency array passed to a primitive.
  """

  ABSENT = "absent"
  LITERAL = "literal"
  NON_LITERAL = "non-literal"


class AmbiguityKind(str, Enum):
  """
  Recoverable conditions that downgrade an analysis to a partial verdict.
  """

  STRUCTURAL_AMBIGUITY = "structuralAmbiguity"
  PATH_OPAQUE = "pathOpaque"
  ASYNC_CALLBACK = "asyncCallback"
  UNINSPECTABLE_CALLBACK = "uninspectableCallback"


class AsyncHandling(str, Enum):
  """
  Policy applied when the analysed callback is a coroutine function.
  """

  PARTIAL = "partial"
  IGNORE = "ignore"


class AnalysisState(str, Enum):
  """
  Lifecycle of a single callback analysis.
  """

  COLLECTING = "collecting"
  RESOLVED = "resolved"
  DIFFED = "diffed"
  SYNTHESIZED = "synthesized"
  PARTIAL = "partial"
  ABORTED = "aborted"


class BudgetReason(str, Enum):
  """
  Which resource limit stopped an analysis.
  """

  NODES = "nodes"
  TIME = "time"
  CANCELLED = "cancelled"


class EditMode(str, Enum):
  """
  How a recommended dependency array is materialised.
  """

  STRUCTURAL = "structural"  # insert/delete around preserved elements
  REBUILD = "rebuild"  # whole literal re-emitted
