"""
Analysis Engine.

``analyze`` runs the full pipeline for one callback:

1.  **Collecting**: resolve and collect usages under the budget.
2.  **Resolved**: reduce usages to the required dependency set.
3.  **Diffed**: normalize the declared array and diff it.
4.  **Synthesized**: build the recommendation and edit plan.

Any non-literal array, unsupported element, unknown path or (per policy) async
callback ends the run in ``Partial`` instead, and a crossed budget ends it in
``Aborted``. Every object created here belongs to this single run.
"""

import logging
from typing import List, Optional, Tuple, Union

import libcst as cst

from exhaustive_deps.analysis.bindings import BindingResolver
from exhaustive_deps.analysis.declared import (
  Comparison,
  DeclaredArray,
  DependencyComparator,
  find_constructions,
  parse_declared,
)
from exhaustive_deps.analysis.paths import AccessPath
from exhaustive_deps.analysis.requirements import Requirements, build_requirements
from exhaustive_deps.analysis.scopes import Scope, ScopeChain
from exhaustive_deps.analysis.usages import UsageCollector
from exhaustive_deps.core.budget import BudgetExhausted, BudgetTracker
from exhaustive_deps.core.results import (
  AnalysisError,
  AnalysisResult,
  Ambiguity,
  BudgetExceeded,
  PartialVerdict,
  Verdict,
)
from exhaustive_deps.core.synthesis import synthesize
from exhaustive_deps.enums import AmbiguityKind, AnalysisState, ArrayState, AsyncHandling
from exhaustive_deps.policy import Policy

logger = logging.getLogger(__name__)

Callback = Union[cst.FunctionDef, cst.Lambda]


class Analysis:
  """
  State machine for a single callback analysis.
  """

  def __init__(
    self,
    callback: Callback,
    declared: Optional[cst.BaseExpression],
    scope_chain: ScopeChain,
    policy: Policy,
  ):
    """
    Validates the inputs and prepares a fresh run.

    Args:
        callback: The function or lambda handed to the primitive.
        declared: The dependency argument, or None when absent.
        scope_chain: Chain naming the scope the callback is defined in.
        policy: The analysis policy.

    Raises:
        AnalysisError: If the callback is not a function node or is not indexed
            by the chain's scope tree.
    """
    if not isinstance(callback, (cst.FunctionDef, cst.Lambda)):
      raise AnalysisError(f"Callback must be a FunctionDef or Lambda, got {type(callback).__name__}")
    scope = scope_chain.tree.scope_of(callback)
    if scope is None:
      raise AnalysisError("Callback is not part of the module the scope chain was built from")
    if scope.parent is not scope_chain.scope:
      raise AnalysisError(f"Callback is not defined in scope {scope_chain.scope!r}")

    self.callback = callback
    self.declared = declared
    self.tree = scope_chain.tree
    self.scope: Scope = scope
    self.policy = policy
    self.state = AnalysisState.COLLECTING
    self.tracker = BudgetTracker(policy.budget)
    self.resolver = BindingResolver(self.tree, scope, policy)

  def _transition(self, state: AnalysisState) -> None:
    logger.debug("analysis %s: %s -> %s", self.scope.name, self.state.value, state.value)
    self.state = state

  @property
  def is_async(self) -> bool:
    return isinstance(self.callback, cst.FunctionDef) and self.callback.asynchronous is not None

  def run(self) -> AnalysisResult:
    """
    Executes the pipeline.

    Returns:
        Verdict, PartialVerdict or BudgetExceeded.
    """
    collector = UsageCollector(self.tree, self.scope, self.resolver, self.policy, self.tracker)
    try:
      usages = collector.collect(self.callback)
    except BudgetExhausted as exc:
      self._transition(AnalysisState.ABORTED)
      return BudgetExceeded(exc.reason, exc.nodes_visited, exc.elapsed_ms)

    requirements = build_requirements(usages)
    self._transition(AnalysisState.RESOLVED)

    array = parse_declared(self.declared)
    comparison = DependencyComparator(requirements).compare(array, self.policy.needs_array)
    constructions = find_constructions(array, self.resolver)
    self._transition(AnalysisState.DIFFED)

    ambiguities = self._ambiguities(array, requirements)
    if ambiguities:
      self._transition(AnalysisState.PARTIAL)
      return PartialVerdict(
        missing=comparison.missing,
        unnecessary=comparison.unnecessary,
        duplicates=comparison.duplicates,
        unknown=requirements.unknown,
        ambiguities=tuple(ambiguities),
        required=requirements.required,
        constructions=constructions,
      )

    return self._synthesize(array, comparison, requirements, constructions)

  def _synthesize(
    self,
    array: DeclaredArray,
    comparison: Comparison,
    requirements: Requirements,
    constructions: Tuple[AccessPath, ...],
  ) -> Verdict:
    plan = synthesize(array, comparison, self.policy.needs_array)
    self._transition(AnalysisState.SYNTHESIZED)
    return Verdict(
      missing=comparison.missing,
      unnecessary=comparison.unnecessary,
      duplicates=comparison.duplicates,
      unknown=requirements.unknown,
      recommendation=plan.recommendation,
      edit_plan=plan,
      required=requirements.required,
      constructions=constructions,
    )

  def _ambiguities(self, array: DeclaredArray, requirements: Requirements) -> List[Ambiguity]:
    found: List[Ambiguity] = []
    if self.is_async and self.policy.effective_async_handling is AsyncHandling.PARTIAL:
      found.append(Ambiguity(AmbiguityKind.ASYNC_CALLBACK, f"'{self.scope.name}' is a coroutine function"))
    if array.state is ArrayState.NON_LITERAL:
      found.append(Ambiguity(AmbiguityKind.STRUCTURAL_AMBIGUITY, "dependency array is not a list or tuple literal"))
    for entry in array.unsupported:
      found.append(Ambiguity(AmbiguityKind.STRUCTURAL_AMBIGUITY, f"{entry.unsupported_reason}: {entry.text}"))
    for path in requirements.unknown:
      if path.is_opaque:
        found.append(Ambiguity(AmbiguityKind.PATH_OPAQUE, f"dynamic access {path.render()}"))
      else:
        found.append(Ambiguity(AmbiguityKind.STRUCTURAL_AMBIGUITY, f"cannot confirm reactive cell {path.render()}"))
    return found


def analyze(
  callback: Callback,
  declared: Optional[cst.BaseExpression],
  scope_chain: ScopeChain,
  policy: Optional[Policy] = None,
) -> AnalysisResult:
  """
  Analyses the dependencies of one callback.

  Args:
      callback: The function or lambda handed to the primitive.
      declared: The declared dependency argument, or None when absent.
      scope_chain: The chain enclosing the callback, from ``ScopeTree.chain_for``.
      policy: Analysis policy. Defaults to a fixedArray policy.

  Returns:
      Verdict | PartialVerdict | BudgetExceeded.

  Raises:
      AnalysisError: On inputs that are not a callback of the given scope tree.
  """
  return Analysis(callback, declared, scope_chain, policy or Policy()).run()
