"""
Usage Collection.

The ``UsageCollector`` walks one callback body depth-first and records every
reference to a name declared *outside* the callback as a normalized
``AccessPath`` with a read/write classification:

*   **Write**: assignment, ``del``, ``for``/``with``/walrus targets, and the
    receiver of a method listed in the policy's mutation allowlist.
*   **Readwrite**: augmented assignment targets (``+=`` and friends).
*   **Read**: everything else (arguments, conditions, return values, receivers
    of non-mutating methods).

Nested functions, lambdas, classes and comprehensions are transparent: the walk
enters them with their own scope so that an inner closure's reference to an outer
binding is still attributed correctly. Calls to a primitive the policy analyses on
its own have their callback argument skipped.
"""

from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Sequence, Set, Union

import libcst as cst

from exhaustive_deps.analysis.bindings import INTERNAL, Binding, BindingResolver
from exhaustive_deps.analysis.paths import AccessPath, PathMatch, is_getattr_call, match_path
from exhaustive_deps.analysis.scopes import Scope, ScopeTree
from exhaustive_deps.core.budget import BudgetTracker
from exhaustive_deps.enums import UsageKind
from exhaustive_deps.policy import Policy

Callback = Union[cst.FunctionDef, cst.Lambda]

_KEYWORD_NAMES = frozenset({"True", "False", "None"})


@dataclass(frozen=True)
class Usage:
  """
  All occurrences of one access path inside a callback, merged.

  Attributes:
      path: The normalized path.
      kind: Union of the read/write kinds of every occurrence.
      binding: The resolved binding of the root, or None for external names.
      order: Sequence number of the first occurrence (body order).
      identity: At least one read used the value itself (not only as a method receiver).
      receiver: At least one read was as the receiver of a method call.
  """

  path: AccessPath
  kind: UsageKind
  binding: Optional[Binding]
  order: int
  identity: bool = False
  receiver: bool = False

  @property
  def is_external(self) -> bool:
    return self.binding is None

  @property
  def receiver_only(self) -> bool:
    return self.receiver and not self.identity

  def merge(self, other: "Usage") -> "Usage":
    """Combines two occurrences of the same path, keeping the first order."""
    return replace(
      self,
      kind=self.kind.merge(other.kind),
      identity=self.identity or other.identity,
      receiver=self.receiver or other.receiver,
    )


def param_defaults(params: cst.Parameters) -> List[cst.BaseExpression]:
  every = [*params.posonly_params, *params.params, *params.kwonly_params]
  return [p.default for p in every if p.default is not None]


class UsageCollector(cst.CSTVisitor):
  """
  Single depth-first pass over a callback, producing merged ``Usage`` records.
  """

  def __init__(
    self,
    tree: ScopeTree,
    callback_scope: Scope,
    resolver: BindingResolver,
    policy: Policy,
    tracker: BudgetTracker,
  ):
    """
    Initializes the collector.

    Args:
        tree: Scope tree of the module holding the callback.
        callback_scope: Scope opened by the callback.
        resolver: Per-analysis binding resolver.
        policy: The analysis policy (mutation allowlist, hook registry).
        tracker: Budget tracker ticked for every visited node.
    """
    self.tree = tree
    self.callback_scope = callback_scope
    self.resolver = resolver
    self.policy = policy
    self.tracker = tracker
    self.usages: Dict[AccessPath, Usage] = {}
    self._plain: Set[AccessPath] = set()
    self._scopes: List[Scope] = []
    self._order = 0

  @property
  def scope(self) -> Scope:
    return self._scopes[-1]

  def collect(self, callback: Callback) -> List[Usage]:
    """
    Walks the callback and returns its external usages in first-use order.

    Parameter defaults are evaluated when the callback is created, so they are
    walked in the enclosing scope. The budget is enforced after the defaults and
    after every top-level statement of the body.

    Args:
        callback: The function or lambda node opening ``callback_scope``.

    Returns:
        List[Usage]: Merged usages ordered by first occurrence. A getattr step
        keeps its default-value spelling only when no occurrence of that step
        was a plain attribute access.

    Raises:
        BudgetExhausted: When a checkpoint finds a limit crossed.
    """
    self._scopes = [self.callback_scope.parent or self.callback_scope]
    for default in param_defaults(callback.params):
      default.visit(self)
    self.tracker.checkpoint()

    self._scopes.append(self.callback_scope)
    for statement in self._top_level(callback):
      statement.visit(self)
      self.tracker.checkpoint()
    self._scopes.pop()

    ordered = sorted(self.usages.values(), key=lambda u: u.order)
    return [replace(u, path=u.path.drop_guards(self._plain)) for u in ordered]

  @staticmethod
  def _top_level(callback: Callback) -> Sequence[cst.CSTNode]:
    if isinstance(callback, cst.Lambda):
      return [callback.body]
    return callback.body.body

  def on_visit(self, node: cst.CSTNode) -> bool:
    self.tracker.tick()
    return super().on_visit(node)

  # --- Recording ---

  def _record(
    self,
    match: PathMatch,
    kind: UsageKind,
    receiver: bool = False,
  ) -> None:
    for detached in match.detached:
      detached.visit(self)

    resolution = self.resolver.resolve(match.path.root, self.scope)
    if resolution is INTERNAL:
      return

    usage = Usage(
      path=match.path,
      kind=kind,
      binding=resolution,
      order=self._order,
      identity=kind.reads and not receiver,
      receiver=kind.reads and receiver,
    )
    self._order += 1
    self._plain.update(match.path.plain_steps())
    existing = self.usages.get(match.path)
    self.usages[match.path] = existing.merge(usage) if existing else usage

  def _visit_target(self, target: cst.BaseExpression, kind: UsageKind) -> None:
    """
    Records an assignment-like target with the given kind.
    """
    if isinstance(target, (cst.Tuple, cst.List)):
      for element in target.elements:
        self._visit_target(element.value, kind)
      return
    if isinstance(target, cst.StarredElement):
      self._visit_target(target.value, kind)
      return

    self.tracker.tick()
    match = match_path(target)
    if match is not None:
      # A slice or tuple-index target writes the sliced value.
      self._record(match, kind)
    elif isinstance(target, cst.Attribute):
      target.value.visit(self)
    else:
      target.visit(self)

  def _visit_detached(self, nodes: Sequence[cst.CSTNode]) -> None:
    for node in nodes:
      node.visit(self)

  # --- Scope-opening nodes ---

  def _enter(self, node: cst.CSTNode, body: Sequence[cst.CSTNode]) -> None:
    scope = self.tree.scope_of(node)
    self._scopes.append(scope or self.scope)
    self._visit_detached(body)
    self._scopes.pop()

  def _is_primitive_decorator(self, decorator: cst.Decorator) -> bool:
    expr = decorator.decorator
    call = expr if isinstance(expr, cst.Call) else cst.Call(func=expr)
    return self.policy.match_primitive(call) is not None

  def visit_FunctionDef(self, node: cst.FunctionDef) -> bool:
    self._visit_detached([d.decorator for d in node.decorators])
    self._visit_detached(param_defaults(node.params))
    if any(self._is_primitive_decorator(d) for d in node.decorators):
      # Analysed on its own.
      return False
    self._enter(node, [node.body])
    return False

  def visit_Lambda(self, node: cst.Lambda) -> bool:
    self._visit_detached(param_defaults(node.params))
    self._enter(node, [node.body])
    return False

  def visit_ClassDef(self, node: cst.ClassDef) -> bool:
    self._visit_detached([d.decorator for d in node.decorators])
    self._visit_detached([arg.value for arg in (*node.bases, *node.keywords)])
    self._enter(node, [node.body])
    return False

  def _visit_comprehension(self, node: Union[cst.ListComp, cst.SetComp, cst.DictComp, cst.GeneratorExp]) -> bool:
    first = node.for_in
    first.iter.visit(self)
    self._scopes.append(self.tree.scope_of(node) or self.scope)
    for_in: Optional[cst.CompFor] = first
    while for_in is not None:
      if for_in is not first:
        for_in.iter.visit(self)
      self._visit_target(for_in.target, UsageKind.WRITE)
      for cond in for_in.ifs:
        cond.test.visit(self)
      for_in = for_in.inner_for_in
    if isinstance(node, cst.DictComp):
      self._visit_detached([node.key, node.value])
    else:
      node.elt.visit(self)
    self._scopes.pop()
    return False

  def visit_ListComp(self, node: cst.ListComp) -> bool:
    return self._visit_comprehension(node)

  def visit_SetComp(self, node: cst.SetComp) -> bool:
    return self._visit_comprehension(node)

  def visit_DictComp(self, node: cst.DictComp) -> bool:
    return self._visit_comprehension(node)

  def visit_GeneratorExp(self, node: cst.GeneratorExp) -> bool:
    return self._visit_comprehension(node)

  # --- Expressions ---

  def visit_Name(self, node: cst.Name) -> bool:
    if node.value in _KEYWORD_NAMES:
      return False
    self._record(PathMatch(path=AccessPath(node.value), root=node), UsageKind.READ)
    return False

  def visit_Attribute(self, node: cst.Attribute) -> bool:
    match = match_path(node)
    if match is not None:
      self._record(match, UsageKind.READ)
    else:
      # Path rooted in a call or literal: only the base is an expression.
      node.value.visit(self)
    return False

  def visit_Subscript(self, node: cst.Subscript) -> bool:
    match = match_path(node)
    if match is None:
      return True
    self._record(match, UsageKind.READ)
    return False

  def visit_Call(self, node: cst.Call) -> bool:
    if is_getattr_call(node):
      match = match_path(node)
      if match is not None:
        self._record(match, UsageKind.READ)
        return False

    spec = self.policy.match_primitive(node)
    if spec is not None:
      skipped = spec.callback_arg(node)
      node.func.visit(self)
      self._visit_detached([arg.value for arg in node.args if arg.value is not skipped])
      return False

    func = node.func
    if isinstance(func, cst.Attribute):
      receiver = match_path(func.value)
      if receiver is not None:
        kind = UsageKind.WRITE if func.attr.value in self.policy.mutation_methods else UsageKind.READ
        self._record(receiver, kind, receiver=True)
      else:
        func.value.visit(self)
    else:
      func.visit(self)
    self._visit_detached([arg.value for arg in node.args])
    return False

  def visit_Arg(self, node: cst.Arg) -> bool:
    node.value.visit(self)
    return False

  def visit_Annotation(self, node: cst.Annotation) -> bool:
    return False

  # --- Binding statements ---

  def visit_Assign(self, node: cst.Assign) -> bool:
    node.value.visit(self)
    for target in node.targets:
      self._visit_target(target.target, UsageKind.WRITE)
    return False

  def visit_AnnAssign(self, node: cst.AnnAssign) -> bool:
    if node.value is not None:
      node.value.visit(self)
      self._visit_target(node.target, UsageKind.WRITE)
    return False

  def visit_AugAssign(self, node: cst.AugAssign) -> bool:
    node.value.visit(self)
    self._visit_target(node.target, UsageKind.READWRITE)
    return False

  def visit_NamedExpr(self, node: cst.NamedExpr) -> bool:
    node.value.visit(self)
    self._visit_target(node.target, UsageKind.WRITE)
    return False

  def visit_Del(self, node: cst.Del) -> bool:
    self._visit_target(node.target, UsageKind.WRITE)
    return False

  def visit_For(self, node: cst.For) -> bool:
    node.iter.visit(self)
    self._visit_target(node.target, UsageKind.WRITE)
    node.body.visit(self)
    if node.orelse is not None:
      node.orelse.visit(self)
    return False

  def visit_WithItem(self, node: cst.WithItem) -> bool:
    node.item.visit(self)
    if node.asname is not None:
      self._visit_target(node.asname.name, UsageKind.WRITE)
    return False

  def visit_ExceptHandler(self, node: cst.ExceptHandler) -> bool:
    if node.type is not None:
      node.type.visit(self)
    node.body.visit(self)
    return False

  def visit_ExceptStarHandler(self, node: cst.ExceptStarHandler) -> bool:
    node.type.visit(self)
    node.body.visit(self)
    return False

  def visit_Import(self, node: cst.Import) -> bool:
    return False

  def visit_ImportFrom(self, node: cst.ImportFrom) -> bool:
    return False

  def visit_Global(self, node: cst.Global) -> bool:
    return False

  def visit_Nonlocal(self, node: cst.Nonlocal) -> bool:
    return False

  # --- Match statement captures ---

  def visit_MatchAs(self, node: cst.MatchAs) -> bool:
    if node.pattern is not None:
      node.pattern.visit(self)
    return False

  def visit_MatchStar(self, node: cst.MatchStar) -> bool:
    return False

  def visit_MatchMapping(self, node: cst.MatchMapping) -> bool:
    for element in node.elements:
      element.key.visit(self)
      element.pattern.visit(self)
    return False

  def visit_MatchKeywordElement(self, node: cst.MatchKeywordElement) -> bool:
    node.pattern.visit(self)
    return False
