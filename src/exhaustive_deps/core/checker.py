"""
Module-level Dependency Checker.

Finds every primitive call in a source module, resolves its callback, runs
``analyze`` on each, and optionally applies the synthesized edit plans:

1.  **Discovery**: ``use_effect(lambda: ..., [...])``, ``use_memo(compute, [...])``
    where ``compute`` is a local ``def``, and the decorator forms ``@use_effect``
    / ``@use_effect(dependencies=[...])``.
2.  **Checking**: each site is analysed with the policy specialised to its hook.
3.  **Fixing**: every ``Verdict`` with changes is applied in one transform pass.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple, Union

import libcst as cst
from libcst.metadata import MetadataWrapper, PositionProvider
from rich.markup import escape

from exhaustive_deps.analysis.scopes import Scope, ScopeTree, build_scope_tree
from exhaustive_deps.config import RuntimeConfig
from exhaustive_deps.core.engine import analyze
from exhaustive_deps.core.results import (
  AnalysisResult,
  Ambiguity,
  BudgetExceeded,
  PartialVerdict,
  Verdict,
)
from exhaustive_deps.core.synthesis import apply_edit_plan
from exhaustive_deps.enums import AmbiguityKind, DeclarationKind
from exhaustive_deps.policy import Policy, PrimitiveSpec
from exhaustive_deps.utils.console import log_debug, log_info, log_warning

Callback = Union[cst.FunctionDef, cst.Lambda]


@dataclass(frozen=True)
class CallSite:
  """
  One use of a primitive.

  Attributes:
      spec: The matched primitive.
      anchor: The ``Call`` or ``Decorator`` node carrying the dependency argument.
      callback: The resolved callback, or None when it cannot be inspected.
      declared: The dependency argument, if any.
      line: 1-based line of the anchor.
      column: 0-based column of the anchor.
      detail: Why the callback could not be resolved.
  """

  spec: PrimitiveSpec
  anchor: Union[cst.Call, cst.Decorator]
  callback: Optional[Callback]
  declared: Optional[cst.BaseExpression]
  line: int = 0
  column: int = 0
  detail: str = ""


@dataclass(frozen=True)
class CheckReport:
  """The analysis result of one call site, with its location."""

  hook: str
  line: int
  column: int
  result: AnalysisResult


class _CallSiteFinder(cst.CSTVisitor):
  """
  Collects primitive call sites while tracking the lexical scope.
  """

  METADATA_DEPENDENCIES = (PositionProvider,)

  def __init__(self, tree: ScopeTree, policy: Policy):
    super().__init__()
    self.tree = tree
    self.policy = policy
    self.sites: List[CallSite] = []
    self._scopes: List[Scope] = []
    self._decorator_calls: Set[cst.Call] = set()

  def _site(
    self,
    spec: PrimitiveSpec,
    anchor: Union[cst.Call, cst.Decorator],
    callback: Optional[Callback],
    declared: Optional[cst.BaseExpression],
    detail: str = "",
  ) -> None:
    pos = self.get_metadata(PositionProvider, anchor).start
    self.sites.append(CallSite(spec, anchor, callback, declared, pos.line, pos.column, detail))

  def _resolve_callback(self, expr: Optional[cst.BaseExpression]) -> Union[Callback, str]:
    if isinstance(expr, cst.Lambda):
      return expr
    if expr is None:
      return "no callback argument"
    if not isinstance(expr, cst.Name):
      return f"callback '{cst.Module([]).code_for_node(expr)}' is not a lambda or local function"
    owner, decls = self.tree.declarations(expr.value, self._scopes[-1])
    if owner is None or len(decls) != 1 or decls[0].kind is not DeclarationKind.FUNCTION:
      return f"callback '{expr.value}' does not resolve to a single local function"
    return decls[0].node

  # --- Scope tracking ---

  def _push(self, node: cst.CSTNode) -> None:
    scope = self.tree.scope_of(node)
    self._scopes.append(scope or self._scopes[-1])

  def _pop(self, original_node: cst.CSTNode) -> None:
    self._scopes.pop()

  def visit_Module(self, node: cst.Module) -> None:
    self._push(node)

  def visit_FunctionDef(self, node: cst.FunctionDef) -> None:
    for decorator in node.decorators:
      expr = decorator.decorator
      call = expr if isinstance(expr, cst.Call) else cst.Call(func=expr)
      spec = self.policy.match_primitive(call)
      if spec is None:
        continue
      declared = spec.decorator_deps_arg(expr) if isinstance(expr, cst.Call) else None
      if isinstance(expr, cst.Call):
        self._decorator_calls.add(expr)
      self._site(spec, decorator, node, declared)
    self._push(node)

  def visit_Lambda(self, node: cst.Lambda) -> None:
    self._push(node)

  def visit_ClassDef(self, node: cst.ClassDef) -> None:
    self._push(node)

  def visit_ListComp(self, node: cst.ListComp) -> None:
    self._push(node)

  def visit_SetComp(self, node: cst.SetComp) -> None:
    self._push(node)

  def visit_DictComp(self, node: cst.DictComp) -> None:
    self._push(node)

  def visit_GeneratorExp(self, node: cst.GeneratorExp) -> None:
    self._push(node)

  leave_Module = _pop
  leave_FunctionDef = _pop
  leave_Lambda = _pop
  leave_ClassDef = _pop
  leave_ListComp = _pop
  leave_SetComp = _pop
  leave_DictComp = _pop
  leave_GeneratorExp = _pop

  def visit_Call(self, node: cst.Call) -> None:
    if node in self._decorator_calls:
      return
    spec = self.policy.match_primitive(node)
    if spec is None:
      return
    resolved = self._resolve_callback(spec.callback_arg(node))
    if isinstance(resolved, str):
      self._site(spec, node, None, spec.deps_arg(node), resolved)
    else:
      self._site(spec, node, resolved, spec.deps_arg(node))


class _FixTransformer(cst.CSTTransformer):
  """
  Replaces dependency arrays, and adds them where a primitive had none.
  """

  def __init__(
    self,
    replacements: Dict[cst.CSTNode, cst.BaseExpression],
    additions: Dict[cst.CSTNode, Tuple[PrimitiveSpec, cst.BaseExpression]],
  ):
    super().__init__()
    self.replacements = replacements
    self.additions = additions

  def on_leave(self, original_node: cst.CSTNode, updated_node: cst.CSTNode):
    if original_node in self.replacements:
      return self.replacements[original_node]
    if original_node in self.additions:
      spec, array = self.additions[original_node]
      if isinstance(updated_node, cst.Decorator):
        return updated_node.with_changes(decorator=cst.Call(func=updated_node.decorator, args=[_deps_arg(spec, array)]))
      if isinstance(updated_node, cst.Call):
        positional = [a for a in updated_node.args if a.keyword is None and not a.star]
        if len(positional) == len(updated_node.args) == spec.deps_index:
          new_arg = cst.Arg(value=array)
        else:
          new_arg = _deps_arg(spec, array)
        return updated_node.with_changes(args=[*updated_node.args, new_arg])
    return super().on_leave(original_node, updated_node)


def _deps_arg(spec: PrimitiveSpec, array: cst.BaseExpression) -> cst.Arg:
  return cst.Arg(
    value=array,
    keyword=cst.Name(spec.deps_keyword),
    equal=cst.AssignEqual(
      whitespace_before=cst.SimpleWhitespace(""),
      whitespace_after=cst.SimpleWhitespace(""),
    ),
  )


class DependencyChecker:
  """
  Runs dependency analysis over whole source modules.
  """

  def __init__(self, config: Optional[RuntimeConfig] = None, policy: Optional[Policy] = None):
    """
    Initializes the checker.

    Args:
        config: Runtime configuration; used to build the policy when none is given.
        policy: Explicit base policy. Takes precedence over ``config``.
    """
    self.config = config or RuntimeConfig()
    self.policy = policy or self.config.to_policy()

  def find_call_sites(self, module: cst.Module, tree: Optional[ScopeTree] = None) -> List[CallSite]:
    """
    Lists every primitive call site of a module in source order.

    Args:
        module: The parsed module.
        tree: Its scope tree; built when omitted.

    Returns:
        List[CallSite]: Sites with their resolved callbacks.
    """
    wrapper = MetadataWrapper(module, unsafe_skip_copy=True)
    finder = _CallSiteFinder(tree or build_scope_tree(module), self.policy)
    wrapper.visit(finder)
    return finder.sites

  def _check_site(self, site: CallSite, tree: ScopeTree) -> AnalysisResult:
    if site.callback is None:
      return PartialVerdict(ambiguities=(Ambiguity(AmbiguityKind.UNINSPECTABLE_CALLBACK, site.detail),))
    policy = self.policy.for_primitive(site.spec)
    return analyze(site.callback, site.declared, tree.chain_for(site.callback), policy)

  def check_module(self, module: cst.Module) -> List[CheckReport]:
    """
    Analyses every call site of a parsed module.

    Args:
        module: The parsed module.

    Returns:
        List[CheckReport]: One report per site, in source order.
    """
    tree = build_scope_tree(module)
    reports: List[CheckReport] = []
    for site in self.find_call_sites(module, tree):
      result = self._check_site(site, tree)
      reports.append(CheckReport(site.spec.name, site.line, site.column, result))
      self._log(site, result)

    issues = sum(1 for r in reports if not (isinstance(r.result, Verdict) and r.result.is_clean))
    log_info(f"Checked {len(reports)} hook call(s), {issues} with findings.")
    return reports

  def check_source(self, code: str) -> List[CheckReport]:
    """
    Parses and analyses a source string.

    Args:
        code: Python source text.

    Returns:
        List[CheckReport]: One report per primitive call site.
    """
    return self.check_module(cst.parse_module(code))

  def fix_source(self, code: str) -> str:
    """
    Applies every synthesized edit plan to a source string.

    Partial verdicts and budget aborts are left untouched.

    Args:
        code: Python source text.

    Returns:
        str: The rewritten source.
    """
    module = cst.parse_module(code)
    tree = build_scope_tree(module)
    replacements: Dict[cst.CSTNode, cst.BaseExpression] = {}
    additions: Dict[cst.CSTNode, Tuple[PrimitiveSpec, cst.BaseExpression]] = {}

    for site in self.find_call_sites(module, tree):
      result = self._check_site(site, tree)
      if not isinstance(result, Verdict) or not result.edit_plan.has_changes:
        continue
      plan = result.edit_plan
      new_array = apply_edit_plan(site.declared, plan)
      if site.declared is not None:
        replacements[site.declared] = new_array
      else:
        additions[site.anchor] = (site.spec, new_array)

    if not (replacements or additions):
      return code
    return module.visit(_FixTransformer(replacements, additions)).code

  def _log(self, site: CallSite, result: AnalysisResult) -> None:
    where = f"{site.spec.name} at line {site.line}"
    if isinstance(result, BudgetExceeded):
      log_warning(f"{where}: analysis aborted ({result.reason.value} budget, {result.nodes_visited} nodes)")
    elif isinstance(result, PartialVerdict):
      details = "; ".join(escape(str(a)) for a in result.ambiguities)
      log_warning(f"{where}: partial analysis, {details}")
    elif not result.is_clean:
      found = {k: v for k, v in result.printable().items() if v and k != "unknown"}
      log_info(escape(f"{where}: {found}, recommended [{', '.join(result.recommendation)}]"))
    else:
      log_debug(f"{where}: dependencies are correct")
