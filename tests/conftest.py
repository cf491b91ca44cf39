"""
Pytest Configuration and Fixtures.

Includes:
- Syspath patching for local imports.
- Helpers that locate the first hook call of a snippet and analyse it.
- Console isolation so log capture in one test does not leak into another.
"""

import sys
import textwrap
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import libcst as cst
import pytest

# Add src to path so we can import 'exhaustive_deps' without installing it
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from exhaustive_deps.analysis.bindings import BindingResolver  # noqa: E402
from exhaustive_deps.analysis.scopes import ScopeTree, build_scope_tree  # noqa: E402
from exhaustive_deps.analysis.usages import Usage, UsageCollector  # noqa: E402
from exhaustive_deps.core.budget import BudgetTracker  # noqa: E402
from exhaustive_deps.core.checker import CallSite, DependencyChecker  # noqa: E402
from exhaustive_deps.core.engine import analyze  # noqa: E402
from exhaustive_deps.core.results import AnalysisResult  # noqa: E402
from exhaustive_deps.policy import Policy  # noqa: E402
from exhaustive_deps.utils.console import reset_console  # noqa: E402


def parse(code: str) -> cst.Module:
  return cst.parse_module(textwrap.dedent(code))


def hook_sites(code: str, policy: Optional[Policy] = None) -> Tuple[List[CallSite], ScopeTree]:
  """
  Parses a snippet and returns its primitive call sites plus the scope tree.
  """
  module = parse(code)
  tree = build_scope_tree(module)
  sites = DependencyChecker(policy=policy or Policy()).find_call_sites(module, tree)
  return sites, tree


@pytest.fixture
def run_hook():
  """
  Returns a helper analysing the N-th hook call of a snippet.
  """

  def _run(code: str, policy: Optional[Policy] = None, index: int = 0) -> AnalysisResult:
    base = policy or Policy()
    sites, tree = hook_sites(code, base)
    site = sites[index]
    return analyze(site.callback, site.declared, tree.chain_for(site.callback), base.for_primitive(site.spec))

  return _run


@pytest.fixture
def collect_usages():
  """
  Returns a helper collecting the usages of the first hook callback, keyed by path.
  """

  def _collect(code: str, policy: Optional[Policy] = None) -> Dict[str, Usage]:
    base = policy or Policy()
    sites, tree = hook_sites(code, base)
    callback = sites[0].callback
    scope = tree.scope_of(callback)
    resolver = BindingResolver(tree, scope, base)
    collector = UsageCollector(tree, scope, resolver, base, BudgetTracker(base.budget))
    return {u.path.render(): u for u in collector.collect(callback)}

  return _collect


@pytest.fixture(autouse=True)
def isolate_console():
  yield
  reset_console()
