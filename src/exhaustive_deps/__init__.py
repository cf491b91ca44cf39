"""
exhaustive-deps Package.

Static dependency analysis for hook callbacks (``use_effect``, ``use_memo``,
``use_callback`` and friends): finds the outer values a callback reads, compares
them with the declared dependency array, and synthesizes a minimal fix.

Usage
-----

Checking Source
^^^^^^^^^^^^^^^

.. code-block:: python

    import exhaustive_deps as xd

    code = '''
    def Counter(step):
        count, set_count = use_state(0)
        use_effect(lambda: set_count(count + step), [])
    '''
    for report in xd.check(code):
        print(report.line, report.result.printable())
    # 4 {'missing': ['count', 'step'], ...}

Analysing One Callback
^^^^^^^^^^^^^^^^^^^^^^

.. code-block:: python

    from exhaustive_deps import Policy, analyze, build_scope_tree

    tree = build_scope_tree(module)
    verdict = analyze(callback, deps_node, tree.chain_for(callback), Policy())
"""

from typing import List, Optional

from exhaustive_deps.analysis.paths import AccessPath, normalize
from exhaustive_deps.analysis.scopes import ScopeChain, ScopeTree, build_scope_tree
from exhaustive_deps.config import RuntimeConfig
from exhaustive_deps.core.checker import CheckReport, DependencyChecker
from exhaustive_deps.core.engine import analyze
from exhaustive_deps.core.results import (
  AnalysisError,
  Ambiguity,
  BudgetExceeded,
  EditOperation,
  EditPlan,
  PartialVerdict,
  Verdict,
)
from exhaustive_deps.core.synthesis import apply_edit_plan
from exhaustive_deps.policy import Budget, Policy

__version__ = "0.1.0"


def check(code: str, config: Optional[RuntimeConfig] = None) -> List[CheckReport]:
  """
  Analyses every hook call in a string of Python code.

  Args:
      code (str): The module source.
      config (RuntimeConfig, optional): Checker configuration. Defaults are used
          when omitted; call ``RuntimeConfig.load()`` to honour pyproject.toml.

  Returns:
      List[CheckReport]: One report per hook call, in source order.
  """
  return DependencyChecker(config=config).check_source(code)


def fix(code: str, config: Optional[RuntimeConfig] = None) -> str:
  """
  Rewrites every fully analysed dependency array in a string of Python code.

  Args:
      code (str): The module source.
      config (RuntimeConfig, optional): Checker configuration.

  Returns:
      str: The fixed source. Partial verdicts are left untouched.
  """
  return DependencyChecker(config=config).fix_source(code)


__all__ = [
  "AccessPath",
  "Ambiguity",
  "AnalysisError",
  "Budget",
  "BudgetExceeded",
  "CheckReport",
  "DependencyChecker",
  "EditOperation",
  "EditPlan",
  "PartialVerdict",
  "Policy",
  "RuntimeConfig",
  "ScopeChain",
  "ScopeTree",
  "Verdict",
  "analyze",
  "apply_edit_plan",
  "build_scope_tree",
  "check",
  "fix",
  "normalize",
  "__version__",
]
