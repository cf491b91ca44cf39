"""
Resource Budget Tracking.

Every analysis runs under a ``Budget``: a maximum number of syntax nodes, a maximum
wall-clock duration and an optional cooperative cancellation probe. Node visits are
counted continuously, but limits are only *enforced* at checkpoints (after the
callback's parameter defaults and after each top-level statement of its body), so
an analysis never stops in the middle of an expression.
"""

import time
from typing import Optional

from exhaustive_deps.enums import BudgetReason
from exhaustive_deps.policy import Budget


class BudgetExhausted(Exception):
  """
  Internal signal raised at a checkpoint once a limit has been crossed.

  Never escapes ``analyze``; it is converted into a ``BudgetExceeded`` result.
  """

  def __init__(self, reason: BudgetReason, nodes_visited: int, elapsed_ms: float):
    super().__init__(f"Analysis budget exhausted ({reason.value}) after {nodes_visited} nodes")
    self.reason = reason
    self.nodes_visited = nodes_visited
    self.elapsed_ms = elapsed_ms


class BudgetTracker:
  """
  Counts visited nodes and elapsed time for a single analysis.
  """

  def __init__(self, budget: Budget):
    """
    Starts the clock.

    Args:
        budget: Limits to enforce.
    """
    self.budget = budget
    self.nodes_visited = 0
    self._started = time.perf_counter()

  @property
  def elapsed_ms(self) -> float:
    return (time.perf_counter() - self._started) * 1000.0

  def tick(self, count: int = 1) -> None:
    self.nodes_visited += count

  def exceeded(self) -> Optional[BudgetReason]:
    """
    Reports the first limit that has been crossed.

    Returns:
        The BudgetReason, or None while the analysis is within budget.
    """
    if self.budget.cancel is not None and self.budget.cancel():
      return BudgetReason.CANCELLED
    if self.nodes_visited > self.budget.max_nodes:
      return BudgetReason.NODES
    if self.elapsed_ms > self.budget.max_ms:
      return BudgetReason.TIME
    return None

  def checkpoint(self) -> None:
    """
    Enforces the budget.

    Raises:
        BudgetExhausted: If any limit has been crossed since the analysis started.
    """
    reason = self.exceeded()
    if reason is not None:
      raise BudgetExhausted(reason, self.nodes_visited, self.elapsed_ms)
