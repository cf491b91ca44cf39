"""
LibCST helper functions shared by the analysis passes.

Includes name flattening for hook callee matching and "in vacuum" rendering of
detached nodes, used to preserve declared dependency elements verbatim.
"""

from typing import Optional, Union

import libcst as cst

# A dummy module used as a context to render detached nodes.
_RENDER_CTX = cst.parse_module("")


def get_full_name(node: Union[cst.BaseExpression, cst.CSTNode]) -> str:
  """
  Recursively resolves a CST Name or Attribute chain to a dot-separated string.

  Args:
    node: The CST node representing the identifier.

  Returns:
    str: The dotted name (e.g., "reactpy.hooks.use_effect"), or an empty string
    if the node is not a pure Name/Attribute chain.

  Example:
    >>> get_full_name(cst.Attribute(value=cst.Name("reactpy"), attr=cst.Name("use_ref")))
    'reactpy.use_ref'
  """
  if isinstance(node, cst.Name):
    return node.value
  elif isinstance(node, cst.Attribute):
    base = get_full_name(node.value)
    return f"{base}.{node.attr.value}" if base else ""
  return ""


def callee_name(node: Optional[cst.BaseExpression]) -> str:
  """
  Returns the final identifier of a call's callee.

  ``use_ref(...)``, ``hooks.use_ref(...)`` and ``reactpy.hooks.use_ref(...)`` all
  yield ``"use_ref"``, mirroring how hook names are matched regardless of the
  namespace they are imported through.

  Args:
    node: Any expression; only ``cst.Call`` nodes produce a name.

  Returns:
    str: The callee's last name segment, or an empty string.
  """
  if not isinstance(node, cst.Call):
    return ""
  func = node.func
  if isinstance(func, cst.Name):
    return func.value
  if isinstance(func, cst.Attribute) and get_full_name(func):
    return func.attr.value
  return ""


def render_node(node: cst.CSTNode) -> str:
  """
  Renders a LibCST node into its Python source code string representation.

  Args:
    node: The CST node to serialise, attached to a tree or constructed.

  Returns:
    str: The Python code string.
  """
  return _RENDER_CTX.code_for_node(node)


class _CommentFinder(cst.CSTVisitor):
  def __init__(self) -> None:
    self.found = False

  def visit_Comment(self, node: cst.Comment) -> bool:
    self.found = True
    return False


def contains_comment(node: cst.CSTNode) -> bool:
  """
  Checks whether a subtree carries any ``#`` comment in its owned whitespace.

  Args:
    node: The subtree root (for list elements this includes the trailing comma).

  Returns:
    bool: True if a comment would be lost by removing the subtree.
  """
  finder = _CommentFinder()
  node.visit(finder)
  return finder.found
