"""
Lexical Scope Tree.

This module builds an explicit, indexable tree of Python name scopes for a parsed
module. Every module, class, function, lambda and comprehension gets a ``Scope``
holding the declarations it owns. The tree is built once per module, is never
mutated afterwards, and may be shared between analyses of independent callbacks.

Python's rules are modelled directly:

1.  **Function locality**: a name bound anywhere in a function is local to it.
2.  **Redirects**: ``global`` and ``nonlocal`` move the binding to the owning scope,
    so reassignments through them count against that scope's declaration.
3.  **Comprehensions**: loop targets belong to the comprehension; walrus targets
    bind in the nearest enclosing non-comprehension scope.
4.  **Class bodies**: names declared in a class are invisible to nested scopes.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Set, Tuple, Union

import libcst as cst

from exhaustive_deps.enums import DeclarationKind, ScopeKind

FunctionLike = Union[cst.FunctionDef, cst.Lambda]
Comprehension = Union[cst.ListComp, cst.SetComp, cst.DictComp, cst.GeneratorExp]


@dataclass(frozen=True)
class Declaration:
  """
  One syntactic binding of a name.

  Attributes:
      name: The bound identifier.
      kind: Syntactic origin (assignment, import, parameter, ...).
      node: The binding site (Name, FunctionDef, ClassDef or ImportAlias).
      value: Right-hand side of the binding statement, when there is one.
      unpack_index: Position inside a tuple/list target, if unpacked.
      unpack_size: Number of names in that tuple/list target.
      origin_scope_id: Scope the statement lexically appears in. Differs from the
          owning scope when the binding went through ``global``/``nonlocal``.
  """

  name: str
  kind: DeclarationKind
  node: cst.CSTNode
  value: Optional[cst.BaseExpression] = None
  unpack_index: Optional[int] = None
  unpack_size: Optional[int] = None
  origin_scope_id: int = 0


class Scope:
  """
  A single lexical scope and the declarations it owns.
  """

  def __init__(self, scope_id: int, kind: ScopeKind, node: cst.CSTNode, parent: Optional["Scope"] = None):
    """
    Initialize the scope.

    Args:
        scope_id: Sequential index inside the owning tree.
        kind: Block type.
        node: The syntax node opening the scope.
        parent: Enclosing scope (None for the module).
    """
    self.scope_id = scope_id
    self.kind = kind
    self.node = node
    self.parent = parent
    self.children: List["Scope"] = []
    self.declarations: Dict[str, List[Declaration]] = {}
    self.global_names: Set[str] = set()
    self.nonlocal_names: Set[str] = set()

  @property
  def name(self) -> str:
    if isinstance(self.node, (cst.FunctionDef, cst.ClassDef)):
      return self.node.name.value
    return f"<{self.kind.value}>"

  def declare(self, decl: Declaration) -> None:
    self.declarations.setdefault(decl.name, []).append(decl)

  def owns(self, name: str) -> bool:
    return name in self.declarations

  def is_within(self, other: "Scope") -> bool:
    """
    Checks whether this scope is ``other`` or nested anywhere inside it.

    Args:
        other: The candidate ancestor scope.

    Returns:
        bool: True if ``other`` is on this scope's parent chain (inclusive).
    """
    curr: Optional[Scope] = self
    while curr is not None:
      if curr is other:
        return True
      curr = curr.parent
    return False

  def enclosing_function(self) -> Optional["Scope"]:
    """Returns the nearest function or lambda scope, including this one."""
    curr: Optional[Scope] = self
    while curr is not None:
      if curr.kind in (ScopeKind.FUNCTION, ScopeKind.LAMBDA):
        return curr
      curr = curr.parent
    return None

  def __repr__(self) -> str:
    return f"Scope({self.scope_id}, {self.kind.value}, {self.name})"


class ScopeTree:
  """
  Read-only index of every scope in a module.
  """

  def __init__(self) -> None:
    self.scopes: List[Scope] = []
    self._by_node: Dict[cst.CSTNode, Scope] = {}

  @property
  def module(self) -> Scope:
    return self.scopes[0]

  def new_scope(self, kind: ScopeKind, node: cst.CSTNode, parent: Optional[Scope]) -> Scope:
    scope = Scope(len(self.scopes), kind, node, parent)
    self.scopes.append(scope)
    self._by_node[node] = scope
    if parent is not None:
      parent.children.append(scope)
    return scope

  def scope_of(self, node: cst.CSTNode) -> Optional[Scope]:
    """
    Returns the scope opened by ``node`` (module, def, lambda, class, comprehension).
    """
    return self._by_node.get(node)

  def chain_for(self, node: cst.CSTNode) -> "ScopeChain":
    """
    Builds the scope chain enclosing a scope-opening node.

    Args:
        node: A function, lambda, class or comprehension node indexed by the tree.

    Returns:
        ScopeChain: Chain rooted at the scope the node is defined in.

    Raises:
        KeyError: If the node does not open a scope of this tree.
    """
    scope = self._by_node.get(node)
    if scope is None:
      raise KeyError(f"Node {type(node).__name__} is not indexed by this scope tree")
    return ScopeChain(self, scope.parent or scope)

  def lookup(self, name: str, scope: Scope) -> Optional[Scope]:
    """
    Finds the scope that declares ``name`` as seen from ``scope``.

    Innermost declaration wins. Class scopes are only consulted when the lookup
    starts inside them. ``global`` jumps straight to the module and ``nonlocal``
    continues from the parent.

    Args:
        name: Identifier being referenced.
        scope: Scope the reference occurs in.

    Returns:
        The declaring Scope, or None for builtins and undeclared names.
    """
    curr: Optional[Scope] = scope
    while curr is not None:
      if name in curr.global_names:
        return self.module if self.module.owns(name) else None
      if name in curr.nonlocal_names:
        curr = curr.parent
        continue
      if curr.kind is ScopeKind.CLASS and curr is not scope:
        curr = curr.parent
        continue
      if curr.owns(name):
        return curr
      curr = curr.parent
    return None

  def declarations(self, name: str, scope: Scope) -> Tuple[Optional[Scope], Sequence[Declaration]]:
    owner = self.lookup(name, scope)
    if owner is None:
      return None, ()
    return owner, owner.declarations[name]


@dataclass(frozen=True)
class ScopeChain:
  """
  The chain of scopes enclosing an analysed callback, from innermost outwards.
  """

  tree: ScopeTree
  scope: Scope

  def lookup(self, name: str) -> Optional[Scope]:
    return self.tree.lookup(name, self.scope)

  def __iter__(self):
    curr: Optional[Scope] = self.scope
    while curr is not None:
      yield curr
      curr = curr.parent


class _RedirectScanner(cst.CSTVisitor):
  """
  Collects ``global``/``nonlocal`` names of one function body without entering
  nested scopes.
  """

  def __init__(self) -> None:
    self.global_names: Set[str] = set()
    self.nonlocal_names: Set[str] = set()

  def visit_Global(self, node: cst.Global) -> bool:
    self.global_names.update(item.name.value for item in node.names)
    return False

  def visit_Nonlocal(self, node: cst.Nonlocal) -> bool:
    self.nonlocal_names.update(item.name.value for item in node.names)
    return False

  def visit_FunctionDef(self, node: cst.FunctionDef) -> bool:
    return False

  def visit_ClassDef(self, node: cst.ClassDef) -> bool:
    return False

  def visit_Lambda(self, node: cst.Lambda) -> bool:
    return False


class ScopeBuilder(cst.CSTVisitor):
  """
  Single pass that populates a ``ScopeTree`` with scopes and declarations.
  """

  def __init__(self) -> None:
    self.tree = ScopeTree()
    self._stack: List[Scope] = []
    self._pending_nonlocal: List[Tuple[Scope, Declaration]] = []

  @property
  def current(self) -> Scope:
    return self._stack[-1]

  # --- Scope management ---

  def _push(self, kind: ScopeKind, node: cst.CSTNode) -> Scope:
    parent = self._stack[-1] if self._stack else None
    scope = self.tree.new_scope(kind, node, parent)
    self._stack.append(scope)
    return scope

  def _pop(self) -> None:
    self._stack.pop()

  def _scan_redirects(self, scope: Scope, body: cst.CSTNode) -> None:
    scanner = _RedirectScanner()
    body.visit(scanner)
    scope.global_names = scanner.global_names
    scope.nonlocal_names = scanner.nonlocal_names

  def finish(self) -> ScopeTree:
    """
    Resolves deferred ``nonlocal`` bindings once every scope is known.

    Returns:
        ScopeTree: The completed tree.
    """
    for origin, decl in self._pending_nonlocal:
      owner = origin.parent
      while owner is not None:
        if owner.kind in (ScopeKind.FUNCTION, ScopeKind.LAMBDA) and owner.owns(decl.name):
          if decl.name not in owner.nonlocal_names:
            break
        owner = owner.parent
      if owner is None:
        owner = origin.parent.enclosing_function() if origin.parent else None
      (owner or self.tree.module).declare(decl)
    self._pending_nonlocal.clear()
    return self.tree

  # --- Declarations ---

  def _declare(
    self,
    name: str,
    kind: DeclarationKind,
    node: cst.CSTNode,
    value: Optional[cst.BaseExpression] = None,
    unpack_index: Optional[int] = None,
    unpack_size: Optional[int] = None,
    skip_comprehensions: bool = False,
  ) -> None:
    scope = self.current
    if skip_comprehensions:
      while scope.kind is ScopeKind.COMPREHENSION and scope.parent is not None:
        scope = scope.parent

    decl = Declaration(
      name=name,
      kind=kind,
      node=node,
      value=value,
      unpack_index=unpack_index,
      unpack_size=unpack_size,
      origin_scope_id=scope.scope_id,
    )

    if name in scope.global_names and scope is not self.tree.module:
      self.tree.module.declare(decl)
    elif name in scope.nonlocal_names:
      self._pending_nonlocal.append((scope, decl))
    else:
      scope.declare(decl)

  def _declare_target(
    self,
    target: cst.BaseExpression,
    kind: DeclarationKind,
    value: Optional[cst.BaseExpression] = None,
    unpack_index: Optional[int] = None,
    unpack_size: Optional[int] = None,
    skip_comprehensions: bool = False,
  ) -> None:
    if isinstance(target, cst.Name):
      self._declare(target.value, kind, target, value, unpack_index, unpack_size, skip_comprehensions)
    elif isinstance(target, (cst.Tuple, cst.List)):
      size = len(target.elements)
      for idx, element in enumerate(target.elements):
        self._declare_target(element.value, kind, value, idx, size, skip_comprehensions)
    elif isinstance(target, cst.StarredElement):
      self._declare_target(target.value, kind, value, unpack_index, unpack_size, skip_comprehensions)

  def _declare_params(self, params: cst.Parameters) -> None:
    every: List[cst.Param] = [*params.posonly_params, *params.params, *params.kwonly_params]
    if isinstance(params.star_arg, cst.Param):
      every.append(params.star_arg)
    if params.star_kwarg is not None:
      every.append(params.star_kwarg)
    for param in every:
      self._declare(param.name.value, DeclarationKind.PARAMETER, param.name)

  @staticmethod
  def _param_defaults(params: cst.Parameters) -> List[cst.BaseExpression]:
    every = [*params.posonly_params, *params.params, *params.kwonly_params]
    return [p.default for p in every if p.default is not None]

  # --- Scope-opening nodes ---

  def visit_Module(self, node: cst.Module) -> bool:
    self._push(ScopeKind.MODULE, node)
    return True

  def leave_Module(self, original_node: cst.Module) -> None:
    self._pop()

  def visit_FunctionDef(self, node: cst.FunctionDef) -> bool:
    self._declare(node.name.value, DeclarationKind.FUNCTION, node)
    for decorator in node.decorators:
      decorator.visit(self)
    for default in self._param_defaults(node.params):
      default.visit(self)

    scope = self._push(ScopeKind.FUNCTION, node)
    self._scan_redirects(scope, node.body)
    self._declare_params(node.params)
    node.body.visit(self)
    self._pop()
    return False

  def visit_Lambda(self, node: cst.Lambda) -> bool:
    for default in self._param_defaults(node.params):
      default.visit(self)
    self._push(ScopeKind.LAMBDA, node)
    self._declare_params(node.params)
    node.body.visit(self)
    self._pop()
    return False

  def visit_ClassDef(self, node: cst.ClassDef) -> bool:
    self._declare(node.name.value, DeclarationKind.CLASS, node)
    for decorator in node.decorators:
      decorator.visit(self)
    for arg in (*node.bases, *node.keywords):
      arg.value.visit(self)
    self._push(ScopeKind.CLASS, node)
    node.body.visit(self)
    self._pop()
    return False

  def _visit_comprehension(self, node: Comprehension) -> bool:
    first = node.for_in
    # The outermost iterable is evaluated in the enclosing scope.
    first.iter.visit(self)
    self._push(ScopeKind.COMPREHENSION, node)
    for_in: Optional[cst.CompFor] = first
    while for_in is not None:
      if for_in is not first:
        for_in.iter.visit(self)
      self._declare_target(for_in.target, DeclarationKind.LOOP)
      for cond in for_in.ifs:
        cond.test.visit(self)
      for_in = for_in.inner_for_in
    if isinstance(node, cst.DictComp):
      node.key.visit(self)
      node.value.visit(self)
    else:
      node.elt.visit(self)
    self._pop()
    return False

  def visit_ListComp(self, node: cst.ListComp) -> bool:
    return self._visit_comprehension(node)

  def visit_SetComp(self, node: cst.SetComp) -> bool:
    return self._visit_comprehension(node)

  def visit_DictComp(self, node: cst.DictComp) -> bool:
    return self._visit_comprehension(node)

  def visit_GeneratorExp(self, node: cst.GeneratorExp) -> bool:
    return self._visit_comprehension(node)

  # --- Binding statements ---

  def visit_Assign(self, node: cst.Assign) -> None:
    for target in node.targets:
      self._declare_target(target.target, DeclarationKind.ASSIGNMENT, node.value)

  def visit_AnnAssign(self, node: cst.AnnAssign) -> None:
    kind = DeclarationKind.ASSIGNMENT if node.value is not None else DeclarationKind.ANNOTATION
    self._declare_target(node.target, kind, node.value)

  def visit_AugAssign(self, node: cst.AugAssign) -> None:
    self._declare_target(node.target, DeclarationKind.AUGMENTED, node.value)

  def visit_For(self, node: cst.For) -> None:
    self._declare_target(node.target, DeclarationKind.LOOP, node.iter)

  def visit_WithItem(self, node: cst.WithItem) -> None:
    if node.asname is not None:
      self._declare_target(node.asname.name, DeclarationKind.WITH, node.item)

  def visit_ExceptHandler(self, node: cst.ExceptHandler) -> None:
    if node.name is not None:
      self._declare_target(node.name.name, DeclarationKind.EXCEPT)

  def visit_ExceptStarHandler(self, node: cst.ExceptStarHandler) -> None:
    if node.name is not None:
      self._declare_target(node.name.name, DeclarationKind.EXCEPT)

  def visit_NamedExpr(self, node: cst.NamedExpr) -> None:
    self._declare_target(node.target, DeclarationKind.WALRUS, node.value, skip_comprehensions=True)

  def visit_Del(self, node: cst.Del) -> None:
    self._declare_target(node.target, DeclarationKind.DELETE)

  def visit_Import(self, node: cst.Import) -> bool:
    for alias in node.names:
      if alias.asname is not None:
        self._declare_target(alias.asname.name, DeclarationKind.IMPORT)
      else:
        root = alias.name
        while isinstance(root, cst.Attribute):
          root = root.value
        self._declare(root.value, DeclarationKind.IMPORT, alias)
    return False

  def visit_ImportFrom(self, node: cst.ImportFrom) -> bool:
    if isinstance(node.names, cst.ImportStar):
      return False
    for alias in node.names:
      if alias.asname is not None:
        self._declare_target(alias.asname.name, DeclarationKind.IMPORT)
      elif isinstance(alias.name, cst.Name):
        self._declare(alias.name.value, DeclarationKind.IMPORT, alias)
    return False

  def visit_MatchAs(self, node: cst.MatchAs) -> None:
    if node.name is not None:
      self._declare(node.name.value, DeclarationKind.MATCH, node.name)

  def visit_MatchStar(self, node: cst.MatchStar) -> None:
    if node.name is not None:
      self._declare(node.name.value, DeclarationKind.MATCH, node.name)

  def visit_MatchMapping(self, node: cst.MatchMapping) -> None:
    if node.rest is not None:
      self._declare(node.rest.value, DeclarationKind.MATCH, node.rest)


def build_scope_tree(module: cst.Module) -> ScopeTree:
  """
  Builds the scope tree of a parsed module.

  Args:
      module: The LibCST module. Node identity is preserved, so callers can look
          up scopes using nodes taken from the same tree.

  Returns:
      ScopeTree: The completed, read-only tree.
  """
  builder = ScopeBuilder()
  module.visit(builder)
  return builder.finish()
